"""Match engine for vkwatch.

Keeps ``CommentKeywordMatch`` rows in sync with the current keyword set and
the current comment/post texts. Desired matches are always recomputed from
scratch and diffed against the stored rows, so only the minimal set of
inserts and deletes is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from vkwatch.database import insert_ignore_conflicts
from vkwatch.models.content import Comment, Post
from vkwatch.models.keywords import Keyword
from vkwatch.models.matches import CommentKeywordMatch, MatchSource
from vkwatch.services.matcher import (
    KeywordDefinition,
    KeywordMatcher,
    build_matchers,
    find_matching_keyword_ids,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcilePlan:
    """Keyword ids to insert and to delete for one ``(comment, source)``."""
    to_create: frozenset[int]
    to_delete: frozenset[int]

    @property
    def is_empty(self) -> bool:
        return not self.to_create and not self.to_delete


@dataclass
class ReconcileResult:
    """Rows actually written while applying a plan."""
    created: int = 0
    deleted: int = 0

    @property
    def changed(self) -> bool:
        return self.created > 0 or self.deleted > 0

    def __add__(self, other: "ReconcileResult") -> "ReconcileResult":
        return ReconcileResult(
            created=self.created + other.created,
            deleted=self.deleted + other.deleted,
        )


def plan_reconciliation(desired: Iterable[int], stored: Iterable[int]) -> ReconcilePlan:
    """Diff the desired keyword ids against the stored ones."""
    desired_set = frozenset(desired)
    stored_set = frozenset(stored)
    return ReconcilePlan(
        to_create=desired_set - stored_set,
        to_delete=stored_set - desired_set,
    )


def keyword_to_definition(keyword: Keyword) -> KeywordDefinition:
    """Convert a Keyword DB model to the matcher's KeywordDefinition."""
    return KeywordDefinition(
        id=keyword.id,
        word=keyword.word,
        is_phrase=bool(keyword.is_phrase),
        category=keyword.category,
    )


def list_active_keywords(db_session: Session) -> list[KeywordDefinition]:
    """Load the current active keyword set, ordered by id."""
    keywords = (
        db_session.query(Keyword)
        .filter(Keyword.is_active.is_(True))
        .order_by(Keyword.id)
        .all()
    )
    return [keyword_to_definition(k) for k in keywords]


class MatchReconciler:
    """Applies the minimal create/delete diff for one comment and source."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def load_stored(self, comment_id: int, source: MatchSource) -> set[int]:
        rows = (
            self.db.query(CommentKeywordMatch.keyword_id)
            .filter(
                CommentKeywordMatch.comment_id == comment_id,
                CommentKeywordMatch.source == source,
            )
            .all()
        )
        return {keyword_id for (keyword_id,) in rows}

    def reconcile(
        self,
        comment_id: int,
        source: MatchSource,
        desired: Iterable[int],
        stored: Optional[Iterable[int]] = None,
        commit: bool = True,
    ) -> ReconcileResult:
        """Bring the stored matches for ``(comment_id, source)`` to *desired*.

        When *stored* is None the current rows are loaded first. Delete and
        insert calls are only issued for non-empty diffs; inserts skip rows
        another writer created in the meantime.
        """
        if stored is None:
            stored = self.load_stored(comment_id, source)

        plan = plan_reconciliation(desired, stored)
        if plan.is_empty:
            return ReconcileResult()

        result = self.apply(comment_id, source, plan)
        if commit:
            self.db.commit()

        logger.debug(
            "Reconciled comment %s (%s): +%d -%d",
            comment_id,
            source.value,
            result.created,
            result.deleted,
        )
        return result

    def apply(self, comment_id: int, source: MatchSource, plan: ReconcilePlan) -> ReconcileResult:
        result = ReconcileResult()

        if plan.to_delete:
            result.deleted = (
                self.db.query(CommentKeywordMatch)
                .filter(
                    CommentKeywordMatch.comment_id == comment_id,
                    CommentKeywordMatch.source == source,
                    CommentKeywordMatch.keyword_id.in_(sorted(plan.to_delete)),
                )
                .delete(synchronize_session=False)
            )

        if plan.to_create:
            result.created = insert_ignore_conflicts(
                self.db,
                CommentKeywordMatch,
                [
                    {"comment_id": comment_id, "keyword_id": keyword_id, "source": source}
                    for keyword_id in sorted(plan.to_create)
                ],
                index_elements=("comment_id", "keyword_id", "source"),
            )

        return result


class MatchSynchronizer:
    """Live-ingestion hook: re-matches a comment whenever a relevant text changes.

    ``sync_comment`` is driven by ``CommentStore`` for every saved comment.
    Nothing in this package writes ``Post`` rows or edits comment texts, so
    ``on_text_changed`` and ``on_post_text_changed`` are the entry points for
    the external ingestion that does; ``BulkRecalculator`` covers whatever
    that ingestion missed.
    """

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.reconciler = MatchReconciler(db_session)

    def on_text_changed(self, comment_id: int, source: MatchSource) -> ReconcileResult:
        """Recompute one source's matches for a comment after a text edit.

        The keyword set is loaded fresh on every call.
        """
        comment = self.db.get(Comment, comment_id)
        if comment is None:
            logger.warning("on_text_changed: comment %s not found", comment_id)
            return ReconcileResult()

        matchers = build_matchers(list_active_keywords(self.db))
        if source == MatchSource.COMMENT:
            text = comment.text
        else:
            text = self._post_text(comment.owner_id, comment.post_id)

        desired = find_matching_keyword_ids(text, matchers)
        return self.reconciler.reconcile(comment.id, source, desired)

    def on_post_text_changed(self, owner_id: int, vk_post_id: int) -> ReconcileResult:
        """Recompute POST-source matches for every comment under a post."""
        matchers = build_matchers(list_active_keywords(self.db))
        desired = find_matching_keyword_ids(self._post_text(owner_id, vk_post_id), matchers)

        comment_ids = (
            self.db.query(Comment.id)
            .filter(Comment.owner_id == owner_id, Comment.post_id == vk_post_id)
            .order_by(Comment.id)
            .all()
        )

        total = ReconcileResult()
        for (comment_id,) in comment_ids:
            total += self.reconciler.reconcile(comment_id, MatchSource.POST, desired)
        return total

    def sync_comment(
        self,
        comment: Comment,
        matchers: Optional[Sequence[KeywordMatcher]] = None,
    ) -> ReconcileResult:
        """Reconcile both sources for a freshly saved comment."""
        if matchers is None:
            matchers = build_matchers(list_active_keywords(self.db))

        from_comment = find_matching_keyword_ids(comment.text, matchers)
        from_post = find_matching_keyword_ids(
            self._post_text(comment.owner_id, comment.post_id), matchers
        )

        result = self.reconciler.reconcile(comment.id, MatchSource.COMMENT, from_comment)
        result += self.reconciler.reconcile(comment.id, MatchSource.POST, from_post)
        return result

    def _post_text(self, owner_id: int, vk_post_id: int) -> Optional[str]:
        row = (
            self.db.query(Post.text)
            .filter(Post.owner_id == owner_id, Post.vk_post_id == vk_post_id)
            .first()
        )
        return row[0] if row else None
