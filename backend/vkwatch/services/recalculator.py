"""Bulk keyword-match recalculation for vkwatch.

Walks every comment in primary-key order and reconciles both match sources
against the current keyword set. Meant to be run by an operator after the
keyword list changes; re-running it from scratch always converges to the
same state.
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy import tuple_
from sqlalchemy.orm import Session

from vkwatch.models.content import Comment, Post
from vkwatch.models.matches import CommentKeywordMatch, MatchSource
from vkwatch.services.match_engine import MatchReconciler, list_active_keywords
from vkwatch.services.matcher import build_matchers, find_matching_keyword_ids

logger = logging.getLogger(__name__)

RECALCULATE_BATCH_SIZE: int = int(os.getenv("RECALCULATE_BATCH_SIZE", "1000"))


@dataclass
class RecalculationSummary:
    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class BulkRecalculator:
    """Recomputes every comment's matches in keyset-paginated batches."""

    def __init__(self, db_session: Session, batch_size: Optional[int] = None) -> None:
        self.db = db_session
        self.batch_size = max(batch_size or RECALCULATE_BATCH_SIZE, 1)
        self.reconciler = MatchReconciler(db_session)

    def recalculate_all(self) -> RecalculationSummary:
        matchers = build_matchers(list_active_keywords(self.db))
        summary = RecalculationSummary()
        total = self.db.query(Comment.id).count()

        logger.info(
            "Recalculating keyword matches: %d comments, %d keywords",
            total,
            len(matchers),
        )

        last_id = 0
        while True:
            comments = (
                self.db.query(Comment)
                .filter(Comment.id > last_id)
                .order_by(Comment.id)
                .limit(self.batch_size)
                .all()
            )
            if not comments:
                break

            post_texts = self._load_post_texts(comments)
            stored = self._load_stored_matches([c.id for c in comments])

            for comment in comments:
                post_text = post_texts.get((comment.owner_id, comment.post_id))
                desired = {
                    MatchSource.COMMENT: find_matching_keyword_ids(comment.text, matchers),
                    MatchSource.POST: find_matching_keyword_ids(post_text, matchers),
                }

                changed = False
                for source, desired_ids in desired.items():
                    result = self.reconciler.reconcile(
                        comment.id,
                        source,
                        desired_ids,
                        stored=stored[(comment.id, source)],
                        commit=False,
                    )
                    summary.created += result.created
                    summary.deleted += result.deleted
                    changed = changed or result.changed

                if changed:
                    summary.updated += 1
                summary.processed += 1

            last_id = comments[-1].id
            self.db.commit()

            logger.info("Recalculation progress: %d/%d comments", summary.processed, total)

        logger.info("Recalculation finished: %s", summary.as_dict())
        return summary

    def _load_post_texts(self, comments: list[Comment]) -> dict[tuple[int, int], Optional[str]]:
        keys = {(c.owner_id, c.post_id) for c in comments}
        if not keys:
            return {}

        rows = (
            self.db.query(Post.owner_id, Post.vk_post_id, Post.text)
            .filter(tuple_(Post.owner_id, Post.vk_post_id).in_(sorted(keys)))
            .all()
        )
        return {(owner_id, vk_post_id): text for owner_id, vk_post_id, text in rows}

    def _load_stored_matches(self, comment_ids: list[int]) -> dict[tuple[int, MatchSource], set[int]]:
        stored: dict[tuple[int, MatchSource], set[int]] = defaultdict(set)
        rows = (
            self.db.query(
                CommentKeywordMatch.comment_id,
                CommentKeywordMatch.keyword_id,
                CommentKeywordMatch.source,
            )
            .filter(CommentKeywordMatch.comment_id.in_(comment_ids))
            .all()
        )
        for comment_id, keyword_id, source in rows:
            stored[(comment_id, MatchSource(source))].add(keyword_id)
        return stored
