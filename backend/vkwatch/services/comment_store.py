"""Persistence of fetched comment trees.

Every node of every tree is upserted by ``(owner_id, vk_comment_id)`` and then
re-matched against the keyword set, since a known comment may have been
edited since it was last seen.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from vkwatch.models.content import Comment, CommentSource
from vkwatch.services.comment_tree import CommentNode, walk_comment_forest
from vkwatch.services.match_engine import MatchSynchronizer, list_active_keywords
from vkwatch.services.matcher import KeywordMatcher, build_matchers

logger = logging.getLogger(__name__)


class CommentStore:
    """Upserts comment trees and keeps their keyword matches current."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.synchronizer = MatchSynchronizer(db_session)

    def save_trees(
        self,
        roots: Iterable[CommentNode],
        watchlist_author_id: Optional[int] = None,
        matchers: Optional[Sequence[KeywordMatcher]] = None,
    ) -> int:
        """Save every node of *roots*, returning how many were written."""
        roots = list(roots)
        if not roots:
            return 0

        if matchers is None:
            matchers = build_matchers(list_active_keywords(self.db))

        saved = 0
        for node in walk_comment_forest(roots):
            comment = self._upsert(node, watchlist_author_id)
            self.db.flush()
            self.synchronizer.sync_comment(comment, matchers)
            self.db.commit()
            saved += 1

        logger.debug("Saved %d comment(s), watchlist_author_id=%s", saved, watchlist_author_id)
        return saved

    def _upsert(self, node: CommentNode, watchlist_author_id: Optional[int]) -> Comment:
        comment = (
            self.db.query(Comment)
            .filter(
                Comment.owner_id == node.owner_id,
                Comment.vk_comment_id == node.vk_comment_id,
            )
            .first()
        )

        if comment is None:
            comment = Comment(
                owner_id=node.owner_id,
                vk_comment_id=node.vk_comment_id,
                source=CommentSource.TASK,
            )
            self.db.add(comment)

        comment.post_id = node.post_id
        comment.from_id = node.from_id
        comment.author_vk_id = node.author_vk_id
        comment.text = node.text
        comment.published_at = node.published_at

        if watchlist_author_id is not None:
            comment.watchlist_author_id = watchlist_author_id
            comment.source = CommentSource.WATCHLIST

        return comment
