"""Incremental refresh of one watched author.

Each pass fetches only comments newer than the author's stored baseline,
persists them through the keyword-matching pipeline, counts comments that
were never seen before, and advances the author's progress counters.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from vkwatch.models.base import utcnow
from vkwatch.models.content import Comment
from vkwatch.models.watchlist import WatchlistAuthor
from vkwatch.services.comment_store import CommentStore
from vkwatch.services.comment_tree import compose_comment_key, walk_comment_forest
from vkwatch.services.match_engine import list_active_keywords
from vkwatch.services.matcher import KeywordMatcher, build_matchers
from vkwatch.services.vk_client import VkClient

logger = logging.getLogger(__name__)

WATCHLIST_TRACKED_POSTS_LIMIT: int = int(os.getenv("WATCHLIST_TRACKED_POSTS_LIMIT", "20"))
FETCH_BATCH_SIZE = 100
FETCH_MAX_PAGES = 5


@dataclass(frozen=True)
class TrackedPost:
    owner_id: int
    post_id: int


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class AuthorRefresher:
    """Fetches and records new activity for a single watchlist author."""

    def __init__(
        self,
        db_session: Session,
        vk_client: VkClient,
        comment_store: Optional[CommentStore] = None,
        tracked_posts_limit: int = WATCHLIST_TRACKED_POSTS_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db_session
        self.vk = vk_client
        self.store = comment_store or CommentStore(db_session)
        self.tracked_posts_limit = tracked_posts_limit
        self.clock = clock

    def refresh(self, author: WatchlistAuthor) -> int:
        """Refresh one author and return the number of new comments found.

        Failures while resolving, fetching or saving are logged and end the
        pass early; the progress update in ``finally`` always runs so
        ``last_checked_at`` records the attempt and ``last_activity_at``
        moves forward to the newest comment seen before the failure.
        """
        check_timestamp = self.clock()
        author_id = author.id
        author_vk_id = author.author_vk_id
        stored_activity = as_utc(author.last_activity_at)

        new_comments = 0
        latest_activity = stored_activity

        try:
            tracked_posts = self.get_tracked_posts(author_id, author_vk_id)
            if not tracked_posts:
                return 0

            existing_keys = self.load_existing_keys(author_id, author_vk_id)
            matchers = build_matchers(list_active_keywords(self.db))

            for post in tracked_posts:
                added, max_activity = self._process_post(
                    author_id, author_vk_id, post, stored_activity, existing_keys, matchers
                )
                new_comments += added
                if max_activity and (latest_activity is None or max_activity > latest_activity):
                    latest_activity = max_activity

            if new_comments > 0:
                logger.info("Watchlist author %s: %d new comment(s)", author_vk_id, new_comments)
        except Exception:
            logger.exception("Failed to refresh watchlist author %s", author_vk_id)
            self.db.rollback()
        finally:
            self._record_progress(
                author_id,
                check_timestamp,
                new_comments,
                latest_activity,
                stored_activity,
            )

        return new_comments

    def get_tracked_posts(self, author_id: int, author_vk_id: int) -> list[TrackedPost]:
        """Posts the author commented on most recently define the fetch scope."""
        latest = func.max(Comment.published_at)
        rows = (
            self.db.query(Comment.owner_id, Comment.post_id, latest)
            .filter(self._attributed_to(author_id, author_vk_id))
            .group_by(Comment.owner_id, Comment.post_id)
            .order_by(latest.desc())
            .limit(self.tracked_posts_limit)
            .all()
        )
        return [TrackedPost(owner_id=owner_id, post_id=post_id) for owner_id, post_id, _ in rows]

    def load_existing_keys(self, author_id: int, author_vk_id: int) -> set[str]:
        rows = (
            self.db.query(Comment.owner_id, Comment.vk_comment_id)
            .filter(self._attributed_to(author_id, author_vk_id))
            .all()
        )
        return {compose_comment_key(owner_id, vk_comment_id) for owner_id, vk_comment_id in rows}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _attributed_to(author_id: int, author_vk_id: int):
        return or_(
            Comment.watchlist_author_id == author_id,
            Comment.author_vk_id == author_vk_id,
        )

    def _process_post(
        self,
        author_id: int,
        author_vk_id: int,
        post: TrackedPost,
        baseline: Optional[datetime],
        existing_keys: set[str],
        matchers: list[KeywordMatcher],
    ) -> tuple[int, Optional[datetime]]:
        roots = self.vk.fetch_comments_since(
            owner_id=post.owner_id,
            post_id=post.post_id,
            author_id=author_vk_id,
            baseline=baseline,
            batch_size=FETCH_BATCH_SIZE,
            max_pages=FETCH_MAX_PAGES,
        )
        if not roots:
            return 0, None

        self.store.save_trees(roots, watchlist_author_id=author_id, matchers=matchers)

        added = 0
        max_activity: Optional[datetime] = None
        for node in walk_comment_forest(roots):
            published_at = as_utc(node.published_at)
            if max_activity is None or published_at > max_activity:
                max_activity = published_at

            key = node.dedup_key
            if key not in existing_keys:
                existing_keys.add(key)
                added += 1

        return added, max_activity

    def _record_progress(
        self,
        author_id: int,
        check_timestamp: datetime,
        new_comments: int,
        latest_activity: Optional[datetime],
        stored_activity: Optional[datetime],
    ) -> None:
        values: dict = {WatchlistAuthor.last_checked_at: check_timestamp}
        if new_comments > 0:
            values[WatchlistAuthor.found_comments_count] = (
                WatchlistAuthor.found_comments_count + new_comments
            )
        if latest_activity is not None and (
            stored_activity is None or latest_activity > stored_activity
        ):
            values[WatchlistAuthor.last_activity_at] = latest_activity

        (
            self.db.query(WatchlistAuthor)
            .filter(WatchlistAuthor.id == author_id)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
