"""Watchlist management and the periodic refresh pass.

Authors are added either by VK user id or by pointing at a stored comment,
in which case the comment's author is watched and the comment is attributed
to the new watchlist entry.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.orm import Session

from vkwatch.models.base import utcnow
from vkwatch.models.content import Comment, CommentSource
from vkwatch.models.watchlist import WatchlistAuthor, WatchlistStatus
from vkwatch.services.author_refresher import AuthorRefresher
from vkwatch.services.vk_client import VkClient

logger = logging.getLogger(__name__)

WATCHLIST_MAX_AUTHORS: int = int(os.getenv("WATCHLIST_MAX_AUTHORS", "50"))
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


class WatchlistError(Exception):
    """Base class for watchlist domain errors."""


class WatchlistValidationError(WatchlistError):
    pass


class WatchlistAuthorNotFoundError(WatchlistError):
    pass


class WatchlistAuthorExistsError(WatchlistError):
    pass


class CommentNotFoundError(WatchlistError):
    pass


@dataclass
class RefreshSummary:
    authors: int = 0
    new_comments: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class AuthorPage:
    items: list[WatchlistAuthor]
    total: int
    has_more: bool


class WatchlistService:
    """Watchlist CRUD plus the refresh pass driven by the poller."""

    def __init__(
        self,
        db_session: Session,
        vk_client: Optional[VkClient] = None,
        refresher: Optional[AuthorRefresher] = None,
        max_authors: int = WATCHLIST_MAX_AUTHORS,
    ) -> None:
        self.db = db_session
        self._vk_client = vk_client
        self._refresher = refresher
        self.max_authors = max(max_authors, 1)

    @property
    def refresher(self) -> AuthorRefresher:
        if self._refresher is None:
            self._refresher = AuthorRefresher(self.db, self._vk_client or VkClient())
        return self._refresher

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_author(
        self,
        author_vk_id: Optional[int] = None,
        source_comment_id: Optional[int] = None,
    ) -> WatchlistAuthor:
        """Start watching an author.

        When *source_comment_id* is given the author is resolved from that
        comment and the comment is attributed to the new entry.

        Raises:
            WatchlistValidationError: neither argument given, or the author
                id is not a positive integer.
            CommentNotFoundError: *source_comment_id* does not exist.
            WatchlistAuthorExistsError: the author is already watched.
        """
        if author_vk_id is None and source_comment_id is None:
            raise WatchlistValidationError("author_vk_id or source_comment_id is required")

        source_comment: Optional[Comment] = None
        if source_comment_id is not None:
            source_comment = self.db.get(Comment, source_comment_id)
            if source_comment is None:
                raise CommentNotFoundError(f"Comment {source_comment_id} not found")
            author_vk_id = source_comment.author_vk_id or (
                source_comment.from_id if source_comment.from_id > 0 else None
            )
            if author_vk_id is None:
                raise WatchlistValidationError(
                    f"Comment {source_comment_id} has no user author"
                )

        if author_vk_id is None or author_vk_id <= 0:
            raise WatchlistValidationError("author_vk_id must be a positive integer")

        existing = (
            self.db.query(WatchlistAuthor)
            .filter(WatchlistAuthor.author_vk_id == author_vk_id)
            .first()
        )
        if existing is not None:
            raise WatchlistAuthorExistsError(f"Author {author_vk_id} is already watched")

        author = WatchlistAuthor(author_vk_id=author_vk_id, status=WatchlistStatus.ACTIVE)
        self.db.add(author)
        self.db.flush()

        if source_comment is not None:
            source_comment.watchlist_author_id = author.id
            source_comment.source = CommentSource.WATCHLIST

        self.db.commit()
        self.db.refresh(author)
        logger.info("Added author %s to the watchlist", author_vk_id)
        return author

    def get_author(self, author_id: int) -> WatchlistAuthor:
        author = self.db.get(WatchlistAuthor, author_id)
        if author is None:
            raise WatchlistAuthorNotFoundError(f"Watchlist author {author_id} not found")
        return author

    def set_status(self, author_id: int, status: WatchlistStatus) -> WatchlistAuthor:
        """Change an author's status.

        STOPPED records ``monitoring_stopped_at``; ACTIVE clears it. Setting
        the current status again is a no-op.
        """
        author = self.get_author(author_id)
        status = WatchlistStatus(status)
        if author.status == status:
            return author

        author.status = status
        if status == WatchlistStatus.STOPPED:
            author.monitoring_stopped_at = utcnow()
        elif status == WatchlistStatus.ACTIVE:
            author.monitoring_stopped_at = None

        self.db.commit()
        self.db.refresh(author)
        logger.info("Watchlist author %s is now %s", author.author_vk_id, status.value)
        return author

    def list_authors(
        self,
        exclude_stopped: bool = False,
        offset: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> AuthorPage:
        offset = max(offset, 0)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        query = self.db.query(WatchlistAuthor)
        if exclude_stopped:
            query = query.filter(WatchlistAuthor.status != WatchlistStatus.STOPPED)

        total = query.count()
        items = (
            query.order_by(WatchlistAuthor.created_at.desc(), WatchlistAuthor.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return AuthorPage(items=items, total=total, has_more=offset + len(items) < total)

    def count_comments(self, author_id: int) -> int:
        return (
            self.db.query(Comment.id)
            .filter(Comment.watchlist_author_id == author_id)
            .count()
        )

    def refresh_active_authors(self) -> RefreshSummary:
        """Run one refresh pass over the active authors.

        Authors never checked come first, then the least recently checked.
        One author's failure does not stop the pass.
        """
        authors = (
            self.db.query(WatchlistAuthor)
            .filter(WatchlistAuthor.status == WatchlistStatus.ACTIVE)
            .order_by(
                WatchlistAuthor.last_checked_at.is_(None).desc(),
                WatchlistAuthor.last_checked_at.asc(),
                WatchlistAuthor.id.asc(),
            )
            .limit(self.max_authors)
            .all()
        )

        summary = RefreshSummary()
        if not authors:
            logger.debug("No active watchlist authors")
            return summary

        for author in authors:
            summary.authors += 1
            try:
                summary.new_comments += self.refresher.refresh(author)
            except Exception:
                summary.failed += 1
                logger.exception("Refresh of watchlist author %s aborted", author.id)
                self.db.rollback()

        logger.info(
            "Watchlist pass: %d author(s), %d new comment(s), %d failed",
            summary.authors,
            summary.new_comments,
            summary.failed,
        )
        return summary
