from __future__ import annotations

"""Shared test configuration.

Points the application at an in-memory SQLite database before any vkwatch
module is imported, keeps the watchlist poller off for API tests, and
provides a fresh schema per test.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("WATCHLIST_POLLER_ENABLED", "false")

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vkwatch.models import (
    Base,
    Comment,
    CommentSource,
    Keyword,
    Post,
    WatchlistAuthor,
    WatchlistStatus,
)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _set_sqlite_pragma)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(db_engine):
    Session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------


def _ts(day: int, hour: int = 12, minute: int = 0) -> datetime:
    """A fixed UTC timestamp in October 2026."""
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture()
def make_keyword(db_session):
    def _make(word: str, is_phrase: bool = False, category=None, is_active: bool = True) -> Keyword:
        keyword = Keyword(word=word, is_phrase=is_phrase, category=category, is_active=is_active)
        db_session.add(keyword)
        db_session.commit()
        return keyword

    return _make


@pytest.fixture()
def make_post(db_session):
    def _make(owner_id: int, vk_post_id: int, text=None) -> Post:
        post = Post(owner_id=owner_id, vk_post_id=vk_post_id, text=text, published_at=_ts(1))
        db_session.add(post)
        db_session.commit()
        return post

    return _make


@pytest.fixture()
def make_comment(db_session):
    def _make(
        owner_id: int = -100,
        post_id: int = 1,
        vk_comment_id: int = 1,
        from_id: int = 42,
        text=None,
        published_at=None,
        watchlist_author_id=None,
    ) -> Comment:
        comment = Comment(
            owner_id=owner_id,
            post_id=post_id,
            vk_comment_id=vk_comment_id,
            from_id=from_id,
            author_vk_id=from_id if from_id > 0 else None,
            text=text,
            published_at=published_at or _ts(1),
            source=CommentSource.WATCHLIST if watchlist_author_id else CommentSource.TASK,
            watchlist_author_id=watchlist_author_id,
        )
        db_session.add(comment)
        db_session.commit()
        return comment

    return _make


@pytest.fixture()
def make_author(db_session):
    def _make(
        author_vk_id: int = 42,
        status: WatchlistStatus = WatchlistStatus.ACTIVE,
        last_activity_at=None,
        last_checked_at=None,
    ) -> WatchlistAuthor:
        author = WatchlistAuthor(
            author_vk_id=author_vk_id,
            status=status,
            last_activity_at=last_activity_at,
            last_checked_at=last_checked_at,
        )
        db_session.add(author)
        db_session.commit()
        return author

    return _make
