"""Tests for the per-author watchlist refresh."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import httpx
import pytest

from vkwatch.models.content import Comment, CommentSource
from vkwatch.models.matches import CommentKeywordMatch, MatchSource
from vkwatch.services.author_refresher import AuthorRefresher, TrackedPost, as_utc
from vkwatch.services.comment_tree import CommentNode

AUTHOR_VK_ID = 42
OWNER_ID = -100
POST_ID = 7
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _ts(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 18, hour, minute, tzinfo=timezone.utc)


def _node(comment_id, published_at, *replies, text="новый комментарий", from_id=AUTHOR_VK_ID):
    return CommentNode(
        owner_id=OWNER_ID,
        post_id=POST_ID,
        vk_comment_id=comment_id,
        from_id=from_id,
        text=text,
        published_at=published_at,
        replies=list(replies),
    )


def _refresher(db_session, vk):
    return AuthorRefresher(db_session, vk, clock=lambda: NOW)


@pytest.fixture()
def vk():
    client = MagicMock()
    client.fetch_comments_since.return_value = []
    return client


@pytest.fixture()
def author(make_author):
    return make_author(author_vk_id=AUTHOR_VK_ID, last_activity_at=_ts(9))


@pytest.fixture()
def tracked_comment(make_comment, author):
    return make_comment(
        owner_id=OWNER_ID,
        post_id=POST_ID,
        vk_comment_id=1,
        from_id=AUTHOR_VK_ID,
        text="первый",
        published_at=_ts(9),
        watchlist_author_id=author.id,
    )


class TestAsUtc:
    def test_naive_becomes_utc(self):
        assert as_utc(datetime(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_aware_and_none_unchanged(self):
        aware = datetime(2026, 1, 1, tzinfo=timezone(timedelta(hours=3)))
        assert as_utc(aware) is aware
        assert as_utc(None) is None


class TestTrackedPosts:
    def test_most_recent_posts_first_and_capped(self, db_session, make_comment, author, vk):
        make_comment(owner_id=-1, post_id=1, vk_comment_id=1, published_at=_ts(1))
        make_comment(owner_id=-1, post_id=2, vk_comment_id=2, published_at=_ts(3))
        make_comment(owner_id=-1, post_id=3, vk_comment_id=3, published_at=_ts(2))
        make_comment(owner_id=-1, post_id=1, vk_comment_id=4, published_at=_ts(4))
        make_comment(owner_id=-1, post_id=9, vk_comment_id=5, from_id=999, published_at=_ts(5))

        refresher = AuthorRefresher(db_session, vk, tracked_posts_limit=2)
        posts = refresher.get_tracked_posts(author.id, AUTHOR_VK_ID)

        assert posts == [TrackedPost(-1, 1), TrackedPost(-1, 2)]

    def test_includes_comments_attributed_by_watchlist_id(
        self, db_session, make_comment, author, vk
    ):
        make_comment(owner_id=-1, post_id=5, vk_comment_id=1, from_id=-3, watchlist_author_id=author.id)
        refresher = AuthorRefresher(db_session, vk)
        assert refresher.get_tracked_posts(author.id, AUTHOR_VK_ID) == [TrackedPost(-1, 5)]

    def test_existing_keys(self, db_session, tracked_comment, author, vk):
        keys = AuthorRefresher(db_session, vk).load_existing_keys(author.id, AUTHOR_VK_ID)
        assert keys == {f"{OWNER_ID}:1"}


class TestRefresh:
    def test_no_tracked_posts_still_records_check(self, db_session, author, vk):
        assert _refresher(db_session, vk).refresh(author) == 0

        vk.fetch_comments_since.assert_not_called()
        db_session.refresh(author)
        assert as_utc(author.last_checked_at) == NOW
        assert author.found_comments_count == 0
        assert as_utc(author.last_activity_at) == _ts(9)

    def test_fetches_from_stored_baseline(self, db_session, author, tracked_comment, vk):
        _refresher(db_session, vk).refresh(author)

        kwargs = vk.fetch_comments_since.call_args.kwargs
        assert kwargs["owner_id"] == OWNER_ID
        assert kwargs["post_id"] == POST_ID
        assert kwargs["author_id"] == AUTHOR_VK_ID
        assert kwargs["baseline"] == _ts(9)
        assert kwargs["batch_size"] == 100
        assert kwargs["max_pages"] == 5

    def test_counts_and_persists_new_comments(
        self, db_session, author, tracked_comment, make_keyword, vk
    ):
        keyword = make_keyword("ёжик")
        vk.fetch_comments_since.return_value = [
            _node(2, _ts(10), _node(3, _ts(11), text="Ёжик в тумане")),
        ]

        assert _refresher(db_session, vk).refresh(author) == 2

        db_session.refresh(author)
        assert author.found_comments_count == 2
        assert as_utc(author.last_activity_at) == _ts(11)
        assert as_utc(author.last_checked_at) == NOW

        saved = db_session.query(Comment).filter(Comment.vk_comment_id == 3).one()
        assert saved.watchlist_author_id == author.id
        assert saved.source == CommentSource.WATCHLIST
        match = db_session.query(CommentKeywordMatch).filter_by(comment_id=saved.id).one()
        assert (match.keyword_id, MatchSource(match.source)) == (keyword.id, MatchSource.COMMENT)

    def test_known_comment_is_not_counted_but_text_is_updated(
        self, db_session, author, tracked_comment, vk
    ):
        vk.fetch_comments_since.return_value = [_node(1, _ts(10), text="исправленный")]

        assert _refresher(db_session, vk).refresh(author) == 0

        db_session.refresh(tracked_comment)
        db_session.refresh(author)
        assert tracked_comment.text == "исправленный"
        assert author.found_comments_count == 0
        assert as_utc(author.last_activity_at) == _ts(10)

    def test_same_comment_across_passes_counted_once(
        self, db_session, author, tracked_comment, vk
    ):
        vk.fetch_comments_since.return_value = [_node(2, _ts(10))]
        refresher = _refresher(db_session, vk)

        assert refresher.refresh(author) == 1
        assert refresher.refresh(author) == 0

        db_session.refresh(author)
        assert author.found_comments_count == 1

    def test_duplicate_within_one_pass_counted_once(
        self, db_session, make_comment, author, vk
    ):
        make_comment(owner_id=OWNER_ID, post_id=POST_ID, vk_comment_id=1, published_at=_ts(1))
        make_comment(owner_id=OWNER_ID, post_id=POST_ID + 1, vk_comment_id=50, published_at=_ts(2))
        # Both tracked posts return the same comment.
        vk.fetch_comments_since.return_value = [_node(2, _ts(10))]

        assert _refresher(db_session, vk).refresh(author) == 1
        assert vk.fetch_comments_since.call_count == 2

    def test_last_activity_never_moves_backward(
        self, db_session, make_author, make_comment, vk
    ):
        author = make_author(author_vk_id=AUTHOR_VK_ID, last_activity_at=_ts(20))
        make_comment(owner_id=OWNER_ID, post_id=POST_ID, vk_comment_id=1, published_at=_ts(20))
        vk.fetch_comments_since.return_value = [_node(2, _ts(8))]

        _refresher(db_session, vk).refresh(author)

        db_session.refresh(author)
        assert as_utc(author.last_activity_at) == _ts(20)
        assert author.found_comments_count == 1

    def test_first_activity_is_recorded(self, db_session, make_author, make_comment, vk):
        author = make_author(author_vk_id=AUTHOR_VK_ID)
        make_comment(owner_id=OWNER_ID, post_id=POST_ID, vk_comment_id=1, published_at=_ts(1))
        vk.fetch_comments_since.return_value = [_node(2, _ts(5))]

        _refresher(db_session, vk).refresh(author)

        assert vk.fetch_comments_since.call_args.kwargs["baseline"] is None
        db_session.refresh(author)
        assert as_utc(author.last_activity_at) == _ts(5)

    def test_fetch_failure_is_logged_and_check_recorded(
        self, db_session, author, tracked_comment, vk, caplog
    ):
        vk.fetch_comments_since.side_effect = httpx.ConnectError("network down")

        assert _refresher(db_session, vk).refresh(author) == 0

        assert "Failed to refresh watchlist author 42" in caplog.text
        db_session.refresh(author)
        assert as_utc(author.last_checked_at) == NOW
        assert as_utc(author.last_activity_at) == _ts(9)
        assert author.found_comments_count == 0

    def test_partial_failure_keeps_progress_of_processed_posts(
        self, db_session, make_comment, author, vk
    ):
        make_comment(owner_id=OWNER_ID, post_id=POST_ID, vk_comment_id=1, published_at=_ts(3))
        make_comment(owner_id=OWNER_ID, post_id=POST_ID + 1, vk_comment_id=60, published_at=_ts(2))
        vk.fetch_comments_since.side_effect = [
            [_node(2, _ts(12))],
            httpx.ReadTimeout("slow"),
        ]

        assert _refresher(db_session, vk).refresh(author) == 1

        db_session.refresh(author)
        assert author.found_comments_count == 1
        assert as_utc(author.last_activity_at) == _ts(12)
        assert as_utc(author.last_checked_at) == NOW
