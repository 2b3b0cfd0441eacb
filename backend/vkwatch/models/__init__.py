from .base import Base
from .content import Comment, CommentSource, Post
from .keywords import Keyword
from .matches import CommentKeywordMatch, MatchSource
from .watchlist import WatchlistAuthor, WatchlistStatus

__all__ = [
    "Base",
    "Comment",
    "CommentSource",
    "Post",
    "Keyword",
    "CommentKeywordMatch",
    "MatchSource",
    "WatchlistAuthor",
    "WatchlistStatus",
]
