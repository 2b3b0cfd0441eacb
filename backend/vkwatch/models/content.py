import enum

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class CommentSource(str, enum.Enum):
    TASK = "TASK"
    WATCHLIST = "WATCHLIST"


class Post(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "posts"
    __table_args__ = (
        UniqueConstraint("owner_id", "vk_post_id", name="uq_posts_owner_post"),
    )

    owner_id = Column(BigInteger, nullable=False)
    vk_post_id = Column(BigInteger, nullable=False)
    text = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)


class Comment(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "comments"
    __table_args__ = (
        UniqueConstraint("owner_id", "vk_comment_id", name="uq_comments_owner_comment"),
    )

    owner_id = Column(BigInteger, nullable=False)
    post_id = Column(BigInteger, nullable=False)
    vk_comment_id = Column(BigInteger, nullable=False)
    from_id = Column(BigInteger, nullable=False)
    author_vk_id = Column(BigInteger, nullable=True, index=True)
    text = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=False)
    source = Column(
        Enum(CommentSource, name="comment_source"),
        default=CommentSource.TASK,
        nullable=False,
    )
    watchlist_author_id = Column(
        Integer, ForeignKey("watchlist_authors.id"), nullable=True, index=True
    )

    keyword_matches = relationship(
        "CommentKeywordMatch", back_populates="comment", cascade="all, delete-orphan"
    )
    watchlist_author = relationship("WatchlistAuthor", back_populates="comments")
