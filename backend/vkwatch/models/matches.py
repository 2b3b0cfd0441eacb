import enum

from sqlalchemy import Column, Enum, ForeignKey, Integer
from sqlalchemy.orm import relationship

from .base import Base


class MatchSource(str, enum.Enum):
    COMMENT = "COMMENT"
    POST = "POST"


class CommentKeywordMatch(Base):
    """A keyword found in a comment's own text or in its parent post's text.

    Rows are a derived projection maintained by the match reconciler; the
    composite primary key doubles as the dedup key for concurrent inserts.
    """

    __tablename__ = "comment_keyword_matches"

    comment_id = Column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    keyword_id = Column(
        Integer, ForeignKey("keywords.id", ondelete="CASCADE"), primary_key=True
    )
    source = Column(
        Enum(MatchSource, name="match_source"),
        primary_key=True,
    )

    comment = relationship("Comment", back_populates="keyword_matches")
    keyword = relationship("Keyword", back_populates="matches")
