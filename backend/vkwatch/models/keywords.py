from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from .base import Base, IntegerPrimaryKeyMixin


class Keyword(IntegerPrimaryKeyMixin, Base):
    __tablename__ = "keywords"

    word = Column(String, nullable=False)
    category = Column(String, nullable=True, index=True)
    is_phrase = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    matches = relationship(
        "CommentKeywordMatch", back_populates="keyword", cascade="all, delete-orphan"
    )
