import enum

from sqlalchemy import BigInteger, Column, DateTime, Enum, Integer
from sqlalchemy.orm import relationship

from .base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class WatchlistStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"


class WatchlistAuthor(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "watchlist_authors"

    author_vk_id = Column(BigInteger, unique=True, nullable=False)
    status = Column(
        Enum(WatchlistStatus, name="watchlist_status"),
        default=WatchlistStatus.ACTIVE,
        nullable=False,
    )
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)
    found_comments_count = Column(Integer, default=0, nullable=False)
    monitoring_stopped_at = Column(DateTime(timezone=True), nullable=True)

    comments = relationship("Comment", back_populates="watchlist_author")
