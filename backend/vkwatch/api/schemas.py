from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.watchlist import WatchlistStatus

# Input limits
MAX_WORD_LENGTH = 200
MAX_CATEGORY_LENGTH = 100


def _sanitize(value: str) -> str:
    """Strip whitespace and angle brackets to prevent script injection."""
    return value.strip().replace("<", "").replace(">", "")


# --- Keyword schemas ---

class KeywordCreate(BaseModel):
    word: str = Field(min_length=1, max_length=MAX_WORD_LENGTH)
    category: Optional[str] = Field(default=None, max_length=MAX_CATEGORY_LENGTH)
    is_phrase: bool = False

    @field_validator("word")
    @classmethod
    def word_not_empty(cls, v: str) -> str:
        cleaned = _sanitize(v)
        if not cleaned:
            raise ValueError("Keyword must not be empty")
        return cleaned

    @field_validator("category")
    @classmethod
    def clean_category(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return _sanitize(v) or None


class KeywordUpdate(BaseModel):
    word: Optional[str] = Field(default=None, min_length=1, max_length=MAX_WORD_LENGTH)
    category: Optional[str] = Field(default=None, max_length=MAX_CATEGORY_LENGTH)
    is_phrase: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("word")
    @classmethod
    def word_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        cleaned = _sanitize(v)
        if not cleaned:
            raise ValueError("Keyword must not be empty")
        return cleaned


class KeywordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    word: str
    category: Optional[str]
    is_phrase: bool
    is_active: bool
    created_at: datetime


class RecalculationResponse(BaseModel):
    processed: int
    created: int
    updated: int
    deleted: int


# --- Watchlist schemas ---

class WatchlistAuthorCreate(BaseModel):
    author_vk_id: Optional[int] = Field(default=None, gt=0)
    comment_id: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def require_author_or_comment(self) -> "WatchlistAuthorCreate":
        if self.author_vk_id is None and self.comment_id is None:
            raise ValueError("author_vk_id or comment_id is required")
        return self


class WatchlistAuthorUpdate(BaseModel):
    status: WatchlistStatus


class WatchlistAuthorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_vk_id: int
    status: WatchlistStatus
    last_activity_at: Optional[datetime]
    last_checked_at: Optional[datetime]
    found_comments_count: int
    monitoring_stopped_at: Optional[datetime]
    created_at: datetime


class WatchlistAuthorList(BaseModel):
    items: List[WatchlistAuthorResponse]
    total: int
    has_more: bool


class RefreshResponse(BaseModel):
    authors: int
    new_comments: int
    failed: int
