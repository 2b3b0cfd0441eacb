from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.watchlist import (
    CommentNotFoundError,
    WatchlistAuthorExistsError,
    WatchlistAuthorNotFoundError,
    WatchlistError,
    WatchlistService,
)
from .schemas import (
    RefreshResponse,
    WatchlistAuthorCreate,
    WatchlistAuthorList,
    WatchlistAuthorResponse,
    WatchlistAuthorUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/watchlist", tags=["watchlist"])


def get_watchlist_service(db: Session = Depends(get_db)) -> WatchlistService:
    return WatchlistService(db)


def _to_http_error(exc: WatchlistError) -> HTTPException:
    if isinstance(exc, (WatchlistAuthorNotFoundError, CommentNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, WatchlistAuthorExistsError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


@router.get("", response_model=WatchlistAuthorList)
def list_authors(
    exclude_stopped: bool = False,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=200),
    service: WatchlistService = Depends(get_watchlist_service),
):
    page = service.list_authors(exclude_stopped=exclude_stopped, offset=offset, limit=limit)
    return {"items": page.items, "total": page.total, "has_more": page.has_more}


@router.post("", response_model=WatchlistAuthorResponse, status_code=status.HTTP_201_CREATED)
def add_author(
    payload: WatchlistAuthorCreate,
    service: WatchlistService = Depends(get_watchlist_service),
):
    """Start watching an author, by VK id or by one of their stored comments."""
    try:
        return service.add_author(
            author_vk_id=payload.author_vk_id,
            source_comment_id=payload.comment_id,
        )
    except WatchlistError as exc:
        raise _to_http_error(exc)


@router.get("/{author_id}", response_model=WatchlistAuthorResponse)
def get_author(
    author_id: int,
    service: WatchlistService = Depends(get_watchlist_service),
):
    try:
        return service.get_author(author_id)
    except WatchlistError as exc:
        raise _to_http_error(exc)


@router.patch("/{author_id}", response_model=WatchlistAuthorResponse)
def update_author(
    author_id: int,
    payload: WatchlistAuthorUpdate,
    service: WatchlistService = Depends(get_watchlist_service),
):
    """Pause, stop or resume monitoring of an author."""
    try:
        return service.set_status(author_id, payload.status)
    except WatchlistError as exc:
        raise _to_http_error(exc)


@router.post("/refresh", response_model=RefreshResponse)
def refresh_now(service: WatchlistService = Depends(get_watchlist_service)):
    """Run one watchlist refresh pass synchronously."""
    summary = service.refresh_active_authors()
    return summary.as_dict()
