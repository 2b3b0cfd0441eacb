from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.keywords import Keyword
from ..services.recalculator import BulkRecalculator
from .schemas import KeywordCreate, KeywordResponse, KeywordUpdate, RecalculationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/keywords", tags=["keywords"])


def _get_keyword_or_404(keyword_id: int, db: Session) -> Keyword:
    keyword = db.get(Keyword, keyword_id)
    if not keyword:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Keyword not found.",
        )
    return keyword


def _recalculate(db: Session) -> dict:
    summary = BulkRecalculator(db).recalculate_all()
    return summary.as_dict()


@router.get("", response_model=list[KeywordResponse])
def list_keywords(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    """List keywords, newest first."""
    query = db.query(Keyword)
    if not include_inactive:
        query = query.filter(Keyword.is_active == True)  # noqa: E712
    return query.order_by(Keyword.created_at.desc(), Keyword.id.desc()).all()


@router.post("", response_model=KeywordResponse, status_code=status.HTTP_201_CREATED)
def create_keyword(payload: KeywordCreate, db: Session = Depends(get_db)):
    """Create a keyword and re-match every stored comment against it."""
    keyword = Keyword(
        word=payload.word,
        category=payload.category,
        is_phrase=payload.is_phrase,
    )
    db.add(keyword)
    db.commit()
    db.refresh(keyword)

    _recalculate(db)
    db.refresh(keyword)
    return keyword


@router.get("/{keyword_id}", response_model=KeywordResponse)
def get_keyword(keyword_id: int, db: Session = Depends(get_db)):
    return _get_keyword_or_404(keyword_id, db)


@router.patch("/{keyword_id}", response_model=KeywordResponse)
def update_keyword(
    keyword_id: int,
    payload: KeywordUpdate,
    db: Session = Depends(get_db),
):
    """Update a keyword; matches are recalculated when anything changed."""
    keyword = _get_keyword_or_404(keyword_id, db)
    update_data = payload.model_dump(exclude_unset=True)
    changed = False
    for field, value in update_data.items():
        if getattr(keyword, field) != value:
            setattr(keyword, field, value)
            changed = True
    db.commit()

    if changed:
        _recalculate(db)
    db.refresh(keyword)
    return keyword


@router.delete("/{keyword_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_keyword(keyword_id: int, db: Session = Depends(get_db)):
    """Soft-delete a keyword (set is_active=False) and drop its matches."""
    keyword = _get_keyword_or_404(keyword_id, db)
    if keyword.is_active:
        keyword.is_active = False
        db.commit()
        _recalculate(db)


@router.post("/recalculate", response_model=RecalculationResponse)
def recalculate_matches(db: Session = Depends(get_db)):
    """Recompute keyword matches for every stored comment."""
    result = _recalculate(db)
    logger.info("Manual recalculation finished: %s", result)
    return result
