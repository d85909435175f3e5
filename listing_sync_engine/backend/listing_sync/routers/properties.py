# backend/listing_sync/routers/properties.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, select
from sqlalchemy.orm import Session, selectinload

from ..db import get_db
from ..domain.errors import IllegalStatusTransition
from ..domain.lifecycle import VERIFICATION_STATUSES
from ..models import Property
from ..schemas import PropertyOut, ReviewEventOut, ReviewIn
from ..services.review_service import review_history, set_review_status

router = APIRouter(prefix="/properties", tags=["properties"])


def _get_property(db: Session, property_id: int) -> Property:
    prop = db.scalar(
        select(Property).options(selectinload(Property.images)).where(Property.id == int(property_id))
    )
    if prop is None:
        raise HTTPException(status_code=404, detail="property not found")
    return prop


@router.get("", response_model=list[PropertyOut])
def list_properties(
    city: Optional[str] = None,
    provider: Optional[str] = None,
    status: Optional[str] = Query(default=None, description="verification_status filter"),
    active_only: bool = True,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    if status is not None and status not in VERIFICATION_STATUSES:
        raise HTTPException(status_code=400, detail=f"unknown status {status!r}")

    q = select(Property).options(selectinload(Property.images))
    if active_only:
        q = q.where(Property.is_active.is_(True))
    if city:
        q = q.where(Property.city == city.strip())
    if provider:
        q = q.where(Property.provider == provider.strip().lower())
    if status:
        q = q.where(Property.verification_status == status)
    q = q.order_by(desc(Property.last_seen_at), desc(Property.id)).offset(offset).limit(limit)
    return list(db.scalars(q).all())


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(property_id: int, db: Session = Depends(get_db)):
    return _get_property(db, property_id)


@router.post("/{property_id}/review", response_model=PropertyOut)
def review_property(property_id: int, payload: ReviewIn, db: Session = Depends(get_db)):
    _get_property(db, property_id)
    try:
        set_review_status(
            db,
            property_id=property_id,
            status=payload.status,
            actor=payload.actor,
            reason=payload.reason,
        )
    except IllegalStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _get_property(db, property_id)


@router.get("/{property_id}/review", response_model=list[ReviewEventOut])
def property_review_history(property_id: int, db: Session = Depends(get_db)):
    _get_property(db, property_id)
    return review_history(db, property_id)
