# backend/listing_sync/services/review_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..domain.lifecycle import (
    ACTOR_ADMIN,
    VERIFICATION_STATUSES,
    is_active_status,
    normalize_status,
    require_transition,
)
from ..models import Property, PropertyReviewEvent

log = logging.getLogger("listing_sync.review")


def _utcnow() -> datetime:
    return datetime.utcnow()


def set_review_status(
    db: Session,
    *,
    property_id: int,
    status: str,
    actor: str = ACTOR_ADMIN,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Property:
    """
    Manual verification_status change (flag, report, restore, retire).

    Writes one PropertyReviewEvent per real change. Flagged/reported rows are
    left alone by sync and the sweeper until an admin moves them back.
    """
    target = (status or "").strip().lower()
    if target not in VERIFICATION_STATUSES:
        raise ValueError(f"unknown verification_status: {status!r}")

    prop = db.scalar(select(Property).where(Property.id == int(property_id)))
    if prop is None:
        raise LookupError(f"property {property_id} not found")

    current = normalize_status(prop.verification_status)
    if current == target:
        return prop

    require_transition(ACTOR_ADMIN, current, target)

    now = now or _utcnow()
    prop.verification_status = target
    prop.is_active = is_active_status(target)
    prop.updated_at = now
    db.add(prop)
    db.add(
        PropertyReviewEvent(
            property_id=prop.id,
            actor=(actor or ACTOR_ADMIN)[:200],
            from_status=current,
            to_status=target,
            reason=reason,
            created_at=now,
        )
    )
    db.commit()
    db.refresh(prop)

    log.info(
        "verification_status %s -> %s by %s",
        current,
        target,
        actor,
        extra={"property_id": prop.id, "provider": prop.provider, "external_id": prop.external_id},
    )
    return prop


def review_history(db: Session, property_id: int, limit: int = 50) -> list[PropertyReviewEvent]:
    return list(
        db.scalars(
            select(PropertyReviewEvent)
            .where(PropertyReviewEvent.property_id == int(property_id))
            .order_by(desc(PropertyReviewEvent.created_at), desc(PropertyReviewEvent.id))
            .limit(max(1, int(limit)))
        ).all()
    )
