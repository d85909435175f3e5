# backend/listing_sync/services/sweeper.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.lifecycle import (
    ACTIVE,
    ACTOR_SWEEPER,
    OFF_MARKET,
    VERIFICATION_STATUSES,
    require_transition,
)
from ..models import Property

log = logging.getLogger("listing_sync.sweeper")


def _utcnow() -> datetime:
    return datetime.utcnow()


@dataclass(frozen=True)
class StaleListing:
    id: int
    provider: str
    external_id: str
    address: str
    city: str
    last_seen_at: datetime
    days_since_seen: int


@dataclass
class SweepResult:
    transitioned: int
    cutoff: datetime
    swept_at: datetime
    dry_run: bool
    sample: list[StaleListing] = field(default_factory=list)
    totals: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "transitioned": self.transitioned,
            "cutoff": self.cutoff.isoformat(),
            "swept_at": self.swept_at.isoformat(),
            "dry_run": self.dry_run,
            "sample": [
                {
                    "id": s.id,
                    "provider": s.provider,
                    "external_id": s.external_id,
                    "address": s.address,
                    "city": s.city,
                    "last_seen_at": s.last_seen_at.isoformat(),
                    "days_since_seen": s.days_since_seen,
                }
                for s in self.sample
            ],
            "totals": dict(self.totals),
        }


def _stale_condition(cutoff: datetime):
    # flagged/reported/off_market rows are never candidates
    return and_(
        Property.is_active.is_(True),
        Property.verification_status == ACTIVE,
        Property.last_seen_at < cutoff,
    )


def sweep(
    db: Session,
    retention_window: Optional[timedelta] = None,
    *,
    now: Optional[datetime] = None,
    sample_size: Optional[int] = None,
    dry_run: bool = False,
) -> SweepResult:
    """
    Retire listings no feed has reported within the retention window.

    Active rows with last_seen_at older than now - window move to
    is_active=False / off_market in a single UPDATE. A bounded sample (oldest
    first) is read beforehand for operators; the full set is never loaded.
    Running it twice in a row transitions nothing the second time.
    """
    now = now or _utcnow()
    window = retention_window if retention_window is not None else timedelta(days=settings.retention_window_days)
    if window <= timedelta(0):
        raise ValueError("retention_window must be positive")
    limit = settings.sweep_sample_size if sample_size is None else int(sample_size)

    require_transition(ACTOR_SWEEPER, ACTIVE, OFF_MARKET)

    cutoff = now - window
    cond = _stale_condition(cutoff)

    sample: list[StaleListing] = []
    if limit > 0:
        rows = db.scalars(
            select(Property).where(cond).order_by(Property.last_seen_at.asc(), Property.id.asc()).limit(limit)
        ).all()
        sample = [
            StaleListing(
                id=p.id,
                provider=p.provider,
                external_id=p.external_id,
                address=p.address,
                city=p.city,
                last_seen_at=p.last_seen_at,
                days_since_seen=max(0, (now - p.last_seen_at).days),
            )
            for p in rows
        ]

    if dry_run:
        transitioned = int(db.scalar(select(func.count()).select_from(Property).where(cond)) or 0)
    else:
        res = db.execute(
            update(Property)
            .where(cond)
            .values(is_active=False, verification_status=OFF_MARKET, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        transitioned = int(res.rowcount or 0)
        db.commit()
        # bulk UPDATE bypassed the identity map
        db.expire_all()

    result = SweepResult(
        transitioned=transitioned,
        cutoff=cutoff,
        swept_at=now,
        dry_run=dry_run,
        sample=sample,
        totals=status_totals(db),
    )

    log.info(
        "sweep %s: %d listing(s) not seen since %s%s",
        "dry-run" if dry_run else "done",
        transitioned,
        cutoff.isoformat(),
        f" (sample: {', '.join(s.provider + ':' + s.external_id for s in sample)})" if sample else "",
    )
    return result


def status_totals(db: Session) -> dict[str, int]:
    """Store-wide counts: total, active, and one per verification status."""
    cols = [
        func.count(Property.id),
        func.coalesce(func.sum(case((Property.is_active.is_(True), 1), else_=0)), 0),
    ]
    cols += [
        func.coalesce(func.sum(case((Property.verification_status == s, 1), else_=0)), 0)
        for s in VERIFICATION_STATUSES
    ]
    row = db.execute(select(*cols)).one()
    out = {"total": int(row[0] or 0), "is_active": int(row[1] or 0)}
    for s, v in zip(VERIFICATION_STATUSES, row[2:]):
        out[s] = int(v or 0)
    return out
