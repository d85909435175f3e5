# backend/listing_sync/services/reconcile.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.errors import PersistenceWriteError
from ..domain.importers.base import CANONICAL_FIELDS, DELISTED_STATUSES, NormalizedListing
from ..domain.lifecycle import (
    ACTIVE,
    ACTOR_SYNC,
    OFF_MARKET,
    is_manual_review,
    require_transition,
)
from ..models import Property, PropertyImage

log = logging.getLogger("listing_sync.reconcile")

ADDED = "added"
UPDATED = "updated"
UNCHANGED = "unchanged"

# NormalizedListing field -> Property column, where the names differ
_COLUMN_FOR = {"last_modified": "last_modified_at"}

# Errors kept on ApplyCounts for the run log; the counts themselves are exact.
MAX_ERRORS_KEPT = 25


def _utcnow() -> datetime:
    return datetime.utcnow()


@dataclass
class ApplyCounts:
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.added + self.updated + self.unchanged + self.failed

    def bump(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def merge(self, other: "ApplyCounts") -> None:
        self.added += other.added
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.failed += other.failed
        room = MAX_ERRORS_KEPT - len(self.errors)
        if room > 0:
            self.errors.extend(other.errors[:room])

    def as_dict(self) -> dict[str, int]:
        return {
            "added": self.added,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }


def apply_batch(
    db: Session,
    batch: Iterable[NormalizedListing],
    *,
    now: Optional[datetime] = None,
    honor_provider_delisting: Optional[bool] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> ApplyCounts:
    """
    Reconcile a batch of normalized listings against the store.

    Each listing is its own unit of work (property row + images, committed
    together). A failed listing is rolled back, counted, and the batch goes on.
    should_stop is checked before each listing; a listing already being
    written always completes.
    """
    honor = settings.honor_provider_delisting if honor_provider_delisting is None else bool(honor_provider_delisting)
    counts = ApplyCounts()

    for listing in batch:
        if should_stop is not None and should_stop():
            break

        ts = now or _utcnow()
        try:
            outcome = apply_listing(db, listing, now=ts, honor_provider_delisting=honor)
            db.commit()
        except Exception as e:
            db.rollback()
            err = PersistenceWriteError(provider=listing.provider, external_id=listing.external_id, cause=e)
            log.warning(
                str(err),
                exc_info=True,
                extra={"provider": listing.provider, "external_id": listing.external_id},
            )
            counts.failed += 1
            if len(counts.errors) < MAX_ERRORS_KEPT:
                counts.errors.append(str(err))
            continue

        counts.bump(outcome)

    return counts


def apply_listing(
    db: Session,
    listing: NormalizedListing,
    *,
    now: datetime,
    honor_provider_delisting: bool = False,
) -> str:
    """
    Insert / update / touch one listing. Flushes but does not commit.

    Returns "added", "updated" or "unchanged". last_seen_at is bumped in every
    case; "unchanged" means nothing else moved.
    """
    prop = db.scalar(
        select(Property)
        .where(Property.provider == listing.provider)
        .where(Property.external_id == listing.external_id)
    )

    if prop is None:
        prop = Property(
            provider=listing.provider,
            external_id=listing.external_id,
            is_active=True,
            verification_status=ACTIVE,
            last_seen_at=now,
            created_at=now,
            updated_at=now,
        )
        for name in CANONICAL_FIELDS:
            setattr(prop, _COLUMN_FOR.get(name, name), getattr(listing, name))
        db.add(prop)
        db.flush()
        _replace_images(db, prop, listing.images or ())
        return ADDED

    changed = _copy_fields(prop, listing)

    if listing.images is not None:
        current = [img.image_url for img in prop.images]
        if current != list(listing.images) or prop.primary_image != _primary(listing.images):
            _replace_images(db, prop, listing.images)
            changed = True
    elif prop.primary_image != _primary([img.image_url for img in prop.images]):
        # cache drifted from the stored gallery; repair it
        prop.primary_image = _primary([img.image_url for img in prop.images])
        changed = True

    if _apply_status(prop, listing, honor_provider_delisting=honor_provider_delisting):
        changed = True

    if changed:
        prop.updated_at = now

    # freshness is recorded even when nothing else moved; never goes backwards
    if prop.last_seen_at is None or now > prop.last_seen_at:
        prop.last_seen_at = now

    db.flush()
    return UPDATED if changed else UNCHANGED


def _copy_fields(prop: Property, listing: NormalizedListing) -> bool:
    """
    Overwrite differing canonical fields. A None from the provider means "no
    value supplied" and never erases a value already stored.
    """
    changed = False
    for name in CANONICAL_FIELDS:
        col = _COLUMN_FOR.get(name, name)
        new: Any = getattr(listing, name)
        old: Any = getattr(prop, col)
        if new is None and old is not None:
            continue
        if old != new:
            setattr(prop, col, new)
            changed = True
    return changed


def _apply_status(prop: Property, listing: NormalizedListing, *, honor_provider_delisting: bool) -> bool:
    """
    Sync-driven verification_status moves. Manual review (flagged/reported)
    is never touched here.
    """
    if is_manual_review(prop.verification_status):
        return False

    delisted = honor_provider_delisting and listing.listing_status in DELISTED_STATUSES
    target = OFF_MARKET if delisted else ACTIVE
    target_active = not delisted

    if prop.verification_status == target and bool(prop.is_active) == target_active:
        return False

    require_transition(ACTOR_SYNC, prop.verification_status, target)
    prop.verification_status = target
    prop.is_active = target_active
    return True


def _primary(urls) -> Optional[str]:
    return urls[0] if urls else None


def _replace_images(db: Session, prop: Property, urls) -> None:
    """
    Swap the whole gallery and the cached primary image in the same unit of work.
    Old rows are flushed out first so (property_id, position/url) stay unique.
    """
    if prop.images:
        prop.images.clear()
        db.flush()
    prop.images.extend(PropertyImage(image_url=u, position=i) for i, u in enumerate(urls))
    prop.primary_image = _primary(list(urls))
    db.flush()
