# backend/listing_sync/domain/lifecycle.py
from __future__ import annotations

from .errors import IllegalStatusTransition

# -----------------------------------------------------------------------------
# Verification status lifecycle
# -----------------------------------------------------------------------------
# Listings are never deleted by the sync path. "off_market" is a soft state and
# flagged/reported belong to manual review. This table is the only place that
# says who may move a property from one status to another.
# -----------------------------------------------------------------------------

ACTIVE = "active"
OFF_MARKET = "off_market"
FLAGGED = "flagged"
REPORTED = "reported"

VERIFICATION_STATUSES = (ACTIVE, OFF_MARKET, FLAGGED, REPORTED)
MANUAL_REVIEW_STATUSES = frozenset({FLAGGED, REPORTED})

ACTOR_SYNC = "sync"
ACTOR_SWEEPER = "sweeper"
ACTOR_ADMIN = "admin"

LEGAL_TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    # A re-observed off-market listing is live again; a provider delisting may
    # retire an active one when honor_provider_delisting is on.
    ACTOR_SYNC: {
        ACTIVE: frozenset({OFF_MARKET}),
        OFF_MARKET: frozenset({ACTIVE}),
        FLAGGED: frozenset(),
        REPORTED: frozenset(),
    },
    # Absence of evidence only ever retires active listings.
    ACTOR_SWEEPER: {
        ACTIVE: frozenset({OFF_MARKET}),
        OFF_MARKET: frozenset(),
        FLAGGED: frozenset(),
        REPORTED: frozenset(),
    },
    ACTOR_ADMIN: {
        ACTIVE: frozenset({OFF_MARKET, FLAGGED, REPORTED}),
        OFF_MARKET: frozenset({ACTIVE, FLAGGED, REPORTED}),
        FLAGGED: frozenset({ACTIVE, OFF_MARKET, REPORTED}),
        REPORTED: frozenset({ACTIVE, OFF_MARKET, FLAGGED}),
    },
}


def normalize_status(status: str | None) -> str:
    s = (status or ACTIVE).strip().lower()
    return s if s in VERIFICATION_STATUSES else ACTIVE


def can_transition(actor: str, current: str, target: str) -> bool:
    if current == target:
        return True
    allowed = LEGAL_TRANSITIONS.get(actor, {}).get(normalize_status(current), frozenset())
    return target in allowed


def require_transition(actor: str, current: str, target: str) -> None:
    if not can_transition(actor, current, target):
        raise IllegalStatusTransition(actor=actor, current=current, target=target)


def is_manual_review(status: str | None) -> bool:
    return normalize_status(status) in MANUAL_REVIEW_STATUSES


def is_active_status(status: str) -> bool:
    """is_active mirrors the verification status: only off_market listings are hidden."""
    return normalize_status(status) != OFF_MARKET
