# backend/listing_sync/domain/importers/base.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

# Canonical property types. Provider vocabularies are folded into this closed set.
SINGLE_FAMILY = "single_family"
LAND = "land"
MULTI_FAMILY = "multi_family"
OTHER = "other"
PROPERTY_TYPES = (SINGLE_FAMILY, LAND, MULTI_FAMILY, OTHER)

LISTING_STATUSES = ("active", "pending", "sold", "off_market", "coming_soon")
DELISTED_STATUSES = frozenset({"sold", "off_market"})

_PROPERTY_TYPE_MAP: dict[str, str] = {
    # single family
    "single_family": SINGLE_FAMILY,
    "single family": SINGLE_FAMILY,
    "single-family": SINGLE_FAMILY,
    "single family residential": SINGLE_FAMILY,
    "singlefamily": SINGLE_FAMILY,
    "house": SINGLE_FAMILY,
    "houses": SINGLE_FAMILY,
    "res": SINGLE_FAMILY,
    "residential": SINGLE_FAMILY,
    # multi family
    "multi_family": MULTI_FAMILY,
    "multi family": MULTI_FAMILY,
    "multi-family": MULTI_FAMILY,
    "multifamily": MULTI_FAMILY,
    "mfh": MULTI_FAMILY,
    "duplex": MULTI_FAMILY,
    "triplex": MULTI_FAMILY,
    "fourplex": MULTI_FAMILY,
    "quadruplex": MULTI_FAMILY,
    # land
    "land": LAND,
    "lot": LAND,
    "lots": LAND,
    "lots/land": LAND,
    "lots_land": LAND,
    "farm": LAND,
}

_LISTING_STATUS_MAP: dict[str, str] = {
    "active": "active",
    "for_sale": "active",
    "forsale": "active",
    "for sale": "active",
    "new": "active",
    "activeundercontract": "pending",
    "pending": "pending",
    "contingent": "pending",
    "under_contract": "pending",
    "closed": "sold",
    "sold": "sold",
    "recently_sold": "sold",
    "recentlysold": "sold",
    "expired": "off_market",
    "withdrawn": "off_market",
    "cancelled": "off_market",
    "canceled": "off_market",
    "off_market": "off_market",
    "off market": "off_market",
    "coming_soon": "coming_soon",
    "comingsoon": "coming_soon",
}


@dataclass(frozen=True)
class Scope:
    """Geographic query handed to an adapter. Any subset of the fields may be set."""

    city: str = ""
    state: str = ""
    postal_code: str = ""

    @property
    def key(self) -> str:
        parts = [p for p in (self.city, self.state, self.postal_code) if p]
        return ",".join(parts)

    @property
    def location(self) -> str:
        """'Tampa, FL' style free-text location used by search endpoints."""
        if self.city and self.state:
            return f"{self.city}, {self.state}"
        return self.city or self.postal_code or self.state

    @classmethod
    def parse(cls, raw: str) -> "Scope":
        """
        Accepts "City,ST,ZIP", "City,ST", or a bare 5-digit zip.
        """
        parts = [p.strip() for p in (raw or "").split(",")]
        parts = [p for p in parts if p]
        if not parts:
            raise ValueError("empty scope")
        if len(parts) == 1 and parts[0].isdigit():
            return cls(postal_code=parts[0])
        city = parts[0]
        state = parts[1].upper() if len(parts) > 1 else ""
        postal = parts[2] if len(parts) > 2 else ""
        if state and len(state) != 2:
            raise ValueError(f"scope state must be a 2-letter code: {raw!r}")
        return cls(city=city, state=state, postal_code=postal)


@dataclass(frozen=True)
class Pagination:
    page_size: int = 200
    max_pages: Optional[int] = None
    max_results: Optional[int] = None
    # Incremental narrowing; adapters that cannot narrow ignore it.
    since: Optional[datetime] = None


@dataclass(frozen=True)
class NormalizedListing:
    """
    Provider-neutral listing.

    Sentinels (never "missing"):
      - text fields with no source value are ""
      - numeric/geo/timestamp fields with no source value are None
      - images is None when the provider sent no image data at all,
        [] when it explicitly reported none
    """

    provider: str
    external_id: str

    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    price: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[int] = None
    lot_size: Optional[int] = None
    year_built: Optional[int] = None

    property_type: str = OTHER
    listing_status: str = "active"
    description: str = ""
    listing_url: str = ""
    listing_date: Optional[datetime] = None
    last_modified: Optional[datetime] = None

    images: Optional[tuple[str, ...]] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not clean_str(self.provider):
            raise ValueError("NormalizedListing.provider is required")
        if not clean_str(self.external_id):
            raise ValueError("NormalizedListing.external_id is required")
        if self.property_type not in PROPERTY_TYPES:
            raise ValueError(f"unknown property_type {self.property_type!r}")
        if self.listing_status not in LISTING_STATUSES:
            raise ValueError(f"unknown listing_status {self.listing_status!r}")
        if self.images is not None and not isinstance(self.images, tuple):
            object.__setattr__(self, "images", tuple(self.images))

    @property
    def identity(self) -> tuple[str, str]:
        return (self.provider, self.external_id)


# Fields the reconciliation engine compares and copies onto Property.
CANONICAL_FIELDS: tuple[str, ...] = (
    "address",
    "city",
    "state",
    "zip",
    "latitude",
    "longitude",
    "price",
    "bedrooms",
    "bathrooms",
    "square_feet",
    "lot_size",
    "year_built",
    "property_type",
    "listing_status",
    "description",
    "listing_url",
    "listing_date",
    "last_modified",
)


# -----------------------------
# Coercion helpers
# -----------------------------
def clean_str(x: Any) -> str:
    return (str(x).strip() if x is not None else "").strip()


def to_float(x: Any) -> Optional[float]:
    """Finite float or None. "NaN", "Infinity" and overflowing literals map to None."""
    if isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        try:
            f = float(x)
        except OverflowError:
            return None
    else:
        s = clean_str(x).replace("$", "").replace(",", "")
        if not s:
            return None
        try:
            f = float(s)
        except ValueError:
            return None
    return f if math.isfinite(f) else None


def to_int(x: Any) -> Optional[int]:
    f = to_float(x)
    return int(f) if f is not None else None


def as_dict(x: Any) -> dict[str, Any]:
    """Nested provider objects are sometimes strings or lists; treat those as empty."""
    return x if isinstance(x, dict) else {}


def to_datetime(x: Any) -> Optional[datetime]:
    """
    ISO-8601 strings and epoch seconds/millis -> naive UTC datetime.
    Anything unparseable is dropped (None), never guessed.
    """
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, datetime):
        dt = x
    elif isinstance(x, (int, float)):
        secs = float(x) / 1000.0 if x > 10_000_000_000 else float(x)
        try:
            dt = datetime.fromtimestamp(secs, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        s = clean_str(x)
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def dig(obj: Any, *path: str) -> Any:
    """Safe nested lookup: dig(prop, "location", "address", "city")."""
    cur = obj
    for key in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def first(*values: Any) -> Any:
    """First value that is not None / empty string."""
    for v in values:
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None


def state_code(x: Any) -> str:
    s = clean_str(x).upper()
    return s if len(s) == 2 and s.isalpha() else ""


def zip_code(x: Any) -> str:
    s = clean_str(x)
    if not s:
        return ""
    if isinstance(x, (int, float)) and not isinstance(x, bool):
        n = to_int(x)
        if n is None:
            return ""
        s = str(n).zfill(5)
    # ZIP+4 is trimmed to the 5-digit zip
    head = s.split("-")[0]
    return head if head.isdigit() and len(head) == 5 else ""


def latlng(x: Any, *, limit: float) -> Optional[float]:
    f = to_float(x)
    if f is None or abs(f) > limit:
        return None
    return f


def map_property_type(raw: Any) -> str:
    key = clean_str(raw).lower().replace("_", " ")
    if not key:
        return OTHER
    return _PROPERTY_TYPE_MAP.get(key) or _PROPERTY_TYPE_MAP.get(key.replace(" ", "_")) or OTHER


def map_listing_status(raw: Any, *, default: str = "active") -> str:
    key = clean_str(raw).lower()
    if not key:
        return default
    return _LISTING_STATUS_MAP.get(key) or _LISTING_STATUS_MAP.get(key.replace(" ", "")) or default


def image_list(urls: Iterable[Any] | None, *, cap: int) -> Optional[tuple[str, ...]]:
    """
    Provider order preserved, blanks and repeats dropped, capped.
    None in -> None out (no image data); an empty iterable -> ().
    """
    if urls is None:
        return None
    out: list[str] = []
    seen: set[str] = set()
    for u in urls:
        s = clean_str(u)
        if not s or s in seen:
            continue
        if not (s.startswith("http://") or s.startswith("https://")):
            continue
        seen.add(s)
        out.append(s)
        if len(out) >= cap:
            break
    return tuple(out)
