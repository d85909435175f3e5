# backend/listing_sync/domain/importers/simplyrets.py
from __future__ import annotations

from typing import Any, Optional

from .base import (
    NormalizedListing,
    as_dict,
    clean_str,
    dig,
    image_list,
    latlng,
    map_listing_status,
    map_property_type,
    state_code,
    to_datetime,
    to_float,
    to_int,
    zip_code,
)

PROVIDER = "simplyrets"

# SimplyRETS property.type codes
_TYPE_CODES = {
    "RES": "single_family",
    "MFH": "multi_family",
    "LND": "land",
    "LOT": "land",
    "FRM": "land",
}


def normalize_simplyrets(prop: dict[str, Any], *, max_images: int = 20) -> Optional[NormalizedListing]:
    """
    Normalize one SimplyRETS /properties record.

    Uses:
      - mlsId (provider id), listPrice, listDate, lastModified
      - address.{full, city, state, postalCode}, geo.{lat, lng}
      - property.{bedrooms, bathsFull, bathsHalf, area, lotSize, yearBuilt, type, subType}
      - mls.status, photos, remarks

    Condos/townhouses (CND/TWN) and commercial types have no canonical bucket -> "other".
    Returns None when the record has no mlsId.
    """
    mls_id = clean_str(prop.get("mlsId"))
    if not mls_id:
        return None

    details = as_dict(prop.get("property"))
    type_code = clean_str(details.get("type")).upper()
    property_type = _TYPE_CODES.get(type_code) or map_property_type(details.get("subType"))

    full = to_float(details.get("bathsFull"))
    half = to_float(details.get("bathsHalf"))
    bathrooms: Optional[float] = None
    if full is not None or half is not None:
        bathrooms = (full or 0.0) + 0.5 * (half or 0.0)

    photos = prop.get("photos")

    return NormalizedListing(
        provider=PROVIDER,
        external_id=mls_id,
        address=clean_str(dig(prop, "address", "full")),
        city=clean_str(dig(prop, "address", "city")),
        state=state_code(dig(prop, "address", "state")),
        zip=zip_code(dig(prop, "address", "postalCode")),
        latitude=latlng(dig(prop, "geo", "lat"), limit=90),
        longitude=latlng(dig(prop, "geo", "lng"), limit=180),
        price=to_float(prop.get("listPrice")),
        bedrooms=to_int(details.get("bedrooms")),
        bathrooms=bathrooms,
        square_feet=to_int(details.get("area")),
        lot_size=to_int(details.get("lotSize")),
        year_built=to_int(details.get("yearBuilt")),
        property_type=property_type,
        listing_status=map_listing_status(dig(prop, "mls", "status")),
        description=clean_str(prop.get("remarks")),
        listing_url="",
        listing_date=to_datetime(prop.get("listDate")),
        last_modified=to_datetime(prop.get("lastModified")),
        images=image_list(photos, cap=max_images) if isinstance(photos, list) else None,
        raw=prop,
    )
