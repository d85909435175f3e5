# backend/listing_sync/domain/importers/zillow.py
from __future__ import annotations

from typing import Any, Optional

from .base import (
    NormalizedListing,
    clean_str,
    first,
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

PROVIDER = "zillow"

ZILLOW_BASE_URL = "https://www.zillow.com"

# Zillow propertyType values
_HOME_TYPES = {
    "SINGLE_FAMILY": "single_family",
    "MULTI_FAMILY": "multi_family",
    "LOT": "land",
    "LAND": "land",
}


def normalize_zillow(prop: dict[str, Any], *, max_images: int = 20) -> Optional[NormalizedListing]:
    """
    Normalize one Zillow propertyExtendedSearch "props" entry.

    Supports Zillow fields like:
      - zpid, address ("123 Main St, Tampa, FL 33602"), price
      - bedrooms, bathrooms, livingArea, lotAreaValue (+ lotAreaUnit)
      - propertyType (SINGLE_FAMILY, CONDO, TOWNHOUSE, MULTI_FAMILY, LOT ...)
      - listingStatus / homeStatus, latitude, longitude, imgSrc, detailUrl

    Zillow search results carry a single thumbnail (imgSrc); the full gallery
    needs a detail call and is not fetched here.
    """
    zpid = clean_str(prop.get("zpid"))
    if not zpid:
        return None

    address = clean_str(prop.get("address"))
    city, state, zip_ = _split_address(address)

    raw_type = clean_str(prop.get("propertyType")).upper()
    property_type = _HOME_TYPES.get(raw_type) or map_property_type(raw_type)

    lot_size: Optional[int] = None
    lot_value = to_float(prop.get("lotAreaValue"))
    if lot_value is not None:
        unit = clean_str(prop.get("lotAreaUnit")).lower()
        if unit == "acres":
            sqft = to_float(lot_value * 43_560)
            lot_size = round(sqft) if sqft is not None else None
        elif unit in ("sqft", ""):
            lot_size = to_int(lot_value)

    img = clean_str(prop.get("imgSrc"))
    images = image_list([img], cap=max_images) if img else None

    detail = clean_str(prop.get("detailUrl"))
    if detail.startswith("/"):
        detail = ZILLOW_BASE_URL + detail

    return NormalizedListing(
        provider=PROVIDER,
        external_id=zpid,
        address=address,
        city=clean_str(first(prop.get("city"), city)),
        state=state_code(first(prop.get("state"), state)),
        zip=zip_code(first(prop.get("zipcode"), zip_)),
        latitude=latlng(prop.get("latitude"), limit=90),
        longitude=latlng(prop.get("longitude"), limit=180),
        price=to_float(prop.get("price")),
        bedrooms=to_int(first(prop.get("bedrooms"), prop.get("beds"))),
        bathrooms=to_float(first(prop.get("bathrooms"), prop.get("baths"))),
        square_feet=to_int(first(prop.get("livingArea"), prop.get("sqft"))),
        lot_size=lot_size,
        year_built=to_int(prop.get("yearBuilt")),
        property_type=property_type,
        listing_status=map_listing_status(first(prop.get("listingStatus"), prop.get("homeStatus"))),
        description="",
        listing_url=detail,
        listing_date=None,
        last_modified=to_datetime(prop.get("datePriceChanged")),
        images=images,
        raw=prop,
    )


def _split_address(address: str) -> tuple[str, str, str]:
    """'123 Main St, Tampa, FL 33602' -> ('Tampa', 'FL', '33602')."""
    parts = [p.strip() for p in address.split(",")]
    if len(parts) < 3:
        return "", "", ""
    city = parts[-2]
    tail = parts[-1].split()
    state = tail[0] if tail else ""
    zip_ = tail[1] if len(tail) > 1 else ""
    return city, state, zip_
