# backend/listing_sync/domain/importers/us_real_estate.py
from __future__ import annotations

from typing import Any, Optional

from .base import (
    NormalizedListing,
    clean_str,
    dig,
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

PROVIDER = "us_real_estate"


def normalize_us_real_estate(prop: dict[str, Any], *, max_images: int = 20) -> Optional[NormalizedListing]:
    """
    Normalize one US Real Estate Listings /sale record.

    This feed is flat but inconsistent about key names, so each canonical field
    accepts the handful of aliases seen in practice (beds|bedrooms,
    zip_code|postal_code, lon|lng|longitude ...). Nothing outside those aliases
    is guessed.
    """
    pid = clean_str(first(prop.get("property_id"), prop.get("listing_id")))
    if not pid:
        return None

    photos = prop.get("photos")
    images: Optional[tuple[str, ...]] = None
    if isinstance(photos, list):
        images = image_list([p.get("href") if isinstance(p, dict) else p for p in photos], cap=max_images)

    return NormalizedListing(
        provider=PROVIDER,
        external_id=pid,
        address=clean_str(first(prop.get("address"), prop.get("full_address"))),
        city=clean_str(prop.get("city")),
        state=state_code(first(prop.get("state"), prop.get("state_code"))),
        zip=zip_code(first(prop.get("zip_code"), prop.get("postal_code"))),
        latitude=latlng(first(prop.get("latitude"), prop.get("lat")), limit=90),
        longitude=latlng(first(prop.get("longitude"), prop.get("lon"), prop.get("lng")), limit=180),
        price=to_float(first(prop.get("price"), prop.get("list_price"))),
        bedrooms=to_int(first(prop.get("beds"), prop.get("bedrooms"))),
        bathrooms=to_float(first(prop.get("baths"), prop.get("bathrooms"))),
        square_feet=to_int(first(prop.get("sqft"), prop.get("square_feet"), prop.get("building_size"))),
        lot_size=to_int(first(prop.get("lot_sqft"), prop.get("lot_size"))),
        year_built=to_int(prop.get("year_built")),
        property_type=map_property_type(first(prop.get("property_type"), prop.get("type"))),
        listing_status=map_listing_status(prop.get("status")),
        description=clean_str(first(prop.get("description"), prop.get("remarks"))),
        listing_url=clean_str(first(prop.get("url"), dig(prop, "links", "detail"))),
        listing_date=to_datetime(prop.get("list_date")),
        last_modified=to_datetime(first(prop.get("last_update"), prop.get("last_updated"))),
        images=images,
        raw=prop,
    )
