# backend/listing_sync/domain/importers/realty_in_us.py
from __future__ import annotations

from typing import Any, Optional

from .base import (
    NormalizedListing,
    as_dict,
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

PROVIDER = "realty_in_us"


def normalize_realty_in_us(
    prop: dict[str, Any],
    *,
    fallback_city: str = "",
    fallback_zip: str = "",
    max_images: int = 20,
) -> Optional[NormalizedListing]:
    """
    Normalize one Realty-in-US /properties/v3/list result.

    The search response nests most facts:
      - location.address.{line, city, state_code, postal_code}
      - location.address.coordinate.{lat, lon}
      - description.{beds, baths, sqft, lot_sqft, year_built, type, text}
      - primary_photo.href and photos[].href

    City/zip fall back to the queried scope only when the record omits them.
    """
    pid = clean_str(first(prop.get("property_id"), prop.get("listing_id")))
    if not pid:
        return None

    desc = as_dict(prop.get("description"))
    addr = as_dict(dig(prop, "location", "address"))
    coord = as_dict(addr.get("coordinate"))
    coord = coord or as_dict(dig(prop, "location", "coordinate"))

    photos = prop.get("photos")
    images: Optional[tuple[str, ...]]
    if isinstance(photos, list):
        images = image_list([p.get("href") if isinstance(p, dict) else p for p in photos], cap=max_images)
    elif dig(prop, "primary_photo", "href"):
        images = image_list([dig(prop, "primary_photo", "href")], cap=max_images)
    else:
        images = None

    return NormalizedListing(
        provider=PROVIDER,
        external_id=pid,
        address=clean_str(addr.get("line")),
        city=clean_str(first(addr.get("city"), fallback_city)),
        state=state_code(addr.get("state_code")),
        zip=zip_code(first(addr.get("postal_code"), fallback_zip)),
        latitude=latlng(coord.get("lat"), limit=90),
        longitude=latlng(coord.get("lon"), limit=180),
        price=to_float(prop.get("list_price")),
        bedrooms=to_int(desc.get("beds")),
        bathrooms=to_float(desc.get("baths")),
        square_feet=to_int(desc.get("sqft")),
        lot_size=to_int(desc.get("lot_sqft")),
        year_built=to_int(desc.get("year_built")),
        property_type=map_property_type(desc.get("type")),
        listing_status=map_listing_status(prop.get("status")),
        description=clean_str(desc.get("text")),
        listing_url=clean_str(prop.get("href")),
        listing_date=to_datetime(prop.get("list_date")),
        last_modified=to_datetime(prop.get("last_update_date")),
        images=images,
        raw=prop,
    )
