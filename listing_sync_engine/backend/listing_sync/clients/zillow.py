# backend/listing_sync/clients/zillow.py
from __future__ import annotations

from typing import Any, Optional

from ..config import settings
from ..domain.importers.base import NormalizedListing, Pagination, Scope, to_int
from ..domain.importers.zillow import PROVIDER, normalize_zillow
from .base import Page, PageRequest
from .rapidapi import RapidApiAdapter


class ZillowAdapter(RapidApiAdapter):
    """
    Zillow (RapidAPI) GET /propertyExtendedSearch.

    Page-number paging (1-based upstream); page size is fixed by Zillow, so
    Pagination.page_size is ignored and totalPages drives exhaustion.
    """

    name = PROVIDER
    host = settings.zillow_host

    def build_request(self, scope: Scope, pagination: Pagination, page: int) -> PageRequest:
        params: dict[str, Any] = {
            "location": scope.postal_code or scope.location,
            "page": page + 1,
            "status_type": "ForSale",
        }
        return PageRequest(method="GET", url="/propertyExtendedSearch", params=params)

    def parse_page(self, payload: Any, pagination: Pagination, page: int) -> Page:
        if not isinstance(payload, dict):
            raise self.malformed(f"unexpected response type {type(payload).__name__}")
        props = payload.get("props")
        if props is None:
            # single exact-match result comes back as one bare property
            if payload.get("zpid"):
                return Page(records=[payload], has_more=False)
            raise self.malformed("missing 'props'")
        if not isinstance(props, list):
            raise self.malformed("'props' is not a list")
        total_pages = to_int(payload.get("totalPages"))
        has_more = total_pages is not None and (page + 1) < total_pages
        return Page(records=props, has_more=has_more)

    def normalize(self, record: dict[str, Any], scope: Scope) -> Optional[NormalizedListing]:
        return normalize_zillow(record, max_images=self.max_images)
