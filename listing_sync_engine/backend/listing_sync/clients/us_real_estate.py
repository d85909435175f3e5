# backend/listing_sync/clients/us_real_estate.py
from __future__ import annotations

from typing import Any, Optional

from ..config import settings
from ..domain.importers.base import NormalizedListing, Pagination, Scope
from ..domain.importers.us_real_estate import PROVIDER, normalize_us_real_estate
from .base import Page, PageRequest
from .rapidapi import RapidApiAdapter


class UsRealEstateAdapter(RapidApiAdapter):
    """US Real Estate Listings (RapidAPI) GET /sale, offset/limit paging."""

    name = PROVIDER
    host = settings.us_real_estate_host

    def build_request(self, scope: Scope, pagination: Pagination, page: int) -> PageRequest:
        limit = int(pagination.page_size)
        params: dict[str, Any] = {
            "location": scope.postal_code or scope.location,
            "limit": limit,
            "offset": page * limit,
        }
        return PageRequest(method="GET", url="/sale", params=params)

    def parse_page(self, payload: Any, pagination: Pagination, page: int) -> Page:
        if isinstance(payload, list):
            records = payload
        elif isinstance(payload, dict):
            records = payload.get("data")
            if records is None:
                records = payload.get("results")
            if records is None:
                raise self.malformed("expected 'data' or 'results' in response")
        else:
            raise self.malformed(f"unexpected response type {type(payload).__name__}")
        if not isinstance(records, list):
            raise self.malformed("listing container is not a list")
        return Page(records=records, has_more=len(records) >= int(pagination.page_size))

    def normalize(self, record: dict[str, Any], scope: Scope) -> Optional[NormalizedListing]:
        return normalize_us_real_estate(record, max_images=self.max_images)
