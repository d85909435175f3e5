# backend/listing_sync/clients/realty_in_us.py
from __future__ import annotations

from typing import Any, Optional

from ..config import settings
from ..domain.importers.base import NormalizedListing, Pagination, Scope, dig, to_int
from ..domain.importers.realty_in_us import PROVIDER, normalize_realty_in_us
from .base import Page, PageRequest
from .rapidapi import RapidApiAdapter


class RealtyInUsAdapter(RapidApiAdapter):
    """
    Realty in US (RapidAPI) POST /properties/v3/list.

    Offset/limit paging; the envelope reports a total so paging stops exactly.
    Supports incremental narrowing on last update date.
    """

    name = PROVIDER
    host = settings.realty_in_us_host
    supports_since = True

    def build_request(self, scope: Scope, pagination: Pagination, page: int) -> PageRequest:
        limit = int(pagination.page_size)
        body: dict[str, Any] = {
            "limit": limit,
            "offset": page * limit,
            "status": ["for_sale"],
            "sort": {"direction": "desc", "field": "list_date"},
        }
        if scope.postal_code:
            body["postal_code"] = scope.postal_code
        if scope.city:
            body["city"] = scope.city
        if scope.state:
            body["state_code"] = scope.state
        if pagination.since is not None:
            body["last_update_date"] = {"min": pagination.since.strftime("%Y-%m-%dT%H:%M:%SZ")}
        return PageRequest(method="POST", url="/properties/v3/list", json=body)

    def parse_page(self, payload: Any, pagination: Pagination, page: int) -> Page:
        search = dig(payload, "data", "home_search")
        if not isinstance(search, dict):
            raise self.malformed("missing data.home_search")
        results = search.get("results") or []
        if not isinstance(results, list):
            raise self.malformed("data.home_search.results is not a list")

        limit = int(pagination.page_size)
        total = to_int(search.get("total"))
        if total is not None:
            has_more = (page * limit + len(results)) < total
        else:
            has_more = len(results) >= limit
        return Page(records=results, has_more=has_more)

    def normalize(self, record: dict[str, Any], scope: Scope) -> Optional[NormalizedListing]:
        return normalize_realty_in_us(
            record,
            fallback_city=scope.city,
            fallback_zip=scope.postal_code,
            max_images=self.max_images,
        )
