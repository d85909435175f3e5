# backend/listing_sync/clients/simplyrets.py
from __future__ import annotations

from typing import Any, Optional

import httpx

from ..config import settings
from ..domain.errors import AdapterAuthError
from ..domain.importers.base import NormalizedListing, Pagination, Scope
from ..domain.importers.simplyrets import PROVIDER, normalize_simplyrets
from .base import Page, PageRequest, ProviderAdapter

# SimplyRETS caps a single /properties page at 500 records.
MAX_PAGE_SIZE = 500


class SimplyRetsAdapter(ProviderAdapter):
    """
    SimplyRETS MLS feed.

    Basic auth, offset/limit paging over GET /properties; the body is a bare
    JSON list. A short page means the feed is exhausted.
    """

    name = PROVIDER
    base_url = settings.simplyrets_base_url

    def __init__(self, *, username: Optional[str] = None, password: Optional[str] = None, **kw: Any):
        super().__init__(**kw)
        self.username = settings.simplyrets_username if username is None else username
        self.password = settings.simplyrets_password if password is None else password

    def check_credentials(self) -> None:
        if not self.username or not self.password:
            raise AdapterAuthError("SIMPLYRETS_USERNAME/SIMPLYRETS_PASSWORD not set", provider=self.name)

    def auth(self) -> Optional[httpx.Auth]:
        return httpx.BasicAuth(self.username, self.password)

    def build_request(self, scope: Scope, pagination: Pagination, page: int) -> PageRequest:
        limit = min(int(pagination.page_size), MAX_PAGE_SIZE)
        params: dict[str, Any] = {
            "limit": limit,
            "offset": page * limit,
            "status": "Active",
        }
        if scope.city:
            params["cities"] = scope.city
        if scope.postal_code:
            params["postalCodes"] = scope.postal_code
        return PageRequest(method="GET", url="/properties", params=params)

    def parse_page(self, payload: Any, pagination: Pagination, page: int) -> Page:
        if not isinstance(payload, list):
            raise self.malformed(f"expected a JSON list, got {type(payload).__name__}")
        limit = min(int(pagination.page_size), MAX_PAGE_SIZE)
        return Page(records=payload, has_more=len(payload) >= limit)

    def normalize(self, record: dict[str, Any], scope: Scope) -> Optional[NormalizedListing]:
        return normalize_simplyrets(record, max_images=self.max_images)
