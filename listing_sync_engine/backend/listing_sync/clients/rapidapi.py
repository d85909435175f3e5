# backend/listing_sync/clients/rapidapi.py
from __future__ import annotations

from typing import Any, Optional

from ..config import settings
from ..domain.errors import AdapterAuthError
from .base import ProviderAdapter


class RapidApiAdapter(ProviderAdapter):
    """Shared key/host header handling for the RapidAPI-hosted feeds."""

    host: str = ""

    def __init__(self, *, api_key: Optional[str] = None, host: Optional[str] = None, **kw: Any):
        super().__init__(**kw)
        self.api_key = settings.rapidapi_key if api_key is None else api_key
        if host:
            self.host = host
        self.base_url = f"https://{self.host}"

    def check_credentials(self) -> None:
        if not self.api_key:
            raise AdapterAuthError("RAPIDAPI_KEY is not configured", provider=self.name)

    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "X-RapidAPI-Key": self.api_key or "",
            "X-RapidAPI-Host": self.host,
        }
