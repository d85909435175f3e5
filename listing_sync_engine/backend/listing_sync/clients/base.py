# backend/listing_sync/clients/base.py
from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..config import settings
from ..domain.errors import (
    AdapterAuthError,
    AdapterError,
    AdapterMalformedResponse,
    AdapterRateLimited,
    AdapterUpstreamUnavailable,
    TRANSIENT_ADAPTER_ERRORS,
)
from ..domain.importers.base import NormalizedListing, Pagination, Scope

log = logging.getLogger("listing_sync.adapters")


@dataclass(frozen=True)
class PageRequest:
    method: str
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    json: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class Page:
    records: list[dict[str, Any]]
    has_more: bool


class ProviderAdapter(ABC):
    """
    One upstream listing source.

    fetch() is a lazy async sequence of NormalizedListing; calling it again
    re-issues the query from the first page (no cursor is persisted).
    Adapters never touch the database.
    """

    name: str = "base"
    base_url: str = ""
    supports_since: bool = False

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        request_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        retry_max_seconds: Optional[float] = None,
        max_images: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.timeout = float(settings.http_timeout_seconds if timeout is None else timeout)
        self.request_delay = float(settings.provider_request_delay_seconds if request_delay is None else request_delay)
        self.max_retries = int(settings.provider_max_retries if max_retries is None else max_retries)
        self.retry_base_seconds = float(
            settings.provider_retry_base_seconds if retry_base_seconds is None else retry_base_seconds
        )
        self.retry_max_seconds = float(
            settings.provider_retry_max_seconds if retry_max_seconds is None else retry_max_seconds
        )
        self.max_images = int(settings.max_images_per_listing if max_images is None else max_images)
        self._sleep = sleep

    # -----------------------------
    # Provider-specific hooks
    # -----------------------------
    def check_credentials(self) -> None:
        """Raise AdapterAuthError before any network call when credentials are missing."""

    def headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def auth(self) -> Optional[httpx.Auth]:
        return None

    @abstractmethod
    def build_request(self, scope: Scope, pagination: Pagination, page: int) -> PageRequest:
        ...

    @abstractmethod
    def parse_page(self, payload: Any, pagination: Pagination, page: int) -> Page:
        """Raise AdapterMalformedResponse when the envelope is not what the provider documents."""

    @abstractmethod
    def normalize(self, record: dict[str, Any], scope: Scope) -> Optional[NormalizedListing]:
        ...

    # -----------------------------
    # Fetch loop
    # -----------------------------
    async def fetch(self, scope: Scope, pagination: Pagination) -> AsyncIterator[NormalizedListing]:
        self.check_credentials()

        emitted = 0
        page = 0
        async with self._client() as client:
            while True:
                if pagination.max_pages is not None and page >= int(pagination.max_pages):
                    break
                if page > 0 and self.request_delay > 0:
                    # upstream rate limits: space out page requests
                    await self._sleep(self.request_delay)

                req = self.build_request(scope, pagination, page)
                payload = await self._send(client, req, scope)
                parsed = self.parse_page(payload, pagination, page)

                for record in parsed.records:
                    if not isinstance(record, dict):
                        log.warning(
                            "skipping non-object record",
                            extra={"provider": self.name, "scope": scope.key},
                        )
                        continue
                    try:
                        listing = self.normalize(record, scope)
                    except Exception as e:
                        # one unmappable record never costs the rest of the feed
                        log.warning(
                            "skipping unmappable record: %s: %s",
                            type(e).__name__,
                            e,
                            extra={"provider": self.name, "scope": scope.key},
                        )
                        continue
                    if listing is None:
                        log.warning(
                            "skipping record without provider id",
                            extra={"provider": self.name, "scope": scope.key},
                        )
                        continue
                    yield listing
                    emitted += 1
                    if pagination.max_results is not None and emitted >= int(pagination.max_results):
                        return

                if not parsed.has_more or not parsed.records:
                    break
                page += 1

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers(),
            auth=self.auth(),
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _send(self, client: httpx.AsyncClient, req: PageRequest, scope: Scope) -> Any:
        retries = 0
        while True:
            try:
                return await self._send_once(client, req, scope)
            except TRANSIENT_ADAPTER_ERRORS as e:
                if retries >= self.max_retries:
                    raise
                delay = self._backoff_seconds(retries, e)
                log.warning(
                    "transient upstream error, retrying in %.1fs: %s",
                    delay,
                    e,
                    extra={"provider": self.name, "scope": scope.key},
                )
                await self._sleep(delay)
                retries += 1

    async def _send_once(self, client: httpx.AsyncClient, req: PageRequest, scope: Scope) -> Any:
        ctx = {"provider": self.name, "scope": scope.key}
        try:
            resp = await client.request(req.method, req.url, params=req.params or None, json=req.json)
        except httpx.TimeoutException as e:
            raise AdapterUpstreamUnavailable(f"timeout: {e}", **ctx) from e
        except httpx.TransportError as e:
            raise AdapterUpstreamUnavailable(f"transport error: {type(e).__name__}: {e}", **ctx) from e

        code = resp.status_code
        if code in (401, 403):
            raise AdapterAuthError("credentials rejected", status_code=code, **ctx)
        if code == 429:
            raise AdapterRateLimited(
                "rate limited", retry_after=_retry_after(resp.headers.get("Retry-After")), status_code=code, **ctx
            )
        if code >= 500:
            raise AdapterUpstreamUnavailable(f"upstream {resp.reason_phrase}", status_code=code, **ctx)
        if code >= 400:
            raise AdapterMalformedResponse(f"request rejected: {resp.text[:200]}", status_code=code, **ctx)

        try:
            return resp.json()
        except ValueError as e:
            raise AdapterMalformedResponse(f"invalid JSON: {e}", status_code=code, **ctx) from e

    def _backoff_seconds(self, retries: int, err: AdapterError) -> float:
        """
        Exponential backoff with jitter; a provider's Retry-After wins when larger.
        """
        delay = min(self.retry_max_seconds, self.retry_base_seconds * (2 ** max(0, int(retries))))
        jitter = delay * 0.2
        if jitter > 0:
            delay = max(0.0, delay + random.uniform(-jitter, jitter))
        retry_after = getattr(err, "retry_after", None)
        if retry_after is not None:
            delay = max(delay, min(float(retry_after), self.retry_max_seconds))
        return delay

    def malformed(self, message: str) -> AdapterMalformedResponse:
        return AdapterMalformedResponse(message, provider=self.name)


def _retry_after(val: Optional[str]) -> Optional[float]:
    if not val:
        return None
    try:
        return max(0.0, float(val))
    except ValueError:
        return None
