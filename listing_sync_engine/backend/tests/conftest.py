# backend/tests/conftest.py
from __future__ import annotations

import asyncio
import os
from datetime import datetime
from typing import Any, Callable, Optional

import pytest

# Settings are read at import time; keep the default engine away from the
# working directory and the demo credentials out of real providers.
os.environ.setdefault("DATABASE_URL", "sqlite:///./.pytest_listing_sync.db")
os.environ.setdefault("PROVIDER_REQUEST_DELAY_SECONDS", "0")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from listing_sync.clients.registry import UnknownProvider  # noqa: E402
from listing_sync.db import init_db  # noqa: E402
from listing_sync.domain.importers.base import NormalizedListing  # noqa: E402


@pytest.fixture()
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'listings.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


def make_listing(n: int, provider: str = "simplyrets", **overrides: Any) -> NormalizedListing:
    data: dict[str, Any] = dict(
        provider=provider,
        external_id=f"L{n}",
        address=f"{n} Main St",
        city="Orlando",
        state="FL",
        zip="32801",
        latitude=28.5,
        longitude=-81.4,
        price=300_000.0 + n,
        bedrooms=3,
        bathrooms=2.0,
        square_feet=1500,
        property_type="single_family",
        listing_status="active",
        images=(f"https://img.example.com/{provider}/{n}/1.jpg", f"https://img.example.com/{provider}/{n}/2.jpg"),
    )
    data.update(overrides)
    return NormalizedListing(**data)


class FakeAdapter:
    """
    Stand-in ProviderAdapter: yields canned listings, optionally raising
    error after fail_after listings (or before any when fail_after is None).
    """

    def __init__(
        self,
        name: str,
        listings: list[NormalizedListing] = (),
        *,
        error: Optional[BaseException] = None,
        fail_after: Optional[int] = None,
        supports_since: bool = True,
        on_yield: Optional[Callable[[int], None]] = None,
    ):
        self.name = name
        self.listings = list(listings)
        self.error = error
        self.fail_after = fail_after
        self.supports_since = supports_since
        self.on_yield = on_yield
        self.calls: list[Any] = []

    async def fetch(self, scope, pagination):
        self.calls.append((scope, pagination))
        if self.error is not None and self.fail_after is None:
            raise self.error
        for i, listing in enumerate(self.listings):
            if self.fail_after is not None and i == self.fail_after:
                raise self.error
            yield listing
            if self.on_yield is not None:
                self.on_yield(i)


def adapter_factory(*adapters: FakeAdapter):
    by_name = {a.name: a for a in adapters}

    def factory(name: str):
        if name not in by_name:
            raise UnknownProvider(f"unknown provider {name!r}")
        return by_name[name]

    return factory


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


async def collect(agen, limit: Optional[int] = None) -> list:
    out = []
    async for item in agen:
        out.append(item)
        if limit is not None and len(out) >= limit:
            break
    return out


def run(coro):
    return asyncio.run(coro)
