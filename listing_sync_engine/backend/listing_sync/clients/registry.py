# backend/listing_sync/clients/registry.py
from __future__ import annotations

from typing import Any

from .base import ProviderAdapter
from .realty_in_us import RealtyInUsAdapter
from .simplyrets import SimplyRetsAdapter
from .us_real_estate import UsRealEstateAdapter
from .zillow import ZillowAdapter

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    SimplyRetsAdapter.name: SimplyRetsAdapter,
    RealtyInUsAdapter.name: RealtyInUsAdapter,
    UsRealEstateAdapter.name: UsRealEstateAdapter,
    ZillowAdapter.name: ZillowAdapter,
}


class UnknownProvider(KeyError):
    def __str__(self) -> str:
        # KeyError repr()s its message
        return str(self.args[0]) if self.args else ""


def provider_names() -> list[str]:
    return sorted(ADAPTERS)


def get_adapter(name: str, **kw: Any) -> ProviderAdapter:
    key = (name or "").strip().lower()
    cls = ADAPTERS.get(key)
    if cls is None:
        raise UnknownProvider(f"unknown provider {name!r}; known: {', '.join(provider_names())}")
    return cls(**kw)
