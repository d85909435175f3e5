# backend/listing_sync/schemas.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


# -------------------- Sync runs --------------------

class SyncRunIn(BaseModel):
    providers: Optional[List[str]] = None
    scopes: Optional[List[str]] = None
    force_full_sync: bool = False
    max_pages: Optional[int] = Field(default=None, ge=1)
    max_results: Optional[int] = Field(default=None, ge=1)


class SyncJobOut(BaseModel):
    provider: str
    scope: str = Field(validation_alias="scope_key")
    sync_type: str
    status: str
    fetched: int = 0
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    error_type: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class SyncRunOut(BaseModel):
    id: int
    status: str
    sync_type: str
    providers: List[str] = Field(default_factory=list)
    scopes: List[str] = Field(default_factory=list)
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    error_summary: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    jobs: List[SyncJobOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _unpack_json_columns(cls, data):
        # ORM rows carry providers/scopes as JSON text columns
        if hasattr(data, "providers_json"):
            return {
                "id": data.id,
                "status": data.status,
                "sync_type": data.sync_type,
                "providers": _json_list(data.providers_json),
                "scopes": _json_list(data.scopes_json),
                "added": data.added,
                "updated": data.updated,
                "unchanged": data.unchanged,
                "failed": data.failed,
                "error_summary": data.error_summary,
                "started_at": data.started_at,
                "finished_at": data.finished_at,
                "jobs": list(data.jobs or []),
            }
        return data


class SyncStatusOut(BaseModel):
    last_run: Optional[SyncRunOut] = None
    totals: dict[str, int] = Field(default_factory=dict)


# -------------------- Sweeper --------------------

class SweepIn(BaseModel):
    retention_window_days: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False


class StaleListingOut(BaseModel):
    id: int
    provider: str
    external_id: str
    address: str
    city: str
    last_seen_at: datetime
    days_since_seen: int

    model_config = ConfigDict(from_attributes=True)


class SweepResultOut(BaseModel):
    transitioned: int
    cutoff: datetime
    swept_at: datetime
    dry_run: bool
    sample: List[StaleListingOut] = Field(default_factory=list)
    totals: dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


# -------------------- Properties --------------------

class PropertyImageOut(BaseModel):
    image_url: str
    position: int

    model_config = ConfigDict(from_attributes=True)


class PropertyOut(BaseModel):
    id: int
    provider: str
    external_id: str

    address: str
    city: str
    state: str
    zip: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    price: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[int] = None
    lot_size: Optional[int] = None
    year_built: Optional[int] = None

    property_type: str
    listing_status: str
    description: str = ""
    listing_url: str = ""
    listing_date: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None

    primary_image: Optional[str] = None
    images: List[PropertyImageOut] = Field(default_factory=list)

    is_active: bool
    verification_status: str
    last_seen_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReviewIn(BaseModel):
    status: str
    reason: Optional[str] = None
    actor: str = "admin"

    @field_validator("status")
    @classmethod
    def _lower(cls, v: str) -> str:
        return (v or "").strip().lower()


class ReviewEventOut(BaseModel):
    id: int
    actor: str
    from_status: str
    to_status: str
    reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


def _json_list(s: Optional[str]) -> list:
    if not s:
        return []
    try:
        v = json.loads(s)
    except ValueError:
        return []
    return v if isinstance(v, list) else []
