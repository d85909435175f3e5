# backend/listing_sync/models.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# -----------------------------
# Listings
# -----------------------------
class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_properties_provider_external_id"),
        Index("ix_properties_active_last_seen", "is_active", "last_seen_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    provider: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)

    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(120), nullable=False, default="", index=True)
    state: Mapped[str] = mapped_column(String(2), nullable=False, default="")
    zip: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    square_feet: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lot_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    property_type: Mapped[str] = mapped_column(String(20), nullable=False, default="other")  # single_family|land|multi_family|other
    listing_status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|pending|sold|off_market|coming_soon
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    listing_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    listing_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Cached copy of images[0].image_url for list pages; written with the images.
    primary_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active", index=True
    )  # active|off_market|flagged|reported

    last_seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    images: Mapped[List["PropertyImage"]] = relationship(
        back_populates="property",
        cascade="all, delete-orphan",
        order_by="PropertyImage.position",
    )


class PropertyImage(Base):
    __tablename__ = "property_images"
    __table_args__ = (
        UniqueConstraint("property_id", "position", name="uq_property_images_property_position"),
        UniqueConstraint("property_id", "image_url", name="uq_property_images_property_url"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url: Mapped[str] = mapped_column(String(500), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    property: Mapped["Property"] = relationship(back_populates="images")


class PropertyReviewEvent(Base):
    """Append-only trail of manual verification_status changes."""

    __tablename__ = "property_review_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor: Mapped[str] = mapped_column(String(200), nullable=False)
    from_status: Mapped[str] = mapped_column(String(20), nullable=False)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Sync audit log
# -----------------------------
class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    providers_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    scopes_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False, default="full")  # full|incremental
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running", index=True)  # running|success|partial|failed

    added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unchanged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    jobs: Mapped[List["SyncRunJob"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="SyncRunJob.id",
    )


class SyncRunJob(Base):
    """One (provider, scope) pair inside a run."""

    __tablename__ = "sync_run_jobs"
    __table_args__ = (Index("ix_sync_run_jobs_provider_scope", "provider", "scope_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[int] = mapped_column(Integer, ForeignKey("sync_runs.id", ondelete="CASCADE"), nullable=False, index=True)

    provider: Mapped[str] = mapped_column(String(40), nullable=False)
    scope_key: Mapped[str] = mapped_column(String(200), nullable=False)
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False, default="full")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="success")  # success|failed|cancelled

    fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unchanged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_type: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    run: Mapped["SyncRun"] = relationship(back_populates="jobs")
