# backend/listing_sync/services/image_audit.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Property, PropertyImage

log = logging.getLogger("listing_sync.image_audit")


@dataclass(frozen=True)
class ImageIssue:
    id: int
    provider: str
    external_id: str
    primary_image: Optional[str]
    first_image: Optional[str]
    image_count: int


@dataclass(frozen=True)
class SharedImage:
    image_url: str
    property_count: int


@dataclass
class ImageAuditResult:
    total_properties: int
    with_images: int
    without_images: int
    total_images: int
    drifted: int
    repaired: int = 0
    no_image_sample: list[ImageIssue] = field(default_factory=list)
    drift_sample: list[ImageIssue] = field(default_factory=list)
    shared: list[SharedImage] = field(default_factory=list)

    def as_dict(self) -> dict:
        def issue(i: ImageIssue) -> dict:
            return {
                "id": i.id,
                "provider": i.provider,
                "external_id": i.external_id,
                "primary_image": i.primary_image,
                "first_image": i.first_image,
                "image_count": i.image_count,
            }

        return {
            "total_properties": self.total_properties,
            "with_images": self.with_images,
            "without_images": self.without_images,
            "total_images": self.total_images,
            "drifted": self.drifted,
            "repaired": self.repaired,
            "no_image_sample": [issue(i) for i in self.no_image_sample],
            "drift_sample": [issue(i) for i in self.drift_sample],
            "shared": [{"image_url": s.image_url, "property_count": s.property_count} for s in self.shared],
        }


def _first_image():
    # gallery head by position; what primary_image is supposed to cache
    return (
        select(PropertyImage.image_url)
        .where(PropertyImage.property_id == Property.id)
        .order_by(PropertyImage.position.asc())
        .limit(1)
        .correlate(Property)
        .scalar_subquery()
    )


def _image_count():
    return (
        select(func.count(PropertyImage.id))
        .where(PropertyImage.property_id == Property.id)
        .correlate(Property)
        .scalar_subquery()
    )


def _drift_condition(first_image):
    return or_(
        and_(Property.primary_image.is_(None), first_image.is_not(None)),
        and_(Property.primary_image.is_not(None), first_image.is_(None)),
        Property.primary_image != first_image,
    )


def audit_images(
    db: Session,
    *,
    min_shared: int = 2,
    sample_size: Optional[int] = None,
    repair: bool = False,
) -> ImageAuditResult:
    """
    Image-integrity report over the whole store.

    - properties with no image rows
    - primary_image drift: the cached value differs from the gallery head
    - image URLs attached to min_shared or more properties (usually a
      provider placeholder picture)

    With repair=True drifted primary_image values are rewritten from the
    gallery in one UPDATE. Galleries themselves are never modified here.
    """
    if min_shared < 2:
        raise ValueError("min_shared must be at least 2")
    limit = settings.sweep_sample_size if sample_size is None else int(sample_size)

    first_image = _first_image()
    image_count = _image_count()

    total, with_images = db.execute(
        select(
            func.count(Property.id),
            func.coalesce(func.sum(case((image_count > 0, 1), else_=0)), 0),
        )
    ).one()
    total = int(total or 0)
    with_images = int(with_images or 0)
    total_images = int(db.scalar(select(func.count(PropertyImage.id))) or 0)

    drift_cond = _drift_condition(first_image)
    drifted = int(db.scalar(select(func.count()).select_from(Property).where(drift_cond)) or 0)

    no_image_sample: list[ImageIssue] = []
    drift_sample: list[ImageIssue] = []
    if limit > 0:
        cols = (Property.id, Property.provider, Property.external_id, Property.primary_image, first_image, image_count)
        no_image_sample = [
            ImageIssue(*row)
            for row in db.execute(select(*cols).where(image_count == 0).order_by(Property.id.asc()).limit(limit))
        ]
        drift_sample = [
            ImageIssue(*row)
            for row in db.execute(select(*cols).where(drift_cond).order_by(Property.id.asc()).limit(limit))
        ]

    n_props = func.count(func.distinct(PropertyImage.property_id))
    shared_rows = db.execute(
        select(PropertyImage.image_url, n_props)
        .group_by(PropertyImage.image_url)
        .having(n_props >= min_shared)
        .order_by(n_props.desc(), PropertyImage.image_url.asc())
        .limit(max(limit, 1))
    ).all()
    shared = [SharedImage(image_url=url, property_count=int(n)) for url, n in shared_rows]

    repaired = 0
    if repair and drifted:
        res = db.execute(
            update(Property)
            .where(drift_cond)
            .values(primary_image=first_image)
            .execution_options(synchronize_session=False)
        )
        repaired = int(res.rowcount or 0)
        db.commit()
        db.expire_all()

    result = ImageAuditResult(
        total_properties=total,
        with_images=with_images,
        without_images=total - with_images,
        total_images=total_images,
        drifted=drifted,
        repaired=repaired,
        no_image_sample=no_image_sample,
        drift_sample=drift_sample,
        shared=shared,
    )

    log.info(
        "image audit: %d of %d properties without images, %d drifted (%d repaired), %d shared url(s)",
        result.without_images,
        total,
        drifted,
        repaired,
        len(shared),
    )
    return result
