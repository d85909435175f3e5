# backend/tests/test_reconcile_apply_batch.py
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from listing_sync.domain.importers.base import to_float
from listing_sync.models import Property, PropertyImage
from listing_sync.services.reconcile import apply_batch

from conftest import make_listing

T0 = datetime(2026, 10, 1, 2, 0, 0)


def _prop(db, provider: str, external_id: str) -> Property:
    p = db.scalar(select(Property).where(Property.provider == provider, Property.external_id == external_id))
    assert p is not None
    return p


def test_new_listings_are_added_active_with_primary_image(db):
    listings = [make_listing(i) for i in range(3)]
    counts = apply_batch(db, listings, now=T0)

    assert counts.as_dict() == {"added": 3, "updated": 0, "unchanged": 0, "failed": 0}

    p = _prop(db, "simplyrets", "L1")
    assert p.is_active is True
    assert p.verification_status == "active"
    assert p.last_seen_at == T0
    assert p.created_at == T0
    assert [img.image_url for img in p.images] == list(listings[1].images)
    assert p.primary_image == listings[1].images[0]


def test_reapplying_identical_batch_is_idempotent(db):
    listings = [make_listing(i) for i in range(5)]
    apply_batch(db, listings, now=T0)

    later = T0 + timedelta(hours=6)
    counts = apply_batch(db, listings, now=later)

    assert counts.as_dict() == {"added": 0, "updated": 0, "unchanged": 5, "failed": 0}
    assert db.scalar(select(func.count()).select_from(Property)) == 5
    assert db.scalar(select(func.count()).select_from(PropertyImage)) == 10

    p = _prop(db, "simplyrets", "L2")
    # freshness moves even when nothing else did
    assert p.last_seen_at == later
    assert p.updated_at == T0


def test_price_change_updates_only_that_property(db):
    apply_batch(db, [make_listing(i) for i in range(3)], now=T0)

    changed = make_listing(1, price=250_000.0)
    later = T0 + timedelta(days=1)
    counts = apply_batch(db, [make_listing(0), changed, make_listing(2)], now=later)

    assert counts.as_dict() == {"added": 0, "updated": 1, "unchanged": 2, "failed": 0}
    assert _prop(db, "simplyrets", "L1").price == 250_000.0
    assert _prop(db, "simplyrets", "L1").updated_at == later
    assert _prop(db, "simplyrets", "L0").price == 300_000.0


def test_one_bad_listing_does_not_sink_the_batch(db):
    listings = [make_listing(i) for i in range(10)]
    # duplicate gallery URLs violate the per-property image uniqueness
    listings[5] = make_listing(5, images=("https://img.example.com/dup.jpg", "https://img.example.com/dup.jpg"))

    counts = apply_batch(db, listings, now=T0)

    assert counts.added == 9
    assert counts.failed == 1
    assert counts.processed == 10
    assert len(counts.errors) == 1
    assert "simplyrets:L5" in counts.errors[0]

    ids = set(db.scalars(select(Property.external_id)).all())
    assert "L5" not in ids
    assert len(ids) == 9


@pytest.mark.parametrize("manual", ["flagged", "reported"])
def test_manual_review_property_keeps_status_but_stays_fresh(db, manual):
    apply_batch(db, [make_listing(1)], now=T0)
    p = _prop(db, "simplyrets", "L1")
    p.verification_status = manual
    p.is_active = True
    db.commit()

    counts = apply_batch(db, [make_listing(1, price=199_000.0)], now=T0 + timedelta(days=1))

    assert counts.updated == 1
    db.expire_all()
    p = _prop(db, "simplyrets", "L1")
    assert p.verification_status == manual
    assert p.is_active is True
    assert p.price == 199_000.0
    assert p.last_seen_at == T0 + timedelta(days=1)

    # an identical re-observation still advances freshness
    counts = apply_batch(db, [make_listing(1, price=199_000.0)], now=T0 + timedelta(days=2))

    assert counts.unchanged == 1
    db.expire_all()
    p = _prop(db, "simplyrets", "L1")
    assert p.verification_status == manual
    assert p.last_seen_at == T0 + timedelta(days=2)


def test_drifted_primary_image_is_repaired_when_provider_sends_no_images(db):
    apply_batch(db, [make_listing(1)], now=T0)
    p = _prop(db, "simplyrets", "L1")
    p.primary_image = "https://img.example.com/stale.jpg"
    db.commit()

    counts = apply_batch(db, [make_listing(1, images=None)], now=T0 + timedelta(hours=1))

    assert counts.updated == 1
    db.expire_all()
    p = _prop(db, "simplyrets", "L1")
    assert p.primary_image == make_listing(1).images[0]
    assert [i.image_url for i in p.images] == list(make_listing(1).images)


def test_nan_price_never_reaches_the_store(db):
    listing = make_listing(1, price=to_float("NaN"))

    apply_batch(db, [listing], now=T0)
    counts = apply_batch(db, [listing], now=T0 + timedelta(hours=1))

    assert listing.price is None
    assert counts.as_dict() == {"added": 0, "updated": 0, "unchanged": 1, "failed": 0}


def test_off_market_listing_seen_again_is_relisted(db):
    apply_batch(db, [make_listing(1)], now=T0)
    p = _prop(db, "simplyrets", "L1")
    p.verification_status = "off_market"
    p.is_active = False
    db.commit()

    counts = apply_batch(db, [make_listing(1)], now=T0 + timedelta(days=10))

    assert counts.updated == 1
    db.expire_all()
    p = _prop(db, "simplyrets", "L1")
    assert p.verification_status == "active"
    assert p.is_active is True


def test_provider_delisting_is_ignored_by_default(db):
    apply_batch(db, [make_listing(1)], now=T0)
    apply_batch(db, [make_listing(1, listing_status="sold")], now=T0 + timedelta(hours=1))

    p = _prop(db, "simplyrets", "L1")
    assert p.listing_status == "sold"
    assert p.is_active is True
    assert p.verification_status == "active"


def test_provider_delisting_can_retire_immediately(db):
    apply_batch(db, [make_listing(1)], now=T0)
    apply_batch(
        db,
        [make_listing(1, listing_status="off_market")],
        now=T0 + timedelta(hours=1),
        honor_provider_delisting=True,
    )

    p = _prop(db, "simplyrets", "L1")
    assert p.is_active is False
    assert p.verification_status == "off_market"


def test_missing_values_never_erase_stored_ones(db):
    apply_batch(db, [make_listing(1, year_built=1998, lot_size=6000)], now=T0)

    sparse = make_listing(1, year_built=None, lot_size=None, images=None)
    counts = apply_batch(db, [sparse], now=T0 + timedelta(days=1))

    assert counts.unchanged == 1
    p = _prop(db, "simplyrets", "L1")
    assert p.year_built == 1998
    assert p.lot_size == 6000
    assert len(p.images) == 2


def test_explicit_empty_gallery_clears_images_and_primary(db):
    apply_batch(db, [make_listing(1)], now=T0)

    counts = apply_batch(db, [make_listing(1, images=())], now=T0 + timedelta(days=1))

    assert counts.updated == 1
    p = _prop(db, "simplyrets", "L1")
    assert p.images == []
    assert p.primary_image is None


def test_reordered_gallery_moves_primary_image(db):
    apply_batch(db, [make_listing(1)], now=T0)
    a, b = make_listing(1).images

    apply_batch(db, [make_listing(1, images=(b, a))], now=T0 + timedelta(days=1))

    p = _prop(db, "simplyrets", "L1")
    assert [img.image_url for img in p.images] == [b, a]
    assert [img.position for img in p.images] == [0, 1]
    assert p.primary_image == b


def test_same_external_id_under_two_providers_are_separate_rows(db):
    counts = apply_batch(
        db,
        [make_listing(7, provider="simplyrets"), make_listing(7, provider="zillow")],
        now=T0,
    )

    assert counts.added == 2
    rows = db.scalars(select(Property).where(Property.external_id == "L7")).all()
    assert sorted(r.provider for r in rows) == ["simplyrets", "zillow"]


def test_should_stop_halts_before_next_listing(db):
    seen = {"n": 0}

    def stop() -> bool:
        seen["n"] += 1
        return seen["n"] > 2

    counts = apply_batch(db, [make_listing(i) for i in range(5)], now=T0, should_stop=stop)

    assert counts.added == 2
    assert db.scalar(select(func.count()).select_from(Property)) == 2
