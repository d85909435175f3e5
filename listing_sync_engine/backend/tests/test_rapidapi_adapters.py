# backend/tests/test_rapidapi_adapters.py
from __future__ import annotations

import json
from datetime import datetime

import httpx
import pytest

from listing_sync.clients.realty_in_us import RealtyInUsAdapter
from listing_sync.clients.registry import UnknownProvider, get_adapter, provider_names
from listing_sync.clients.us_real_estate import UsRealEstateAdapter
from listing_sync.clients.zillow import ZillowAdapter
from listing_sync.domain.errors import AdapterAuthError, AdapterMalformedResponse
from listing_sync.domain.importers.base import Pagination, Scope
from listing_sync.domain.importers.realty_in_us import normalize_realty_in_us
from listing_sync.domain.importers.zillow import normalize_zillow

from conftest import collect, run

TAMPA = Scope(city="Tampa", state="FL", postal_code="33602")


def _make(cls, handler, **kw):
    kw.setdefault("request_delay", 0)
    kw.setdefault("max_retries", 0)
    return cls(transport=httpx.MockTransport(handler), api_key="k-123", **kw)


# -----------------------------
# Realty in US
# -----------------------------
def _realty_result(pid, **kw):
    r = {
        "property_id": pid,
        "list_price": 389900,
        "status": "for_sale",
        "href": "https://www.realtor.com/x",
        "list_date": "2026-09-20T10:00:00Z",
        "last_update_date": "2026-10-10T10:00:00Z",
        "location": {
            "address": {
                "line": "500 Bay St",
                "city": "Tampa",
                "state_code": "FL",
                "postal_code": "33602",
                "coordinate": {"lat": 27.95, "lon": -82.45},
            }
        },
        "description": {"beds": 4, "baths": 3, "sqft": 2100, "lot_sqft": 5000, "year_built": 2004, "type": "single_family", "text": "Near downtown"},
        "photos": [{"href": "https://ap.rdcpix.com/1.jpg"}, {"href": "https://ap.rdcpix.com/2.jpg"}],
    }
    r.update(kw)
    return r


def test_realty_in_us_posts_search_body_and_pages_by_total():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/properties/v3/list"
        assert request.headers["X-RapidAPI-Key"] == "k-123"
        assert request.headers["X-RapidAPI-Host"] == "realty-in-us.p.rapidapi.com"
        body = json.loads(request.content)
        bodies.append(body)
        results = [_realty_result("A"), _realty_result("B")] if body["offset"] == 0 else [_realty_result("C")]
        return httpx.Response(200, json={"data": {"home_search": {"total": 3, "results": results}}})

    since = datetime(2026, 10, 1, 0, 0, 0)
    listings = run(collect(_make(RealtyInUsAdapter, handler).fetch(TAMPA, Pagination(page_size=2, since=since))))

    assert [n.external_id for n in listings] == ["A", "B", "C"]
    assert [b["offset"] for b in bodies] == [0, 2]
    assert bodies[0]["postal_code"] == "33602"
    assert bodies[0]["state_code"] == "FL"
    assert bodies[0]["last_update_date"] == {"min": "2026-10-01T00:00:00Z"}

    n = listings[0]
    assert n.provider == "realty_in_us"
    assert (n.address, n.city, n.state, n.zip) == ("500 Bay St", "Tampa", "FL", "33602")
    assert (n.latitude, n.longitude) == (27.95, -82.45)
    assert (n.bedrooms, n.bathrooms, n.square_feet, n.lot_size, n.year_built) == (4, 3.0, 2100, 5000, 2004)
    assert n.property_type == "single_family"
    assert n.images == ("https://ap.rdcpix.com/1.jpg", "https://ap.rdcpix.com/2.jpg")


def test_realty_in_us_falls_back_to_scope_city_and_zip():
    rec = _realty_result("A")
    rec["location"]["address"].pop("city")
    rec["location"]["address"].pop("postal_code")
    rec.pop("photos")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"home_search": {"total": 1, "results": [rec]}}})

    (n,) = run(collect(_make(RealtyInUsAdapter, handler).fetch(TAMPA, Pagination())))

    assert (n.city, n.zip) == ("Tampa", "33602")
    assert n.images is None


def test_realty_in_us_missing_envelope_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": None})

    with pytest.raises(AdapterMalformedResponse):
        run(collect(_make(RealtyInUsAdapter, handler).fetch(TAMPA, Pagination())))


def test_rapidapi_adapters_require_a_key():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    for cls in (RealtyInUsAdapter, UsRealEstateAdapter, ZillowAdapter):
        a = cls(transport=httpx.MockTransport(handler), api_key="", request_delay=0)
        with pytest.raises(AdapterAuthError):
            run(collect(a.fetch(TAMPA, Pagination())))


def test_rapidapi_403_is_auth_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"message": "You are not subscribed to this API."})

    with pytest.raises(AdapterAuthError):
        run(collect(_make(UsRealEstateAdapter, handler).fetch(TAMPA, Pagination())))


# -----------------------------
# US Real Estate Listings
# -----------------------------
def test_us_real_estate_reads_data_list_and_aliases():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "property_id": "U1",
                        "address": "9 Palm Rd",
                        "city": "Tampa",
                        "state_code": "fl",
                        "postal_code": "33602",
                        "lat": "27.9",
                        "lng": "-82.4",
                        "list_price": "$275,000",
                        "bedrooms": "2",
                        "bathrooms": "1.5",
                        "building_size": 1100,
                        "type": "Condo",
                        "status": "pending",
                        "photos": ["https://img.example.com/u1.jpg"],
                    },
                    {"city": "Tampa"},
                ]
            },
        )

    listings = run(collect(_make(UsRealEstateAdapter, handler).fetch(TAMPA, Pagination(page_size=50))))

    assert seen[0]["location"] == "33602"
    assert seen[0]["offset"] == "0"
    assert len(listings) == 1
    n = listings[0]
    assert n.external_id == "U1"
    assert n.state == "FL"
    assert n.price == 275000.0
    assert (n.bedrooms, n.bathrooms, n.square_feet) == (2, 1.5, 1100)
    assert n.property_type == "other"
    assert n.listing_status == "pending"
    assert (n.latitude, n.longitude) == (27.9, -82.4)


# -----------------------------
# Zillow
# -----------------------------
def _zpid(z, **kw):
    p = {
        "zpid": z,
        "address": "77 Oak Ln, Lakeland, FL 33801",
        "price": 199000,
        "bedrooms": 3,
        "bathrooms": 2,
        "livingArea": 1400,
        "lotAreaValue": 0.25,
        "lotAreaUnit": "acres",
        "propertyType": "SINGLE_FAMILY",
        "listingStatus": "FOR_SALE",
        "latitude": 28.04,
        "longitude": -81.95,
        "imgSrc": "https://photos.zillowstatic.com/p.jpg",
        "detailUrl": "/homedetails/77-Oak-Ln/123_zpid/",
    }
    p.update(kw)
    return p


def test_zillow_pages_by_total_pages():
    pages = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        pages.append(page)
        assert request.url.params["status_type"] == "ForSale"
        return httpx.Response(200, json={"props": [_zpid(f"{page}01"), _zpid(f"{page}02")], "totalPages": 2})

    listings = run(collect(_make(ZillowAdapter, handler).fetch(Scope(city="Lakeland", state="FL"), Pagination())))

    assert pages == [1, 2]
    assert [n.external_id for n in listings] == ["101", "102", "201", "202"]


def test_zillow_single_match_response_is_one_listing():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["location"] == "33801"
        return httpx.Response(200, json=_zpid("555"))

    listings = run(collect(_make(ZillowAdapter, handler).fetch(Scope(postal_code="33801"), Pagination())))

    assert [n.external_id for n in listings] == ["555"]


def test_zillow_normalize_splits_address_and_converts_lot():
    n = normalize_zillow(_zpid("42"))

    assert (n.city, n.state, n.zip) == ("Lakeland", "FL", "33801")
    assert n.lot_size == 10890
    assert n.property_type == "single_family"
    assert n.listing_status == "active"
    assert n.listing_url == "https://www.zillow.com/homedetails/77-Oak-Ln/123_zpid/"
    assert n.images == ("https://photos.zillowstatic.com/p.jpg",)

    bare = normalize_zillow({"zpid": "43", "address": "somewhere"})
    assert bare.images is None
    assert bare.city == ""


# -----------------------------
# Registry
# -----------------------------
def test_registry_knows_all_providers():
    assert provider_names() == ["realty_in_us", "simplyrets", "us_real_estate", "zillow"]
    assert isinstance(get_adapter("Zillow", api_key="x"), ZillowAdapter)
    with pytest.raises(UnknownProvider):
        get_adapter("craigslist")


def test_realty_in_us_tolerates_non_object_nesting_and_bad_numbers():
    n = normalize_realty_in_us(
        {
            "property_id": "9",
            "list_price": "Infinity",
            "location": {"address": "n/a"},
            "description": "3 bed home",
            "photos": ["https://ap.rdcpix.com/a.jpg", {"href": None}],
        },
        fallback_city="Tampa",
        fallback_zip="33602",
    )

    assert n.external_id == "9"
    assert n.price is None
    assert (n.address, n.city, n.zip) == ("", "Tampa", "33602")
    assert (n.latitude, n.longitude) == (None, None)
    assert n.bedrooms is None
    assert n.images == ("https://ap.rdcpix.com/a.jpg",)


def test_zillow_huge_lot_in_acres_maps_to_missing():
    n = normalize_zillow({"zpid": 5, "address": "1 A St, Tampa, FL 33602", "lotAreaValue": 1e305, "lotAreaUnit": "acres"})

    assert n.lot_size is None
