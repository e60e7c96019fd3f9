"""
HEARDROP Backend — Shop Locator Tests
=======================================

What we test:
    ✅ Filters, viewport bounding boxes (including the antimeridian)
    ✅ Distance sorting and radius cut
    ✅ Grid clusters at low and high zoom
    ✅ City/country facets
    ✅ Slug rules: explicit slugs conflict, derived slugs get a suffix
    ✅ Batch geocoding with partial failures and an open circuit
"""

import uuid
from typing import Optional

import pytest

from heardrop.exceptions import (
    CircuitBreakerOpenError,
    ConflictError,
    NotFoundError,
    UpstreamServiceError,
    ValidationError,
)
from heardrop.schemas.shop import ShopCreate, ShopUpdate
from heardrop.services.shop_service import ShopService

LONDON = (51.5074, -0.1278)


async def _seed_map(make_brand, make_shop):
    brand = await make_brand("Supreme", category="streetwear")
    await make_shop("Supreme London", 51.5136, -0.1357, brand_id=brand.id, city="London", country="UK",
                    category="streetwear")
    await make_shop("Palace Soho", 51.5128, -0.1337, city="London", country="UK", category="sportswear")
    await make_shop("Kith Paris", 48.8686, 2.3266, city="Paris", country="France", category="streetwear")
    await make_shop("Undefeated Tokyo", 35.6702, 139.7027, city="Tokyo", country="Japan",
                    category="sneakers")
    await make_shop("Unplaced Store", None, None, city="London", country="UK")
    await make_shop("Closed Store", 51.50, -0.12, city="London", country="UK", is_active=False)
    return brand


class FakeGeocoder:

    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    async def geocode(self, address: str, city: str, country: str):
        self.calls.append(address)
        answer = self.answers.get(address)
        if isinstance(answer, Exception):
            raise answer
        return answer


class TestShopQueries:

    def setup_method(self):
        self.service = ShopService()

    @pytest.mark.asyncio
    async def test_filters(self, db_session, make_brand, make_shop):
        brand = await _seed_map(make_brand, make_shop)

        names = lambda shops: [s.name for s in shops]  # noqa: E731
        assert len(await self.service.list_shops(db_session)) == 5
        assert names(await self.service.list_shops(db_session, brand_id=brand.id)) == ["Supreme London"]
        assert names(await self.service.list_shops(db_session, city="paris")) == ["Kith Paris"]
        assert names(await self.service.list_shops(db_session, country="JAPAN")) == ["Undefeated Tokyo"]
        assert names(await self.service.list_shops(db_session, search="soho")) == ["Palace Soho"]
        london = await self.service.list_shops(db_session, city="London", category="streetwear")
        assert names(london) == ["Supreme London"]
        assert london[0].brand_name == "Supreme"
        assert len(await self.service.list_shops(db_session, include_inactive=True)) == 6

    @pytest.mark.asyncio
    async def test_bbox(self, db_session, make_brand, make_shop):
        await _seed_map(make_brand, make_shop)
        europe = await self.service.list_shops(db_session, bbox=(45.0, -5.0, 55.0, 5.0))
        assert sorted(s.name for s in europe) == ["Kith Paris", "Palace Soho", "Supreme London"]

    @pytest.mark.asyncio
    async def test_bbox_across_antimeridian(self, db_session, make_shop):
        await make_shop("Fiji Store", -18.14, 178.44, city="Suva", country="Fiji")
        await make_shop("Samoa Store", -13.83, -171.76, city="Apia", country="Samoa")
        await make_shop("Sydney Store", -33.87, 151.21, city="Sydney", country="Australia")

        shops = await self.service.list_shops(db_session, bbox=(-25.0, 170.0, -10.0, -165.0))
        assert sorted(s.name for s in shops) == ["Fiji Store", "Samoa Store"]

    @pytest.mark.asyncio
    async def test_bbox_inverted_latitudes(self, db_session):
        with pytest.raises(ValidationError):
            await self.service.list_shops(db_session, bbox=(55.0, -5.0, 45.0, 5.0))

    @pytest.mark.asyncio
    async def test_near_sorts_by_distance(self, db_session, make_brand, make_shop):
        await _seed_map(make_brand, make_shop)

        shops = await self.service.list_shops(db_session, near=LONDON)

        assert [s.name for s in shops] == ["Palace Soho", "Supreme London", "Kith Paris", "Undefeated Tokyo"]
        assert shops[0].distance_km < shops[1].distance_km < shops[2].distance_km
        assert 330 < shops[2].distance_km < 350

    @pytest.mark.asyncio
    async def test_nearby_radius(self, db_session, make_brand, make_shop):
        await _seed_map(make_brand, make_shop)
        shops = await self.service.nearby(db_session, *LONDON, radius_km=5)
        assert [s.name for s in shops] == ["Palace Soho", "Supreme London"]

    @pytest.mark.asyncio
    async def test_radius_requires_point(self, db_session):
        with pytest.raises(ValidationError, match="radius_km"):
            await self.service.list_shops(db_session, radius_km=5)

    @pytest.mark.asyncio
    async def test_clusters(self, db_session, make_brand, make_shop):
        await _seed_map(make_brand, make_shop)

        world = await self.service.clusters(db_session, zoom=2)
        assert world.cell_size == 45.0
        assert sorted(c.count for c in world.clusters) == [1, 1, 2]
        for cluster in world.clusters:
            # Pins only for single-shop cells
            assert len(cluster.shop_ids) == (1 if cluster.count == 1 else 0)
        london = next(c for c in world.clusters if c.count == 2)
        assert london.latitude == pytest.approx(51.5132)

        street = await self.service.clusters(db_session, zoom=14, bbox=(48.0, 2.0, 49.0, 3.0))
        assert len(street.clusters) == 1
        assert street.clusters[0].count == 1
        assert len(street.clusters[0].shop_ids) == 1

    @pytest.mark.asyncio
    async def test_facets(self, db_session, make_brand, make_shop):
        await _seed_map(make_brand, make_shop)

        cities = await self.service.cities(db_session)
        assert (cities[0].value, cities[0].count) == ("London", 3)
        assert [c.value for c in await self.service.cities(db_session, country="france")] == ["Paris"]

        countries = await self.service.countries(db_session)
        assert [(c.value, c.count) for c in countries] == [("UK", 3), ("France", 1), ("Japan", 1)]

    @pytest.mark.asyncio
    async def test_inactive_shop_hidden_from_public(self, db_session, make_shop):
        shop = await make_shop("Closed Store", is_active=False, email="owner@closed.example")
        with pytest.raises(NotFoundError):
            await self.service.get_shop(db_session, "closed-store")

        admin_view = await self.service.get_shop(db_session, str(shop.id), admin=True)
        assert admin_view.email == "owner@closed.example"

    @pytest.mark.asyncio
    async def test_public_view_hides_contact_details(self, db_session, make_shop):
        await make_shop("Open Store", email="owner@open.example", phone="+44 20 0000")
        public = await self.service.get_shop(db_session, "open-store")
        assert "email" not in public.model_dump()
        assert "phone" not in public.model_dump()


class TestShopAdmin:

    def setup_method(self):
        self.service = ShopService()

    def _payload(self, name: str, slug: Optional[str] = None, **fields) -> ShopCreate:
        return ShopCreate(name=name, slug=slug, address="1 Main St", city="London", country="UK", **fields)

    @pytest.mark.asyncio
    async def test_derived_slug_gets_suffix(self, db_session):
        first = await self.service.create_shop(db_session, self._payload("Dover Street Market"))
        second = await self.service.create_shop(db_session, self._payload("Dover Street Market"))
        third = await self.service.create_shop(db_session, self._payload("Dover Street Market"))

        assert [first.slug, second.slug, third.slug] == [
            "dover-street-market",
            "dover-street-market-2",
            "dover-street-market-3",
        ]

    @pytest.mark.asyncio
    async def test_explicit_slug_conflict(self, db_session):
        await self.service.create_shop(db_session, self._payload("DSM", slug="dsm-london"))
        with pytest.raises(ConflictError):
            await self.service.create_shop(db_session, self._payload("DSM Two", slug="DSM London"))

    @pytest.mark.asyncio
    async def test_unknown_brand(self, db_session):
        with pytest.raises(ValidationError, match="Unknown brand"):
            await self.service.create_shop(db_session, self._payload("Orphan", brand_id=uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_update_and_delete(self, db_session, make_shop):
        shop = await make_shop("Goodhood")
        updated = await self.service.update_shop(
            db_session, shop.id, ShopUpdate(city="Hackney", is_unique_shop=True)
        )
        assert updated.city == "Hackney"
        assert updated.is_unique_shop is True
        assert updated.slug == "goodhood"

        await self.service.delete_shop(db_session, shop.id)
        with pytest.raises(NotFoundError):
            await self.service.get_shop(db_session, str(shop.id), admin=True)


class TestGeocodeMissing:

    def setup_method(self):
        self.service = ShopService()

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, db_session, make_shop):
        await make_shop("Placed")
        report = await self.service.geocode_missing(db_session, FakeGeocoder({}), delay_ms=0)
        assert report.total == 0
        assert report.message == "All shops already have coordinates"

    @pytest.mark.asyncio
    async def test_partial_failures(self, db_session, make_shop):
        found = await make_shop("Found", None, None, address="1 Found St")
        await make_shop("Nowhere", None, None, address="1 Nowhere St")
        await make_shop("Broken", None, None, address="1 Broken St")
        geocoder = FakeGeocoder(
            {
                "1 Found St": (51.5, -0.1),
                "1 Nowhere St": None,
                "1 Broken St": UpstreamServiceError(message="The map service rejected the request"),
            }
        )

        report = await self.service.geocode_missing(db_session, geocoder, delay_ms=0)

        assert (report.total, report.updated, report.failed) == (3, 1, 2)
        reasons = {f.name: f.reason for f in report.failed_shops}
        assert reasons == {
            "Nowhere": "No results found",
            "Broken": "The map service rejected the request",
        }
        assert (found.latitude, found.longitude) == (51.5, -0.1)

    @pytest.mark.asyncio
    async def test_open_circuit_skips_the_rest(self, db_session, make_shop):
        await make_shop("First", None, None, address="1 First St")
        await make_shop("Second", None, None, address="1 Second St")
        breaker_open = CircuitBreakerOpenError(recovery_time=30, service="Mapbox")
        geocoder = FakeGeocoder({"1 First St": breaker_open, "1 Second St": breaker_open})

        report = await self.service.geocode_missing(db_session, geocoder, delay_ms=0)

        assert report.updated == 0
        assert report.failed == 2
        assert {f.reason for f in report.failed_shops} == {"Skipped: map service unavailable"}
        assert len(geocoder.calls) == 1
