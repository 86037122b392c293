import asyncio
import json
from datetime import date, timedelta

import httpx
import pytest

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.query import CarRentalQuery, FlightQuery, HotelQuery, Location, TransportQuery
from tripmerge.services.providers import (
    FALLBACK_GENERATORS,
    HttpOfferProvider,
    ProviderError,
    build_providers,
)
from tripmerge.services.providers.synthetic import (
    SyntheticCarRentalGenerator,
    SyntheticFlightGenerator,
    SyntheticHotelGenerator,
    SyntheticTransportGenerator,
)

from tests.factories import NOW, flight_payload


def _flight_query() -> FlightQuery:
    return FlightQuery(
        origin=Location(name="New York", code="JFK"),
        destination=Location(name="London", code="LHR"),
        departure_date=date.today() + timedelta(days=30),
    )


def _provider(handler) -> HttpOfferProvider:
    return HttpOfferProvider(
        name="kiwi",
        service_type=ServiceType.FLIGHT,
        base_url="https://kiwi.test/api",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


def test_http_provider_posts_query_and_unwraps_data():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [flight_payload("f1"), "junk"]})

    provider = _provider(handler)

    async def run():
        try:
            return await provider.search(_flight_query())
        finally:
            await provider.close()

    offers = asyncio.run(run())

    assert [o["id"] for o in offers] == ["f1"]
    assert seen["url"] == "https://kiwi.test/api/search/flight"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["origin"]["code"] == "JFK"


def test_http_provider_accepts_bare_list():
    provider = _provider(lambda request: httpx.Response(200, json=[flight_payload("f1")]))
    assert len(asyncio.run(provider.search(_flight_query()))) == 1


@pytest.mark.parametrize(
    "response, message",
    [
        (httpx.Response(503, text="down"), "HTTP 503"),
        (httpx.Response(200, text="<html>"), "invalid JSON"),
        (httpx.Response(200, json={"data": {"not": "a list"}}), "malformed payload"),
    ],
)
def test_http_provider_failures_raise_provider_error(response, message):
    provider = _provider(lambda request: response)
    with pytest.raises(ProviderError) as exc:
        asyncio.run(provider.search(_flight_query()))
    assert message in exc.value.message
    assert exc.value.provider == "kiwi"


def test_http_provider_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError, match="request error"):
        asyncio.run(_provider(handler).search(_flight_query()))


def test_build_providers_only_uses_configured_endpoints(monkeypatch):
    from tripmerge.config import settings

    monkeypatch.setattr(settings, "provider_endpoints", {"hertz": "https://hertz.test"})
    providers = build_providers(ServiceType.CAR_RENTAL)

    assert [p.name for p in providers] == ["hertz"]
    assert providers[0].timeout_seconds == 8
    assert build_providers(ServiceType.FLIGHT) == []


def test_every_service_has_a_synthetic_fallback():
    assert set(FALLBACK_GENERATORS) == set(ServiceType)
    for generator_cls in FALLBACK_GENERATORS.values():
        assert generator_cls().is_synthetic is True


def test_synthetic_flights_are_deterministic_per_query():
    generator = SyntheticFlightGenerator()
    first = generator.generate(_flight_query())
    second = generator.generate(_flight_query())

    assert 5 <= len(first) <= 12
    assert [f["id"] for f in first] == [f["id"] for f in second]
    assert [f["price"]["total"] for f in first] == [f["price"]["total"] for f in second]


def test_synthetic_hotels_cover_realistic_range():
    query = HotelQuery(
        destination=Location(name="Paris", latitude=48.8566, longitude=2.3522),
        check_in=date.today() + timedelta(days=30),
        check_out=date.today() + timedelta(days=32),
    )
    hotels = SyntheticHotelGenerator().generate(query)

    assert len(hotels) == 15
    for h in hotels:
        assert 50 <= h["price"]["per_night"] <= 350
        assert abs(h["hotel"]["latitude"] - 48.8566) <= 0.0251
        assert 3 <= len(h["hotel"]["amenities"]) <= 8
    totals = [h["price"]["total"] for h in hotels]
    assert totals == sorted(totals)


def test_synthetic_transport_adds_flight_only_for_long_routes():
    def plans(dest_lat, dest_lon):
        query = TransportQuery(
            origin=Location(name="Paris", latitude=48.8566, longitude=2.3522),
            destination=Location(name="Elsewhere", latitude=dest_lat, longitude=dest_lon),
            departure=NOW,
        )
        return SyntheticTransportGenerator().generate(query)

    short = plans(49.4431, 1.0993)  # Rouen, ~110 km
    long = plans(43.2965, 5.3698)  # Marseille, ~660 km

    assert len(short) == 3
    assert len(long) == 4
    assert long[-1]["segments"][0]["mode"] == "flight"
    assert len(short[2]["segments"]) == 2


def test_synthetic_car_rentals_cover_categories_and_suppliers():
    query = CarRentalQuery(
        pickup_location=Location(name="Lyon", code="LYS"),
        pickup_at=NOW,
        dropoff_at=NOW + timedelta(days=3),
    )
    generator = SyntheticCarRentalGenerator()
    offers = generator.generate(query)

    categories = {o["vehicle"]["category"] for o in offers}
    assert categories == {"economy", "compact", "midsize", "luxury"}
    assert len(offers) == 4 * len(generator._catalog.car_suppliers)
