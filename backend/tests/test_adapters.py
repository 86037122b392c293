import asyncio
from datetime import date, datetime, timedelta, timezone

from tripmerge.schemas.common import CarCategory, ServiceType
from tripmerge.schemas.query import (
    CarRentalQuery,
    FlightQuery,
    HotelQuery,
    Location,
    Preferences,
    SearchOptions,
    TransportQuery,
)
from tripmerge.services.adapters import (
    CarRentalSearchAdapter,
    FlightSearchAdapter,
    HotelSearchAdapter,
    TransportSearchAdapter,
)
from tripmerge.services.adapters.car_rental import car_alternatives
from tripmerge.services.adapters.transport import journey_tags
from tripmerge.services.cache_service import MemoryCache
from tripmerge.services.providers import ProviderError

from tests.factories import StubProvider, flight_payload, make_car, make_journey


def _flight_query(**kw) -> FlightQuery:
    return FlightQuery(
        origin=Location(name="New York", code="JFK"),
        destination=Location(name="London", code="LHR"),
        departure_date=date.today() + timedelta(days=30),
        **kw,
    )


def _flight_adapter(providers, **kw) -> FlightSearchAdapter:
    kw.setdefault("fallback_enabled", False)
    kw.setdefault("cache", MemoryCache())
    return FlightSearchAdapter(providers=providers, **kw)


def test_live_results_are_normalized_ranked_and_faceted():
    provider = StubProvider("kiwi", ServiceType.FLIGHT, payload=[
        flight_payload("a", flight_number="AA100", total=500),
        flight_payload("b", flight_number="BA200", total=350),
        flight_payload("c", flight_number="AF300", total=900),
    ])
    response = asyncio.run(_flight_adapter([provider]).search(_flight_query()))

    assert [o.id for o in response.offers] == ["b", "a", "c"]
    assert response.meta.total_results == 3
    assert response.meta.providers == ["kiwi"]
    assert response.meta.fallback_used is False
    assert response.meta.cache_hit is False
    assert response.meta.search_id.startswith("flight_")
    assert response.filters["airlines"] == {"AA": 1, "AF": 1, "BA": 1}
    assert response.provider_errors == []


def test_duplicate_flight_across_providers_is_returned_once():
    kiwi = StubProvider("kiwi", ServiceType.FLIGHT, payload=[flight_payload("kiwi-aa", total=420)])
    amadeus = StubProvider("amadeus", ServiceType.FLIGHT, payload=[flight_payload("ama-aa", total=415)])

    response = asyncio.run(_flight_adapter([kiwi, amadeus]).search(_flight_query()))

    assert len(response.offers) == 1
    assert response.offers[0].segments[0].flight_number == "AA1234"
    assert response.meta.providers == ["amadeus", "kiwi"]


def test_failed_provider_is_reported_and_others_still_answer():
    ok = StubProvider("kiwi", ServiceType.FLIGHT, payload=[flight_payload("a")])
    broken = StubProvider("amadeus", ServiceType.FLIGHT, error=ProviderError("amadeus", "HTTP 500"))

    response = asyncio.run(_flight_adapter([ok, broken]).search(_flight_query()))

    assert len(response.offers) == 1
    assert len(response.provider_errors) == 1
    assert response.provider_errors[0].provider == "amadeus"
    assert response.provider_errors[0].error == "HTTP 500"
    assert response.provider_errors[0].timed_out is False


def test_slow_provider_is_cancelled_and_fallback_takes_over():
    slow = StubProvider("kiwi", ServiceType.FLIGHT, payload=[flight_payload("a")], delay=5, timeout_seconds=0.05)
    adapter = _flight_adapter([slow], fallback_enabled=True)

    response = asyncio.run(adapter.search(_flight_query()))

    assert slow.cancelled is True
    assert response.provider_errors[0].timed_out is True
    assert response.meta.fallback_used is True
    assert response.meta.providers == ["synthetic"]
    assert response.offers
    assert all(o.is_synthetic for o in response.offers)


def test_unexpected_provider_exception_is_contained():
    weird = StubProvider("kiwi", ServiceType.FLIGHT, error=KeyError("boom"))
    response = asyncio.run(_flight_adapter([weird]).search(_flight_query()))

    assert response.offers == []
    assert response.meta.total_results == 0
    assert response.provider_errors[0].provider == "kiwi"


def test_no_providers_and_no_fallback_returns_empty_response():
    response = asyncio.run(_flight_adapter([]).search(_flight_query()))
    assert response.offers == []
    assert response.meta.fallback_used is False
    assert response.filters["price_range"] == {"min": None, "max": None}


def test_live_results_are_cached():
    provider = StubProvider("kiwi", ServiceType.FLIGHT, payload=[flight_payload("a")])
    adapter = _flight_adapter([provider])

    async def run():
        first = await adapter.search(_flight_query())
        second = await adapter.search(_flight_query())
        uncached = await adapter.search(_flight_query(), SearchOptions(use_cache=False))
        return first, second, uncached

    first, second, uncached = asyncio.run(run())

    assert provider.calls == 2
    assert first.meta.cache_hit is False
    assert second.meta.cache_hit is True
    assert uncached.meta.cache_hit is False
    assert [o.id for o in second.offers] == [o.id for o in first.offers]


def test_fallback_results_are_not_cached():
    adapter = _flight_adapter([], fallback_enabled=True)

    async def run():
        await adapter.search(_flight_query())
        return await adapter.search(_flight_query())

    second = asyncio.run(run())
    assert second.meta.cache_hit is False
    assert second.meta.fallback_used is True


def test_unusable_live_payload_falls_back_and_is_not_cached():
    junk = StubProvider("kiwi", ServiceType.FLIGHT, payload=[{"junk": 1}, {"hotel": "x"}])
    cache = MemoryCache()
    adapter = _flight_adapter([junk], fallback_enabled=True, cache=cache)

    async def run():
        first = await adapter.search(_flight_query())
        second = await adapter.search(_flight_query())
        return first, second

    first, second = asyncio.run(run())

    assert first.meta.fallback_used is True
    assert first.offers
    assert all(o.is_synthetic for o in first.offers)
    assert len(cache) == 0
    assert second.meta.cache_hit is False
    assert junk.calls == 2


def test_injected_empty_cache_is_used():
    cache = MemoryCache()
    provider = StubProvider("kiwi", ServiceType.FLIGHT, payload=[flight_payload("a")])
    adapter = _flight_adapter([provider], cache=cache)

    asyncio.run(adapter.search(_flight_query()))

    assert len(cache) == 1


def test_preference_filters_and_provider_lists():
    kiwi = StubProvider("kiwi", ServiceType.FLIGHT, payload=[
        flight_payload("cheap", flight_number="AA1", total=200),
        flight_payload("pricey", flight_number="AA2", total=800),
    ])
    amadeus = StubProvider("amadeus", ServiceType.FLIGHT, payload=[flight_payload("other", flight_number="BA1")])
    adapter = _flight_adapter([kiwi, amadeus])

    query = _flight_query(preferences=Preferences(max_price=500, providers_exclude=("amadeus",)))
    response = asyncio.run(adapter.search(query))

    assert [o.id for o in response.offers] == ["cheap"]
    assert amadeus.calls == 0


def test_required_features():
    refundable = flight_payload("r", flight_number="AA1")
    refundable["refundable"] = True
    provider = StubProvider("kiwi", ServiceType.FLIGHT, payload=[refundable, flight_payload("n", flight_number="AA2")])

    query = _flight_query(preferences=Preferences(required_features=("Refundable",)))
    response = asyncio.run(_flight_adapter([provider]).search(query))

    assert [o.id for o in response.offers] == ["r"]


def test_max_results_truncates_but_total_counts_everything():
    provider = StubProvider("kiwi", ServiceType.FLIGHT, payload=[
        flight_payload(f"f{i}", flight_number=f"AA{i}", total=300 + i * 100) for i in range(5)
    ])
    response = asyncio.run(_flight_adapter([provider]).search(_flight_query(), SearchOptions(max_results=2)))

    assert len(response.offers) == 2
    assert response.meta.total_results == 5
    assert response.filters["price_range"] == {"min": 300, "max": 400}


def test_hotel_adapter_min_stars_with_fallback():
    query = HotelQuery(
        destination=Location(name="Paris", latitude=48.8566, longitude=2.3522),
        check_in=date.today() + timedelta(days=30),
        check_out=date.today() + timedelta(days=33),
        min_star_rating=4,
    )
    adapter = HotelSearchAdapter(providers=[], fallback_enabled=True, cache=MemoryCache())
    response = asyncio.run(adapter.search(query, SearchOptions(max_results=50)))

    assert response.meta.fallback_used is True
    assert all(o.hotel.star_rating >= 4 for o in response.offers)
    assert all(o.nights == 3 for o in response.offers)


def test_transport_tags():
    direct = make_journey("d", price=30)
    assert journey_tags(direct) == ["direct", "fast", "budget", "eco-friendly", "comfortable"]

    from tripmerge.schemas.common import TransportMode

    long_taxi = make_journey("t", price=200, legs=((TransportMode.TAXI, 100), (TransportMode.BUS, 200)))
    assert journey_tags(long_taxi) == []


def test_transport_adapter_tags_returned_journeys():
    query = TransportQuery(
        origin=Location(name="Paris", latitude=48.8566, longitude=2.3522),
        destination=Location(name="Marseille", latitude=43.2965, longitude=5.3698),
        departure=datetime.now(timezone.utc) + timedelta(days=5),
        max_transfers=0,
    )
    adapter = TransportSearchAdapter(providers=[], fallback_enabled=True, cache=MemoryCache())
    response = asyncio.run(adapter.search(query))

    assert response.offers
    for journey in response.offers:
        assert journey.transfers == 0
        assert "direct" in journey.tags


def test_car_alternatives():
    offers = [
        make_car("eco", price=90, category=CarCategory.ECONOMY),
        make_car("lux", price=400, category=CarCategory.LUXURY),
        make_car("ev", price=150, category=CarCategory.MIDSIZE, fuel_type="electric"),
    ]
    picks = car_alternatives(offers)

    assert picks["cheapest"].id == "eco"
    assert picks["premium"].id == "lux"
    assert picks["eco_friendly"].id == "ev"
    assert picks["most_popular"].id == "ev"
    assert car_alternatives([]) == {}


def test_car_rental_adapter_filters_driver_age_and_adds_alternatives():
    pickup = datetime.now(timezone.utc) + timedelta(days=14)
    query = CarRentalQuery(
        pickup_location=Location(name="Lyon", code="LYS"),
        pickup_at=pickup,
        dropoff_at=pickup + timedelta(days=4),
        driver_age=22,
    )
    adapter = CarRentalSearchAdapter(providers=[], fallback_enabled=True, cache=MemoryCache())
    response = asyncio.run(adapter.search(query, SearchOptions(max_results=50)))

    assert response.offers
    assert all(o.vehicle.category != CarCategory.LUXURY for o in response.offers)
    alternatives = response.extras["alternatives"]
    assert set(alternatives) == {"cheapest", "premium", "eco_friendly", "most_popular"}
    assert alternatives["cheapest"]["price"]["amount"] == min(o.price.amount for o in response.offers)
