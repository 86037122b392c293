import asyncio
from datetime import date, timedelta

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.query import Location, Passengers
from tripmerge.schemas.unified import BudgetAllocation, Journey, UnifiedPreferences, UnifiedSearchRequest
from tripmerge.services.adapters import (
    CarRentalSearchAdapter,
    FlightSearchAdapter,
    HotelSearchAdapter,
    TransportSearchAdapter,
)
from tripmerge.services.cache_service import MemoryCache
from tripmerge.services.unified_orchestrator import GREEDY_NOTE, UnifiedOrchestrator

from tests.factories import StubProvider

PARIS = Location(name="Paris", code="PAR", latitude=48.8566, longitude=2.3522)
LYON = Location(name="Lyon", code="LYS", latitude=45.764, longitude=4.8357)


def _adapters(hotel_providers=None, hotel_timeout=None):
    def build(cls, providers=None, **kw):
        return cls(providers=providers or [], fallback_enabled=providers is None, cache=MemoryCache(), **kw)

    return {
        ServiceType.FLIGHT: build(FlightSearchAdapter),
        ServiceType.HOTEL: build(HotelSearchAdapter, hotel_providers, search_timeout=hotel_timeout),
        ServiceType.TRANSPORT: build(TransportSearchAdapter),
        ServiceType.CAR_RENTAL: build(CarRentalSearchAdapter),
    }


def _request(days_ahead: int = 30, **kw) -> UnifiedSearchRequest:
    start = date.today() + timedelta(days=days_ahead)
    return UnifiedSearchRequest(
        journey=Journey(origin=PARIS, destination=LYON, departure_date=start, return_date=start + timedelta(days=3)),
        **kw,
    )


def test_all_services_and_greedy_bundles():
    orchestrator = UnifiedOrchestrator(_adapters(), cache=MemoryCache())
    response = asyncio.run(orchestrator.search(_request()))

    assert set(response.results) == set(ServiceType)
    assert response.meta.errors == []
    assert response.meta.services_queried == list(ServiceType)
    assert response.meta.total_results == sum(len(r.offers) for r in response.results.values())
    assert response.meta.search_id.startswith("unified_")

    recs = response.recommendations
    best = recs.best_overall
    assert best.reasoning == GREEDY_NOTE
    assert {c.service for c in best.combination} == set(ServiceType)
    for choice in best.combination:
        assert choice.offer_id == response.results[choice.service].offers[0].id

    assert recs.budget_friendly.total_price <= best.total_price
    assert recs.budget_friendly.savings_amount >= 0
    assert recs.eco_friendly.carbon_kg <= best.carbon_kg
    assert recs.premium.features

    quality = response.meta.quality
    assert quality.price_confidence == 85.0
    assert 0 < quality.provider_reliability <= 100


def test_hotel_branch_timeout_is_isolated():
    slow_hotel = StubProvider("booking", ServiceType.HOTEL, delay=5)
    orchestrator = UnifiedOrchestrator(
        _adapters(hotel_providers=[slow_hotel], hotel_timeout=0.2), cache=MemoryCache(),
    )

    response = asyncio.run(orchestrator.search(_request()))

    assert len(response.meta.errors) == 1
    error = response.meta.errors[0]
    assert error.service == ServiceType.HOTEL
    assert "timed out" in error.error
    assert slow_hotel.cancelled is True

    assert ServiceType.HOTEL not in response.results
    for service in (ServiceType.FLIGHT, ServiceType.TRANSPORT, ServiceType.CAR_RENTAL):
        assert response.results[service].offers
    assert ServiceType.HOTEL not in response.meta.services_responded
    assert "hotel search service is currently unavailable" in response.meta.warnings
    assert {c.service for c in response.recommendations.best_overall.combination} == {
        ServiceType.FLIGHT, ServiceType.TRANSPORT, ServiceType.CAR_RENTAL,
    }


def test_explicit_services_and_cache():
    cache = MemoryCache()
    orchestrator = UnifiedOrchestrator(_adapters(), cache=cache)
    request = _request(services=[ServiceType.CAR_RENTAL, ServiceType.FLIGHT])

    async def run():
        first = await orchestrator.search(request)
        second = await orchestrator.search(request)
        return first, second

    first, second = asyncio.run(run())

    assert first.meta.services_queried == [ServiceType.FLIGHT, ServiceType.CAR_RENTAL]
    assert set(first.results) == {ServiceType.FLIGHT, ServiceType.CAR_RENTAL}
    assert first.meta.cache_hit is False
    assert second.meta.cache_hit is True
    assert second.meta.search_id == first.meta.search_id
    assert len(cache) == 1  # the injected cache, not the shared one


def test_invalid_derived_query_becomes_error_entry():
    # check-in in the past is rejected by the hotel query; the rest still runs
    orchestrator = UnifiedOrchestrator(_adapters(), cache=MemoryCache())
    response = asyncio.run(orchestrator.search(_request(days_ahead=-10, services=["all"])))

    hotel_errors = [e for e in response.meta.errors if e.service == ServiceType.HOTEL]
    assert len(hotel_errors) == 1
    assert "past" in hotel_errors[0].error
    assert response.results[ServiceType.FLIGHT].offers


def test_total_failure_still_returns_valid_response():
    adapters = {
        s: cls(providers=[StubProvider("slow", s, delay=5)], fallback_enabled=False,
               cache=MemoryCache(), search_timeout=0.1)
        for s, cls in (
            (ServiceType.FLIGHT, FlightSearchAdapter),
            (ServiceType.CAR_RENTAL, CarRentalSearchAdapter),
        )
    }
    orchestrator = UnifiedOrchestrator(adapters, cache=MemoryCache())
    response = asyncio.run(orchestrator.search(_request(services=[ServiceType.FLIGHT, ServiceType.CAR_RENTAL])))

    assert response.results == {}
    assert {e.service for e in response.meta.errors} == {ServiceType.FLIGHT, ServiceType.CAR_RENTAL}
    assert response.recommendations.best_overall is None
    assert response.meta.services_responded == []


def test_budget_becomes_price_ceiling_and_warns():
    orchestrator = UnifiedOrchestrator(_adapters(), cache=MemoryCache())
    request = _request(
        services=[ServiceType.FLIGHT, ServiceType.HOTEL],
        passengers=Passengers(adults=2),
        preferences=UnifiedPreferences(budget=BudgetAllocation(total=1, per_service={ServiceType.HOTEL: 600})),
    )
    response = asyncio.run(orchestrator.search(request))

    assert all(o.price.amount <= 600 for o in response.results[ServiceType.HOTEL].offers)
    assert "Recommended combination exceeds your total budget" in response.meta.warnings
