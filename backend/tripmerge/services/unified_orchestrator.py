"""Unified orchestrator — one trip request fanned out to every requested service.

Each service branch runs concurrently and is individually timeout-bounded; a
failed branch becomes an error entry and the rest of the response still goes
out. Bundle recommendations pair one offer per participating service greedily
(top-ranked, cheapest, highest quality, lowest carbon) rather than searching
every combination.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta
from datetime import time as dt_time
from typing import Callable

from pydantic import ValidationError

from tripmerge.config import settings
from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.query import (
    CarRentalQuery,
    FlightQuery,
    HotelQuery,
    Preferences,
    RoomRequest,
    SearchQuery,
    TransportQuery,
)
from tripmerge.schemas.responses import ServiceSearchResponse
from tripmerge.schemas.unified import (
    BundleChoice,
    BundleRecommendation,
    QualityMetrics,
    Recommendations,
    ServiceErrorEntry,
    UnifiedMeta,
    UnifiedSearchRequest,
    UnifiedSearchResponse,
)
from tripmerge.services.adapters import ADAPTERS, ProviderQueryAdapter
from tripmerge.services.cache_service import CacheBackend, cache_service, query_cache_key

logger = logging.getLogger(__name__)

DEFAULT_TRANSPORT_TIME = dt_time(8, 0)
CAR_PICKUP_TIME = dt_time(10, 0)
LIMITED_RESULTS = 3
PRICE_CONFIDENCE = 85.0
CABIN_RANK = {"economy": 0, "premium_economy": 1, "business": 2, "first": 3}
GREEDY_NOTE = "Top-ranked offer per service (greedy pairing, not a search of all combinations)"


def offer_quality(offer) -> float:
    """Single 0-100 quality figure: ranking score blended with data quality."""
    return (offer.score + offer.quality.data_completeness + offer.quality.provider_reliability) / 3


def _premium_tier(offer) -> float:
    if offer.service_type == ServiceType.FLIGHT:
        return CABIN_RANK.get(offer.cabin_class, 0)
    if offer.service_type == ServiceType.HOTEL:
        return offer.hotel.star_rating or 0
    if offer.service_type == ServiceType.TRANSPORT:
        return offer.comfort_rating
    return offer.daily_rate


class UnifiedOrchestrator:
    """Coordinates a multi-service trip search."""

    def __init__(
        self,
        adapters: dict[ServiceType, ProviderQueryAdapter] | None = None,
        cache: CacheBackend | None = None,
    ):
        self._adapters = adapters if adapters is not None else ADAPTERS
        self._cache = cache if cache is not None else cache_service

    async def search(self, request: UnifiedSearchRequest) -> UnifiedSearchResponse:
        """
        Execute a unified search.

        Never raises: branch failures, timeouts and invalid derived queries all
        end up in meta.errors with a structurally valid response around them.
        """
        start_time = time.monotonic()
        services = request.requested_services()

        cache_key = query_cache_key("unified", request)
        if request.options.use_cache:
            cached = await self._cache.get(cache_key)
            if cached:
                response = UnifiedSearchResponse.model_validate(cached)
                response.meta.cache_hit = True
                return response

        # 1. One canonical query per service
        errors: list[ServiceErrorEntry] = []
        queries: dict[ServiceType, SearchQuery] = {}
        for service in services:
            if service not in self._adapters:
                errors.append(ServiceErrorEntry(service=service, error="No search adapter registered"))
                continue
            try:
                queries[service] = self._build_query(service, request)
            except ValidationError as e:
                message = "; ".join(err["msg"] for err in e.errors())
                logger.warning(f"Invalid {service.value} query derived from trip request: {message}")
                errors.append(ServiceErrorEntry(service=service, error=message))

        # 2. Fan out
        branch_services = list(queries)
        outcomes = await asyncio.gather(
            *(self._run_branch(s, queries[s], request) for s in branch_services),
            return_exceptions=True,
        )

        results: dict[ServiceType, ServiceSearchResponse] = {}
        failed: list[ServiceType] = [e.service for e in errors]
        for service, outcome in zip(branch_services, outcomes):
            if isinstance(outcome, BaseException):
                message = str(outcome) or type(outcome).__name__
                logger.warning(f"{service.value} branch failed: {message}")
                errors.append(ServiceErrorEntry(service=service, error=message))
                failed.append(service)
                continue
            results[service] = outcome
            for provider_error in outcome.provider_errors:
                errors.append(ServiceErrorEntry(
                    service=service,
                    provider=provider_error.provider,
                    error=provider_error.error,
                    fallback_used=outcome.meta.fallback_used,
                ))

        # 3. Warnings
        warnings = [f"{s.value} search service is currently unavailable" for s in services if s in failed]
        for service, result in results.items():
            if len(result.offers) < LIMITED_RESULTS:
                warnings.append(f"Limited {service.value} options available for your search criteria")

        # 4. Bundles
        recommendations = Recommendations()
        if request.include_recommendations:
            recommendations = self.build_recommendations(results, request.preferences.currency)
            budget = request.preferences.budget
            best = recommendations.best_overall
            if budget and budget.total and best and best.total_price > budget.total:
                warnings.append("Recommended combination exceeds your total budget")

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        response = UnifiedSearchResponse(
            results=results,
            recommendations=recommendations,
            meta=UnifiedMeta(
                search_id=f"unified_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}",
                services_queried=services,
                services_responded=[s for s in services if s in results and results[s].offers],
                total_results=sum(len(r.offers) for r in results.values()),
                search_time_ms=elapsed_ms,
                currency=request.preferences.currency,
                errors=errors,
                warnings=warnings,
                quality=self._quality_metrics(results),
            ),
        )

        if not errors and request.options.use_cache:
            await self._cache.set(cache_key, response.model_dump(mode="json"), settings.unified_cache_ttl)
        return response

    async def _run_branch(
        self, service: ServiceType, query: SearchQuery, request: UnifiedSearchRequest
    ) -> ServiceSearchResponse:
        adapter = self._adapters[service]
        timeout = adapter.search_timeout
        try:
            return await asyncio.wait_for(adapter.search(query, request.options), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Search timed out after {timeout:g}s") from e

    # --- Query building ---

    def _preferences(self, service: ServiceType, request: UnifiedSearchRequest) -> Preferences:
        prefs = request.preferences
        budget = prefs.budget.per_service.get(service) if prefs.budget else None
        return Preferences(
            currency=prefs.currency,
            max_price=budget,
            providers_include=tuple(prefs.providers_include),
            providers_exclude=tuple(prefs.providers_exclude),
            sustainability_weight=prefs.sustainability_weight,
        )

    def _build_query(self, service: ServiceType, request: UnifiedSearchRequest) -> SearchQuery:
        journey = request.journey
        prefs = request.preferences
        preferences = self._preferences(service, request)
        end_date = journey.return_date
        if end_date is None or end_date <= journey.departure_date:
            end_date = journey.departure_date + timedelta(days=1)

        if service == ServiceType.FLIGHT:
            return FlightQuery(
                origin=journey.origin,
                destination=journey.destination,
                departure_date=journey.departure_date,
                return_date=journey.return_date,
                passengers=request.passengers,
                cabin_class=prefs.cabin_class,
                preferences=preferences,
            )
        if service == ServiceType.HOTEL:
            pax = request.passengers
            return HotelQuery(
                destination=journey.destination,
                check_in=journey.departure_date,
                check_out=end_date,
                rooms=(RoomRequest(
                    adults=pax.adults,
                    children=len(pax.child_ages),
                    child_ages=pax.child_ages,
                ),),
                min_star_rating=prefs.hotel_min_stars,
                preferences=preferences,
            )
        if service == ServiceType.TRANSPORT:
            return TransportQuery(
                origin=journey.origin,
                destination=journey.destination,
                departure=datetime.combine(journey.departure_date, journey.departure_time or DEFAULT_TRANSPORT_TIME),
                passengers=request.passengers,
                priorities=tuple(prefs.transport_priorities),
                preferences=preferences,
            )
        return CarRentalQuery(
            pickup_location=journey.destination,
            pickup_at=datetime.combine(journey.departure_date, CAR_PICKUP_TIME),
            dropoff_at=datetime.combine(end_date, CAR_PICKUP_TIME),
            driver_age=prefs.driver_age,
            categories=tuple(prefs.car_categories),
            preferences=preferences,
        )

    # --- Recommendations ---

    def _bundle(
        self,
        kind: str,
        label: str,
        results: dict[ServiceType, ServiceSearchResponse],
        pick: Callable[[list], object],
        currency: str,
        reasoning: str,
    ) -> tuple[BundleRecommendation, dict]:
        chosen = {service: pick(r.offers) for service, r in results.items() if r.offers}
        bundle = BundleRecommendation(
            kind=kind,
            label=label,
            combination=[
                BundleChoice(service=s, offer_id=o.id, provider=o.provider, price=o.price.amount)
                for s, o in chosen.items()
            ],
            total_price=round(sum(o.price.amount for o in chosen.values()), 2),
            currency=currency,
            quality_score=round(sum(offer_quality(o) for o in chosen.values()) / len(chosen), 1),
            carbon_kg=round(sum(o.carbon_kg for o in chosen.values()), 1),
            reasoning=reasoning,
        )
        return bundle, chosen

    def build_recommendations(
        self, results: dict[ServiceType, ServiceSearchResponse], currency: str
    ) -> Recommendations:
        """Greedy per-service picks; needs at least one service with offers."""
        if not any(r.offers for r in results.values()):
            return Recommendations()

        best, best_picks = self._bundle(
            "best_overall", "Best Overall", results, lambda offers: offers[0], currency, GREEDY_NOTE,
        )

        budget, budget_picks = self._bundle(
            "budget_friendly", "Budget Friendly", results,
            lambda offers: min(offers, key=lambda o: (o.price.amount, o.id)),
            currency, "Cheapest offer per service",
        )
        if best.total_price > 0:
            budget.savings_amount = round(best.total_price - budget.total_price, 2)
            budget.savings_percentage = round(budget.savings_amount / best.total_price * 100, 1)
        budget.tradeoffs = _tradeoffs(best_picks, budget_picks)

        premium, premium_picks = self._bundle(
            "premium", "Premium", results,
            lambda offers: max(offers, key=lambda o: (_premium_tier(o), offer_quality(o), o.id)),
            currency, "Highest-tier, highest-quality offer per service",
        )
        premium.features = _premium_features(premium_picks)

        eco, eco_picks = self._bundle(
            "eco_friendly", "Eco Friendly", results,
            lambda offers: min(offers, key=lambda o: (o.carbon_kg, o.price.amount, o.id)),
            currency, "Lowest-carbon offer per service",
        )
        if best.carbon_kg > 0:
            eco.carbon_savings_kg = round(best.carbon_kg - eco.carbon_kg, 1)
            eco.carbon_savings_percentage = round(eco.carbon_savings_kg / best.carbon_kg * 100, 1)
        eco.features = _eco_features(eco_picks)

        return Recommendations(best_overall=best, budget_friendly=budget, premium=premium, eco_friendly=eco)

    def _quality_metrics(self, results: dict[ServiceType, ServiceSearchResponse]) -> QualityMetrics:
        with_offers = [r for r in results.values() if r.offers]
        if not with_offers:
            return QualityMetrics()
        return QualityMetrics(
            data_completeness=round(sum(r.meta.quality.data_completeness for r in with_offers) / len(with_offers), 1),
            provider_reliability=round(sum(r.meta.quality.provider_reliability for r in with_offers) / len(with_offers), 1),
            price_confidence=PRICE_CONFIDENCE,
        )


def _tradeoffs(best: dict, budget: dict) -> list[str]:
    tradeoffs = []
    for service, cheap in budget.items():
        top = best[service]
        if cheap.id == top.id:
            continue
        if service == ServiceType.FLIGHT:
            if cheap.stops > top.stops:
                tradeoffs.append("More stops on flight")
            if cheap.duration_minutes > top.duration_minutes:
                tradeoffs.append("Longer flight duration")
        elif service == ServiceType.HOTEL:
            if (cheap.hotel.star_rating or 0) < (top.hotel.star_rating or 0):
                tradeoffs.append("Lower star rating hotel")
            if (cheap.hotel.guest_rating or 0) < (top.hotel.guest_rating or 0):
                tradeoffs.append("Lower guest rating hotel")
        elif service == ServiceType.TRANSPORT:
            if cheap.total_duration_minutes > top.total_duration_minutes:
                tradeoffs.append("Longer ground transport journey")
            if cheap.transfers > top.transfers:
                tradeoffs.append("More transport transfers")
        elif service == ServiceType.CAR_RENTAL:
            if cheap.vehicle.category != top.vehicle.category:
                tradeoffs.append(f"{cheap.vehicle.category.value.title()} car instead of {top.vehicle.category.value}")
    return tradeoffs or ["No significant tradeoffs"]


def _premium_features(picks: dict) -> list[str]:
    features = []
    for service, offer in picks.items():
        if service == ServiceType.FLIGHT:
            features.append(f"{offer.cabin_class.replace('_', ' ').title()} cabin")
            if offer.baggage_included:
                features.append("Checked baggage included")
            if offer.refundable:
                features.append("Refundable fare")
        elif service == ServiceType.HOTEL:
            if offer.hotel.star_rating:
                features.append(f"{int(offer.hotel.star_rating)}-star {offer.hotel.name}")
            features.extend(a.replace("_", " ") for a in offer.hotel.amenities[:3])
        elif service == ServiceType.TRANSPORT:
            features.append(f"Comfort rating {offer.comfort_rating:.1f}/5")
        elif service == ServiceType.CAR_RENTAL:
            features.append(f"{offer.vehicle.make} {offer.vehicle.model}")
            features.extend(f.replace("_", " ") for f in offer.vehicle.features[:2])
    return features


def _eco_features(picks: dict) -> list[str]:
    features = []
    for service, offer in picks.items():
        if service == ServiceType.TRANSPORT:
            features.append(f"{' + '.join(m.value for m in offer.modes)} journey")
        elif service == ServiceType.CAR_RENTAL and offer.vehicle.fuel_type in ("electric", "hybrid"):
            features.append(f"{offer.vehicle.fuel_type.title()} vehicle")
        elif service == ServiceType.FLIGHT and offer.stops == 0:
            features.append("Direct flight")
        features.append(f"{service.value}: {offer.carbon_kg:.1f} kg CO2")
    return features


unified_orchestrator = UnifiedOrchestrator()
