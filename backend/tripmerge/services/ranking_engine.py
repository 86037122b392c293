"""Ranking engine — scores offers with configurable weights and sorts them deterministically.

Scores are min/max-normalised composites scaled to 0-100. The final order is not
a plain score sort: price, then a service-specific secondary key, are compared
with material thresholds so that small noise differences fall through to the
next key instead of deciding the order.
"""

import math
from collections import Counter
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Callable

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.offers import CarRentalOffer, FlightOffer, HotelOffer, TransportJourney


@dataclass
class FlightWeights:
    cost: float = 0.5
    time: float = 0.3
    stops: float = 0.15
    departure: float = 0.05


@dataclass
class HotelWeights:
    price: float = 0.40
    rating: float = 0.25
    distance: float = 0.20
    stars: float = 0.15


@dataclass
class TransportWeights:
    price: float = 0.4
    duration: float = 0.35
    transfers: float = 0.15
    eco: float = 0.1


@dataclass
class CarWeights:
    price: float = 0.5
    rating: float = 0.3
    eco: float = 0.2


DEFAULT_WEIGHTS = {
    ServiceType.FLIGHT: FlightWeights,
    ServiceType.HOTEL: HotelWeights,
    ServiceType.TRANSPORT: TransportWeights,
    ServiceType.CAR_RENTAL: CarWeights,
}

# Material differences for the ordered comparison
FLIGHT_PRICE_THRESHOLD = 50
FLIGHT_DURATION_THRESHOLD = 60
HOTEL_PRICE_THRESHOLD = 25
HOTEL_RATING_THRESHOLD = 0.5
CAR_PRICE_THRESHOLD = 20
CAR_RATING_THRESHOLD = 0.2
TRANSPORT_PRICE_THRESHOLD = 10
TRANSPORT_DURATION_THRESHOLD = 30
TRANSPORT_CARBON_THRESHOLD = 1.0
TRANSPORT_COMFORT_THRESHOLD = 0.5


def _inverted(values: list[float]) -> list[float]:
    """Lower value = higher score, normalised to 0-1."""
    lo = min(values)
    hi = max(values) if max(values) > lo else lo + 1
    return [1.0 - (v - lo) / (hi - lo) for v in values]


def _direct(values: list[float]) -> list[float]:
    """Higher value = higher score, normalised to 0-1."""
    return [1.0 - s for s in _inverted(values)]


def _departure_score(hour: float) -> float:
    # gaussian centered on 9am (peak preference)
    return math.exp(-0.5 * ((hour - 9) / 3) ** 2)


def _components(service: ServiceType, offers: list, weights) -> list[float]:
    prices = _inverted([o.price.amount for o in offers])

    if service == ServiceType.FLIGHT:
        durations = _inverted([o.duration_minutes for o in offers])
        max_stops = max(o.stops for o in offers) or 1
        return [
            weights.cost * prices[i]
            + weights.time * durations[i]
            + weights.stops * (1.0 - o.stops / max_stops)
            + weights.departure * _departure_score(o.departure_time.hour + o.departure_time.minute / 60)
            for i, o in enumerate(offers)
        ]

    if service == ServiceType.HOTEL:
        nightly = _inverted([o.price_per_night for o in offers])
        ratings = _direct([o.hotel.guest_rating or 0.0 for o in offers])
        distances = _inverted([
            o.hotel.distance_to_center_km if o.hotel.distance_to_center_km is not None else 5.0
            for o in offers
        ])
        return [
            weights.price * nightly[i]
            + weights.rating * ratings[i]
            + weights.distance * distances[i]
            + weights.stars * ((o.hotel.star_rating or 0) / 5)
            for i, o in enumerate(offers)
        ]

    if service == ServiceType.TRANSPORT:
        durations = _inverted([o.total_duration_minutes for o in offers])
        max_transfers = max(o.transfers for o in offers) or 1
        eco = _inverted([o.carbon_kg for o in offers])
        return [
            weights.price * prices[i]
            + weights.duration * durations[i]
            + weights.transfers * (1.0 - o.transfers / max_transfers)
            + weights.eco * eco[i]
            for i, o in enumerate(offers)
        ]

    ratings = _direct([o.rating or 0.0 for o in offers])
    eco = _inverted([o.carbon_kg for o in offers])
    return [
        weights.price * prices[i] + weights.rating * ratings[i] + weights.eco * eco[i]
        for i in range(len(offers))
    ]


def score_offers(service: ServiceType, offers: list, weights=None, sustainability_weight: float = 0.0) -> list:
    """
    Score offers of one service type.

    Each offer gets a score 0-100 (higher = better match for given weights).
    A non-zero sustainability weight blends in a carbon score.
    Returns new offers in input order.
    """
    if not offers:
        return []

    if weights is None:
        weights = DEFAULT_WEIGHTS[service]()

    composites = _components(service, offers, weights)
    if sustainability_weight > 0:
        carbon = _inverted([o.carbon_kg for o in offers])
        composites = [
            (1 - sustainability_weight) * c + sustainability_weight * carbon[i]
            for i, c in enumerate(composites)
        ]

    scored = []
    for offer, composite in zip(offers, composites):
        final_score = max(0.0, min(100.0, round(composite * 100, 1)))
        scored.append(offer.model_copy(update={"score": final_score}))
    return scored


def _cmp(a: float, b: float, threshold: float = 0.0) -> int:
    """Compare ascending, treating differences within the threshold as equal."""
    diff = a - b
    if abs(diff) <= threshold:
        return 0
    return -1 if diff < 0 else 1


def _flight_cmp(a: FlightOffer, b: FlightOffer) -> int:
    return (
        _cmp(a.price.amount, b.price.amount, FLIGHT_PRICE_THRESHOLD)
        or _cmp(a.duration_minutes, b.duration_minutes, FLIGHT_DURATION_THRESHOLD)
        or _cmp(a.stops, b.stops)
        or _cmp(b.score, a.score)
    )


def _hotel_cmp(a: HotelOffer, b: HotelOffer) -> int:
    return (
        _cmp(a.price.amount, b.price.amount, HOTEL_PRICE_THRESHOLD)
        or _cmp(b.hotel.guest_rating or 0.0, a.hotel.guest_rating or 0.0, HOTEL_RATING_THRESHOLD)
        or _cmp(b.hotel.star_rating or 0.0, a.hotel.star_rating or 0.0)
        or _cmp(b.score, a.score)
    )


def _car_cmp_factory(categories: tuple) -> Callable:
    def preference(offer: CarRentalOffer) -> int:
        if offer.vehicle.category in categories:
            return categories.index(offer.vehicle.category)
        return len(categories)

    def compare(a: CarRentalOffer, b: CarRentalOffer) -> int:
        return (
            _cmp(a.price.amount, b.price.amount, CAR_PRICE_THRESHOLD)
            or _cmp(b.rating or 0.0, a.rating or 0.0, CAR_RATING_THRESHOLD)
            or _cmp(preference(a), preference(b))
            or _cmp(b.score, a.score)
        )

    return compare


def _transport_priority_cmp(priority: str | None, a: TransportJourney, b: TransportJourney) -> int:
    if priority == "price":
        return _cmp(a.price.amount, b.price.amount, TRANSPORT_PRICE_THRESHOLD)
    if priority == "eco":
        return _cmp(a.carbon_kg, b.carbon_kg, TRANSPORT_CARBON_THRESHOLD)
    if priority == "direct":
        return _cmp(a.transfers, b.transfers)
    if priority == "comfort":
        return _cmp(b.comfort_rating, a.comfort_rating, TRANSPORT_COMFORT_THRESHOLD)
    return _cmp(a.total_duration_minutes, b.total_duration_minutes, TRANSPORT_DURATION_THRESHOLD)


def _transport_cmp_factory(priorities: tuple) -> Callable:
    first = priorities[0] if priorities else None

    def compare(a: TransportJourney, b: TransportJourney) -> int:
        return (
            _transport_priority_cmp(first, a, b)
            or _cmp(a.price.amount, b.price.amount, TRANSPORT_PRICE_THRESHOLD)
            or _cmp(a.transfers, b.transfers)
            or _cmp(b.score, a.score)
        )

    return compare


def rank_offers(service: ServiceType, offers: list, query=None) -> list:
    """
    Sort scored offers best-first.

    The input is first put in a canonical (price, id) order so the thresholded
    comparison, which is not transitive, always yields the same result for the
    same offer set.
    """
    canonical = sorted(offers, key=lambda o: (o.price.amount, o.id))
    if service == ServiceType.FLIGHT:
        compare = _flight_cmp
    elif service == ServiceType.HOTEL:
        compare = _hotel_cmp
    elif service == ServiceType.CAR_RENTAL:
        compare = _car_cmp_factory(tuple(getattr(query, "categories", ()) or ()))
    else:
        compare = _transport_cmp_factory(tuple(getattr(query, "priorities", ()) or ()))
    return sorted(canonical, key=cmp_to_key(compare))


# --- Facets ---

def _range(values: list[float]) -> dict:
    if not values:
        return {"min": None, "max": None}
    return {"min": round(min(values), 2), "max": round(max(values), 2)}


def _counts(values) -> dict[str, int]:
    return {str(k): v for k, v in sorted(Counter(values).items(), key=lambda kv: (-kv[1], str(kv[0])))}


def build_facets(service: ServiceType, offers: list) -> dict:
    """Facet counts over exactly the offers being returned."""
    facets = {
        "price_range": _range([o.price.amount for o in offers]),
        "providers": _counts(o.provider for o in offers),
    }

    if service == ServiceType.FLIGHT:
        facets["airlines"] = _counts(code for o in offers for code in o.airline_codes)
        facets["airports"] = _counts(
            airport for o in offers for s in o.segments for airport in (s.origin, s.destination)
        )
        facets["stops"] = _counts(o.stops for o in offers)
        facets["duration_range"] = _range([o.duration_minutes for o in offers])

    elif service == ServiceType.HOTEL:
        facets["star_ratings"] = _counts(int(o.hotel.star_rating) for o in offers if o.hotel.star_rating)
        buckets = {"9+": 0, "8+": 0, "7+": 0, "6+": 0}
        for o in offers:
            rating = o.hotel.guest_rating or 0.0
            for threshold in (9, 8, 7, 6):
                if rating >= threshold:
                    buckets[f"{threshold}+"] += 1
        facets["guest_ratings"] = buckets
        facets["amenities"] = _counts(a for o in offers for a in o.hotel.amenities)
        facets["property_types"] = _counts(o.hotel.property_type for o in offers)
        facets["neighborhoods"] = _counts(o.hotel.neighborhood for o in offers if o.hotel.neighborhood)

    elif service == ServiceType.TRANSPORT:
        facets["modes"] = _counts(m.value for o in offers for m in o.modes)
        facets["transfers"] = _counts(o.transfers for o in offers)
        facets["operators"] = _counts(s.operator for o in offers for s in o.segments)
        facets["duration_range"] = _range([o.total_duration_minutes for o in offers])

    elif service == ServiceType.CAR_RENTAL:
        facets["categories"] = _counts(o.vehicle.category.value for o in offers)
        facets["suppliers"] = _counts(o.supplier for o in offers)
        facets["transmissions"] = _counts(o.vehicle.transmission for o in offers)
        facets["fuel_types"] = _counts(o.vehicle.fuel_type for o in offers)

    return facets
