"""Synthetic offer generators — the configured degraded-mode fallback.

These never talk to real inventory. Each generator is seeded from the canonical
query, so the same search yields the same offers, and draws prices, durations
and emissions from the catalog's realistic per-category ranges. Payloads use the
generic provider shape understood by the normalizer.
"""

import hashlib
import random
from datetime import datetime, timedelta, timezone
from typing import Any

from tripmerge.data.catalog import Catalog, load_catalog
from tripmerge.schemas.common import CarCategory, ServiceType, TransportMode
from tripmerge.schemas.query import (
    CarRentalQuery,
    FlightQuery,
    HotelQuery,
    Location,
    TransportQuery,
)
from tripmerge.services.geo import haversine_km
from tripmerge.services.providers.base import OfferProvider

SYNTHETIC_PROVIDER = "synthetic"

CABIN_MULTIPLIER = {"economy": 1.0, "premium_economy": 1.6, "business": 3.2, "first": 5.0}
DEFAULT_CAR_CATEGORIES = (
    CarCategory.ECONOMY,
    CarCategory.COMPACT,
    CarCategory.MIDSIZE,
    CarCategory.LUXURY,
)
HOTEL_COUNT = 15
TRANSFER_MINUTES = 45
FLIGHT_MIN_DISTANCE_KM = 500


class SyntheticOfferGenerator(OfferProvider):
    """Base class for the per-service synthetic fallbacks."""

    is_synthetic = True
    service: ServiceType

    def __init__(self, catalog: Catalog | None = None):
        super().__init__(SYNTHETIC_PROVIDER, self.service, timeout_seconds=5.0)
        self._catalog = catalog or load_catalog()

    def _rng(self, query) -> tuple[random.Random, str]:
        seed_str = f"{self.service.value}_{query.model_dump_json()}"
        digest = hashlib.md5(seed_str.encode()).hexdigest()
        return random.Random(int(digest[:8], 16)), digest[:6]

    @staticmethod
    def _validity(rng: random.Random, min_hours: int = 6, max_hours: int = 72) -> str:
        return (datetime.now(timezone.utc) + timedelta(hours=rng.randint(min_hours, max_hours))).isoformat()

    @staticmethod
    def _promotion(rng: random.Random) -> tuple[bool, float]:
        """(is_flash_sale, advertised discount %) — most offers carry none."""
        roll = rng.random()
        if roll < 0.1:
            return True, round(rng.uniform(26, 45), 1)
        if roll < 0.35:
            return False, round(rng.uniform(5, 20), 1)
        return False, 0.0

    @staticmethod
    def _distance(rng: random.Random, origin: Location, destination: Location, low: float, high: float) -> float:
        if origin.has_coordinates and destination.has_coordinates:
            return round(haversine_km(origin.latitude, origin.longitude, destination.latitude, destination.longitude), 1)
        return round(rng.uniform(low, high), 1)


class SyntheticFlightGenerator(SyntheticOfferGenerator):
    service = ServiceType.FLIGHT

    async def search(self, query: FlightQuery) -> list[dict[str, Any]]:
        return self.generate(query)

    def generate(self, query: FlightQuery) -> list[dict[str, Any]]:
        rng, tag = self._rng(query)
        distance = self._distance(rng, query.origin, query.destination, 400, 6000)
        pax = query.passengers.adults + 0.75 * query.passengers.children + 0.1 * query.passengers.infants
        base_fare = (50 + distance * 0.11) * CABIN_MULTIPLIER.get(query.cabin_class, 1.0)
        base_duration = int(distance / 800 * 60) + 30
        airlines = list(self._catalog.airlines.items())
        hubs = [h for h in self._catalog.hub_airports if h not in (query.origin.label, query.destination.label)]

        flights = []
        for i in range(rng.randint(5, 12)):
            code, name = rng.choice(airlines)
            stops = rng.choices([0, 1, 2], weights=[60, 30, 10])[0]
            dep = datetime(
                query.departure_date.year, query.departure_date.month, query.departure_date.day,
                rng.randint(6, 21), rng.choice([0, 15, 30, 45]), tzinfo=timezone.utc,
            )
            route = [query.origin.label, *rng.sample(hubs, stops), query.destination.label]
            leg_minutes = max(45, base_duration // (stops + 1))
            segments = []
            cursor = dep
            for a, b in zip(route, route[1:]):
                arrive = cursor + timedelta(minutes=leg_minutes)
                segments.append({
                    "flight_number": f"{code}{rng.randint(100, 9999)}",
                    "carrier_code": code,
                    "carrier_name": name,
                    "origin": a,
                    "destination": b,
                    "departure_time": cursor.isoformat(),
                    "arrival_time": arrive.isoformat(),
                    "duration_minutes": leg_minutes,
                })
                cursor = arrive + timedelta(minutes=rng.randint(45, 90))
            total_minutes = int((datetime.fromisoformat(segments[-1]["arrival_time"]) - dep).total_seconds() // 60)

            fare = base_fare * rng.uniform(0.8, 1.8) * pax
            taxes = round(fare * 0.12, 2)
            flash, discount = self._promotion(rng)
            flights.append({
                "id": f"syn-fl-{tag}-{i:02d}",
                "price": {
                    "total": round(fare + taxes, 2),
                    "base": round(fare, 2),
                    "taxes": taxes,
                    "currency": query.preferences.currency,
                },
                "segments": segments,
                "duration_minutes": total_minutes,
                "cabin_class": query.cabin_class,
                "baggage_included": rng.random() < 0.5,
                "refundable": rng.random() < 0.2,
                "seats_remaining": rng.randint(1, 9),
                "distance_km": distance,
                "valid_until": self._validity(rng),
                "is_flash_sale": flash,
                "discount_percentage": discount,
            })
        return flights


class SyntheticHotelGenerator(SyntheticOfferGenerator):
    service = ServiceType.HOTEL

    async def search(self, query: HotelQuery) -> list[dict[str, Any]]:
        return self.generate(query)

    def generate(self, query: HotelQuery) -> list[dict[str, Any]]:
        rng, tag = self._rng(query)
        pools = self._catalog.hotel
        if query.destination.has_coordinates:
            center = (query.destination.latitude, query.destination.longitude)
        else:
            center = (pools.default_center.latitude, pools.default_center.longitude)
        nights = query.nights
        room_count = len(query.rooms)

        hotels = []
        for i in range(HOTEL_COUNT):
            nightly = round(50 + rng.random() * 300, 2)
            stars = 2 if nightly < 90 else 3 if nightly < 160 else 4 if nightly < 250 else 5
            lat = center[0] + rng.uniform(-0.025, 0.025)
            lon = center[1] + rng.uniform(-0.025, 0.025)
            hotel_id = f"syn-htl-{tag}-{i:02d}"
            neighborhood = rng.choice(pools.neighborhoods)
            rooms = [
                {
                    "id": f"{hotel_id}-r{j}",
                    "name": room_type,
                    "bed_type": "king" if "King" in room_type or room_type == "Suite" else "double",
                    "max_occupancy": 4 if room_type == "Suite" else 2,
                    "refundable": rng.random() < 0.6,
                    "breakfast_included": rng.random() < 0.4,
                }
                for j, room_type in enumerate(rng.sample(pools.room_types, rng.randint(1, 3)))
            ]
            subtotal = nightly * nights * room_count
            taxes = round(subtotal * 0.12, 2)
            flash, discount = self._promotion(rng)
            hotels.append({
                "hotel": {
                    "id": hotel_id,
                    "name": pools.names[i % len(pools.names)],
                    "chain": rng.choice(pools.chains),
                    "star_rating": stars,
                    "guest_rating": round(rng.uniform(6.0, 9.8), 1),
                    "review_count": rng.randint(25, 3000),
                    "latitude": round(lat, 6),
                    "longitude": round(lon, 6),
                    "address": f"{rng.randint(1, 250)} {neighborhood} Street, {query.destination.name}",
                    "neighborhood": neighborhood,
                    "property_type": rng.choice(pools.property_types),
                    "amenities": rng.sample(pools.amenities, rng.randint(3, 8)),
                    "distance_to_center_km": round(haversine_km(center[0], center[1], lat, lon), 2),
                },
                "rooms": rooms,
                "price": {
                    "total": round(subtotal + taxes, 2),
                    "per_night": nightly,
                    "base": round(subtotal, 2),
                    "taxes": taxes,
                    "currency": query.preferences.currency,
                },
                "check_in": query.check_in.isoformat(),
                "check_out": query.check_out.isoformat(),
                "valid_until": self._validity(rng),
                "is_flash_sale": flash,
                "discount_percentage": discount,
            })
        return sorted(hotels, key=lambda h: h["price"]["total"])


class SyntheticTransportGenerator(SyntheticOfferGenerator):
    service = ServiceType.TRANSPORT

    async def search(self, query: TransportQuery) -> list[dict[str, Any]]:
        return self.generate(query)

    def generate(self, query: TransportQuery) -> list[dict[str, Any]]:
        rng, tag = self._rng(query)
        distance = self._distance(rng, query.origin, query.destination, 150, 900)
        origin, destination = query.origin.label, query.destination.label
        hub = f"{destination} Central"

        plans = [
            [(TransportMode.TRAIN, origin, destination, distance)],
            [(TransportMode.BUS, origin, destination, distance)],
            [
                (TransportMode.TRAIN, origin, hub, round(distance * 0.7, 1)),
                (TransportMode.BUS, hub, destination, round(distance * 0.3, 1)),
            ],
        ]
        if distance > FLIGHT_MIN_DISTANCE_KM:
            plans.append([(TransportMode.FLIGHT, origin, destination, distance)])
        if query.modes:
            plans = [p for p in plans if all(leg[0] in query.modes for leg in p)]

        riders = query.passengers.adults + query.passengers.children
        journeys = []
        for i, plan in enumerate(plans):
            cursor = query.departure + timedelta(minutes=rng.choice([0, 15, 30, 60, 90]))
            segments = []
            fare = 0.0
            comfort = []
            for mode, a, b, km in plan:
                profile = self._catalog.transport_modes[mode]
                minutes = max(10, int(km / profile.speed_kmh * 60))
                arrive = cursor + timedelta(minutes=minutes)
                segments.append({
                    "mode": mode.value,
                    "operator": profile.operator,
                    "vehicle_id": f"{profile.vehicle}-{rng.randint(10, 99)}",
                    "origin": a,
                    "destination": b,
                    "departure_time": cursor.isoformat(),
                    "arrival_time": arrive.isoformat(),
                    "duration_minutes": minutes,
                    "distance_km": km,
                })
                fare += km * profile.price_per_km * rng.uniform(0.9, 1.15)
                comfort.append(profile.comfort)
                cursor = arrive + timedelta(minutes=TRANSFER_MINUTES)

            total = round(fare * max(1, riders), 2)
            journeys.append({
                "id": f"syn-tr-{tag}-{i:02d}",
                "segments": segments,
                "price": {"total": total, "base": total, "currency": query.preferences.currency},
                "comfort_rating": round(sum(comfort) / len(comfort), 1),
                "valid_until": self._validity(rng, 2, 24),
                "is_flash_sale": False,
                "discount_percentage": 0.0,
            })
        return journeys


class SyntheticCarRentalGenerator(SyntheticOfferGenerator):
    service = ServiceType.CAR_RENTAL

    async def search(self, query: CarRentalQuery) -> list[dict[str, Any]]:
        return self.generate(query)

    def generate(self, query: CarRentalQuery) -> list[dict[str, Any]]:
        rng, tag = self._rng(query)
        days = query.rental_days
        categories = query.categories or DEFAULT_CAR_CATEGORIES

        offers = []
        for category in categories:
            profile = self._catalog.car_categories[category]
            vehicles = self._catalog.vehicles_for(category)
            for supplier in self._catalog.car_suppliers:
                if vehicles:
                    v = rng.choice(vehicles)
                    vehicle = v.model_dump(mode="json")
                else:
                    vehicle = {
                        "id": f"{category.value}-standard",
                        "make": "Standard",
                        "model": category.value.title(),
                        "category": category.value,
                    }
                vehicle.update({"seats": profile.seats, "doors": profile.doors})

                daily = profile.daily_rate * rng.uniform(0.9, 1.25)
                if query.driver_age < 25:
                    daily *= 1.2
                if days > 7:
                    daily *= 0.9
                elif days > 3:
                    daily *= 0.95
                subtotal = daily * days
                taxes = round(subtotal * 0.15, 2)
                fees = 25.0
                flash, discount = self._promotion(rng)
                offers.append({
                    "id": f"syn-car-{tag}-{supplier.lower()}-{category.value}",
                    "supplier": supplier,
                    "vehicle": vehicle,
                    "pickup_location": query.pickup_location.label,
                    "dropoff_location": query.return_location.label,
                    "pickup_at": query.pickup_at.isoformat(),
                    "dropoff_at": query.dropoff_at.isoformat(),
                    "price": {
                        "total": round(subtotal + taxes + fees, 2),
                        "base": round(subtotal, 2),
                        "daily_rate": round(daily, 2),
                        "taxes": taxes,
                        "fees": fees,
                        "currency": query.preferences.currency,
                    },
                    "mileage": "unlimited",
                    "insurance_included": rng.random() < 0.3,
                    "rating": round(rng.uniform(3.5, 4.9), 1),
                    "review_count": rng.randint(40, 2500),
                    "valid_until": self._validity(rng),
                    "is_flash_sale": flash,
                    "discount_percentage": discount,
                })
        return offers


FALLBACK_GENERATORS: dict[ServiceType, type[SyntheticOfferGenerator]] = {
    ServiceType.FLIGHT: SyntheticFlightGenerator,
    ServiceType.HOTEL: SyntheticHotelGenerator,
    ServiceType.TRANSPORT: SyntheticTransportGenerator,
    ServiceType.CAR_RENTAL: SyntheticCarRentalGenerator,
}
