"""Offer normalizer — maps provider payloads into canonical Offer variants.

Two payload families are understood:
- the generic shape (snake_case keys, `price.total`) used by HTTP providers and
  the synthetic generators, for every service type;
- Amadeus-style flight offers (`itineraries[].segments[]`, `price.grandTotal`,
  ISO-8601 `PT#H#M` durations).

Normalization is total: an item that cannot be mapped is skipped with a warning,
and missing optional data falls back to conservative defaults.
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any

from tripmerge.data.catalog import Catalog, load_catalog
from tripmerge.schemas.common import CarCategory, ServiceType, TransportMode
from tripmerge.schemas.offers import (
    CarRentalOffer,
    FlightOffer,
    FlightSegment,
    HotelOffer,
    HotelProperty,
    HotelRoom,
    OfferQuality,
    Price,
    TransportJourney,
    TransportSegment,
    Validity,
    Vehicle,
)
from tripmerge.schemas.query import (
    CarRentalQuery,
    FlightQuery,
    HotelQuery,
    SearchQuery,
    TransportQuery,
)

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_HOURS = 24
DEFAULT_FUEL_POLICY = "full_to_full"
LUXURY_MIN_DRIVER_AGE = 25
STANDARD_MIN_DRIVER_AGE = 21
CRUISE_SPEED_KMH = 800

# Map Amadeus cabin to our cabin codes
CABIN_MAP = {
    "ECONOMY": "economy",
    "PREMIUM_ECONOMY": "premium_economy",
    "BUSINESS": "business",
    "FIRST": "first",
}

# Fields whose presence counts toward data completeness
FLIGHT_FIELDS = [
    "id", "price.total", "segments", "duration_minutes", "cabin_class",
    "baggage_included", "refundable", "seats_remaining", "distance_km", "valid_until",
]
AMADEUS_FLIGHT_FIELDS = [
    "id", "price.grandTotal", "price.base", "itineraries", "travelerPricings",
    "numberOfBookableSeats", "lastTicketingDate", "validatingAirlineCodes",
]
HOTEL_FIELDS = [
    "hotel.id", "hotel.name", "hotel.star_rating", "hotel.guest_rating", "hotel.latitude",
    "hotel.longitude", "hotel.address", "hotel.amenities", "rooms", "price.total",
    "price.per_night", "valid_until",
]
TRANSPORT_FIELDS = ["id", "segments", "price.total", "comfort_rating", "valid_until"]
CAR_FIELDS = [
    "id", "supplier", "vehicle.make", "vehicle.model", "vehicle.category",
    "vehicle.co2_g_per_km", "price.total", "price.daily_rate", "fuel_policy",
    "min_driver_age", "rating", "valid_until",
]


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO strings (with or without 'Z' / offset) into aware UTC-defaulted datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_duration(duration_str: str | None) -> int:
    """Parse ISO 8601 duration (P1DT2H30M / PT2H30M) to minutes."""
    if not duration_str or not duration_str.startswith("P"):
        return 0
    body = duration_str[1:]
    days = 0
    if "D" in body:
        d_part, body = body.split("D", 1)
        days = int(d_part or 0)
    body = body.lstrip("T")
    hours = 0
    minutes = 0
    if "H" in body:
        h_part, body = body.split("H", 1)
        hours = int(h_part)
    if "M" in body:
        m_part = body.split("M", 1)[0]
        if m_part:
            minutes = int(m_part)
    return days * 24 * 60 + hours * 60 + minutes


def _lookup(item: dict, path: str) -> Any:
    value: Any = item
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def data_completeness(item: dict, fields: list[str]) -> float:
    """Percentage of tracked fields the provider actually filled."""
    filled = sum(1 for f in fields if _lookup(item, f) not in (None, "", [], {}))
    return round(filled / len(fields) * 100, 1)


def _minutes_between(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() // 60))


class OfferNormalizer:
    """Pure mapping from provider payloads to canonical offers."""

    def __init__(self, catalog: Catalog | None = None):
        self._catalog = catalog or load_catalog()
        self._parsers = {
            ServiceType.FLIGHT: self._flight,
            ServiceType.HOTEL: self._hotel,
            ServiceType.TRANSPORT: self._transport,
            ServiceType.CAR_RENTAL: self._car_rental,
        }

    def normalize(
        self,
        service_type: ServiceType,
        provider: str,
        payloads: list[dict],
        query: SearchQuery | None = None,
        is_synthetic: bool = False,
    ) -> list:
        """Map every payload item; malformed items are dropped, never raised."""
        parser = self._parsers[service_type]
        offers = []
        for index, item in enumerate(payloads):
            if not isinstance(item, dict):
                logger.warning(f"Skipping non-object {service_type.value} item #{index} from {provider}")
                continue
            try:
                offer = parser(item, provider, query)
            except (KeyError, TypeError, ValueError, IndexError, AttributeError) as e:
                logger.warning(f"Skipping malformed {service_type.value} offer #{index} from {provider}: {e}")
                continue
            if is_synthetic:
                offer.is_synthetic = True
            offers.append(offer)
        return offers

    # --- Shared helpers ---

    def _currency(self, query: SearchQuery | None) -> str:
        return query.preferences.currency if query is not None else "USD"

    def _price(self, raw: Any, currency: str) -> Price:
        if isinstance(raw, (int, float)):
            return Price(amount=round(float(raw), 2), currency=currency)
        if not isinstance(raw, dict):
            raise ValueError("missing price")
        total = raw.get("total", raw.get("amount", raw.get("grandTotal")))
        if total is None:
            raise ValueError("price has no total")
        fees = raw.get("fees", 0.0)
        if isinstance(fees, list):
            fees = sum(float(f.get("amount", 0)) for f in fees if isinstance(f, dict))
        base = raw.get("base")
        return Price(
            amount=round(float(total), 2),
            currency=raw.get("currency") or currency,
            base=float(base) if base is not None else None,
            taxes=float(raw.get("taxes", 0.0) or 0.0),
            fees=float(fees or 0.0),
        )

    def _validity(self, item: dict, until_key: str = "valid_until") -> Validity:
        now = datetime.now(timezone.utc)
        valid_from = parse_datetime(item.get("valid_from")) or now
        valid_until = parse_datetime(item.get(until_key)) or valid_from + timedelta(hours=DEFAULT_VALIDITY_HOURS)
        if valid_until < valid_from:
            valid_until = valid_from
        return Validity(valid_from=valid_from, valid_until=valid_until)

    def _quality(self, item: dict, provider: str, fields: list[str]) -> OfferQuality:
        return OfferQuality(
            data_completeness=data_completeness(item, fields),
            provider_reliability=self._catalog.provider_trust(provider) * 20,
        )

    def _carbon_per_km(self, service_type: ServiceType) -> float:
        return self._catalog.carbon_g_per_km.get(service_type, 0.0)

    # --- Flights ---

    def _flight(self, item: dict, provider: str, query: FlightQuery | None) -> FlightOffer:
        if "itineraries" in item:
            return self._amadeus_flight(item, provider, query)

        segments = []
        for s in item["segments"]:
            code = s.get("carrier_code") or s["flight_number"][:2]
            departure = parse_datetime(s["departure_time"])
            arrival = parse_datetime(s["arrival_time"])
            segments.append(FlightSegment(
                flight_number=s["flight_number"],
                carrier_code=code,
                carrier_name=s.get("carrier_name") or self._catalog.airlines.get(code),
                origin=s["origin"],
                destination=s["destination"],
                departure_time=departure,
                arrival_time=arrival,
                duration_minutes=s.get("duration_minutes") or _minutes_between(departure, arrival),
                aircraft=s.get("aircraft"),
            ))
        if not segments:
            raise ValueError("offer has no segments")

        duration = item.get("duration_minutes") or _minutes_between(
            segments[0].departure_time, segments[-1].arrival_time
        )
        distance = item.get("distance_km")
        return FlightOffer(
            id=str(item.get("id") or f"{provider}-{segments[0].flight_number}-{segments[0].departure_time:%Y%m%d%H%M}"),
            provider=provider,
            price=self._price(item["price"], self._currency(query)),
            validity=self._validity(item),
            quality=self._quality(item, provider, FLIGHT_FIELDS),
            carbon_kg=self._flight_carbon(distance, duration),
            is_flash_sale=bool(item.get("is_flash_sale", False)),
            discount_percentage=float(item.get("discount_percentage") or 0.0),
            segments=segments,
            duration_minutes=duration,
            stops=item.get("stops", len(segments) - 1),
            cabin_class=item.get("cabin_class") or (query.cabin_class if query else "economy"),
            baggage_included=bool(item.get("baggage_included", False)),
            refundable=bool(item.get("refundable", False)),
            seats_remaining=item.get("seats_remaining"),
            distance_km=distance,
        )

    def _amadeus_flight(self, item: dict, provider: str, query: FlightQuery | None) -> FlightOffer:
        """Parse Amadeus offer JSON into our FlightOffer format."""
        itineraries = item.get("itineraries") or [{}]
        itin = itineraries[0]
        raw_segments = itin.get("segments", [])
        if not raw_segments:
            raise ValueError("offer has no segments")

        segments = [
            FlightSegment(
                flight_number=f"{s['carrierCode']}{s['number']}",
                carrier_code=s["carrierCode"],
                carrier_name=self._catalog.airlines.get(s["carrierCode"], s["carrierCode"]),
                origin=s["departure"]["iataCode"],
                destination=s["arrival"]["iataCode"],
                departure_time=parse_datetime(s["departure"]["at"]),
                arrival_time=parse_datetime(s["arrival"]["at"]),
                duration_minutes=parse_iso_duration(s.get("duration")),
                aircraft=(s.get("aircraft") or {}).get("code"),
            )
            for s in raw_segments
        ]
        duration = parse_iso_duration(itin.get("duration")) or _minutes_between(
            segments[0].departure_time, segments[-1].arrival_time
        )

        price = self._price(item["price"], self._currency(query))
        if price.base is not None:
            price.taxes = round(max(0.0, price.amount - price.base - price.fees), 2)

        # Cabin and bags
        cabin = query.cabin_class if query else "economy"
        baggage = False
        traveler_pricings = item.get("travelerPricings", [])
        if traveler_pricings:
            fare_details = traveler_pricings[0].get("fareDetailsBySegment", [])
            if fare_details:
                cabin = CABIN_MAP.get(fare_details[0].get("cabin", "ECONOMY"), "economy")
                bags = fare_details[0].get("includedCheckedBags") or {}
                baggage = bags.get("quantity", 0) > 0

        return FlightOffer(
            id=f"{provider}-{item.get('id') or segments[0].flight_number}",
            provider=provider,
            price=price,
            validity=self._validity(item, until_key="lastTicketingDate"),
            quality=self._quality(item, provider, AMADEUS_FLIGHT_FIELDS),
            carbon_kg=self._flight_carbon(None, duration),
            segments=segments,
            duration_minutes=duration,
            stops=len(segments) - 1,
            cabin_class=cabin,
            baggage_included=baggage,
            seats_remaining=item.get("numberOfBookableSeats"),
        )

    def _flight_carbon(self, distance_km: float | None, duration_minutes: int) -> float:
        km = distance_km if distance_km else duration_minutes / 60 * CRUISE_SPEED_KMH
        return round(km * self._carbon_per_km(ServiceType.FLIGHT) / 1000, 1)

    # --- Hotels ---

    def _hotel(self, item: dict, provider: str, query: HotelQuery | None) -> HotelOffer:
        raw_hotel = item["hotel"]
        hotel_id = str(raw_hotel["id"])
        hotel = HotelProperty(
            id=hotel_id,
            name=raw_hotel.get("name") or hotel_id,
            chain=raw_hotel.get("chain"),
            star_rating=raw_hotel.get("star_rating"),
            guest_rating=raw_hotel.get("guest_rating"),
            review_count=raw_hotel.get("review_count") or 0,
            latitude=raw_hotel.get("latitude"),
            longitude=raw_hotel.get("longitude"),
            address=raw_hotel.get("address"),
            neighborhood=raw_hotel.get("neighborhood"),
            property_type=raw_hotel.get("property_type") or "hotel",
            amenities=list(raw_hotel.get("amenities") or []),
            distance_to_center_km=raw_hotel.get("distance_to_center_km"),
        )
        rooms = [
            HotelRoom(
                id=str(r.get("id") or f"{hotel_id}-room-{i}"),
                name=r.get("name") or "Standard Room",
                bed_type=r.get("bed_type"),
                max_occupancy=r.get("max_occupancy") or 2,
                refundable=bool(r.get("refundable", False)),
                breakfast_included=bool(r.get("breakfast_included", False)),
            )
            for i, r in enumerate(item.get("rooms") or [])
        ] or [HotelRoom(id=f"{hotel_id}-standard", name="Standard Room")]

        check_in = date.fromisoformat(item["check_in"]) if item.get("check_in") else (query.check_in if query else date.today())
        check_out = date.fromisoformat(item["check_out"]) if item.get("check_out") else (
            query.check_out if query else check_in + timedelta(days=1)
        )
        nights = max(1, (check_out - check_in).days)
        price = self._price(item["price"], self._currency(query))
        per_night = item["price"].get("per_night") if isinstance(item["price"], dict) else None

        return HotelOffer(
            id=str(item.get("id") or f"{provider}-{hotel_id}-{rooms[0].id}"),
            provider=provider,
            price=price,
            validity=self._validity(item),
            quality=self._quality(item, provider, HOTEL_FIELDS),
            carbon_kg=round(nights * self._catalog.hotel_night_kg, 1),
            is_flash_sale=bool(item.get("is_flash_sale", False)),
            discount_percentage=float(item.get("discount_percentage") or 0.0),
            hotel=hotel,
            rooms=rooms,
            check_in=check_in,
            check_out=check_out,
            nights=nights,
            price_per_night=round(float(per_night) if per_night else price.amount / nights, 2),
        )

    # --- Ground transport ---

    def _transport(self, item: dict, provider: str, query: TransportQuery | None) -> TransportJourney:
        segments = []
        for s in item["segments"]:
            departure = parse_datetime(s["departure_time"])
            arrival = parse_datetime(s["arrival_time"])
            segments.append(TransportSegment(
                mode=TransportMode(s["mode"]),
                operator=s.get("operator") or provider,
                vehicle_id=str(s.get("vehicle_id") or s.get("service_number") or "unknown"),
                origin=s["origin"],
                destination=s["destination"],
                departure_time=departure,
                arrival_time=arrival,
                duration_minutes=s.get("duration_minutes") or _minutes_between(departure, arrival),
                distance_km=float(s.get("distance_km") or 0.0),
            ))
        if not segments:
            raise ValueError("journey has no segments")

        modes = list(dict.fromkeys(s.mode for s in segments))
        carbon_g = 0.0
        for s in segments:
            profile = self._catalog.transport_modes.get(s.mode)
            factor = profile.co2_g_per_km if profile else self._carbon_per_km(ServiceType.TRANSPORT)
            carbon_g += s.distance_km * factor
        comfort = item.get("comfort_rating")
        if comfort is None:
            profiles = [self._catalog.transport_modes[m] for m in modes if m in self._catalog.transport_modes]
            comfort = sum(p.comfort for p in profiles) / len(profiles) if profiles else 3.0

        return TransportJourney(
            id=str(item.get("id") or f"{provider}-{segments[0].vehicle_id}-{segments[0].departure_time:%Y%m%d%H%M}"),
            provider=provider,
            price=self._price(item["price"], self._currency(query)),
            validity=self._validity(item),
            quality=self._quality(item, provider, TRANSPORT_FIELDS),
            carbon_kg=round(carbon_g / 1000, 1),
            is_flash_sale=bool(item.get("is_flash_sale", False)),
            discount_percentage=float(item.get("discount_percentage") or 0.0),
            segments=segments,
            total_duration_minutes=_minutes_between(segments[0].departure_time, segments[-1].arrival_time),
            transfers=len(segments) - 1,
            modes=modes,
            distance_km=round(sum(s.distance_km for s in segments), 1),
            comfort_rating=round(float(comfort), 1),
        )

    # --- Car rentals ---

    def _car_rental(self, item: dict, provider: str, query: CarRentalQuery | None) -> CarRentalOffer:
        raw_vehicle = item["vehicle"]
        category = CarCategory(raw_vehicle.get("category") or CarCategory.ECONOMY.value)
        vehicle = Vehicle(
            id=str(raw_vehicle.get("id") or f"{raw_vehicle['make']}-{raw_vehicle['model']}".lower()),
            make=raw_vehicle["make"],
            model=raw_vehicle["model"],
            category=category,
            seats=raw_vehicle.get("seats") or 5,
            doors=raw_vehicle.get("doors") or 4,
            transmission=raw_vehicle.get("transmission") or "automatic",
            fuel_type=raw_vehicle.get("fuel_type") or "petrol",
            co2_g_per_km=raw_vehicle.get("co2_g_per_km"),
            features=list(raw_vehicle.get("features") or []),
        )

        pickup_at = parse_datetime(item.get("pickup_at") or (query.pickup_at if query else None))
        dropoff_at = parse_datetime(item.get("dropoff_at") or (query.dropoff_at if query else None))
        if pickup_at is None or dropoff_at is None:
            raise ValueError("rental window missing")
        days = item.get("rental_days") or max(1, math.ceil((dropoff_at - pickup_at).total_seconds() / 86400))
        price = self._price(item["price"], self._currency(query))
        daily = item["price"].get("daily_rate") if isinstance(item["price"], dict) else None

        co2 = vehicle.co2_g_per_km if vehicle.co2_g_per_km is not None else self._carbon_per_km(ServiceType.CAR_RENTAL)
        default_age = LUXURY_MIN_DRIVER_AGE if category == CarCategory.LUXURY else STANDARD_MIN_DRIVER_AGE
        pickup_label = item.get("pickup_location") or (query.pickup_location.label if query else "")

        return CarRentalOffer(
            id=str(item.get("id") or f"{provider}-{vehicle.id}-{pickup_at:%Y%m%d%H%M}"),
            provider=provider,
            price=price,
            validity=self._validity(item),
            quality=self._quality(item, provider, CAR_FIELDS),
            carbon_kg=round(co2 * self._catalog.car_km_per_day * days / 1000, 1),
            is_flash_sale=bool(item.get("is_flash_sale", False)),
            discount_percentage=float(item.get("discount_percentage") or 0.0),
            vehicle=vehicle,
            supplier=item.get("supplier") or provider,
            pickup_location=pickup_label,
            dropoff_location=item.get("dropoff_location") or (query.return_location.label if query else pickup_label),
            pickup_at=pickup_at,
            dropoff_at=dropoff_at,
            rental_days=days,
            daily_rate=round(float(daily) if daily else price.amount / days, 2),
            fuel_policy=item.get("fuel_policy") or DEFAULT_FUEL_POLICY,
            min_driver_age=item.get("min_driver_age") or default_age,
            mileage=item.get("mileage") or "unlimited",
            insurance_included=bool(item.get("insurance_included", False)),
            rating=item.get("rating"),
            review_count=item.get("review_count") or 0,
        )


offer_normalizer = OfferNormalizer()
