"""Offer deduplication — collapse offers that describe the same bookable item.

Identity is per service type:
- flight: the ordered (flight number, departure time) of every segment
- hotel: hotel id + first room id
- transport: provider + every segment's (vehicle id, departure time)
- car rental: provider + vehicle id + pick-up time

The first offer seen for a key wins, so running the result through again
changes nothing.
"""

from tripmerge.schemas.offers import CarRentalOffer, FlightOffer, HotelOffer, TransportJourney


def offer_key(offer) -> str:
    if isinstance(offer, FlightOffer):
        return "|".join(f"{s.flight_number}-{s.departure_time.isoformat()}" for s in offer.segments)
    if isinstance(offer, HotelOffer):
        room_id = offer.rooms[0].id if offer.rooms else ""
        return f"{offer.hotel.id}-{room_id}"
    if isinstance(offer, TransportJourney):
        legs = "|".join(f"{s.vehicle_id}@{s.departure_time.isoformat()}" for s in offer.segments)
        return f"{offer.provider}:{legs}"
    if isinstance(offer, CarRentalOffer):
        return f"{offer.provider}:{offer.vehicle.id}:{offer.pickup_at.isoformat()}"
    raise TypeError(f"Unsupported offer type: {type(offer).__name__}")


def deduplicate(offers: list) -> list:
    """Keep the first offer per identity key, preserving input order."""
    seen: set[str] = set()
    unique = []
    for offer in offers:
        key = offer_key(offer)
        if key in seen:
            continue
        seen.add(key)
        unique.append(offer)
    return unique
