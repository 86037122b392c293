"""Per-service provider query adapters."""

from tripmerge.schemas.common import ServiceType
from tripmerge.services.adapters.base import ProviderQueryAdapter
from tripmerge.services.adapters.car_rental import CarRentalSearchAdapter, car_rental_search
from tripmerge.services.adapters.flight import FlightSearchAdapter, flight_search
from tripmerge.services.adapters.hotel import HotelSearchAdapter, hotel_search
from tripmerge.services.adapters.transport import TransportSearchAdapter, transport_search

ADAPTERS: dict[ServiceType, ProviderQueryAdapter] = {
    ServiceType.FLIGHT: flight_search,
    ServiceType.HOTEL: hotel_search,
    ServiceType.TRANSPORT: transport_search,
    ServiceType.CAR_RENTAL: car_rental_search,
}

__all__ = [
    "ADAPTERS",
    "CarRentalSearchAdapter",
    "FlightSearchAdapter",
    "HotelSearchAdapter",
    "ProviderQueryAdapter",
    "TransportSearchAdapter",
    "car_rental_search",
    "flight_search",
    "hotel_search",
    "transport_search",
]
