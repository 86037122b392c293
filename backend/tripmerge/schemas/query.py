"""Canonical search queries — one frozen model per service type."""

import math
from datetime import date, datetime
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tripmerge.schemas.common import CarCategory, ServiceType, TransportMode

MAX_STAY_NIGHTS = 30
MAX_GUESTS = 10

TransportPriority = Literal["speed", "price", "eco", "direct", "comfort"]
CabinClass = Literal["economy", "premium_economy", "business", "first"]


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    code: str | None = None  # IATA / station / city code
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def label(self) -> str:
        return self.code or self.name


class Passengers(BaseModel):
    model_config = ConfigDict(frozen=True)

    adults: int = Field(default=1, ge=1, le=9)
    children: int = Field(default=0, ge=0, le=8)
    child_ages: tuple[int, ...] = ()
    infants: int = Field(default=0, ge=0, le=4)

    @property
    def total(self) -> int:
        return self.adults + self.children + self.infants

    @model_validator(mode="after")
    def _check_child_ages(self):
        if self.child_ages and len(self.child_ages) != self.children:
            raise ValueError("Child ages must be provided for each child")
        return self


class Preferences(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str = "USD"
    max_price: float | None = Field(default=None, gt=0)
    providers_include: tuple[str, ...] = ()
    providers_exclude: tuple[str, ...] = ()
    required_features: tuple[str, ...] = ()
    sustainability_weight: float = Field(default=0.0, ge=0, le=1)


class SearchOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_results: int = Field(default=10, ge=1, le=50)
    timeout_ms: int = Field(default=15000, ge=5000, le=30000)
    use_cache: bool = True


class FlightQuery(BaseModel):
    model_config = ConfigDict(frozen=True)
    SERVICE_TYPE: ClassVar[ServiceType] = ServiceType.FLIGHT

    origin: Location
    destination: Location
    departure_date: date
    return_date: date | None = None
    passengers: Passengers = Passengers()
    cabin_class: CabinClass = "economy"
    max_stops: int | None = Field(default=None, ge=0, le=3)
    preferences: Preferences = Preferences()

    @model_validator(mode="after")
    def _check_dates(self):
        if self.return_date and self.return_date < self.departure_date:
            raise ValueError("Return date must not be before departure date")
        if self.origin.label == self.destination.label:
            raise ValueError("Origin and destination must differ")
        return self


class RoomRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    adults: int = Field(default=1, ge=0)
    children: int = Field(default=0, ge=0)
    child_ages: tuple[int, ...] = ()


class HotelQuery(BaseModel):
    model_config = ConfigDict(frozen=True)
    SERVICE_TYPE: ClassVar[ServiceType] = ServiceType.HOTEL

    destination: Location
    check_in: date
    check_out: date
    rooms: tuple[RoomRequest, ...] = (RoomRequest(),)
    min_star_rating: float | None = Field(default=None, ge=1, le=5)
    preferences: Preferences = Preferences()

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @property
    def guests(self) -> int:
        return sum(r.adults + r.children for r in self.rooms)

    @model_validator(mode="after")
    def _check_stay(self):
        if self.check_in < date.today():
            raise ValueError("Check-in date cannot be in the past")
        if self.check_out <= self.check_in:
            raise ValueError("Check-out date must be after check-in date")
        if self.nights > MAX_STAY_NIGHTS:
            raise ValueError(f"Maximum stay is {MAX_STAY_NIGHTS} nights")
        if not self.rooms:
            raise ValueError("At least one room is required")
        for room in self.rooms:
            if room.adults < 1:
                raise ValueError("Each room must have at least one adult")
            if len(room.child_ages) != room.children:
                raise ValueError("Child ages must be provided for each child")
        if self.guests > MAX_GUESTS:
            raise ValueError(f"Maximum {MAX_GUESTS} guests per booking")
        return self


class TransportQuery(BaseModel):
    model_config = ConfigDict(frozen=True)
    SERVICE_TYPE: ClassVar[ServiceType] = ServiceType.TRANSPORT

    origin: Location
    destination: Location
    departure: datetime
    passengers: Passengers = Passengers()
    modes: tuple[TransportMode, ...] = ()
    priorities: tuple[TransportPriority, ...] = ()
    max_transfers: int = Field(default=2, ge=0, le=5)
    preferences: Preferences = Preferences()

    @model_validator(mode="after")
    def _check_route(self):
        if self.origin.label == self.destination.label:
            raise ValueError("Origin and destination must differ")
        return self


class CarRentalQuery(BaseModel):
    model_config = ConfigDict(frozen=True)
    SERVICE_TYPE: ClassVar[ServiceType] = ServiceType.CAR_RENTAL

    pickup_location: Location
    dropoff_location: Location | None = None
    pickup_at: datetime
    dropoff_at: datetime
    driver_age: int = Field(default=25, ge=18, le=99)
    categories: tuple[CarCategory, ...] = ()
    preferences: Preferences = Preferences()

    @property
    def rental_days(self) -> int:
        hours = (self.dropoff_at - self.pickup_at).total_seconds() / 3600
        return max(1, math.ceil(hours / 24))

    @property
    def return_location(self) -> Location:
        return self.dropoff_location or self.pickup_location

    @model_validator(mode="after")
    def _check_window(self):
        if self.dropoff_at <= self.pickup_at:
            raise ValueError("Drop-off time must be after pick-up time")
        return self


SearchQuery = FlightQuery | HotelQuery | TransportQuery | CarRentalQuery
