"""Canonical offer shapes produced by the normalizer."""

from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator

from tripmerge.schemas.common import CarCategory, TransportMode


class Price(BaseModel):
    amount: float = Field(ge=0)
    currency: str = "USD"
    base: float | None = None
    taxes: float = 0.0
    fees: float = 0.0


class Validity(BaseModel):
    valid_from: datetime
    valid_until: datetime

    @model_validator(mode="after")
    def _check_window(self):
        if self.valid_until < self.valid_from:
            raise ValueError("Validity window ends before it starts")
        return self


class OfferQuality(BaseModel):
    data_completeness: float = 0.0   # 0-100
    provider_reliability: float = 0.0  # 0-100


class OfferBase(BaseModel):
    id: str
    provider: str
    price: Price
    validity: Validity
    score: float = Field(default=0.0, ge=0, le=100)
    quality: OfferQuality = Field(default_factory=OfferQuality)
    carbon_kg: float = 0.0
    is_flash_sale: bool = False
    discount_percentage: float = 0.0  # provider-advertised
    is_synthetic: bool = False
    tags: list[str] = []


# Flights

class FlightSegment(BaseModel):
    flight_number: str
    carrier_code: str
    carrier_name: str | None = None
    origin: str
    destination: str
    departure_time: datetime
    arrival_time: datetime
    duration_minutes: int = 0
    aircraft: str | None = None


class FlightOffer(OfferBase):
    service_type: Literal["flight"] = "flight"
    segments: list[FlightSegment] = Field(min_length=1)
    duration_minutes: int
    stops: int = 0
    cabin_class: str = "economy"
    baggage_included: bool = False
    refundable: bool = False
    seats_remaining: int | None = None
    distance_km: float | None = None

    @property
    def departure_time(self) -> datetime:
        return self.segments[0].departure_time

    @property
    def airline_codes(self) -> list[str]:
        return sorted({s.carrier_code for s in self.segments})


# Hotels

class HotelProperty(BaseModel):
    id: str
    name: str
    chain: str | None = None
    star_rating: float | None = None
    guest_rating: float | None = None  # 0-10
    review_count: int = 0
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    neighborhood: str | None = None
    property_type: str = "hotel"
    amenities: list[str] = []
    distance_to_center_km: float | None = None


class HotelRoom(BaseModel):
    id: str
    name: str
    bed_type: str | None = None
    max_occupancy: int = 2
    refundable: bool = False
    breakfast_included: bool = False


class HotelOffer(OfferBase):
    service_type: Literal["hotel"] = "hotel"
    hotel: HotelProperty
    rooms: list[HotelRoom]
    check_in: date
    check_out: date
    nights: int = 1
    price_per_night: float = 0.0


# Ground transport

class TransportSegment(BaseModel):
    mode: TransportMode
    operator: str
    vehicle_id: str
    origin: str
    destination: str
    departure_time: datetime
    arrival_time: datetime
    duration_minutes: int
    distance_km: float = 0.0


class TransportJourney(OfferBase):
    service_type: Literal["transport"] = "transport"
    segments: list[TransportSegment] = Field(min_length=1)
    total_duration_minutes: int
    transfers: int = 0
    modes: list[TransportMode] = []
    distance_km: float = 0.0
    comfort_rating: float = 3.0  # 1-5

    @property
    def departure_time(self) -> datetime:
        return self.segments[0].departure_time


# Car rentals

class Vehicle(BaseModel):
    id: str
    make: str
    model: str
    category: CarCategory
    seats: int = 5
    doors: int = 4
    transmission: str = "automatic"
    fuel_type: str = "petrol"
    co2_g_per_km: float | None = None
    features: list[str] = []


class CarRentalOffer(OfferBase):
    service_type: Literal["car_rental"] = "car_rental"
    vehicle: Vehicle
    supplier: str
    pickup_location: str
    dropoff_location: str
    pickup_at: datetime
    dropoff_at: datetime
    rental_days: int = 1
    daily_rate: float = 0.0
    fuel_policy: str = "full_to_full"
    min_driver_age: int = 21
    mileage: str = "unlimited"
    insurance_included: bool = False
    rating: float | None = None  # 0-5
    review_count: int = 0


Offer = Annotated[
    FlightOffer | HotelOffer | TransportJourney | CarRentalOffer,
    Field(discriminator="service_type"),
]
