"""Multi-service trip request and the merged response."""

from datetime import date, time
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from tripmerge.schemas.common import ALL_SERVICES, CarCategory, ServiceType
from tripmerge.schemas.query import (
    CabinClass,
    Location,
    Passengers,
    SearchOptions,
    TransportPriority,
)
from tripmerge.schemas.responses import ServiceSearchResponse


class Journey(BaseModel):
    origin: Location
    destination: Location
    departure_date: date
    return_date: date | None = None
    departure_time: time | None = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.return_date and self.return_date < self.departure_date:
            raise ValueError("Return date must not be before departure date")
        return self


class BudgetAllocation(BaseModel):
    total: float | None = Field(default=None, gt=0)
    per_service: dict[ServiceType, float] = {}


class UnifiedPreferences(BaseModel):
    currency: str = "USD"
    budget: BudgetAllocation | None = None
    sustainability_weight: float = Field(default=0.0, ge=0, le=1)
    cabin_class: CabinClass = "economy"
    hotel_min_stars: float | None = Field(default=None, ge=1, le=5)
    car_categories: list[CarCategory] = []
    driver_age: int = Field(default=25, ge=18, le=99)
    transport_priorities: list[TransportPriority] = []
    providers_include: list[str] = []
    providers_exclude: list[str] = []


class UnifiedSearchRequest(BaseModel):
    services: list[Literal["all"] | ServiceType] = ["all"]
    journey: Journey
    passengers: Passengers = Passengers()
    preferences: UnifiedPreferences = UnifiedPreferences()
    options: SearchOptions = SearchOptions()
    include_recommendations: bool = True

    @model_validator(mode="after")
    def _check_services(self):
        if not self.services:
            raise ValueError("At least one service type is required")
        return self

    def requested_services(self) -> list[ServiceType]:
        """Expand "all" and keep the canonical order."""
        if "all" in self.services:
            return list(ALL_SERVICES)
        return [s for s in ALL_SERVICES if s in self.services]


class ServiceErrorEntry(BaseModel):
    service: ServiceType
    provider: str | None = None
    error: str
    fallback_used: bool = False


class BundleChoice(BaseModel):
    service: ServiceType
    offer_id: str
    provider: str
    price: float


class BundleRecommendation(BaseModel):
    kind: str
    label: str
    combination: list[BundleChoice]
    total_price: float
    currency: str
    quality_score: float
    carbon_kg: float
    reasoning: str
    savings_amount: float = 0.0
    savings_percentage: float = 0.0
    carbon_savings_kg: float = 0.0
    carbon_savings_percentage: float = 0.0
    tradeoffs: list[str] = []
    features: list[str] = []


class Recommendations(BaseModel):
    best_overall: BundleRecommendation | None = None
    budget_friendly: BundleRecommendation | None = None
    premium: BundleRecommendation | None = None
    eco_friendly: BundleRecommendation | None = None


class QualityMetrics(BaseModel):
    data_completeness: float = 0.0
    provider_reliability: float = 0.0
    price_confidence: float = 0.0


class UnifiedMeta(BaseModel):
    search_id: str
    services_queried: list[ServiceType]
    services_responded: list[ServiceType]
    total_results: int
    search_time_ms: int
    currency: str
    cache_hit: bool = False
    errors: list[ServiceErrorEntry] = []
    warnings: list[str] = []
    quality: QualityMetrics = QualityMetrics()


class UnifiedSearchResponse(BaseModel):
    results: dict[ServiceType, ServiceSearchResponse] = {}
    recommendations: Recommendations = Recommendations()
    meta: UnifiedMeta
