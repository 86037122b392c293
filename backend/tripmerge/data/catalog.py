"""Static travel catalog — provider trust, emissions, pricing and synthetic pools.

Loaded once from catalog.json and validated; every per-category table is keyed
by the matching enum so lookups stay typed.
"""

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel

from tripmerge.schemas.common import CarCategory, ServiceType, TransportMode

CATALOG_PATH = Path(__file__).resolve().parent / "catalog.json"


class ProviderSpec(BaseModel):
    name: str
    trust: int = 3
    timeout_seconds: float = 10.0


class TransportModeSpec(BaseModel):
    price_per_km: float
    speed_kmh: float
    co2_g_per_km: float
    operator: str
    vehicle: str
    comfort: float = 3.0


class CarCategorySpec(BaseModel):
    daily_rate: float
    seats: int = 5
    doors: int = 4


class VehicleSpec(BaseModel):
    id: str
    make: str
    model: str
    category: CarCategory
    transmission: str = "automatic"
    fuel_type: str = "petrol"
    co2_g_per_km: float = 150.0
    features: list[str] = []


class SeasonalPattern(BaseModel):
    month: int  # 1-12
    name: str
    discount: float
    services: list[ServiceType]


class GeoCenter(BaseModel):
    latitude: float
    longitude: float


class HotelPools(BaseModel):
    names: list[str]
    chains: list[str]
    neighborhoods: list[str]
    property_types: list[str]
    amenities: list[str]
    room_types: list[str]
    default_center: GeoCenter


class Catalog(BaseModel):
    default_trust: int = 3
    providers: dict[ServiceType, list[ProviderSpec]]
    extra_trust: dict[str, int] = {}
    carbon_g_per_km: dict[ServiceType, float]
    hotel_night_kg: float = 25.0
    car_km_per_day: float = 80.0
    transport_modes: dict[TransportMode, TransportModeSpec]
    car_categories: dict[CarCategory, CarCategorySpec]
    vehicles: list[VehicleSpec]
    car_suppliers: list[str]
    seasonal_patterns: list[SeasonalPattern]
    airlines: dict[str, str]
    hub_airports: list[str]
    hotel: HotelPools

    def providers_for(self, service_type: ServiceType) -> list[ProviderSpec]:
        return self.providers.get(service_type, [])

    def provider_trust(self, provider: str) -> int:
        """Trust score 1-5 for a provider name, case-insensitive."""
        name = provider.lower()
        for entries in self.providers.values():
            for entry in entries:
                if entry.name == name:
                    return entry.trust
        return self.extra_trust.get(name, self.default_trust)

    def vehicles_for(self, category: CarCategory) -> list[VehicleSpec]:
        return [v for v in self.vehicles if v.category == category]

    def seasonal_pattern(self, month: int) -> SeasonalPattern | None:
        return next((p for p in self.seasonal_patterns if p.month == month), None)


@lru_cache(maxsize=1)
def load_catalog(path: str | None = None) -> Catalog:
    """Read and validate the catalog file (cached for the process)."""
    source = Path(path) if path else CATALOG_PATH
    with source.open(encoding="utf-8") as fh:
        return Catalog.model_validate(json.load(fh))
