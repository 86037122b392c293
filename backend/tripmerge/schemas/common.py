"""Shared enumerations for queries, offers, clustering and deals."""

from enum import Enum


class ServiceType(str, Enum):
    FLIGHT = "flight"
    HOTEL = "hotel"
    TRANSPORT = "transport"
    CAR_RENTAL = "car_rental"


# Canonical fan-out order for unified searches
ALL_SERVICES: tuple[ServiceType, ...] = (
    ServiceType.FLIGHT,
    ServiceType.HOTEL,
    ServiceType.TRANSPORT,
    ServiceType.CAR_RENTAL,
)


class TransportMode(str, Enum):
    TRAIN = "train"
    BUS = "bus"
    FERRY = "ferry"
    FLIGHT = "flight"
    RIDESHARE = "rideshare"
    METRO = "metro"
    TRAM = "tram"
    TAXI = "taxi"


class CarCategory(str, Enum):
    ECONOMY = "economy"
    COMPACT = "compact"
    MIDSIZE = "midsize"
    FULLSIZE = "fullsize"
    LUXURY = "luxury"
    SUV = "suv"
    VAN = "van"
    PICKUP = "pickup"
    CONVERTIBLE = "convertible"
    ELECTRIC = "electric"


class DealType(str, Enum):
    PRICE_DROP = "price_drop"
    FLASH_SALE = "flash_sale"
    LAST_MINUTE = "last_minute"
    SEASONAL = "seasonal"
    ERROR_FARE = "error_fare"
    COMPETITOR_BEAT = "competitor_beat"


class DealSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    EXCEPTIONAL = "exceptional"


class DealRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    ULTRA_RARE = "ultra_rare"


class AlertUrgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ClusterAlgorithm(str, Enum):
    KMEANS = "kmeans"
    DBSCAN = "dbscan"
    HIERARCHICAL = "hierarchical"
