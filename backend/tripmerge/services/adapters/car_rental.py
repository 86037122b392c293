"""Car rental search adapter."""

from tripmerge.schemas.common import CarCategory, ServiceType
from tripmerge.schemas.offers import CarRentalOffer
from tripmerge.schemas.query import CarRentalQuery
from tripmerge.services.adapters.base import ProviderQueryAdapter

ECO_FUEL_TYPES = {"electric", "hybrid"}
POPULAR_CATEGORIES = {CarCategory.COMPACT, CarCategory.MIDSIZE}


def car_alternatives(offers: list[CarRentalOffer]) -> dict[str, CarRentalOffer]:
    """Cheapest / premium / eco-friendly / most-popular picks over the ranked list."""
    if not offers:
        return {}
    return {
        "cheapest": min(offers, key=lambda o: o.price.amount),
        "premium": next(
            (o for o in offers if o.vehicle.category == CarCategory.LUXURY),
            max(offers, key=lambda o: o.daily_rate),
        ),
        "eco_friendly": next(
            (o for o in offers if o.vehicle.fuel_type in ECO_FUEL_TYPES),
            min(offers, key=lambda o: o.carbon_kg),
        ),
        "most_popular": next(
            (o for o in offers if o.vehicle.category in POPULAR_CATEGORIES),
            offers[0],
        ),
    }


class CarRentalSearchAdapter(ProviderQueryAdapter):
    service_type = ServiceType.CAR_RENTAL
    cache_ttl_setting = "car_rental_cache_ttl"
    search_timeout_setting = "car_rental_search_timeout"

    def offer_features(self, offer: CarRentalOffer) -> set[str]:
        features = {f.lower() for f in offer.vehicle.features}
        features.update({offer.vehicle.transmission, offer.vehicle.fuel_type})
        if offer.insurance_included:
            features.add("insurance")
        if offer.mileage == "unlimited":
            features.add("unlimited_mileage")
        return features

    def service_filter(self, offers: list[CarRentalOffer], query: CarRentalQuery) -> list[CarRentalOffer]:
        offers = [o for o in offers if o.min_driver_age <= query.driver_age]
        if query.categories:
            offers = [o for o in offers if o.vehicle.category in query.categories]
        return offers

    def extras(self, ranked: list[CarRentalOffer], query: CarRentalQuery) -> dict:
        picks = car_alternatives(ranked)
        return {"alternatives": {name: o.model_dump(mode="json") for name, o in picks.items()}}


car_rental_search = CarRentalSearchAdapter()
