"""Flight search adapter."""

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.offers import FlightOffer
from tripmerge.schemas.query import FlightQuery
from tripmerge.services.adapters.base import ProviderQueryAdapter


class FlightSearchAdapter(ProviderQueryAdapter):
    service_type = ServiceType.FLIGHT
    cache_ttl_setting = "flight_cache_ttl"
    search_timeout_setting = "flight_search_timeout"

    def offer_features(self, offer: FlightOffer) -> set[str]:
        features = {offer.cabin_class}
        if offer.stops == 0:
            features.add("direct")
        if offer.baggage_included:
            features.add("baggage")
        if offer.refundable:
            features.add("refundable")
        return features

    def service_filter(self, offers: list[FlightOffer], query: FlightQuery) -> list[FlightOffer]:
        if query.max_stops is not None:
            offers = [o for o in offers if o.stops <= query.max_stops]
        return offers


flight_search = FlightSearchAdapter()
