"""Hotel search adapter."""

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.offers import HotelOffer
from tripmerge.schemas.query import HotelQuery
from tripmerge.services.adapters.base import ProviderQueryAdapter


class HotelSearchAdapter(ProviderQueryAdapter):
    service_type = ServiceType.HOTEL
    cache_ttl_setting = "hotel_cache_ttl"
    search_timeout_setting = "hotel_search_timeout"

    def offer_features(self, offer: HotelOffer) -> set[str]:
        features = {a.lower() for a in offer.hotel.amenities}
        if any(r.breakfast_included for r in offer.rooms):
            features.add("breakfast")
        if any(r.refundable for r in offer.rooms):
            features.add("refundable")
        return features

    def service_filter(self, offers: list[HotelOffer], query: HotelQuery) -> list[HotelOffer]:
        if query.min_star_rating is not None:
            offers = [o for o in offers if (o.hotel.star_rating or 0) >= query.min_star_rating]
        return offers


hotel_search = HotelSearchAdapter()
