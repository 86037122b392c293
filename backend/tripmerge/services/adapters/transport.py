"""Ground transport search adapter."""

from tripmerge.schemas.common import ServiceType, TransportMode
from tripmerge.schemas.offers import TransportJourney
from tripmerge.schemas.query import TransportQuery
from tripmerge.services.adapters.base import ProviderQueryAdapter

FAST_JOURNEY_MINUTES = 180
BUDGET_FARE = 50
ECO_MODES = {TransportMode.TRAIN, TransportMode.BUS, TransportMode.METRO, TransportMode.TRAM}
COMFORT_MODES = {TransportMode.TRAIN, TransportMode.FLIGHT}


def journey_tags(journey: TransportJourney) -> list[str]:
    tags = []
    if journey.transfers == 0:
        tags.append("direct")
    if journey.total_duration_minutes < FAST_JOURNEY_MINUTES:
        tags.append("fast")
    if journey.price.amount < BUDGET_FARE:
        tags.append("budget")
    if journey.modes and all(m in ECO_MODES for m in journey.modes):
        tags.append("eco-friendly")
    if any(m in COMFORT_MODES for m in journey.modes):
        tags.append("comfortable")
    return tags


class TransportSearchAdapter(ProviderQueryAdapter):
    service_type = ServiceType.TRANSPORT
    cache_ttl_setting = "transport_cache_ttl"
    search_timeout_setting = "transport_search_timeout"

    def offer_features(self, offer: TransportJourney) -> set[str]:
        features = {m.value for m in offer.modes}
        if offer.transfers == 0:
            features.add("direct")
        return features

    def service_filter(self, offers: list[TransportJourney], query: TransportQuery) -> list[TransportJourney]:
        offers = [o for o in offers if o.transfers <= query.max_transfers]
        if query.modes:
            allowed = set(query.modes)
            offers = [o for o in offers if set(o.modes) <= allowed]
        return offers

    def post_process(self, offers: list[TransportJourney], query: TransportQuery) -> list[TransportJourney]:
        return [
            o.model_copy(update={"tags": list(dict.fromkeys([*o.tags, *journey_tags(o)]))})
            for o in offers
        ]


transport_search = TransportSearchAdapter()
