"""Outbound response shapes for per-service searches."""

from typing import Any

from pydantic import BaseModel

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.offers import Offer, OfferQuality


class ProviderErrorEntry(BaseModel):
    provider: str
    error: str
    timed_out: bool = False


class SearchMeta(BaseModel):
    search_id: str
    service_type: ServiceType
    total_results: int
    search_time_ms: int
    providers: list[str]
    currency: str
    cache_hit: bool = False
    fallback_used: bool = False
    quality: OfferQuality = OfferQuality()


class ServiceSearchResponse(BaseModel):
    offers: list[Offer]
    meta: SearchMeta
    filters: dict[str, Any] = {}
    provider_errors: list[ProviderErrorEntry] = []
    extras: dict[str, Any] = {}
