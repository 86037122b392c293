"""Offer providers — live HTTP sources and the synthetic fallback.

Modules:
    base           OfferProvider interface, ProviderError, ProviderResult
    http_provider  httpx-backed provider for a configured endpoint
    synthetic      Seeded synthetic generators (degraded-mode fallback only)
"""

import logging

from tripmerge.config import settings
from tripmerge.data.catalog import load_catalog
from tripmerge.schemas.common import ServiceType
from tripmerge.services.providers.base import (
    OfferProvider,
    ProviderError,
    ProviderResult,
    ProviderTimeoutError,
)
from tripmerge.services.providers.http_provider import HttpOfferProvider
from tripmerge.services.providers.synthetic import (
    FALLBACK_GENERATORS,
    SYNTHETIC_PROVIDER,
    SyntheticOfferGenerator,
)

logger = logging.getLogger(__name__)

__all__ = [
    "FALLBACK_GENERATORS",
    "SYNTHETIC_PROVIDER",
    "HttpOfferProvider",
    "OfferProvider",
    "ProviderError",
    "ProviderResult",
    "ProviderTimeoutError",
    "SyntheticOfferGenerator",
    "build_providers",
]


def build_providers(service_type: ServiceType) -> list[OfferProvider]:
    """Live providers for a service — only those with a configured endpoint."""
    providers: list[OfferProvider] = []
    for entry in load_catalog().providers_for(service_type):
        endpoint = settings.provider_endpoints.get(entry.name)
        if not endpoint:
            continue
        providers.append(HttpOfferProvider(
            name=entry.name,
            service_type=service_type,
            base_url=endpoint,
            api_key=settings.provider_api_keys.get(entry.name, ""),
            timeout_seconds=entry.timeout_seconds,
        ))
    if not providers:
        logger.info(f"No live {service_type.value} providers configured")
    return providers

