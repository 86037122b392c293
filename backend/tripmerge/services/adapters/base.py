"""Provider query adapter — one per service type.

Runs every allowed provider concurrently, each call bounded by its own timeout,
falls back to the configured synthetic generator when nothing usable came back,
and pushes the raw results through normalize → filter → dedupe → score → rank.
"""

import asyncio
import logging
import time
import uuid

from tripmerge.config import settings
from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.offers import OfferQuality
from tripmerge.schemas.query import Preferences, SearchOptions, SearchQuery
from tripmerge.schemas.responses import ProviderErrorEntry, SearchMeta, ServiceSearchResponse
from tripmerge.services.cache_service import CacheBackend, cache_service, query_cache_key
from tripmerge.services.deduplicator import deduplicate
from tripmerge.services.normalizer import OfferNormalizer, offer_normalizer
from tripmerge.services.providers import (
    FALLBACK_GENERATORS,
    OfferProvider,
    ProviderError,
    ProviderResult,
    ProviderTimeoutError,
    build_providers,
)
from tripmerge.services.ranking_engine import build_facets, rank_offers, score_offers

logger = logging.getLogger(__name__)


class ProviderQueryAdapter:
    """Canonical query in, ranked offers plus metadata out. Never raises for provider failures."""

    service_type: ServiceType
    cache_ttl_setting: str
    search_timeout_setting: str

    def __init__(
        self,
        providers: list[OfferProvider] | None = None,
        fallback: OfferProvider | None = None,
        fallback_enabled: bool | None = None,
        cache: CacheBackend | None = None,
        normalizer: OfferNormalizer | None = None,
        search_timeout: float | None = None,
    ):
        self._providers = providers if providers is not None else build_providers(self.service_type)
        if fallback_enabled is None:
            fallback_enabled = fallback is not None or settings.synthetic_fallback_enabled
        if fallback is None and fallback_enabled:
            fallback = FALLBACK_GENERATORS[self.service_type]()
        self._fallback = fallback if fallback_enabled else None
        self._cache = cache if cache is not None else cache_service
        self._normalizer = normalizer or offer_normalizer
        self.search_timeout = search_timeout or getattr(settings, self.search_timeout_setting)

    @property
    def cache_ttl(self) -> int:
        return getattr(settings, self.cache_ttl_setting)

    @property
    def providers(self) -> list[OfferProvider]:
        return list(self._providers)

    async def search(self, query: SearchQuery, options: SearchOptions | None = None) -> ServiceSearchResponse:
        """Execute one search for this service type."""
        start_time = time.monotonic()
        options = options or SearchOptions()
        service = self.service_type.value

        # 1. Cache lookup
        cache_key = query_cache_key(f"search:{service}", query, options)
        results: list[ProviderResult] | None = None
        errors: list[ProviderErrorEntry] = []
        cache_hit = False
        if options.use_cache:
            cached = await self._cache.get(cache_key)
            if cached:
                results = [ProviderResult.from_dict(r) for r in cached]
                cache_hit = True

        # 2. Live providers, in parallel
        if results is None:
            results, errors = await self._query_providers(query, options)

        # 3. Normalize; only results that yield offers count as live
        offers = []
        productive: list[ProviderResult] = []
        for result in results:
            result_offers = self._normalize(result, query)
            if result_offers:
                productive.append(result)
                offers.extend(result_offers)
        if productive and not cache_hit and options.use_cache:
            await self._cache.set(cache_key, [r.to_dict() for r in productive], self.cache_ttl)

        # 4. Degraded mode
        fallback_used = False
        if not offers and self._fallback is not None:
            logger.info(f"No usable live {service} offers, using {self._fallback.name} fallback")
            fallback_start = time.monotonic()
            payload = await self._fallback.search(query)
            results = [ProviderResult(
                provider=self._fallback.name,
                payload=payload,
                fallback=True,
                elapsed_ms=int((time.monotonic() - fallback_start) * 1000),
            )]
            offers = self._normalize(results[0], query)
            fallback_used = True

        # 5. Filter → dedupe → score → rank
        offers = self.apply_filters(offers, query)
        offers = deduplicate(offers)
        offers = score_offers(
            self.service_type, offers, sustainability_weight=query.preferences.sustainability_weight,
        )
        ranked = rank_offers(self.service_type, offers, query)

        returned = self.post_process(ranked[:options.max_results], query)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        return ServiceSearchResponse(
            offers=returned,
            meta=SearchMeta(
                search_id=f"{service}_{uuid.uuid4().hex[:12]}",
                service_type=self.service_type,
                total_results=len(ranked),
                search_time_ms=elapsed_ms,
                providers=sorted({r.provider for r in results}),
                currency=query.preferences.currency,
                cache_hit=cache_hit,
                fallback_used=fallback_used,
                quality=_mean_quality(returned),
            ),
            filters=build_facets(self.service_type, returned),
            provider_errors=errors,
            extras=self.extras(ranked, query),
        )

    def _normalize(self, result: ProviderResult, query: SearchQuery) -> list:
        return self._normalizer.normalize(
            self.service_type, result.provider, result.payload, query, is_synthetic=result.fallback,
        )

    # --- Provider fan-out ---

    def _allowed_providers(self, preferences: Preferences) -> list[OfferProvider]:
        include = {p.lower() for p in preferences.providers_include}
        exclude = {p.lower() for p in preferences.providers_exclude}
        return [
            p for p in self._providers
            if (not include or p.name.lower() in include) and p.name.lower() not in exclude
        ]

    async def _query_providers(
        self, query: SearchQuery, options: SearchOptions
    ) -> tuple[list[ProviderResult], list[ProviderErrorEntry]]:
        providers = self._allowed_providers(query.preferences)
        if not providers:
            return [], []

        budget = options.timeout_ms / 1000
        outcomes = await asyncio.gather(
            *(self._call_provider(p, query, min(p.timeout_seconds, budget)) for p in providers),
            return_exceptions=True,
        )

        results: list[ProviderResult] = []
        errors: list[ProviderErrorEntry] = []
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, ProviderError):
                logger.warning(f"{self.service_type.value} provider {provider.name} failed: {outcome.message}")
                errors.append(ProviderErrorEntry(
                    provider=provider.name,
                    error=outcome.message,
                    timed_out=isinstance(outcome, ProviderTimeoutError),
                ))
            elif isinstance(outcome, BaseException):
                logger.warning(f"{self.service_type.value} provider {provider.name} raised unexpectedly: {outcome!r}")
                errors.append(ProviderErrorEntry(provider=provider.name, error=str(outcome) or type(outcome).__name__))
            else:
                results.append(outcome)
        return results, errors

    async def _call_provider(self, provider: OfferProvider, query: SearchQuery, timeout: float) -> ProviderResult:
        """One provider call; wait_for cancels the call when the timeout wins."""
        start = time.monotonic()
        try:
            payload = await asyncio.wait_for(provider.search(query), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(provider.name, f"timed out after {timeout:g}s") from e
        return ProviderResult(
            provider=provider.name,
            payload=payload or [],
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )

    # --- Per-service hooks ---

    def offer_features(self, offer) -> set[str]:
        """Feature tokens an offer satisfies, matched against required_features."""
        return set()

    def service_filter(self, offers: list, query: SearchQuery) -> list:
        return offers

    def apply_filters(self, offers: list, query: SearchQuery) -> list:
        prefs = query.preferences
        if prefs.max_price is not None:
            offers = [o for o in offers if o.price.amount <= prefs.max_price]
        if prefs.required_features:
            required = {f.lower() for f in prefs.required_features}
            offers = [o for o in offers if required <= self.offer_features(o)]
        return self.service_filter(offers, query)

    def post_process(self, offers: list, query: SearchQuery) -> list:
        return offers

    def extras(self, ranked: list, query: SearchQuery) -> dict:
        return {}

    async def close(self):
        for provider in self._providers:
            await provider.close()


def _mean_quality(offers: list) -> OfferQuality:
    if not offers:
        return OfferQuality()
    return OfferQuality(
        data_completeness=round(sum(o.quality.data_completeness for o in offers) / len(offers), 1),
        provider_reliability=round(sum(o.quality.provider_reliability for o in offers) / len(offers), 1),
    )
