"""Aggregation services.

Modules:
    cache_service        Injected cache backends (memory / Redis)
    providers            Provider interface, live HTTP providers, synthetic fallback
    normalizer           Provider payload → canonical Offer mapping
    deduplicator         Same-inventory collapse
    ranking_engine       Scoring, threshold ranking and facets
    adapters             Per-service ProviderQueryAdapter pipelines
    unified_orchestrator Multi-service fan-out and bundle recommendations
    hotel_clustering     Geographic clustering strategies
    price_bands          Budget / mid-range / luxury partitioning
    deal_detector        Price history and deal rules

Pipeline:
    ProviderQueryAdapter → OfferNormalizer → deduplicate → rank_offers
    → (hotels) GeographicClusterer / PriceBandClusterer, DealDetector
"""
