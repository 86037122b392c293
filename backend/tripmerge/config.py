from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Cache
    cache_backend: str = "memory"  # memory | redis
    redis_url: str = "redis://localhost:6379/0"
    flight_cache_ttl: int = 15 * 60
    hotel_cache_ttl: int = 30 * 60
    transport_cache_ttl: int = 30 * 60
    car_rental_cache_ttl: int = 60 * 60
    unified_cache_ttl: int = 15 * 60

    # Overall per-service search timeouts (seconds)
    flight_search_timeout: float = 30.0
    hotel_search_timeout: float = 25.0
    transport_search_timeout: float = 20.0
    car_rental_search_timeout: float = 20.0

    # Request limits
    default_max_results: int = 10
    max_results_limit: int = 50
    default_timeout_ms: int = 15000
    min_timeout_ms: int = 5000
    max_timeout_ms: int = 30000

    # Live providers: JSON dicts keyed by provider name, e.g.
    # PROVIDER_ENDPOINTS='{"kiwi": "https://kiwi.example/api"}'
    provider_endpoints: dict[str, str] = {}
    provider_api_keys: dict[str, str] = {}

    # Degraded mode
    synthetic_fallback_enabled: bool = True

    default_currency: str = "USD"

    # Deal detection
    deal_history_days: int = 90
    deal_alert_limit: int = 5

    # Hotel clustering defaults
    cluster_max_radius_m: float = 2000.0
    cluster_min_hotels: int = 2
    cluster_max_clusters: int = 8
    cluster_algorithm: str = "kmeans"
    price_band_budget_threshold: float = 100.0
    price_band_luxury_threshold: float = 300.0

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: str = "http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
