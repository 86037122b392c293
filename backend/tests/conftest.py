import pytest

from tripmerge.services.cache_service import MemoryCache, cache_service
from tripmerge.services.deal_detector import price_history_store


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Module singletons are process-wide; start every test from empty."""
    if isinstance(cache_service, MemoryCache):
        cache_service.clear()
    price_history_store.clear()
    yield
    if isinstance(cache_service, MemoryCache):
        cache_service.clear()
    price_history_store.clear()
