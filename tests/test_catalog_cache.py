import pytest

from product_agent.catalog_cache import CatalogCache
from product_agent.errors import CatalogRefreshError, CatalogUnavailableError

from .conftest import MemoryCatalogStore, sample_products, sample_synonyms


def test_empty_cache_is_unavailable():
    cache = CatalogCache(MemoryCatalogStore(), refresh_interval_sec=0)
    assert not cache.snapshot.populated
    with pytest.raises(CatalogUnavailableError):
        cache.require_snapshot()


def test_refresh_swaps_snapshot_and_reports_counts():
    store = MemoryCatalogStore(sample_products(), sample_synonyms())
    cache = CatalogCache(store, refresh_interval_sec=0)
    result = cache.refresh()
    assert result.to_dict()["productsLoaded"] == 4
    assert result.to_dict()["synonymsLoaded"] == 3
    snapshot = cache.require_snapshot()
    assert snapshot.products[0].name == "Card Holder"
    status = cache.status().to_dict()
    assert status["populated"] is True
    assert status["consecutiveFailures"] == 0
    assert status["lastRefresh"] is not None


def test_failed_refresh_keeps_previous_snapshot():
    store = MemoryCatalogStore(sample_products(), sample_synonyms())
    cache = CatalogCache(store, refresh_interval_sec=0)
    cache.refresh()
    before = cache.snapshot
    store.fail = True
    with pytest.raises(CatalogRefreshError) as excinfo:
        cache.refresh()
    assert excinfo.value.details == {"consecutiveFailures": 1}
    with pytest.raises(CatalogRefreshError):
        cache.refresh()
    assert cache.snapshot is before
    assert cache.consecutive_failures == 2
    assert "catalog unreachable" in cache.status().last_error
    store.fail = False
    cache.refresh()
    assert cache.consecutive_failures == 0
    assert cache.status().last_error is None


def test_reader_snapshot_is_unaffected_by_refresh():
    store = MemoryCatalogStore(sample_products(), sample_synonyms())
    cache = CatalogCache(store, refresh_interval_sec=0)
    cache.refresh()
    held = cache.snapshot
    store.products = store.products[:1]
    cache.refresh()
    assert len(held.products) == 4
    assert len(cache.snapshot.products) == 1


def test_start_survives_failed_initial_load():
    store = MemoryCatalogStore()
    store.fail = True
    cache = CatalogCache(store, refresh_interval_sec=0)
    cache.start()
    assert not cache.snapshot.populated
    assert cache.consecutive_failures == 1
    cache.stop()


def test_background_refresh_thread_stops():
    store = MemoryCatalogStore(sample_products(), sample_synonyms())
    cache = CatalogCache(store, refresh_interval_sec=60)
    cache.start()
    assert cache.snapshot.populated
    cache.stop(timeout=2)
    assert cache._thread is None
