from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .catalog_store import CatalogStore, Product, Synonym
from .errors import CatalogRefreshError, CatalogUnavailableError

logger = logging.getLogger("product_agent.cache")


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable view of the catalog served to readers between refreshes."""
    products: Tuple[Product, ...] = ()
    synonyms: Tuple[Synonym, ...] = ()
    refreshed_at: Optional[datetime] = None

    @property
    def populated(self) -> bool:
        return self.refreshed_at is not None


@dataclass
class RefreshResult:
    products_loaded: int
    synonyms_loaded: int
    refresh_time_ms: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "productsLoaded": self.products_loaded,
            "synonymsLoaded": self.synonyms_loaded,
            "refreshTimeMs": self.refresh_time_ms,
        }


@dataclass
class CacheStatus:
    populated: bool
    products: int
    synonyms: int
    last_refresh: Optional[datetime]
    last_error: Optional[str]
    consecutive_failures: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "populated": self.populated,
            "products": self.products,
            "synonyms": self.synonyms,
            "lastRefresh": self.last_refresh.isoformat() if self.last_refresh else None,
            "lastError": self.last_error,
            "consecutiveFailures": self.consecutive_failures,
        }


class CatalogCache:
    """Holds the current catalog snapshot and refreshes it from the store.

    Readers take ``snapshot`` once per request and keep using it; a refresh builds a
    new snapshot and swaps the reference only after both datasets loaded. Refreshes
    are serialized with a lock, reads never block.
    """

    def __init__(self, store: CatalogStore, refresh_interval_sec: float = 300.0) -> None:
        self._store = store
        self._refresh_interval_sec = refresh_interval_sec
        self._snapshot = CatalogSnapshot()
        self._refresh_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._consecutive_failures = 0
        self._last_error: Optional[str] = None

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def require_snapshot(self) -> CatalogSnapshot:
        """Return the current snapshot or raise when no refresh ever succeeded."""
        snapshot = self._snapshot
        if not snapshot.populated:
            raise CatalogUnavailableError("Product catalog has not been loaded yet")
        return snapshot

    def refresh(self) -> RefreshResult:
        """Purpose: Reload products and synonyms from the store and swap the snapshot.
        Inputs/Outputs: No inputs; returns RefreshResult with counts and duration.
        Side Effects / State: Replaces the snapshot on success; on failure keeps the old
            snapshot, bumps the consecutive-failure counter and records the error.
        Dependencies: Uses CatalogStore.list_products/list_synonyms.
        Failure Modes: Raises CatalogRefreshError wrapping the store failure.
        If Removed: The cache is never populated and every query fails.
        Testing Notes: A failing store after a good refresh leaves the old snapshot.
        """
        # Build the new snapshot fully before publishing it.
        with self._refresh_lock:
            started = time.perf_counter()
            try:
                products = tuple(self._store.list_products())
                synonyms = tuple(self._store.list_synonyms())
            except Exception as exc:
                self._consecutive_failures += 1
                self._last_error = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "cache_refresh=failed consecutive_failures=%s error=%s",
                    self._consecutive_failures,
                    self._last_error,
                )
                raise CatalogRefreshError(
                    "Catalog refresh failed; serving the previous catalog",
                    details={"consecutiveFailures": self._consecutive_failures},
                ) from exc
            self._snapshot = CatalogSnapshot(
                products=products,
                synonyms=synonyms,
                refreshed_at=datetime.now(timezone.utc),
            )
            self._consecutive_failures = 0
            self._last_error = None
            elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "cache_refresh=success products=%s synonyms=%s elapsed_ms=%s",
            len(products),
            len(synonyms),
            elapsed_ms,
        )
        return RefreshResult(
            products_loaded=len(products),
            synonyms_loaded=len(synonyms),
            refresh_time_ms=elapsed_ms,
        )

    def status(self) -> CacheStatus:
        snapshot = self._snapshot
        return CacheStatus(
            populated=snapshot.populated,
            products=len(snapshot.products),
            synonyms=len(snapshot.synonyms),
            last_refresh=snapshot.refreshed_at,
            last_error=self._last_error,
            consecutive_failures=self._consecutive_failures,
        )

    def start(self) -> None:
        """Purpose: Load the catalog once and start the periodic refresh thread.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Spawns a daemon thread when the interval is positive.
        Dependencies: Uses refresh and threading.Event for the sleep/stop signal.
        Failure Modes: A failed initial load is logged; the cache then reports
            unpopulated until a later refresh succeeds.
        If Removed: The service only sees the catalog after a forced refresh.
        Testing Notes: Call stop() afterwards; the thread exits promptly.
        """
        # Initial load is best effort so the service can still report health.
        try:
            self.refresh()
        except CatalogRefreshError:
            logger.warning("cache_start=degraded reason=initial_refresh_failed")
        if self._refresh_interval_sec <= 0 or self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._refresh_loop, name="catalog-refresh", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _refresh_loop(self) -> None:
        while not self._stop_event.wait(self._refresh_interval_sec):
            try:
                self.refresh()
            except CatalogRefreshError:
                # Already logged; the next tick retries.
                continue
