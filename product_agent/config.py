from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    """Configuration container for auth, catalog, extraction, and ingestion."""
    api_key: str
    gemini_api_key: str
    gemini_model: str
    catalog_path: Path
    prompts_dir: Path
    cache_refresh_interval_sec: float
    extractor_enabled: bool
    extractor_timeout_sec: float
    health_max_refresh_failures: int
    scraper_base_url: str
    scraper_timeout_sec: float
    scraper_default_limit: int
    log_level: str
    host: str
    port: int


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid numeric env values raise ValueError.
    If Removed: App cannot configure the catalog, extractor, or scraper.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve catalog and prompt paths, then build Settings.
    catalog_path = os.getenv("CATALOG_PATH")
    if catalog_path:
        catalog_file = Path(catalog_path)
    else:
        catalog_file = (BASE_DIR / ".." / "resources" / "catalog.json").resolve()

    return Settings(
        api_key=os.getenv("API_KEY", ""),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        catalog_path=catalog_file,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        cache_refresh_interval_sec=float(os.getenv("CACHE_REFRESH_INTERVAL_SEC", "300")),
        extractor_enabled=os.getenv("EXTRACTOR_ENABLED", "1") != "0",
        extractor_timeout_sec=float(os.getenv("EXTRACTOR_TIMEOUT_SEC", "8")),
        health_max_refresh_failures=int(os.getenv("HEALTH_MAX_REFRESH_FAILURES", "3")),
        scraper_base_url=os.getenv("SCRAPER_BASE_URL", "https://www.easyprintsg.com"),
        scraper_timeout_sec=float(os.getenv("SCRAPER_TIMEOUT_SEC", "20")),
        scraper_default_limit=int(os.getenv("SCRAPER_DEFAULT_LIMIT", "100")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )
