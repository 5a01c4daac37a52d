from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .catalog_cache import CatalogCache
from .catalog_store import CatalogStore, JsonCatalogStore
from .config import Settings, load_settings
from .errors import CatalogRefreshError, InvalidRequestError, ProductAgentError, UnauthorizedError
from .models import (
    AvailabilityRequest,
    ErrorBody,
    ErrorEnvelope,
    MultiAvailabilityRequest,
    ResolveRequest,
    ScraperRunRequest,
    SearchRequest,
    SuccessEnvelope,
)
from .query_extractor import QueryExtractor, ResilientQueryExtractor, build_query_extractor
from .resolution_pipeline import ResolutionPipeline
from .scraper import CatalogScraper

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = (BASE_DIR / ".." / ".env").resolve()
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("product_agent").setLevel(log_level)
logger = logging.getLogger("product_agent.api")

PUBLIC_PATHS = {"/health"}
HTTP_ERROR_CODES = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


def ok(data: Any) -> Dict[str, Any]:
    return SuccessEnvelope(data=data).model_dump()


def error_response(status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    body = ErrorEnvelope(error=ErrorBody(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[CatalogStore] = None,
    extractor: Optional[QueryExtractor] = None,
    scraper: Optional[CatalogScraper] = None,
) -> FastAPI:
    """Purpose: Build the HTTP application and wire the catalog, extractor and crawler.
    Inputs/Outputs: Optional Settings, store, extractor and scraper overrides; returns
        a FastAPI app.
    Side Effects / State: Creates the CatalogCache; its refresh thread starts and stops
        with the app lifespan.
    Dependencies: JsonCatalogStore, CatalogCache, ResolutionPipeline, CatalogScraper.
    Failure Modes: Invalid numeric env values raise ValueError from load_settings.
    If Removed: The service has no HTTP surface.
    Testing Notes: Pass an in-memory store and the fallback extractor; use TestClient
        as a context manager so the lifespan loads the catalog.
    """
    # Collaborators default to the configured implementations.
    settings = settings or load_settings()
    store = store or JsonCatalogStore(settings.catalog_path)
    extractor = extractor or build_query_extractor(settings)
    scraper = scraper or CatalogScraper(store, settings.scraper_base_url, timeout_sec=settings.scraper_timeout_sec)
    cache = CatalogCache(store, refresh_interval_sec=settings.cache_refresh_interval_sec)
    pipeline = ResolutionPipeline(cache, extractor)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Initial load plus the periodic refresh thread.
        cache.start()
        logger.info("startup catalog=%s refresh_interval_sec=%s", settings.catalog_path, settings.cache_refresh_interval_sec)
        yield
        cache.stop()
        logger.info("shutdown")

    app = FastAPI(title="Product Availability Agent", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.cache = cache
    app.state.pipeline = pipeline

    @app.middleware("http")
    async def authenticate(request: Request, call_next):
        # Reject before routing, body parsing or validation.
        if request.url.path in PUBLIC_PATHS or not request.url.path.startswith("/api/"):
            return await call_next(request)
        provided = request.headers.get("x-api-key") or request.query_params.get("api_key")
        if not provided:
            error = UnauthorizedError("Missing API key. Provide X-API-Key header or api_key query parameter.")
        elif not settings.api_key or provided != settings.api_key:
            error = UnauthorizedError("Invalid API key.")
        else:
            return await call_next(request)
        logger.warning("auth=rejected method=%s path=%s", request.method, request.url.path)
        return error_response(error.status_code, error.code, error.message)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "method=%s path=%s status=%s elapsed_ms=%s",
            request.method,
            request.url.path,
            response.status_code,
            int((time.perf_counter() - started) * 1000),
        )
        return response

    @app.exception_handler(ProductAgentError)
    async def handle_product_agent_error(request: Request, exc: ProductAgentError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
        return error_response(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(part) for part in error.get("loc", ())[1:]), "message": error.get("msg", "")}
            for error in exc.errors()
        ]
        logger.warning("path=%s code=%s errors=%s", request.url.path, InvalidRequestError.code, len(errors))
        return error_response(400, InvalidRequestError.code, "Request validation failed", {"errors": errors})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return error_response(exc.status_code, code, message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("path=%s unhandled_error=%s", request.url.path, type(exc).__name__)
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Purpose: Report catalog cache state for monitors.
        Inputs/Outputs: No inputs; returns status, timestamp, cache and extractor info.
        Side Effects / State: None.
        Dependencies: CatalogCache.status.
        Failure Modes: None; degraded state is reported, not raised.
        If Removed: Operators cannot see a stale or empty catalog.
        Testing Notes: Before the first refresh status is "degraded".
        """
        # Degraded when never loaded or when refreshes keep failing.
        status = cache.status()
        healthy = status.populated and status.consecutive_failures < settings.health_max_refresh_failures
        extractor_mode = "rules"
        if isinstance(extractor, ResilientQueryExtractor) and extractor.has_primary:
            extractor_mode = "gemini"
        return ok(
            {
                "status": "ok" if healthy else "degraded",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "cache": status.to_dict(),
                "extractor": extractor_mode,
            }
        )

    @app.post("/api/product/search")
    def search_products(request: SearchRequest) -> Dict[str, Any]:
        return ok(pipeline.search(request.query, include_sourcing=request.include_sourcing))

    @app.post("/api/product/availability")
    def check_availability(request: AvailabilityRequest) -> Dict[str, Any]:
        return ok(pipeline.check_availability(request.query, quantity=request.quantity, urgent=request.urgent))

    @app.post("/api/product/availability-multi")
    def check_multi_availability(request: MultiAvailabilityRequest) -> Dict[str, Any]:
        return ok(pipeline.check_multi_availability(request.query, urgent=request.urgent))

    @app.post("/api/product/resolve")
    def resolve_terms(request: ResolveRequest) -> Dict[str, Any]:
        return ok(pipeline.resolve_terms(request.terms))

    @app.get("/api/product/synonyms")
    def list_synonyms() -> Dict[str, Any]:
        return ok(pipeline.list_synonyms())

    @app.post("/api/cache/refresh")
    def refresh_cache() -> Dict[str, Any]:
        return ok(cache.refresh().to_dict())

    @app.post("/api/scraper/run")
    def run_scraper(request: ScraperRunRequest) -> Dict[str, Any]:
        """Purpose: Run a storefront crawl and reload the catalog afterwards.
        Inputs/Outputs: Input is ScraperRunRequest; returns mode, timestamps, stats and
            whether the cache was refreshed.
        Side Effects / State: Writes the catalog store unless dryRun; refreshes cache.
        Dependencies: CatalogScraper.run and CatalogCache.refresh.
        Failure Modes: INVALID_REQUEST for bad mode; INGESTION_FAILED when the entry
            page is unreachable. A failed post-run refresh is reported, not raised.
        If Removed: Ingestion is only available from the command line.
        Testing Notes: Dry runs never refresh the cache.
        """
        # Crawl first; reload the catalog only when rows may have changed.
        started_at = datetime.now(timezone.utc).isoformat()
        stats = scraper.run(
            mode=request.mode,
            dry_run=request.dry_run,
            category_url=request.category_url,
            category_name=request.category_name,
            limit=request.limit or settings.scraper_default_limit,
        )
        completed_at = datetime.now(timezone.utc).isoformat()
        cache_refreshed = False
        if not request.dry_run:
            try:
                cache.refresh()
                cache_refreshed = True
            except CatalogRefreshError:
                logger.warning("scraper_run=complete cache_refreshed=false")
        return ok(
            {
                "mode": request.mode,
                "startedAt": started_at,
                "completedAt": completed_at,
                "stats": stats.to_dict(),
                "cacheRefreshed": cache_refreshed,
            }
        )

    return app


app = create_app()


def main() -> None:
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
