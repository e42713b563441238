"""tvfetch application factory — wires the fetch engine and exposes it over HTTP."""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from tvfetch.database import DB_NAME
from tvfetch.errors import InvalidConfiguration
from tvfetch.routes import cache_api, catalog_api, epg, health, playlist, proxy
from tvfetch.services.cache_service import CacheService
from tvfetch.services.catalog_service import CatalogService
from tvfetch.services.config_service import ConfigService
from tvfetch.services.epg_service import EpgService
from tvfetch.services.fetcher import RetryingFetcher
from tvfetch.services.http_client import HttpClientService
from tvfetch.services.rate_limiter import RequestLimiter
from tvfetch.services.relay import HttpRelay
from tvfetch.services.store import SqliteStore
from tvfetch.services.transport import TransportChain

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"

# Data directory - use environment variable or default to /data (Docker) or ./data (local)
DATA_DIR = os.environ.get("DATA_DIR", "/data" if os.path.exists("/data") else "./data")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles shutdown of the shared HTTP client"""
    provider = app.state.config_service.provider
    if app.state.catalog_service is None:
        logger.warning("No provider configured; catalog and EPG routes will answer 503")
    else:
        logger.info(f"tvfetch {APP_VERSION} serving {provider.provider_type.value} provider {app.state.catalog_service.base_url}")
    yield
    await app.state.http_client.close()
    logger.info("Application shutdown complete")


def create_app(data_dir: str = DATA_DIR, http_client: Optional[HttpClientService] = None) -> FastAPI:
    """Build a fully-wired FastAPI app reading its config from *data_dir*.

    *http_client* lets tests inject an ``HttpClientService`` backed by an
    ``httpx.MockTransport``.
    """
    os.makedirs(data_dir, exist_ok=True)
    cfg = ConfigService(data_dir)
    cfg.load()
    options = cfg.options

    http = http_client or HttpClientService(timeout=options.request_timeout)
    cache = CacheService(SqliteStore(os.path.join(data_dir, DB_NAME)), ttl=options.cache_ttl)
    limiter = RequestLimiter(max_concurrent=options.max_concurrent_requests, min_delay=options.rate_limit_delay)
    relay = HttpRelay(options.relay_url, http) if options.relay_url else None
    chain = TransportChain(
        http,
        rewrite_proxy_url=options.rewrite_proxy_url,
        relay=relay,
        cors_proxies=options.cors_proxies,
        use_proxy=options.use_proxy,
    )
    fetcher = RetryingFetcher(chain, limiter, max_retries=options.max_retries, initial_delay=options.initial_delay)

    catalog = None
    epg_svc = None
    if cfg.provider.is_configured:
        try:
            catalog = CatalogService(cfg.provider, fetcher, cache)
            epg_svc = EpgService(cfg.provider, fetcher, cache, catalog)
        except InvalidConfiguration as e:
            logger.error(f"Provider configuration rejected: {e}")
            catalog = None
            epg_svc = None

    app = FastAPI(title="tvfetch", version=APP_VERSION, lifespan=lifespan)

    # Attach state for DI
    app.state.config_service = cfg
    app.state.http_client = http
    app.state.cache_service = cache
    app.state.request_limiter = limiter
    app.state.fetcher = fetcher
    app.state.catalog_service = catalog
    app.state.epg_service = epg_svc

    # UTF-8 charset middleware
    @app.middleware("http")
    async def add_utf8_charset(request: Request, call_next):
        response = await call_next(request)
        ct = response.headers.get("content-type", "")
        if "application/json" in ct and "charset" not in ct:
            response.headers["content-type"] = "application/json; charset=utf-8"
        return response

    for r in (health, catalog_api, epg, cache_api, playlist, proxy):
        app.include_router(r.router)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app, factory=True, host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
