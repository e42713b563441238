"""FastAPI dependency injection — provides services via Depends()."""
from __future__ import annotations

from fastapi import HTTPException, Request

from tvfetch.services.cache_service import CacheService
from tvfetch.services.catalog_service import CatalogService
from tvfetch.services.epg_service import EpgService
from tvfetch.services.http_client import HttpClientService


def get_http_client(request: Request) -> HttpClientService:
    return request.app.state.http_client


def get_cache_service(request: Request) -> CacheService:
    return request.app.state.cache_service


def get_catalog_service(request: Request) -> CatalogService:
    catalog = request.app.state.catalog_service
    if catalog is None:
        raise HTTPException(status_code=503, detail="Provider is not configured")
    return catalog


def get_epg_service(request: Request) -> EpgService:
    epg = request.app.state.epg_service
    if epg is None:
        raise HTTPException(status_code=503, detail="Provider is not configured")
    return epg
