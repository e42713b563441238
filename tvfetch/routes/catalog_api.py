"""Catalog routes — categories and stream listings."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from tvfetch.dependencies import get_catalog_service
from tvfetch.models.catalog import ContentType
from tvfetch.services.catalog_service import CatalogService

router = APIRouter(tags=["catalog"])

_STREAM_KINDS = {
    "live": ContentType.LIVE,
    "vod": ContentType.MOVIE,
    "movie": ContentType.MOVIE,
    "series": ContentType.SERIES,
}


@router.get("/api/categories/{content_type}")
async def get_categories(content_type: ContentType, catalog: CatalogService = Depends(get_catalog_service)):
    return (await catalog.get_categories(content_type)).to_dict()


@router.get("/api/streams/{kind}")
async def get_streams(
    kind: str,
    category_id: Optional[str] = None,
    catalog: CatalogService = Depends(get_catalog_service),
):
    content_type = _STREAM_KINDS.get(kind)
    if content_type is None:
        raise HTTPException(status_code=404, detail=f"Unknown stream kind '{kind}'")
    if content_type == ContentType.LIVE:
        listing = await catalog.get_live_streams(category_id)
    elif content_type == ContentType.MOVIE:
        listing = await catalog.get_vod_streams(category_id)
    else:
        listing = await catalog.get_series_streams(category_id)
    return listing.to_dict()
