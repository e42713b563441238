"""Playlist routes — M3U file serving."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from tvfetch.dependencies import get_catalog_service
from tvfetch.errors import ParseFailure
from tvfetch.services.catalog_service import CatalogService
from tvfetch.services.m3u_service import generate_m3u, parse_m3u

router = APIRouter(tags=["playlist"])


@router.get("/api/playlist.m3u")
async def playlist(catalog: CatalogService = Depends(get_catalog_service)):
    content = await catalog.get_m3u_content()
    if content is None:
        return Response(content="Playlist unavailable", status_code=502)
    try:
        items = parse_m3u(content)
    except ParseFailure as e:
        return Response(content=str(e), status_code=502)
    return Response(
        content=generate_m3u(items),
        media_type="audio/x-mpegurl",
        headers={"Content-Disposition": 'attachment; filename="playlist.m3u"', "Cache-Control": "no-cache"},
    )
