"""EPG routes."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from tvfetch.dependencies import get_epg_service
from tvfetch.services.epg_service import EpgService

router = APIRouter(tags=["epg"])


@router.get("/api/epg")
async def get_epg(channel_id: Optional[str] = None, epg: EpgService = Depends(get_epg_service)):
    return (await epg.get_epg(channel_id)).to_dict()


@router.get("/api/epg/now-next/{channel_id}")
async def get_now_next(channel_id: str, epg: EpgService = Depends(get_epg_service)):
    return await epg.get_now_next(channel_id)


@router.get("/api/epg/upcoming/{channel_id}")
async def get_upcoming(
    channel_id: str,
    hours: float = Query(24, gt=0, le=168),
    epg: EpgService = Depends(get_epg_service),
):
    return (await epg.get_upcoming(channel_id, hours=hours)).to_dict()


@router.get("/api/epg/search")
async def search_epg(q: str = Query(..., min_length=1), epg: EpgService = Depends(get_epg_service)):
    return (await epg.search(q)).to_dict()


@router.post("/api/epg/refresh")
async def refresh_epg(epg: EpgService = Depends(get_epg_service)):
    return {"success": await epg.force_refresh()}
