"""Cache management API routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from tvfetch.dependencies import get_cache_service
from tvfetch.services.cache_service import CacheService

router = APIRouter(tags=["cache"])


@router.post("/api/cache/clear")
async def clear_cache(cache: CacheService = Depends(get_cache_service)):
    removed = cache.clear_cache()
    return {"status": "ok", "message": "Cache cleared", "removed": removed}
