"""EPG service — guide acquisition, caching and channel resolution."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from tvfetch.errors import TvFetchError
from tvfetch.models.config import ProviderConfig, normalize_base_url
from tvfetch.models.epg import EPGChannel, EPGProgram
from tvfetch.models.listing import Listing
from tvfetch.services.cache_service import make_cache_key
from tvfetch.services.channel_matcher import find_matching_channel
from tvfetch.services.xmltv import (
    get_current_program,
    get_next_program,
    get_upcoming_programs,
    parse_epg_timestamp,
    parse_xmltv,
    search_programs,
)

if TYPE_CHECKING:
    from tvfetch.services.cache_service import CacheService
    from tvfetch.services.catalog_service import CatalogService
    from tvfetch.services.fetcher import RetryingFetcher

logger = logging.getLogger(__name__)

_CHANNELS = TypeAdapter(list[EPGChannel])


class EpgService:
    """Downloads the provider's XMLTV guide once per TTL and answers channel lookups on it."""

    def __init__(
        self,
        provider: ProviderConfig,
        fetcher: "RetryingFetcher",
        cache: "CacheService",
        catalog: "CatalogService | None" = None,
    ):
        self.provider = provider
        self.fetcher = fetcher
        self.cache = cache
        self.catalog = catalog
        self.base_url = normalize_base_url(provider.base_url) if provider.base_url else None
        self._epg_lock = asyncio.Lock()
        self._guide: Optional[list[EPGChannel]] = None
        self._guide_loaded_at = 0.0
        self._guide_generation = -1

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    @property
    def epg_url(self) -> Optional[str]:
        if not self.base_url:
            return None
        params = {"username": self.provider.username, "password": self.provider.password}
        return str(httpx.URL(f"{self.base_url}/xmltv.php", params=params))

    def _key_prefix(self) -> str:
        return make_cache_key("epg", self.base_url or "", self.provider.username)

    async def _download_guide(self) -> list[EPGChannel]:
        url = self.epg_url
        if url is None:
            raise TvFetchError("No guide URL configured for this provider")
        content = await self.fetcher.fetch_epg(url)
        guide = await asyncio.to_thread(parse_xmltv, content)
        with_programs = sum(1 for c in guide.channels if not c.is_empty)
        logger.info(f"EPG ready: {len(guide.channels)} channels, {with_programs} with programmes")
        return guide.channels

    def _held_guide(self) -> Optional[list[EPGChannel]]:
        if self._guide is None or self._guide_generation != self.cache.generation:
            return None
        if self.cache.clock() - self._guide_loaded_at >= self.cache.ttl:
            logger.debug("In-memory EPG expired")
            return None
        return self._guide

    def _read_persisted(self, key: str) -> Optional[tuple[list[EPGChannel], float]]:
        """Decode and validate the stored guide; runs in a worker thread."""
        entry = self.cache.get_fresh(key)
        if entry is None:
            return None
        try:
            return _CHANNELS.validate_python(entry.payload), entry.timestamp
        except ValidationError as e:
            logger.warning(f"Stored EPG no longer validates, downloading again: {e.error_count()} error(s)")
            return None

    async def _load_guide(self) -> list[EPGChannel]:
        held = self._held_guide()
        if held is not None:
            return held

        # one download at a time; a second caller waits and then reads the held copy
        async with self._epg_lock:
            held = self._held_guide()
            if held is not None:
                return held

            generation = self.cache.generation
            key = f"{self._key_prefix()}:all"
            persisted = await asyncio.to_thread(self._read_persisted, key)
            if persisted is not None:
                channels, loaded_at = persisted
                logger.info(f"EPG restored from cache ({len(channels)} channels)")
            else:
                channels = await self._download_guide()
                loaded_at = self.cache.clock()
                await asyncio.to_thread(self.cache.put, key, channels)

            self._guide = channels
            self._guide_loaded_at = loaded_at
            self._guide_generation = generation
            return channels

    async def force_refresh(self) -> bool:
        """Drop the cached guide and download it again. Never raises."""
        self.cache.invalidate(f"{self._key_prefix()}:")
        self._guide = None
        try:
            channels = await self._load_guide()
        except Exception as e:
            logger.error(f"EPG refresh failed: {e}")
            return False
        logger.info(f"EPG refreshed ({len(channels)} channels)")
        return True

    # ------------------------------------------------------------------
    # Channel resolution
    # ------------------------------------------------------------------

    async def resolve_channel(self, channel_id: str, channels: list[EPGChannel]) -> Optional[EPGChannel]:
        """Guide channel for *channel_id*, which may be a guide id or a catalog stream id."""
        for channel in channels:
            if channel.id == channel_id:
                return channel

        if self.catalog is not None:
            stream = await self.catalog.find_live_stream(channel_id)
            if stream is not None:
                if stream.epg_channel_id:
                    for channel in channels:
                        if channel.id == stream.epg_channel_id:
                            return channel
                match = find_matching_channel(stream.name, channels)
                if match is not None:
                    return match

        return find_matching_channel(channel_id, channels)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_epg(self, channel_id: Optional[str] = None) -> Listing[EPGChannel]:
        try:
            channels = await self._load_guide()
        except TvFetchError as e:
            logger.error(f"EPG unavailable: {e}")
            return Listing(error=str(e))

        # channels without programmes never leave the service
        visible = sorted((c for c in channels if not c.is_empty), key=lambda c: c.name.lower())
        if channel_id is None:
            return Listing(visible)

        channel = await self.resolve_channel(channel_id, visible)
        if channel is None:
            logger.info(f"No EPG channel found for '{channel_id}'")
            return Listing()
        return Listing([channel])

    async def get_upcoming(self, channel_id: str, hours: float = 24, now: Optional[datetime] = None) -> Listing[EPGProgram]:
        found = await self.get_epg(channel_id)
        if not found:
            return Listing(error=found.error)
        return Listing(get_upcoming_programs(found[0].programs, hours=hours, now=now))

    async def search(self, query: str) -> Listing[EPGProgram]:
        found = await self.get_epg()
        if found.error:
            return Listing(error=found.error)
        return Listing(search_programs(found, query))

    async def get_now_next(self, channel_id: str, now: Optional[datetime] = None) -> dict:
        """Current and next programme for a channel.

        Returns:
            Dict with 'current' and 'next' programme info, or None values if unavailable.
        """
        result: dict = {"channel": None, "current": None, "next": None}
        found = await self.get_epg(channel_id)
        if not found:
            return result

        channel = found[0]
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        result["channel"] = {"id": channel.id, "name": channel.name, "icon": channel.icon}

        current = get_current_program(channel.programs, now)
        if current:
            start = parse_epg_timestamp(current.start_time)
            stop = parse_epg_timestamp(current.end_time)
            duration = (stop - start).total_seconds()
            elapsed = (now - start).total_seconds()
            progress_pct = round((elapsed / duration) * 100, 1) if duration > 0 else 0
            result["current"] = {
                "title": current.title,
                "description": current.description or "",
                "start": int(start.timestamp()),
                "stop": int(stop.timestamp()),
                "progress_pct": min(progress_pct, 100.0),
            }

        upcoming = get_next_program(channel.programs, now)
        if upcoming:
            result["next"] = {
                "title": upcoming.title,
                "start": int(parse_epg_timestamp(upcoming.start_time).timestamp()),
            }
        return result
