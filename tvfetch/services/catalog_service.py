"""Catalog service — categories and live/VOD/series listings from either upstream shape."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

import httpx
from pydantic import TypeAdapter

from tvfetch.errors import FetchFailed, InvalidConfiguration, ParseFailure, TvFetchError
from tvfetch.models.catalog import (
    CATEGORY_ACTIONS,
    STREAM_ACTIONS,
    CategoryRecord,
    ContentType,
    StreamRecord,
)
from tvfetch.models.config import ProviderConfig, ProviderType, normalize_base_url
from tvfetch.models.listing import Listing
from tvfetch.models.transport import JsonBody, ResourceKind
from tvfetch.services.cache_service import make_cache_key
from tvfetch.services.m3u_service import M3U_HEADER, m3u_categories, m3u_to_streams

if TYPE_CHECKING:
    from tvfetch.services.cache_service import CacheService
    from tvfetch.services.fetcher import RetryingFetcher

logger = logging.getLogger(__name__)

PLAYLIST_FORMATS = ("ts", "m3u_plus", "m3u")

_STREAMS = TypeAdapter(list[StreamRecord])
_CATEGORIES = TypeAdapter(list[CategoryRecord])

# Cache key kinds per content type
_STREAM_KEY_KIND = {
    ContentType.LIVE: "live",
    ContentType.MOVIE: "vod",
    ContentType.SERIES: "series",
}


# ----------------------------------------------------------------------
# Field coercion for loosely-typed upstream JSON
# ----------------------------------------------------------------------

def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return _str(value[0]) if value else ""
    return str(value)


def _int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _genres(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(g).strip() for g in value if str(g).strip()]
    return [g.strip() for g in str(value).split(",") if g.strip()]


class CatalogService:
    """Catalog access for one provider account.

    Credentials are fixed for the lifetime of the instance. Every listing goes
    through the cache; failures come back as an empty :class:`Listing` with
    ``error`` set instead of raising.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        fetcher: "RetryingFetcher",
        cache: "CacheService",
    ):
        self.provider = provider
        self.fetcher = fetcher
        self.cache = cache
        self.provider_type = provider.provider_type
        self.username = provider.username
        self.password = provider.password
        if provider.base_url:
            self.base_url = normalize_base_url(provider.base_url)
        elif provider.provider_type == ProviderType.M3U_URL and provider.playlist_url:
            normalize_base_url(provider.playlist_url)
            self.base_url = provider.playlist_url
        else:
            raise InvalidConfiguration("Provider needs a base_url (or a playlist_url in m3u_url mode)")

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    def _key(self, kind: str, selector: Optional[str] = None) -> str:
        return make_cache_key(kind, self.base_url, self.username, selector)

    def _api_url(self, action: str, category_id: Optional[str] = None) -> str:
        params = {"username": self.username, "password": self.password, "action": action}
        if category_id:
            params["category_id"] = category_id
        return str(httpx.URL(f"{self.base_url}/player_api.php", params=params))

    def _playlist_url(self, output: str) -> str:
        params = {"username": self.username, "password": self.password, "type": "m3u_plus", "output": output}
        return str(httpx.URL(f"{self.base_url}/get.php", params=params))

    def build_stream_url(self, content_type: ContentType, stream_id: str, extension: str = "mp4") -> str:
        if content_type == ContentType.LIVE:
            return f"{self.base_url}/live/{self.username}/{self.password}/{stream_id}.ts"
        if content_type == ContentType.MOVIE:
            return f"{self.base_url}/movie/{self.username}/{self.password}/{stream_id}.{extension or 'mp4'}"
        return ""

    # ------------------------------------------------------------------
    # Upstream access
    # ------------------------------------------------------------------

    async def _fetch_api_list(self, url: str) -> list:
        body = await self.fetcher.fetch(url, kind=ResourceKind.API_JSON)
        if not isinstance(body, JsonBody):
            raise ParseFailure(f"Expected JSON from {url.split('?')[0]}, got {type(body).__name__}")
        if not isinstance(body.data, list):
            raise ParseFailure(f"Expected a JSON list, got {type(body.data).__name__}")
        return body.data

    async def _download_playlist(self) -> str:
        if self.provider_type == ProviderType.M3U_URL and self.provider.playlist_url:
            candidates = [self.provider.playlist_url]
        else:
            candidates = [self._playlist_url(fmt) for fmt in PLAYLIST_FORMATS]

        last_error: Optional[Exception] = None
        for url in candidates:
            logger.info(f"Trying playlist {url.split('?')[0]}")
            try:
                text = await self.fetcher.fetch_text(url, kind=ResourceKind.PLAYLIST)
            except FetchFailed as e:
                last_error = e
                logger.error(f"Error fetching playlist: {e}")
                continue
            if text.strip().startswith(M3U_HEADER):
                return text
            last_error = ParseFailure("response does not start with #EXTM3U")
        raise FetchFailed(self.base_url, last_error or ParseFailure("no valid M3U content received"))

    async def get_m3u_content(self) -> Optional[str]:
        """The raw playlist body, reused for the whole session once fetched."""
        held = self.cache.held_playlist
        if held is not None:
            logger.debug("Using held playlist body")
            return held
        try:
            content = await self.cache.get_or_fetch(self._key("m3u"), self._download_playlist)
        except TvFetchError as e:
            logger.error(f"Error getting M3U content: {e}")
            return None
        self.cache.hold_playlist(content)
        return content

    async def _require_playlist(self) -> str:
        content = await self.get_m3u_content()
        if content is None:
            raise FetchFailed(self.base_url, ParseFailure("playlist unavailable"))
        return content

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def map_stream(self, item: dict, content_type: ContentType) -> StreamRecord:
        stream_id = _str(item.get("stream_id") or item.get("series_id"))
        extension = _str(item.get("container_extension")) or "mp4"
        return StreamRecord(
            id=stream_id,
            name=_str(item.get("name")),
            url=self.build_stream_url(content_type, stream_id, extension) if stream_id else "",
            cover=_str(item.get("cover") or item.get("stream_icon")),
            thumbnail=_str(item.get("stream_icon") or item.get("cover")),
            container_extension=extension,
            direct_source=_str(item.get("direct_source")),
            stream_id=stream_id,
            category_id=_str(item.get("category_id")),
            epg_channel_id=_str(item.get("epg_channel_id")),
            username=self.username,
            password=self.password,
            description=_str(item.get("plot") or item.get("description")),
            rating=_float(item.get("rating")),
            year=_str(item.get("year") or item.get("releaseDate")),
            genres=_genres(item.get("genre")),
            episode_count=_int(item.get("episode_count")),
            episode_run=_int(item.get("episode_run_time") or item.get("episode_run")),
            last_modified=_str(item.get("last_modified")),
            status=_str(item.get("status")),
            backdrop_path=_str(item.get("backdrop_path")),
            duration=_int(item.get("duration_secs") or item.get("duration")),
            director=_str(item.get("director")),
            actors=_str(item.get("cast") or item.get("actors")),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_categories(self, content_type: ContentType | str) -> Listing[CategoryRecord]:
        content_type = ContentType(content_type)

        async def produce() -> list[CategoryRecord]:
            if self.provider_type == ProviderType.XTREAM:
                data = await self._fetch_api_list(self._api_url(CATEGORY_ACTIONS[content_type]))
                return [
                    CategoryRecord(id=_str(c.get("category_id")), name=_str(c.get("category_name")), type=content_type)
                    for c in data
                    if isinstance(c, dict)
                ]
            return m3u_categories(await self._require_playlist(), content_type)

        try:
            categories = await self.cache.get_or_fetch(self._key("categories", content_type.value), produce, _CATEGORIES)
        except TvFetchError as e:
            logger.error(f"Failed to load {content_type.value} categories: {e}")
            return Listing(error=str(e))
        return Listing(categories)

    async def _get_streams(self, content_type: ContentType, category_id: Optional[str]) -> Listing[StreamRecord]:
        async def produce() -> list[StreamRecord]:
            if self.provider_type == ProviderType.XTREAM:
                data = await self._fetch_api_list(self._api_url(STREAM_ACTIONS[content_type], category_id))
                return [self.map_stream(item, content_type) for item in data if isinstance(item, dict)]
            return m3u_to_streams(
                await self._require_playlist(), content_type, category_id, self.username, self.password
            )

        key = self._key(_STREAM_KEY_KIND[content_type], category_id or "all")
        try:
            streams = await self.cache.get_or_fetch(key, produce, _STREAMS)
        except TvFetchError as e:
            logger.error(f"Failed to load {content_type.value} streams: {e}")
            return Listing(error=str(e))
        logger.info(f"{len(streams)} {content_type.value} streams (category={category_id or 'all'})")
        return Listing(streams)

    async def get_live_streams(self, category_id: Optional[str] = None) -> Listing[StreamRecord]:
        return await self._get_streams(ContentType.LIVE, category_id)

    async def get_vod_streams(self, category_id: Optional[str] = None) -> Listing[StreamRecord]:
        return await self._get_streams(ContentType.MOVIE, category_id)

    async def get_series_streams(self, category_id: Optional[str] = None) -> Listing[StreamRecord]:
        return await self._get_streams(ContentType.SERIES, category_id)

    async def find_live_stream(self, stream_id: str) -> Optional[StreamRecord]:
        for stream in await self.get_live_streams():
            if stream.id == stream_id or stream.stream_id == stream_id:
                return stream
        return None

    def clear_cache(self) -> int:
        return self.cache.clear_cache()

