"""Catalog records: categories, streams and M3U playlist entries."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ContentType(str, Enum):
    LIVE = "live"
    MOVIE = "movie"
    SERIES = "series"


# Xtream Codes actions per content type
CATEGORY_ACTIONS = {
    ContentType.LIVE: "get_live_categories",
    ContentType.MOVIE: "get_vod_categories",
    ContentType.SERIES: "get_series_categories",
}

STREAM_ACTIONS = {
    ContentType.LIVE: "get_live_streams",
    ContentType.MOVIE: "get_vod_streams",
    ContentType.SERIES: "get_series",
}


class CategoryRecord(BaseModel):
    """A category as listed by the provider."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: ContentType = ContentType.LIVE


class StreamRecord(BaseModel):
    """A live channel, movie or series, normalized from either upstream shape."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    url: str = ""
    cover: str = ""
    thumbnail: str = ""
    container_extension: str = "mp4"
    direct_source: str = ""
    stream_id: str = ""
    category_id: str = ""
    epg_channel_id: str = ""
    username: str = ""
    password: str = ""
    description: str = ""
    rating: float = 0.0
    year: str = ""
    genres: list[str] = Field(default_factory=list)
    episode_count: int = 0
    episode_run: int = 0
    last_modified: str = ""
    status: str = ""
    backdrop_path: str = ""
    duration: int = 0
    director: str = ""
    actors: str = ""


class M3UItem(BaseModel):
    """One ``#EXTINF`` entry of an M3U playlist."""
    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    group: str = "Uncategorized"
    type: ContentType = ContentType.LIVE
    logo: Optional[str] = None
    tvg_id: Optional[str] = None
    tvg_name: Optional[str] = None
    duration: str = "-1"
