"""Pydantic models for application configuration."""
from __future__ import annotations

from enum import Enum
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from tvfetch.errors import InvalidConfiguration

# Public relays tried, in order, after every other transport has failed.
DEFAULT_CORS_PROXIES = [
    "https://api.allorigins.win/raw?url=",
    "https://corsproxy.io/?",
    "https://cors-anywhere.herokuapp.com/",
]


class ProviderType(str, Enum):
    XTREAM = "xtream"
    M3U_URL = "m3u_url"


class FetchOptions(BaseModel):
    """Retry, pacing, cache and transport settings."""
    model_config = ConfigDict(extra="allow")

    max_retries: int = 3
    initial_delay: float = 1.0  # seconds, doubled on each retry
    cache_ttl: int = 3600
    use_proxy: bool = True
    rate_limit_delay: float = 0.5
    max_concurrent_requests: int = 2
    request_timeout: float = 30.0
    rewrite_proxy_url: Optional[str] = None  # e.g. https://relay.example/xtream
    relay_url: Optional[str] = None  # e.g. http://localhost:3000/api/proxy
    cors_proxies: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_PROXIES))


class ProviderConfig(BaseModel):
    """An IPTV provider (Xtream Codes panel or raw M3U playlist)."""
    model_config = ConfigDict(extra="allow")

    base_url: str = ""
    username: str = ""
    password: str = ""
    provider_type: ProviderType = ProviderType.XTREAM
    playlist_url: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        if self.provider_type == ProviderType.M3U_URL and self.playlist_url:
            return True
        return bool(self.base_url and self.username and self.password)


class AppConfig(BaseModel):
    """Root application configuration."""
    model_config = ConfigDict(extra="allow")

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    options: FetchOptions = Field(default_factory=FetchOptions)


def normalize_base_url(base_url: str) -> str:
    """Strip a trailing slash and ``/player_api.php``; reject anything that is not an absolute http(s) URL."""
    normalized = (base_url or "").strip().rstrip("/")
    if normalized.endswith("/player_api.php"):
        normalized = normalized[: -len("/player_api.php")]
    try:
        url = httpx.URL(normalized)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidConfiguration(f"Invalid server URL provided: {base_url!r}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidConfiguration(f"Invalid server URL provided: {base_url!r}")
    return normalized
