"""Transport-level value types: requests, tagged response bodies, relay replies, cache entries."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ResourceKind(str, Enum):
    API_JSON = "api"
    PLAYLIST = "m3u"
    EPG_XML = "epg"


@dataclass(frozen=True)
class JsonBody:
    data: Any


@dataclass(frozen=True)
class TextBody:
    text: str


@dataclass(frozen=True)
class XmlBody:
    content: bytes

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


Body = Union[JsonBody, TextBody, XmlBody]


@dataclass(frozen=True)
class TransportRequest:
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    kind: ResourceKind = ResourceKind.API_JSON


@dataclass(frozen=True)
class RelayResponse:
    success: bool
    data: Any = None
    error: Optional[str] = None


@dataclass
class CacheEntry:
    payload: Any
    timestamp: float


class RelayRequest(BaseModel):
    """Body accepted by the relay endpoint (camelCase on the wire)."""
    model_config = ConfigDict(extra="allow")

    targetUrl: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None
