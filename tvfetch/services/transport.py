"""Transport fallback chain — one logical request, several physical routes.

Strategies are tried in order until one returns a 2xx response:

1. dedicated rewrite proxy (origin/credentials/action passed as query params)
2. direct request
3. local relay service
4. generic public CORS proxies, one after another

The EPG guide is the exception: callers ask for ``direct_only`` first,
since relaying multi-megabyte XML through third parties is unreliable.
"""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional, Protocol
from urllib.parse import quote

import httpx

from tvfetch.errors import TransportExhausted
from tvfetch.models.transport import (
    Body,
    JsonBody,
    ResourceKind,
    TextBody,
    TransportRequest,
    XmlBody,
)

if TYPE_CHECKING:
    from tvfetch.services.http_client import HttpClientService
    from tvfetch.services.relay import LocalRelay

logger = logging.getLogger(__name__)

ACCEPT_HEADERS = {
    ResourceKind.API_JSON: "application/json, text/plain, */*",
    ResourceKind.PLAYLIST: "audio/mpegurl, application/vnd.apple.mpegurl, */*",
    ResourceKind.EPG_XML: "application/xml, text/xml, */*",
}


class StrategyFailed(Exception):
    """A single strategy could not produce a 2xx response."""


# ----------------------------------------------------------------------
# Content negotiation
# ----------------------------------------------------------------------

def _looks_like_xml(text: str) -> bool:
    head = text.lstrip()[:200].lower()
    return head.startswith("<?xml") or head.startswith("<tv") or head.startswith("<!doctype tv")


def body_from_text(text: str) -> Body:
    """Best-effort shape detection for a textual payload; never raises."""
    stripped = text.strip()
    if stripped.startswith("{") or stripped.startswith("["):
        try:
            return JsonBody(json.loads(stripped))
        except ValueError:
            return TextBody(text)
    if _looks_like_xml(text):
        return XmlBody(text.encode("utf-8"))
    return TextBody(text)


def body_from_response(response: httpx.Response) -> Body:
    content_type = response.headers.get("content-type", "").lower()
    if "json" in content_type:
        try:
            return JsonBody(response.json())
        except ValueError:
            logger.debug(f"Declared JSON but body did not parse ({response.url})")
            return TextBody(response.text)
    if "xml" in content_type or response.content[:2] == b"\x1f\x8b":
        return XmlBody(response.content)
    text = response.text
    body = body_from_text(text)
    if isinstance(body, XmlBody):
        # keep the original bytes so the XML encoding declaration stays truthful
        return XmlBody(response.content)
    return body


def body_from_payload(data: Any) -> Body:
    """Wrap whatever a relay hands back."""
    if isinstance(data, (bytes, bytearray)):
        raw = bytes(data)
        text = raw.decode("utf-8", errors="replace")
        return XmlBody(raw) if _looks_like_xml(text) else body_from_text(text)
    if isinstance(data, str):
        return body_from_text(data)
    return JsonBody(data)


def default_headers(kind: ResourceKind) -> dict[str, str]:
    return {"Accept": ACCEPT_HEADERS.get(kind, ACCEPT_HEADERS[ResourceKind.API_JSON])}


# ----------------------------------------------------------------------
# Strategies
# ----------------------------------------------------------------------

class TransportStrategy(Protocol):
    name: str

    def applies(self, request: TransportRequest) -> bool:
        ...

    async def send(self, request: TransportRequest) -> Body:
        ...


async def _http_send(
    http_client: "HttpClientService",
    method: str,
    url: str,
    headers: dict[str, str],
    body: Optional[bytes] = None,
) -> Body:
    try:
        response = await http_client.send(method, url, headers, body)
    except httpx.HTTPError as e:
        raise StrategyFailed(f"{e.__class__.__name__}: {e}") from e
    if not response.is_success:
        raise StrategyFailed(f"HTTP {response.status_code} {response.reason_phrase}")
    return body_from_response(response)


class DirectStrategy:
    name = "direct"

    def __init__(self, http_client: "HttpClientService"):
        self.http_client = http_client

    def applies(self, request: TransportRequest) -> bool:
        return True

    async def send(self, request: TransportRequest) -> Body:
        return await _http_send(self.http_client, request.method, request.url, request.headers, request.body)


class RewriteProxyStrategy:
    """Relay taking origin, credentials and action as explicit query parameters."""

    name = "rewrite-proxy"

    def __init__(self, proxy_url: str, http_client: "HttpClientService"):
        self.proxy_url = proxy_url
        self.http_client = http_client

    def applies(self, request: TransportRequest) -> bool:
        if request.method != "GET":
            return False
        params = httpx.URL(request.url).params
        return "username" in params and "password" in params

    def build_url(self, url: str) -> str:
        parsed = httpx.URL(url)
        origin = f"{parsed.scheme}://{parsed.netloc.decode('ascii')}"
        params = {
            "url": origin,
            "username": parsed.params.get("username", ""),
            "password": parsed.params.get("password", ""),
            "action": parsed.params.get("action", ""),
        }
        if "category_id" in parsed.params:
            params["category_id"] = parsed.params["category_id"]
        return str(httpx.URL(self.proxy_url, params=params))

    async def send(self, request: TransportRequest) -> Body:
        return await _http_send(self.http_client, "GET", self.build_url(request.url), request.headers)


class RelayStrategy:
    name = "local-relay"

    def __init__(self, relay: "LocalRelay"):
        self.relay = relay

    def applies(self, request: TransportRequest) -> bool:
        return request.method == "GET"

    async def send(self, request: TransportRequest) -> Body:
        try:
            result = await self.relay.get(request.url, dict(request.headers))
        except Exception as e:
            raise StrategyFailed(f"relay error: {e}") from e
        if not result.success:
            raise StrategyFailed(result.error or "relay reported failure")
        return body_from_payload(result.data)


class CorsProxyStrategy:
    """A generic public relay addressed as ``<prefix><url-encoded target>``."""

    def __init__(self, prefix: str, http_client: "HttpClientService"):
        self.prefix = prefix
        self.http_client = http_client
        self.name = f"cors-proxy({prefix})"

    def applies(self, request: TransportRequest) -> bool:
        return request.method == "GET"

    async def send(self, request: TransportRequest) -> Body:
        return await _http_send(self.http_client, "GET", f"{self.prefix}{quote(request.url, safe='')}", request.headers)


# ----------------------------------------------------------------------
# Chain
# ----------------------------------------------------------------------

class TransportChain:
    """Ordered list of strategies consumed by one try/continue loop."""

    def __init__(
        self,
        http_client: "HttpClientService",
        rewrite_proxy_url: Optional[str] = None,
        relay: Optional["LocalRelay"] = None,
        cors_proxies: Optional[list[str]] = None,
        use_proxy: bool = True,
    ):
        self.direct = DirectStrategy(http_client)
        self.strategies: list[TransportStrategy] = []
        if rewrite_proxy_url:
            self.strategies.append(RewriteProxyStrategy(rewrite_proxy_url, http_client))
        self.strategies.append(self.direct)
        if use_proxy:
            if relay is not None:
                self.strategies.append(RelayStrategy(relay))
            for prefix in cors_proxies or []:
                self.strategies.append(CorsProxyStrategy(prefix, http_client))

    def plan(self, request: TransportRequest, direct_only: bool = False) -> list[TransportStrategy]:
        if direct_only:
            return [self.direct]
        return [s for s in self.strategies if s.applies(request)]

    async def send(self, request: TransportRequest, direct_only: bool = False) -> Body:
        headers = {**default_headers(request.kind), **request.headers}
        request = TransportRequest(
            url=request.url, method=request.method, headers=headers, body=request.body, kind=request.kind
        )
        failures: list[tuple[str, str]] = []
        for strategy in self.plan(request, direct_only):
            try:
                body = await strategy.send(request)
                logger.debug(f"[{strategy.name}] OK {request.url}")
                return body
            except StrategyFailed as e:
                logger.warning(f"[{strategy.name}] failed for {request.url}: {e}")
                failures.append((strategy.name, str(e)))
        raise TransportExhausted(request.url, failures)
