"""Retrying fetcher — exponential backoff around the limiter + transport chain."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Optional

from tvfetch.errors import FetchFailed, TransportExhausted
from tvfetch.models.transport import (
    Body,
    JsonBody,
    ResourceKind,
    TextBody,
    TransportRequest,
    XmlBody,
)

if TYPE_CHECKING:
    from tvfetch.services.rate_limiter import RequestLimiter
    from tvfetch.services.transport import TransportChain

logger = logging.getLogger(__name__)


def infer_kind(url: str) -> ResourceKind:
    if "xmltv.php" in url:
        return ResourceKind.EPG_XML
    if "type=m3u" in url or "get.php" in url or url.lower().split("?")[0].endswith((".m3u", ".m3u8")):
        return ResourceKind.PLAYLIST
    return ResourceKind.API_JSON


def body_text(body: Body) -> str:
    if isinstance(body, TextBody):
        return body.text
    if isinstance(body, XmlBody):
        return body.text
    if isinstance(body, JsonBody):
        return body.data if isinstance(body.data, str) else ""
    raise TypeError(f"Unknown body type {type(body).__name__}")


def _looks_like_guide(content: bytes) -> bool:
    if content[:2] == b"\x1f\x8b":
        return True
    head = content.lstrip()[:512]
    return head.startswith(b"<?xml") or b"<tv" in head


class RetryingFetcher:
    """Every attempt runs inside one limiter slot; backoff sleeps happen outside it."""

    def __init__(
        self,
        chain: "TransportChain",
        limiter: "RequestLimiter",
        max_retries: int = 3,
        initial_delay: float = 1.0,
    ):
        self.chain = chain
        self.limiter = limiter
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.attempts = 0

    async def _attempt(self, request: TransportRequest, direct_only: bool = False) -> Body:
        async with self.limiter.slot():
            self.attempts += 1
            return await self.chain.send(request, direct_only=direct_only)

    async def fetch(
        self,
        url: str,
        kind: Optional[ResourceKind] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Body:
        request = TransportRequest(url=url, headers=dict(headers or {}), kind=kind or infer_kind(url))
        last_error: Optional[Exception] = None
        for retry in range(self.max_retries + 1):
            logger.debug(f"Attempt {retry + 1}/{self.max_retries + 1} for {url}")
            try:
                return await self._attempt(request)
            except TransportExhausted as e:
                last_error = e
            if retry < self.max_retries:
                delay = self.initial_delay * (2 ** retry)
                logger.info(f"Retrying {url} in {delay:.1f}s ({retry + 1}/{self.max_retries})")
                await asyncio.sleep(delay)
        logger.error(f"Giving up on {url} after {self.max_retries + 1} attempts")
        raise FetchFailed(url, last_error)

    async def fetch_text(self, url: str, kind: Optional[ResourceKind] = None) -> str:
        return body_text(await self.fetch(url, kind=kind))

    async def fetch_epg(self, url: str) -> bytes:
        """Guide download: one direct attempt first, then the generic retry path."""
        request = TransportRequest(url=url, kind=ResourceKind.EPG_XML)
        start_time = time.time()
        try:
            body = await self._attempt(request, direct_only=True)
            content = _guide_bytes(body)
            if content is not None:
                logger.info(
                    f"EPG XML received directly: {len(content) / (1024 * 1024):.2f}MB "
                    f"in {time.time() - start_time:.1f}s"
                )
                return content
            logger.warning("Direct EPG response is not XML, trying alternative transports")
        except TransportExhausted as e:
            logger.warning(f"Direct EPG download failed ({e}), trying alternative transports")

        body = await self.fetch(url, kind=ResourceKind.EPG_XML)
        content = _guide_bytes(body)
        if content is None:
            preview = body_text(body)[:200] if not isinstance(body, JsonBody) else repr(body.data)[:200]
            raise FetchFailed(url, ValueError(f"Response is not XMLTV: {preview!r}"))
        logger.info(f"EPG XML received via fallback: {len(content) / (1024 * 1024):.2f}MB")
        return content


def _guide_bytes(body: Body) -> Optional[bytes]:
    if isinstance(body, XmlBody):
        content = body.content
    elif isinstance(body, TextBody):
        content = body.text.encode("utf-8")
    else:
        return None
    return content if _looks_like_guide(content) else None
