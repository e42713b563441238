"""HTTP client service — one pooled httpx.AsyncClient shared by every transport."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Sent with every upstream request; some panels reject non-browser agents
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36",
    "Accept-Language": "en-US,en;q=0.9",
}

# The body of a large guide can take minutes to stream
READ_TIMEOUT = 600.0


class HttpClientService:
    """Lazily-created shared client.

    Requests go out without cookies: nothing set by one provider response is
    replayed on the next request. *transport* lets tests plug in an
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client: Optional[httpx.AsyncClient] = None
        self.timeout = timeout
        self.transport = transport

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=HEADERS,
                timeout=httpx.Timeout(self.timeout, read=READ_TIMEOUT),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
                follow_redirects=True,
                transport=self.transport,
            )
        return self._client

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        """Issue one request with no cookies attached; httpx errors propagate."""
        client = await self.get_client()
        client.cookies.clear()
        request = client.build_request(method, url, headers=headers, content=content)
        request.headers.pop("Cookie", None)
        return await client.send(request)

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP client closed")
