"""Local relay collaborator — a caller-run proxy that re-issues a GET server-side."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

import httpx

from tvfetch.models.transport import RelayResponse

if TYPE_CHECKING:
    from tvfetch.services.http_client import HttpClientService

logger = logging.getLogger(__name__)


class LocalRelay(Protocol):
    async def get(self, url: str, headers: dict[str, str]) -> RelayResponse:
        ...


class HttpRelay:
    """Talks to a relay endpoint such as ``POST /api/proxy`` (see ``tvfetch.routes.proxy``).

    The relay never raises; failures are reported through ``RelayResponse.error``.
    """

    def __init__(
        self,
        relay_url: str,
        http_client: "HttpClientService",
        retries: int = 2,
        timeout: float = 10.0,
    ):
        self.relay_url = relay_url
        self.http_client = http_client
        self.retries = retries
        self.timeout = timeout

    async def get(self, url: str, headers: dict[str, str]) -> RelayResponse:
        last_error = "Unknown error occurred"
        payload = {"targetUrl": url, "method": "GET", "headers": dict(headers)}
        for attempt in range(self.retries):
            try:
                client = await self.http_client.get_client()
                response = await client.post(self.relay_url, json=payload, timeout=self.timeout)
                if response.is_success:
                    content_type = response.headers.get("content-type", "")
                    if "application/json" in content_type:
                        return RelayResponse(success=True, data=response.json())
                    return RelayResponse(success=True, data=response.text)
                last_error = f"HTTP {response.status_code}"
            except (httpx.HTTPError, ValueError) as e:
                last_error = str(e) or e.__class__.__name__
            logger.warning(f"Relay attempt {attempt + 1}/{self.retries} failed for {url}: {last_error}")
            if attempt < self.retries - 1:
                await asyncio.sleep(1.0 * (attempt + 1))
        return RelayResponse(success=False, error=last_error)
