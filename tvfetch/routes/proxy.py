"""Relay routes — re-issue a request server-side on behalf of a browser client."""
from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from tvfetch.dependencies import get_http_client
from tvfetch.models.transport import RelayRequest
from tvfetch.services.http_client import HttpClientService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["proxy"])

RELAY_TIMEOUT = 10.0

# Hop-by-hop and length headers are recomputed by the server
_DROPPED_HEADERS = frozenset((
    "connection", "keep-alive", "transfer-encoding", "content-encoding",
    "content-length", "host", "cookie", "set-cookie",
))


def _forward_headers(headers: httpx.Headers) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in _DROPPED_HEADERS}


async def _relay(
    http: HttpClientService,
    method: str,
    url: str,
    headers: Optional[dict[str, str]] = None,
    data=None,
) -> httpx.Response:
    client = await http.get_client()
    outgoing = {k: v for k, v in (headers or {}).items() if k.lower() not in _DROPPED_HEADERS}
    kwargs: dict = {"headers": outgoing, "timeout": RELAY_TIMEOUT}
    if data is not None:
        if isinstance(data, (str, bytes)):
            kwargs["content"] = data
        else:
            kwargs["json"] = data
    return await client.request(method, url, **kwargs)


@router.post("/api/proxy")
async def relay_post(payload: RelayRequest, http: HttpClientService = Depends(get_http_client)):
    logger.info(f"Proxy request: {payload.method} {payload.targetUrl}")
    try:
        response = await _relay(http, payload.method.upper(), payload.targetUrl, payload.headers, payload.data)
    except httpx.HTTPError as e:
        logger.error(f"Proxy error: {e}")
        return JSONResponse({"error": "Proxy error", "message": str(e)}, status_code=500)

    if "application/json" in response.headers.get("content-type", ""):
        try:
            return JSONResponse(response.json(), status_code=response.status_code)
        except ValueError:
            pass
    return Response(
        content=response.content,
        status_code=response.status_code,
        media_type=response.headers.get("content-type", "text/plain"),
    )


@router.get("/api/proxy")
async def relay_get(url: Optional[str] = None, http: HttpClientService = Depends(get_http_client)):
    if not url:
        return JSONResponse({"error": "Missing target URL"}, status_code=400)
    logger.info(f"Proxy GET request: {url}")
    try:
        response = await _relay(http, "GET", url)
    except httpx.HTTPError as e:
        logger.error(f"Proxy error: {e}")
        return JSONResponse({"error": "Proxy error", "message": str(e)}, status_code=500)
    return Response(
        content=response.content,
        status_code=response.status_code,
        headers=_forward_headers(response.headers),
    )
