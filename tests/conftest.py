"""Shared fixtures — a fetch stack wired to an ``httpx.MockTransport``."""

import httpx
import pytest

from tvfetch.services.fetcher import RetryingFetcher
from tvfetch.services.http_client import HttpClientService
from tvfetch.services.rate_limiter import RequestLimiter
from tvfetch.services.transport import TransportChain


class Recorder:
    """Wraps a request handler and keeps every request it saw."""

    def __init__(self, handler):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture()
def make_fetcher():
    """Build ``(fetcher, recorder)`` around a handler; no pacing, no backoff, no public proxies."""

    def _make(handler, max_retries=0, relay=None, rewrite_proxy_url=None, cors_proxies=None, use_proxy=True):
        recorder = Recorder(handler)
        http = HttpClientService(transport=httpx.MockTransport(recorder))
        chain = TransportChain(
            http,
            rewrite_proxy_url=rewrite_proxy_url,
            relay=relay,
            cors_proxies=cors_proxies or [],
            use_proxy=use_proxy,
        )
        limiter = RequestLimiter(max_concurrent=2, min_delay=0)
        fetcher = RetryingFetcher(chain, limiter, max_retries=max_retries, initial_delay=0)
        return fetcher, recorder

    return _make
