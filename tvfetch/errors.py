"""Error taxonomy shared by the fetch, cache, catalog and EPG layers."""
from __future__ import annotations


class TvFetchError(Exception):
    """Base class for every error raised by tvfetch."""


class TransportExhausted(TvFetchError):
    """Every transport strategy failed for one attempt."""

    def __init__(self, url: str, failures: list[tuple[str, str]] | None = None):
        self.url = url
        self.failures = failures or []
        detail = "; ".join(f"{name}: {reason}" for name, reason in self.failures) or "no strategy applied"
        super().__init__(f"All transports failed for {url} ({detail})")


class FetchFailed(TvFetchError):
    """All retries of one logical fetch were exhausted."""

    def __init__(self, url: str, last_error: Exception | None = None):
        self.url = url
        self.last_error = last_error
        super().__init__(f"Failed to fetch {url}: {last_error}")


class ParseFailure(TvFetchError):
    """Malformed JSON, XML or M3U payload."""


class InvalidConfiguration(TvFetchError):
    """Caller-supplied configuration that can never work (e.g. a malformed server URL)."""
