"""Result type handed to the UI: a list that may carry an error message."""
from __future__ import annotations

from typing import Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class Listing(list, Generic[T]):
    """A populated result, or an empty one plus a human-readable error."""

    def __init__(self, items: Iterable[T] = (), error: Optional[str] = None):
        super().__init__(items)
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {"items": list(self), "error": self.error}
