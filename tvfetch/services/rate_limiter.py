"""Concurrency limiter / rate gate shared by every outbound request."""
from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RequestSlot:
    """An in-flight permit. Released exactly once."""

    number: int
    released: bool = False


class RequestLimiter:
    """Bounds simultaneous requests and paces each acquisition.

    Waiters are served first-come-first-served; a released permit is handed
    straight to the oldest waiter so late arrivals cannot jump the queue.
    The pacing delay is charged per acquisition, after the permit is granted.
    """

    def __init__(self, max_concurrent: int = 2, min_delay: float = 0.5):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_delay = min_delay
        self._active = 0
        self._waiters: deque[asyncio.Future] = deque()
        self._counter = itertools.count(1)
        self.total_acquired = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> RequestSlot:
        if self._active >= self.max_concurrent or self.waiting:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                if waiter.done() and not waiter.cancelled():
                    # permit was handed over just before the cancellation landed
                    self._hand_off()
                else:
                    self._discard(waiter)
                raise
        else:
            self._active += 1

        slot = RequestSlot(number=next(self._counter))
        self.total_acquired += 1
        if self.min_delay > 0:
            try:
                await asyncio.sleep(self.min_delay)
            except asyncio.CancelledError:
                self.release(slot)
                raise
        return slot

    def release(self, slot: RequestSlot) -> None:
        if slot.released:
            raise RuntimeError(f"Request slot {slot.number} released twice")
        slot.released = True
        self._hand_off()

    def _hand_off(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # the permit moves to the waiter; the active count is unchanged
                waiter.set_result(None)
                return
        self._active -= 1

    def _discard(self, waiter: asyncio.Future) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    @asynccontextmanager
    async def slot(self):
        """Scoped acquisition; the slot is released on every exit path."""
        slot = await self.acquire()
        try:
            yield slot
        finally:
            self.release(slot)
