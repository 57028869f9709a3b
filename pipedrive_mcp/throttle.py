"""
Throttled dispatch for Pipedrive API calls.

One Scheduler is built at startup and shared by every call site. It enforces,
across all concurrently running tool invocations:

- FIFO admission (calls are dispatched in arrival order),
- at most ``max_concurrent`` calls outstanding at once (asyncio.Semaphore),
- at least ``min_time_ms`` between the starts of two consecutive calls
  (an aiolimiter AsyncLimiter with capacity 1),
- an optional per-call deadline that cancels a hung call and frees its slot.

Results and exceptions of the wrapped call pass through untouched; nothing is
retried and nothing is dropped.
"""

import asyncio
import functools
from typing import Any, Awaitable, Callable, Optional

from aiolimiter import AsyncLimiter

from .config import log
from .errors import RemoteCallTimeout


class Scheduler:
    def __init__(self, min_time_ms: int = 250, max_concurrent: int = 2,
                 timeout_s: Optional[float] = None):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if min_time_ms < 0:
            raise ValueError("min_time_ms must be >= 0")
        self.min_time_ms = min_time_ms
        self.max_concurrent = max_concurrent
        self.timeout_s = timeout_s

        # Layer 1: concurrency cap (waiters are woken in arrival order)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        # Layer 2: one start per min_time_ms; AsyncLimiter rejects a zero period
        self._spacing = AsyncLimiter(1, min_time_ms / 1000.0) if min_time_ms > 0 else None

        self._running = 0
        self._waiting = 0
        self.dispatched = 0

    @classmethod
    def from_settings(cls, settings) -> "Scheduler":
        return cls(settings.min_time_ms, settings.max_concurrent, settings.call_timeout_s)

    @property
    def in_flight(self) -> int:
        return self._running

    @property
    def pending(self) -> int:
        return self._waiting

    async def _run(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.timeout_s is None:
            return await fn(*args, **kwargs)
        try:
            async with asyncio.timeout(self.timeout_s) as deadline:
                return await fn(*args, **kwargs)
        except TimeoutError as exc:
            if not deadline.expired():
                raise        # the call's own TimeoutError, not ours
            name = getattr(fn, "__name__", "remote call")
            log("⏱️  timed out", name, f"after {self.timeout_s:g}s")
            raise RemoteCallTimeout(name, f"no response within {self.timeout_s:g}s") from exc

    # ── public API ──────────────────────────────────────────
    async def schedule(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run ``fn(*args, **kwargs)`` once the scheduler admits it."""
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._running += 1
        try:
            if self._spacing is not None:
                await self._spacing.acquire()
            self.dispatched += 1
            return await self._run(fn, *args, **kwargs)
        finally:
            self._running -= 1
            self._semaphore.release()

    def wrap(self, fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        """Return the throttled equivalent of a remote operation."""
        @functools.wraps(fn)
        async def throttled(*args, **kwargs):
            return await self.schedule(fn, *args, **kwargs)
        return throttled
