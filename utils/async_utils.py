# utils/async_utils.py  – bounded concurrency + sync helpers for the fetch layer
import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from functools import wraps, partial
from typing import Optional

from utils.errors import TooManyConcurrentRequests

logger = logging.getLogger(__name__)


class ConcurrencyGuard:
    """
    Hard cap on in-flight operations with a short waiting line.

    Up to *max_in_flight* callers hold a slot at once. Up to *max_waiting*
    more may queue for at most *acquire_timeout* seconds; anyone beyond
    that (or timing out in the queue) gets TooManyConcurrentRequests.
    """

    def __init__(self, max_in_flight: int = 10, max_waiting: int = 20,
                 acquire_timeout: float = 30.0):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self.max_in_flight = max_in_flight
        self.max_waiting = max_waiting
        self.acquire_timeout = acquire_timeout
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self._in_flight = 0
        self._waiting = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self.stats = {"acquired": 0, "rejected": 0, "queued": 0, "peak_in_flight": 0}

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return self._waiting

    async def acquire(self):
        if self._closed:
            raise TooManyConcurrentRequests("Fetcher is shutting down. Please try again in a moment.")

        if self._semaphore.locked():
            if self._waiting >= self.max_waiting:
                self.stats["rejected"] += 1
                logger.warning(f"⚠️ Rejecting fetch: {self._in_flight} in flight, {self._waiting} waiting")
                raise TooManyConcurrentRequests()
            self._waiting += 1
            self.stats["queued"] += 1
            try:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=self.acquire_timeout)
            except asyncio.TimeoutError:
                self.stats["rejected"] += 1
                raise TooManyConcurrentRequests()
            finally:
                self._waiting -= 1
        else:
            await self._semaphore.acquire()

        self._in_flight += 1
        self._idle.clear()
        self.stats["acquired"] += 1
        self.stats["peak_in_flight"] = max(self.stats["peak_in_flight"], self._in_flight)

    def release(self):
        if self._in_flight <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self._in_flight -= 1
        self._semaphore.release()
        if self._in_flight == 0:
            self._idle.set()

    @asynccontextmanager
    async def slot(self):
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Stop admitting work and wait for in-flight operations to finish"""
        self._closed = True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Drain timed out with {self._in_flight} operations still running")
            return False


def sync_to_async(func):
    """
    Turn any callable into an awaitable.

    Coroutine functions are awaited directly; everything else runs in the
    default thread pool so the event loop never blocks on it.

        text = await sync_to_async(extract_text)(data)
    """
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        if inspect.iscoroutinefunction(func):
            return await func(*args, **kwargs)

        loop = asyncio.get_running_loop()
        bound = partial(func, *args, **kwargs)
        return await loop.run_in_executor(None, bound)

    return async_wrapper
