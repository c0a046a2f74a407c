"""
EA Sync — Rate-Limited Fetch Queue
────────────────────────────────────
Serialises every outbound call to the external sources.

  - strict FIFO: one request at a time, each awaited to completion
  - at least `interval_s` between the start of two consecutive requests
  - every request is bounded by `timeout_s`; a hung call rejects its own
    caller with asyncio.TimeoutError and the queue moves on
  - a failed request only fails its own caller

Callers just `await queue.enqueue(fn)`. Enqueueing while a drain is already
running only appends; there is never more than one drain task.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from ea_sync.cache.ttl_config import RATE_LIMIT_INTERVAL_S, REQUEST_TIMEOUT_S

log = logging.getLogger("ea_sync.fetch_queue")

RequestFn = Callable[[], Awaitable[Any]]


class FetchQueue:

    def __init__(
        self,
        interval_s: float = RATE_LIMIT_INTERVAL_S,
        timeout_s: Optional[float] = REQUEST_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.interval_s = interval_s
        self.timeout_s  = timeout_s
        self._clock     = clock
        self._sleep     = sleep
        self._queue: Deque[Tuple[RequestFn, asyncio.Future]] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._last_start: Optional[float] = None
        self.processed = 0
        self.failed    = 0
        self.timed_out = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    async def enqueue(self, request_fn: RequestFn) -> Any:
        """Queue a request and wait for its own result (or exception)."""
        fut = asyncio.get_running_loop().create_future()
        self._queue.append((request_fn, fut))
        if not self.draining:
            self._drain_task = asyncio.create_task(self._drain())
        return await fut

    async def _wait_for_slot(self):
        if self._last_start is None:
            return
        wait = self.interval_s - (self._clock() - self._last_start)
        if wait > 0:
            log.debug(f"Rate limit: sleeping {wait:.2f}s")
            await self._sleep(wait)

    async def _drain(self):
        while self._queue:
            request_fn, fut = self._queue.popleft()
            if fut.cancelled():
                continue

            await self._wait_for_slot()
            self._last_start = self._clock()

            try:
                if self.timeout_s:
                    result = await asyncio.wait_for(request_fn(), self.timeout_s)
                else:
                    result = await request_fn()
            except asyncio.TimeoutError as e:
                self.timed_out += 1
                self.failed += 1
                log.warning(f"Request timed out after {self.timeout_s}s")
                if not fut.done():
                    fut.set_exception(e)
            except Exception as e:
                self.failed += 1
                if not fut.done():
                    fut.set_exception(e)
            else:
                self.processed += 1
                if not fut.done():
                    fut.set_result(result)

    async def close(self):
        """Reject everything still waiting and stop the drain task."""
        while self._queue:
            _, fut = self._queue.popleft()
            if not fut.done():
                fut.cancel()
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass

    def stats(self) -> dict:
        return {
            "pending":    self.pending,
            "processed":  self.processed,
            "failed":     self.failed,
            "timed_out":  self.timed_out,
            "interval_s": self.interval_s,
            "timeout_s":  self.timeout_s,
        }
