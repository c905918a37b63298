"""Shared concurrency primitives for the embedding pipeline.

Three building blocks are exposed:

1. **RateLimiter** -- a sliding-window requests-per-minute limiter.  Every
   call that reaches an embedding provider during a batch run passes
   through one of these so a large backfill never exceeds the provider's
   quota.

2. **ProcessingQueue** -- a bounded-concurrency work queue.  Items are
   started in FIFO order, at most ``concurrency`` run at once, and each
   item's result (or exception) is delivered to its own future so one
   failure never poisons its neighbours.

3. **throttled_gather** -- a drop-in replacement for ``asyncio.gather``
   that wraps each awaitable in a semaphore acquire/release.  Used by
   providers that fan out one HTTP request per text.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Generic, TypeVar

import structlog

from stack_rag.utils.logging import get_logger

_T = TypeVar("_T")
_R = TypeVar("_R")

_DEFAULT_GATHER_LIMIT = 4

_logger: structlog.BoundLogger = get_logger(__name__)


class RateLimiter:
    """Sliding-window rate limiter measured in requests per minute.

    A slot is consumed when :meth:`wait_for_slot` returns.  When the last
    ``requests_per_minute`` slots all fall within the rolling window the
    caller sleeps until the oldest one expires.  Waiters are served in
    arrival order: the internal ``asyncio.Lock`` wakes its waiters FIFO and
    is held for the whole wait, so a later caller can never overtake an
    earlier one.

    Cancelling a waiting caller releases the lock without recording a
    timestamp, so the slot stays available for the next caller.

    Parameters
    ----------
    requests_per_minute:
        Maximum number of slots handed out per window.
    window_seconds:
        Length of the rolling window.  Defaults to one minute; tests use
        a shorter window to keep the suite fast.
    """

    def __init__(self, requests_per_minute: int, window_seconds: float = 60.0) -> None:
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._limit = requests_per_minute
        self._window = window_seconds
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def requests_per_minute(self) -> int:
        return self._limit

    def available_slots(self) -> int:
        """Return how many calls could proceed right now without waiting."""
        self._purge(time.monotonic())
        return self._limit - len(self._timestamps)

    async def wait_for_slot(self) -> None:
        """Suspend until a slot is free in the rolling window, then consume it."""
        async with self._lock:
            while True:
                now = time.monotonic()
                self._purge(now)
                if len(self._timestamps) < self._limit:
                    self._timestamps.append(now)
                    return

                delay = self._timestamps[0] + self._window - now
                _logger.debug(
                    "rate_limit_wait",
                    delay_seconds=round(delay, 3),
                    requests_per_minute=self._limit,
                )
                # The loop re-checks after waking because the event loop may
                # fire a timer marginally early.
                await asyncio.sleep(max(delay, 0.0))

    async def execute(
        self, fn: Callable[..., Awaitable[_R]], *args: Any, **kwargs: Any
    ) -> _R:
        """Wait for a slot, then await ``fn(*args, **kwargs)``.

        The call's result or exception propagates unchanged.
        """
        await self.wait_for_slot()
        return await fn(*args, **kwargs)

    def _purge(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self._window:
            self._timestamps.popleft()


class ProcessingQueue(Generic[_T, _R]):
    """Bounded-concurrency FIFO queue around an async processor.

    Parameters
    ----------
    processor:
        Coroutine function applied to every queued item.
    concurrency:
        Maximum number of items in flight at once.
    """

    def __init__(
        self,
        processor: Callable[[_T], Awaitable[_R]],
        concurrency: int = 1,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._processor = processor
        self._concurrency = concurrency
        self._pending: deque[tuple[_T, asyncio.Future[_R]]] = deque()
        self._active = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def size(self) -> int:
        """Number of items waiting to start."""
        return len(self._pending)

    @property
    def active_count(self) -> int:
        """Number of items currently being processed."""
        return self._active

    def add(self, item: _T) -> asyncio.Future[_R]:
        """Enqueue *item* and return a future that resolves to its result.

        Must be called from inside a running event loop.
        """
        future: asyncio.Future[_R] = asyncio.get_running_loop().create_future()
        self._pending.append((item, future))
        self._pump()
        return future

    async def add_batch(
        self, items: list[_T], return_exceptions: bool = False
    ) -> list[_R | BaseException]:
        """Enqueue every item and wait for all of them.

        Results come back in input order regardless of completion order.
        With ``return_exceptions=False`` the first failure is raised, but
        the remaining items keep running to completion.
        """
        futures = [self.add(item) for item in items]
        return list(await asyncio.gather(*futures, return_exceptions=return_exceptions))

    def cancel_pending(self) -> int:
        """Cancel every item that has not started yet.

        Items already in flight run to completion.  Returns the number of
        items cancelled.
        """
        cancelled = 0
        while self._pending:
            _, future = self._pending.popleft()
            if future.cancel():
                cancelled += 1
        if cancelled:
            _logger.info("processing_queue_cancelled", cancelled=cancelled)
        return cancelled

    def _pump(self) -> None:
        while self._active < self._concurrency and self._pending:
            item, future = self._pending.popleft()
            # Callers may cancel a future while it is still waiting.
            if future.done():
                continue
            self._active += 1
            task = asyncio.create_task(self._run(item, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, item: _T, future: asyncio.Future[_R]) -> None:
        try:
            result = await self._processor(item)
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as exc:
            # Delivered to the item's own future; the awaiting caller re-raises it.
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1
            self._pump()


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore for concurrency control.  When omitted a fresh
        semaphore allowing four concurrent awaitables is used for this call.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(_DEFAULT_GATHER_LIMIT)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)
