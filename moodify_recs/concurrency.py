"""
Concurrency Helpers
===================

Bounded worker pool, request deadline and the retrying call wrapper used
for every external fetch.

All suspension points in the pipeline are external HTTP calls. Blocking
clients (spotipy, requests) run in worker threads via asyncio.to_thread and
are bounded by asyncio.wait_for, so a slow call is abandoned at its timeout
even though the underlying socket keeps its own requests_timeout.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

import requests

from .config import DEFAULT_FETCH_CONFIG, FetchConfig
from .errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[Any]]


class Deadline:
    """
    Top-level time budget for one request.

    A deadline of None never expires.
    """

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def bound(self, timeout: float) -> float:
        """Clamp a per-call timeout to the time left."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)


def backoff_delay(config: FetchConfig, attempt: int) -> float:
    """Exponential backoff with a fixed multiplier and no jitter."""
    return config.backoff_base * (config.backoff_multiplier ** attempt)


async def call_with_retry(
    func: Callable[..., R],
    *args,
    label: str = "request",
    config: FetchConfig = DEFAULT_FETCH_CONFIG,
    timeout: Optional[float] = None,
    deadline: Optional[Deadline] = None,
    sleep: Sleep = asyncio.sleep,
    **kwargs,
) -> Optional[R]:
    """
    Run a blocking call in a thread with a hard timeout and bounded retries.

    Retry policy:
        - timeouts, network errors and 5xx: exponential backoff
        - 429: wait for the server's Retry-After hint (capped), then retry
        - other 4xx and malformed bodies: give up immediately

    Args:
        func: Blocking callable to run
        label: Short description used in log lines
        config: Timeout/retry configuration
        timeout: Per-call timeout override
        deadline: Request deadline bounding every attempt
        sleep: Awaitable sleep (injectable for tests)

    Returns:
        The call's result, or None once the call is abandoned
    """
    per_call = timeout if timeout is not None else config.request_timeout
    attempt = 0

    while True:
        if deadline is not None and deadline.expired:
            logger.warning("%s skipped: request deadline exceeded", label)
            return None

        call_timeout = deadline.bound(per_call) if deadline is not None else per_call
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=call_timeout,
            )
        except UpstreamError as exc:
            if not exc.is_transient:
                logger.warning("%s failed: %s", label, exc)
                return None
            wait = backoff_delay(config, attempt)
            if exc.is_rate_limit and exc.retry_after is not None:
                wait = min(exc.retry_after, config.max_retry_after)
            reason = str(exc)
        except asyncio.TimeoutError:
            wait = backoff_delay(config, attempt)
            reason = f"timed out after {call_timeout:.1f}s"
        except ValueError as exc:
            logger.warning("%s returned a malformed body: %s", label, exc)
            return None
        except requests.exceptions.RequestException as exc:
            wait = backoff_delay(config, attempt)
            reason = f"network error: {exc}"

        if attempt >= config.max_retries:
            logger.warning("%s abandoned after %d attempts (%s)", label, attempt + 1, reason)
            return None

        if deadline is not None:
            wait = deadline.bound(wait)
        logger.debug("%s retrying in %.2fs (%s)", label, wait, reason)
        await sleep(wait)
        attempt += 1


class WorkerPool:
    """
    Fixed number of async workers draining a shared queue.

    Results are stored by input position, so the order in which fetches
    complete never shows up in the output.
    """

    def __init__(self, workers: int = DEFAULT_FETCH_CONFIG.workers, deadline: Optional[Deadline] = None):
        """
        Initialize worker pool.

        Args:
            workers: Number of concurrent workers
            deadline: Request deadline; unfinished work is cancelled at expiry
        """
        self.workers = max(1, workers)
        self.deadline = deadline

    async def map(
        self,
        func: Callable[[T], Awaitable[R]],
        items: Sequence[T],
    ) -> List[Optional[R]]:
        """
        Apply an async function to every item with bounded concurrency.

        Args:
            func: Coroutine function taking one item
            items: Work items

        Returns:
            Results aligned with items; None where a task failed or was cancelled
        """
        results: List[Optional[R]] = [None] * len(items)
        if not items:
            return results

        queue: "asyncio.Queue[int]" = asyncio.Queue()
        for index in range(len(items)):
            queue.put_nowait(index)

        async def worker() -> None:
            while True:
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    results[index] = await func(items[index])
                except Exception:
                    logger.warning("Fetch task %d failed", index, exc_info=True)

        n_workers = min(self.workers, len(items))
        tasks = [asyncio.create_task(worker()) for _ in range(n_workers)]

        timeout = self.deadline.remaining() if self.deadline is not None else None
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            completed = sum(1 for r in results if r is not None)
            logger.warning(
                "Request deadline reached: %d of %d fetches completed", completed, len(items)
            )

        return results
