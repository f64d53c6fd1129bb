"""Bounded worker pool with a shared token bucket and capped, jittered retries."""
from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from .errors import EntityFailed, ExecutorClosed, TransientApiError, describe

logger = logging.getLogger("fast_migrate.executor")

T = TypeVar("T")
Task = Callable[[], Awaitable[T]]


class TokenBucket:
    """Caps outbound call rate at rate_limit_per_minute with bursts of burst_size."""

    def __init__(
        self,
        rate_limit_per_minute: float,
        burst_size: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.rate_per_second = rate_limit_per_minute / 60 if rate_limit_per_minute else 0.0
        self.capacity = float(max(burst_size, 1))
        self.tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._updated_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self):
        if self.rate_per_second <= 0:
            return
        async with self._lock:
            while True:
                now = self._clock()
                if self._updated_at is None:
                    self._updated_at = now
                self.tokens = min(self.capacity, self.tokens + (now - self._updated_at) * self.rate_per_second)
                self._updated_at = now
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                wait = (1 - self.tokens) / self.rate_per_second
                await self._sleep(min(wait, 60))


class RateLimitedExecutor:
    """Runs single API calls on a fixed pool of workers.

    Every attempt takes a token from the shared bucket. TransientApiError is
    retried with exponential backoff and jitter up to max_attempts, after which
    the caller receives EntityFailed. Any other exception is handed to the
    caller unchanged on the first attempt.
    """

    def __init__(
        self,
        max_workers: int = 4,
        rate_limit_per_minute: float = 600,
        burst_size: int = 10,
        max_attempts: int = 5,
        retry_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
        max_retry_delay: float = 120.0,
        jitter: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.max_attempts = max(max_attempts, 1)
        self.retry_delay = retry_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_retry_delay = max_retry_delay
        self.jitter = jitter
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.bucket = TokenBucket(rate_limit_per_minute, burst_size, clock=clock, sleep=sleep)

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._closed = False

        self.attempts = 0
        self.retries = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @classmethod
    def from_config(cls, config_loader, **overrides) -> "RateLimitedExecutor":
        rate_config = config_loader.get_rate_limiting() if config_loader else {}
        concurrency = config_loader.get_concurrent_limit() if config_loader else 4
        kwargs = dict(
            max_workers=concurrency,
            rate_limit_per_minute=rate_config.get("rate_limit_per_minute", 600),
            burst_size=rate_config.get("burst_size", 10),
            max_attempts=rate_config.get("max_attempts", 5),
            retry_delay=rate_config.get("retry_429_delay", 1.0),
            backoff_multiplier=rate_config.get("backoff_multiplier", 2.0),
            max_retry_delay=rate_config.get("max_retry_delay", 120.0),
            jitter=rate_config.get("jitter", 0.5),
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self):
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._closed = False
        self._workers = [asyncio.ensure_future(self._worker(i)) for i in range(self.max_workers)]

    def shutdown(self):
        """Stop accepting work. Queued tasks fail with ExecutorClosed; running ones finish."""
        if not self._closed:
            logger.warning("Executor shutting down; no new calls will be issued")
        self._closed = True

    async def close(self):
        """Shut down, wait for in-flight tasks to drain, then stop the workers."""
        self._closed = True
        if self._queue is not None:
            await self._queue.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def submit(self, task: Task, label: str = "") -> Any:
        """Run task() on a worker and return its result."""
        if self._closed:
            raise ExecutorClosed(f"executor closed; refusing {label or 'task'}")
        if self._queue is None:
            raise RuntimeError("Executor not started; use async context manager")
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((task, label, future))
        return await future

    async def _worker(self, index: int):
        assert self._queue is not None
        while True:
            task, label, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                if self._closed:
                    future.set_exception(ExecutorClosed(f"executor closed before {label or 'task'} started"))
                    continue
                try:
                    result = await self._run_with_retry(task, label)
                except Exception as exc:
                    if not future.cancelled():
                        future.set_exception(exc)
                else:
                    if not future.cancelled():
                        future.set_result(result)
            finally:
                self._queue.task_done()

    async def _run_with_retry(self, task: Task, label: str) -> Any:
        attempt = 0
        while True:
            attempt += 1
            await self.bucket.acquire()
            self.attempts += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                return await task()
            except TransientApiError as exc:
                if attempt >= self.max_attempts:
                    logger.error("FAIL: %s after %d attempts: %s", label or "task", attempt, exc)
                    raise EntityFailed(
                        f"{label or 'task'} failed after {attempt} attempts: {describe(exc)}",
                        attempts=attempt,
                    ) from exc
                delay = self.backoff_delay(attempt, exc.retry_after)
                self.retries += 1
                logger.warning(
                    "RETRY: %s (attempt %d/%d) in %.1fs: %s",
                    label or "task", attempt, self.max_attempts, delay, exc,
                )
            finally:
                self.in_flight -= 1
            await self._sleep(delay)

    def backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Exponential delay for the given attempt, never shorter than the server's hint."""
        delay = self.retry_delay * (self.backoff_multiplier ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        delay = min(delay, self.max_retry_delay)
        return delay + self._rng.uniform(0, delay * self.jitter)
