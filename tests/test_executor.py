import asyncio
import json
import random

import pytest

from fast_migrate.errors import (
    EntityFailed,
    ExecutorClosed,
    RateLimitedError,
    TransientApiError,
    ValidationError,
)
from fast_migrate.executor import RateLimitedExecutor, TokenBucket
from identity_common.config import ConfigLoader


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.slept = 0.0

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.slept += delay
        self.now += delay


class Flaky:
    """Raises the given errors in order, then returns "ok"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def executor(**kwargs):
    kwargs.setdefault("rate_limit_per_minute", 0)
    kwargs.setdefault("jitter", 0)
    kwargs.setdefault("sleep", SleepRecorder())
    return RateLimitedExecutor(**kwargs)


def submit_one(task, **kwargs):
    async def _run():
        async with executor(**kwargs) as ex:
            return await ex.submit(task, label="task"), ex

    return asyncio.run(_run())


def test_transient_errors_are_retried_with_backoff():
    sleep = SleepRecorder()
    task = Flaky(TransientApiError(503), TransientApiError(None, "timeout"))

    result, ex = submit_one(task, sleep=sleep, retry_delay=1.0, backoff_multiplier=2.0)

    assert result == "ok"
    assert task.calls == 3
    assert ex.retries == 2
    assert sleep.delays == [1.0, 2.0]


def test_retry_after_hint_is_respected():
    sleep = SleepRecorder()
    task = Flaky(RateLimitedError(429, retry_after=30.0))

    submit_one(task, sleep=sleep, retry_delay=1.0)

    assert sleep.delays == [30.0]


def test_attempt_ceiling_reports_entity_failed():
    task = Flaky(*[TransientApiError(500) for _ in range(10)])

    with pytest.raises(EntityFailed) as info:
        submit_one(task, max_attempts=3)

    assert task.calls == 3
    assert info.value.attempts == 3
    assert "task failed after 3 attempts" in info.value.reason


def test_permanent_errors_are_not_retried():
    task = Flaky(ValidationError(400, "bad"))

    with pytest.raises(ValidationError):
        submit_one(task, max_attempts=5)

    assert task.calls == 1


def test_worker_pool_caps_calls_in_flight():
    state = {"running": 0, "peak": 0}

    async def call():
        state["running"] += 1
        state["peak"] = max(state["peak"], state["running"])
        await asyncio.sleep(0.001)
        state["running"] -= 1

    async def _run():
        async with executor(max_workers=3) as ex:
            await asyncio.gather(*(ex.submit(call) for _ in range(20)))
            return ex

    ex = asyncio.run(_run())

    assert state["peak"] == 3
    assert ex.max_in_flight == 3
    assert ex.attempts == 20


def test_submit_after_shutdown_is_refused():
    async def _run():
        async with executor() as ex:
            ex.shutdown()
            with pytest.raises(ExecutorClosed):
                await ex.submit(Flaky())

    asyncio.run(_run())


def test_backoff_is_exponential_capped_and_jittered():
    ex = executor(retry_delay=1.0, backoff_multiplier=2.0, max_retry_delay=5.0)
    assert ex.backoff_delay(1) == 1.0
    assert ex.backoff_delay(3) == 4.0
    assert ex.backoff_delay(6) == 5.0
    assert ex.backoff_delay(1, retry_after=3.0) == 3.0

    jittered = executor(retry_delay=2.0, jitter=0.5, rng=random.Random(7))
    for _ in range(20):
        assert 2.0 <= jittered.backoff_delay(1) <= 3.0


def test_token_bucket_limits_rate_after_burst():
    clock = FakeClock()
    bucket = TokenBucket(rate_limit_per_minute=60, burst_size=2, clock=clock, sleep=clock.sleep)

    async def _run():
        for _ in range(5):
            await bucket.acquire()

    asyncio.run(_run())

    assert clock.slept == pytest.approx(3.0)


def test_from_config_reads_rate_limiting_section(tmp_path):
    (tmp_path / "configs").mkdir()
    (tmp_path / "configs" / "config.json").write_text(json.dumps({
        "environment": {"name": "test"},
        "async_config": {
            "rate_limiting": {"rate_limit_per_minute": 120, "burst_size": 4, "max_attempts": 2,
                              "retry_429_delay": 0.5},
            "concurrency": {"max_concurrent_api_calls": 6},
        },
        "migration": {},
    }))

    ex = RateLimitedExecutor.from_config(ConfigLoader(base_path=tmp_path), jitter=0)

    assert ex.max_workers == 6
    assert ex.max_attempts == 2
    assert ex.retry_delay == 0.5
    assert ex.bucket.capacity == 4
    assert ex.bucket.rate_per_second == 2
    assert ex.jitter == 0
