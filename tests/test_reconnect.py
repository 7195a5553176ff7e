from __future__ import annotations

import asyncio
import itertools

import pytest

from pysmarthome.reconnect import ReconnectScheduler, backoff_delays


def test_backoff_sequence_doubles_and_caps() -> None:
    delays = list(itertools.islice(backoff_delays(1.0, 60.0), 10))
    assert delays == [1, 2, 4, 8, 16, 32, 60, 60, 60, 60]


def test_backoff_never_exceeds_maximum() -> None:
    assert max(itertools.islice(backoff_delays(0.5, 5.0), 50)) == 5.0


def test_backoff_rejects_bad_bounds() -> None:
    with pytest.raises(ValueError):
        next(backoff_delays(0, 10))
    with pytest.raises(ValueError):
        next(backoff_delays(10, 5))


@pytest.mark.asyncio
async def test_scheduler_stops_after_success(sleep, wait_until) -> None:
    outcomes = iter([False, False, RuntimeError("boom"), True])

    async def attempt() -> bool:
        outcome = next(outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    scheduler = ReconnectScheduler(attempt, initial_delay=1.0, max_delay=60.0, sleep=sleep)
    scheduler.start()
    await wait_until(lambda: not scheduler.is_running)

    assert sleep.delays == [1.0, 2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_scheduler_runs_until_cancelled(sleep, wait_until) -> None:
    attempts = 0

    async def attempt() -> bool:
        nonlocal attempts
        attempts += 1
        return False

    scheduler = ReconnectScheduler(attempt, initial_delay=1.0, max_delay=4.0, sleep=sleep)
    scheduler.start()
    scheduler.start()  # already running
    await wait_until(lambda: attempts >= 6)
    await scheduler.stop()

    assert not scheduler.is_running
    assert sleep.delays[:6] == [1.0, 2.0, 4.0, 4.0, 4.0, 4.0]
    seen = attempts
    await asyncio.sleep(0.02)
    assert attempts == seen
