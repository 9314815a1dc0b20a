"""Tests for the periodic push/pull scheduler."""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from collectionsync.scheduler import SyncScheduler


def test_run_cycle_pushes_before_pulling() -> None:
    calls: List[str] = []

    async def push() -> None:
        calls.append("push")

    async def pull() -> None:
        calls.append("pull")

    scheduler = SyncScheduler(push, pull)
    asyncio.run(scheduler.run_cycle())

    assert calls == ["push", "pull"]
    assert scheduler.cycles == 1


def test_failures_do_not_escape_a_cycle() -> None:
    calls: List[str] = []

    async def push() -> None:
        raise RuntimeError("push failed")

    async def pull() -> None:
        calls.append("pull")

    scheduler = SyncScheduler(push, pull)
    asyncio.run(scheduler.run_cycle())

    assert calls == ["pull"]


def test_interval_must_be_positive() -> None:
    async def step() -> None:
        return None

    with pytest.raises(ValueError):
        SyncScheduler(step, step, interval=0)


def test_trigger_runs_a_cycle_and_stop_ends_the_loop() -> None:
    calls: List[str] = []

    async def push() -> None:
        calls.append("push")

    async def pull() -> None:
        calls.append("pull")

    async def scenario() -> SyncScheduler:
        scheduler = SyncScheduler(push, pull, interval=60.0)
        scheduler.start()
        assert scheduler.running

        scheduler.trigger()
        for _ in range(20):
            await asyncio.sleep(0)
            if scheduler.cycles:
                break

        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert calls == ["push", "pull"]
    assert not scheduler.running


def test_loop_runs_on_interval() -> None:
    async def step() -> None:
        return None

    async def scenario() -> int:
        scheduler = SyncScheduler(step, step, interval=0.01)
        scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()
        return scheduler.cycles

    assert asyncio.run(scenario()) >= 2


def test_trigger_requires_running_scheduler() -> None:
    async def step() -> None:
        return None

    with pytest.raises(RuntimeError):
        SyncScheduler(step, step).trigger()
