"""Tests for the lockout countdown scheduler."""

import asyncio

import pytest

from photolab.countdown import CountdownScheduler


def make(clock, end, ticks, expired, interval_s=0.01):
    return CountdownScheduler(
        end,
        clock=clock,
        on_tick=ticks.append,
        on_expire=lambda: expired.append(True),
        interval_s=interval_s,
    )


def test_tick_reports_only_changed_seconds(clock) -> None:
    ticks, expired = [], []
    sched = make(clock, clock() + 3000, ticks, expired)
    assert sched.tick() is True
    clock.advance(100)
    assert sched.tick() is True
    clock.advance(900)
    assert sched.tick() is True
    assert ticks == [3, 2]
    assert expired == []


def test_tick_expires_once(clock) -> None:
    ticks, expired = [], []
    sched = make(clock, clock() + 1000, ticks, expired)
    sched.tick()
    clock.advance(5000)
    assert sched.tick() is False
    assert sched.tick() is False
    assert ticks == [1, 0]
    assert expired == [True]
    assert sched.active is False


def test_cancel_silences_callbacks(clock) -> None:
    ticks, expired = [], []
    sched = make(clock, clock() + 1000, ticks, expired)
    sched.cancel()
    clock.advance(2000)
    assert sched.tick() is False
    assert ticks == []
    assert expired == []


@pytest.mark.anyio
async def test_loop_runs_until_expiry(clock) -> None:
    ticks, expired = [], []
    sched = make(clock, clock() + 2000, ticks, expired).start()
    await asyncio.sleep(0.03)
    assert sched.active
    assert expired == []
    clock.advance(2000)
    await asyncio.sleep(0.05)
    assert expired == [True]
    assert sched.active is False
    assert ticks[0] == 2
    assert ticks[-1] == 0


@pytest.mark.anyio
async def test_cancelled_loop_never_expires(clock) -> None:
    ticks, expired = [], []
    sched = make(clock, clock() + 1000, ticks, expired).start()
    await asyncio.sleep(0.02)
    sched.cancel()
    clock.advance(5000)
    await asyncio.sleep(0.05)
    assert expired == []
