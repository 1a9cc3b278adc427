"""
Tests for the DebounceScheduler class in bulkcall.scheduler.
"""

import asyncio
import typing as t

import pytest

from bulkcall.scheduler import DebounceScheduler, SchedulerState


class FlushRecorder:
    """Stand-in for the batcher: counts queued items and records flushes."""

    def __init__(self, *, gate: asyncio.Event | None = None, fail: bool = False) -> None:
        self.queued = 0
        self.flushes: list[int] = []
        self.gate = gate
        self.fail = fail
        self.started = asyncio.Event()

    async def flush(self) -> None:
        drained, self.queued = self.queued, 0
        self.flushes.append(drained)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("flush exploded")

    def has_pending(self) -> bool:
        return self.queued > 0


def _scheduler(recorder: FlushRecorder, **options: t.Any) -> DebounceScheduler:
    defaults: dict[str, t.Any] = {"quiet_window_seconds": 0.05}
    defaults.update(options)
    return DebounceScheduler(
        flush=recorder.flush,
        has_pending=recorder.has_pending,
        name="test",
        **defaults,
    )


def _push(recorder: FlushRecorder, scheduler: DebounceScheduler, count: int = 1) -> None:
    for _ in range(count):
        recorder.queued += 1
        scheduler.notify()


@pytest.mark.asyncio
async def test_notify_starts_collecting():
    """Test that the first notification moves the scheduler to collecting."""
    recorder = FlushRecorder()
    scheduler = _scheduler(recorder=recorder)

    assert scheduler.state is SchedulerState.IDLE
    _push(recorder=recorder, scheduler=scheduler)

    assert scheduler.state is SchedulerState.COLLECTING
    await scheduler.wait_idle()
    assert recorder.flushes == [1]
    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_quiet_window_is_reset_by_each_notification():
    """Test that notifications inside the window postpone the flush."""
    recorder = FlushRecorder()
    scheduler = _scheduler(recorder=recorder, quiet_window_seconds=0.08)

    for _ in range(4):
        _push(recorder=recorder, scheduler=scheduler)
        await asyncio.sleep(delay=0.03)

    assert recorder.flushes == []
    await scheduler.wait_idle()
    assert recorder.flushes == [4]


@pytest.mark.asyncio
async def test_max_wait_bounds_collecting_cycle():
    """Test that max wait forces a flush during a continuous burst."""
    recorder = FlushRecorder()
    scheduler = _scheduler(recorder=recorder, quiet_window_seconds=0.08, max_wait_seconds=0.1)

    for _ in range(6):
        _push(recorder=recorder, scheduler=scheduler)
        await asyncio.sleep(delay=0.03)

    assert recorder.flushes
    await scheduler.wait_idle()
    assert sum(recorder.flushes) == 6


@pytest.mark.asyncio
async def test_leading_edge_fires_then_suppresses():
    """Test that leading edge flushes at once, then coalesces within the window."""
    recorder = FlushRecorder()
    scheduler = _scheduler(recorder=recorder, quiet_window_seconds=0.1, leading_edge=True)

    _push(recorder=recorder, scheduler=scheduler)
    assert scheduler.state is SchedulerState.FLUSHING
    await scheduler.wait_idle()
    assert recorder.flushes == [1]

    _push(recorder=recorder, scheduler=scheduler, count=3)
    assert scheduler.state is SchedulerState.COLLECTING
    await scheduler.wait_idle()
    assert recorder.flushes == [1, 3]

    await asyncio.sleep(delay=0.12)
    _push(recorder=recorder, scheduler=scheduler)
    assert scheduler.state is SchedulerState.FLUSHING
    await scheduler.wait_idle()


@pytest.mark.asyncio
async def test_notifications_during_flush_start_new_cycle():
    """Test that items queued while flushing wait for the next cycle."""
    gate = asyncio.Event()
    recorder = FlushRecorder(gate=gate)
    scheduler = _scheduler(recorder=recorder)

    _push(recorder=recorder, scheduler=scheduler, count=2)
    await recorder.started.wait()
    _push(recorder=recorder, scheduler=scheduler, count=3)
    scheduler.flush_now()

    assert scheduler.state is SchedulerState.FLUSHING
    assert recorder.flushes == [2]

    gate.set()
    await asyncio.sleep(delay=0)
    await asyncio.sleep(delay=0)
    assert scheduler.state is SchedulerState.COLLECTING
    await scheduler.wait_idle()
    assert recorder.flushes == [2, 3]


@pytest.mark.asyncio
async def test_full_batch_after_flush_fires_immediately():
    """Test that a full queue after a flush skips the quiet window."""
    gate = asyncio.Event()
    recorder = FlushRecorder(gate=gate)
    scheduler = DebounceScheduler(
        flush=recorder.flush,
        has_pending=recorder.has_pending,
        has_full_batch=lambda: recorder.queued >= 2,
        quiet_window_seconds=10.0,
    )

    _push(recorder=recorder, scheduler=scheduler)
    scheduler.flush_now()
    await recorder.started.wait()
    _push(recorder=recorder, scheduler=scheduler, count=2)
    gate.set()

    await asyncio.wait_for(scheduler.wait_idle(), timeout=1.0)
    assert recorder.flushes == [1, 2]


@pytest.mark.asyncio
async def test_flush_error_returns_to_idle():
    """Test that an exception escaping flush does not wedge the scheduler."""
    recorder = FlushRecorder(fail=True)
    scheduler = _scheduler(recorder=recorder)

    _push(recorder=recorder, scheduler=scheduler)
    await scheduler.wait_idle()

    assert scheduler.state is SchedulerState.IDLE
    assert recorder.flushes == [1]


@pytest.mark.asyncio
async def test_detach_cancels_timer():
    """Test that no flush fires after detach."""
    recorder = FlushRecorder()
    scheduler = _scheduler(recorder=recorder)

    _push(recorder=recorder, scheduler=scheduler)
    await scheduler.detach()
    await asyncio.sleep(delay=0.1)

    assert recorder.flushes == []
    assert scheduler.detached is True
    assert scheduler.state is SchedulerState.IDLE

    _push(recorder=recorder, scheduler=scheduler)
    scheduler.flush_now()
    await asyncio.sleep(delay=0.1)
    assert recorder.flushes == []


@pytest.mark.asyncio
async def test_detach_cancels_running_flush():
    """Test that detach cancels an in-flight flush."""
    recorder = FlushRecorder(gate=asyncio.Event())
    scheduler = _scheduler(recorder=recorder)

    _push(recorder=recorder, scheduler=scheduler)
    scheduler.flush_now()
    await recorder.started.wait()
    await scheduler.detach()

    assert scheduler.state is SchedulerState.IDLE
    await asyncio.wait_for(scheduler.wait_idle(), timeout=0.1)
