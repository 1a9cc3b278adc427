"""
Debounce scheduler turning a burst of notifications into flush triggers.
"""

from __future__ import annotations

import asyncio
import enum
import typing as t

import structlog

log = structlog.get_logger(__name__)


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    FLUSHING = "flushing"


class DebounceScheduler:
    """
    Trailing-edge debounce with optional leading edge and max wait.

    How it works:
        - The first notification while idle starts a collecting cycle. Every
          notification while collecting re-arms the quiet window timer.
        - ``max_wait_seconds`` caps how long a collecting cycle can be
          deferred by a continuous burst.
        - With ``leading_edge`` the first notification after a quiet period
          flushes immediately; the burst that follows is coalesced.
        - At most one flush runs at a time. Notifications while flushing are
          picked up by a new collecting cycle once the flush returns.

    Parameters
    ----------
    flush : typing.Callable[[], typing.Awaitable[None]]
        Coroutine function draining and dispatching one batch.
    has_pending : typing.Callable[[], bool]
        Whether items are still queued.
    has_full_batch : typing.Callable[[], bool] | None
        Whether enough items are queued to flush without waiting.
    quiet_window_seconds : float
        Quiet period that ends a collecting cycle.
    max_wait_seconds : float | None
        Upper bound on the length of a collecting cycle.
    leading_edge : bool
        Flush immediately on the first notification after a quiet period.
    name : str
        Batcher name used in logs and task names.
    """

    def __init__(
        self,
        *,
        flush: t.Callable[[], t.Awaitable[None]],
        has_pending: t.Callable[[], bool],
        has_full_batch: t.Callable[[], bool] | None = None,
        quiet_window_seconds: float,
        max_wait_seconds: float | None = None,
        leading_edge: bool = False,
        name: str = "batcher",
    ) -> None:
        self._flush = flush
        self._has_pending = has_pending
        self._has_full_batch = has_full_batch
        self._quiet_window_seconds = quiet_window_seconds
        self._max_wait_seconds = max_wait_seconds
        self._leading_edge = leading_edge
        self._name = name

        self._state = SchedulerState.IDLE
        self._timer_handle: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._cycle_started_at: float | None = None
        self._last_flush_at: float | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._detached = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def detached(self) -> bool:
        return self._detached

    def notify(self) -> None:
        """Signal that an item was queued."""
        if self._detached or self._state is SchedulerState.FLUSHING:
            return

        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._state is SchedulerState.IDLE:
            if self._leading_edge and (
                self._last_flush_at is None
                or now - self._last_flush_at >= self._quiet_window_seconds
            ):
                log.debug(event="Leading-edge flush", batcher=self._name)
                self._fire()
                return
            self._enter_collecting(now=now)
        self._arm(loop=loop, now=now)

    def flush_now(self) -> None:
        """Flush immediately unless a flush is already running."""
        if self._detached or self._state is SchedulerState.FLUSHING:
            return
        self._fire()

    async def wait_idle(self) -> None:
        """Wait until no flush is running and no cycle is collecting."""
        await self._idle.wait()

    async def detach(self) -> None:
        """Cancel the timer and any running flush. No flush fires afterwards."""
        if self._detached:
            return
        self._detached = True
        self._cancel_timer()
        task = self._flush_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                log.debug(event="Flush task cancelled during detach", batcher=self._name)
        self._flush_task = None
        self._state = SchedulerState.IDLE
        self._idle.set()
        log.debug(event="Scheduler detached", batcher=self._name)

    def _enter_collecting(self, *, now: float) -> None:
        self._state = SchedulerState.COLLECTING
        self._cycle_started_at = now
        self._idle.clear()

    def _arm(self, *, loop: asyncio.AbstractEventLoop, now: float) -> None:
        delay = self._quiet_window_seconds
        if self._max_wait_seconds is not None and self._cycle_started_at is not None:
            remaining = self._cycle_started_at + self._max_wait_seconds - now
            delay = min(delay, remaining)
        self._cancel_timer()
        if delay <= 0:
            log.debug(event="Max wait reached", batcher=self._name)
            self._fire()
            return
        self._timer_handle = loop.call_later(delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None

    def _fire(self) -> None:
        self._cancel_timer()
        if self._detached or self._state is SchedulerState.FLUSHING:
            return
        loop = asyncio.get_running_loop()
        self._state = SchedulerState.FLUSHING
        self._cycle_started_at = None
        self._last_flush_at = loop.time()
        self._idle.clear()
        self._flush_task = loop.create_task(
            self._run_flush(),
            name=f"bulkcall_flush_{self._name}",
        )

    async def _run_flush(self) -> None:
        try:
            await self._flush()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log.error(
                event="Flush failed",
                batcher=self._name,
                error=str(object=error),
            )
        finally:
            self._flush_task = None
            if not self._detached:
                self._after_flush()

    def _after_flush(self) -> None:
        if self._has_pending():
            loop = asyncio.get_running_loop()
            now = loop.time()
            self._enter_collecting(now=now)
            if self._has_full_batch is not None and self._has_full_batch():
                self._fire()
            else:
                self._arm(loop=loop, now=now)
            return
        self._state = SchedulerState.IDLE
        self._idle.set()
