"""
Core engine coalescing individual items into bulk calls.
Each enqueued item gets its own future, completed from the matching entry of
the bulk response.
"""

from __future__ import annotations

import asyncio
import collections
import typing as t
import uuid

import structlog

from bulkcall.assembler import BatchQueue, QueuedItem, assemble
from bulkcall.config import BatcherConfig
from bulkcall.dispatch import BatchReport, Dispatcher
from bulkcall.exceptions import BatchCancelledError, BatcherClosedError, InvalidItemError
from bulkcall.pending import PendingTable
from bulkcall.scheduler import DebounceScheduler, SchedulerState
from bulkcall.strategies.base import BatchStrategy

log = structlog.get_logger(__name__)
REPORT_HISTORY_SIZE = 100

ItemT = t.TypeVar("ItemT")


class Batcher(t.Generic[ItemT]):
    """
    Manage the queue, debounce timer and enqueue-submit-dispatch lifecycle.

    Items are collected until the quiet window elapses, the max wait is
    reached or ``max_batch_size`` items are queued, then drained into one
    bulk call. Items enqueued while a batch is in flight wait for the next
    batch.

    Notes
    -----
    A batcher belongs to the event loop it is first used on. ``enqueue`` is
    synchronous, so every mutation of the queue and the pending table runs
    without interleaving.

    Parameters
    ----------
    strategy : BatchStrategy
        Fingerprint, prepare, submit and classify hooks.
    config : BatcherConfig | None, optional
        Batcher configuration. Built from ``options`` when omitted.
    **options : typing.Any
        ``BatcherConfig`` fields overriding ``config``.
    """

    def __init__(
        self,
        *,
        strategy: BatchStrategy[ItemT, t.Any],
        config: BatcherConfig | None = None,
        **options: t.Any,
    ) -> None:
        if config is None:
            config = BatcherConfig(**options)
        elif options:
            config = BatcherConfig.model_validate({**config.model_dump(), **options})
        self._config = config
        self._strategy = strategy
        self._closed = False

        self._queue = BatchQueue()
        self._table = PendingTable(
            duplicate_policy=config.duplicate_policy,
            item_timeout_seconds=config.item_timeout_seconds,
            name=config.name,
        )
        self._dispatcher = Dispatcher(strategy=strategy, table=self._table, name=config.name)
        self._scheduler = DebounceScheduler(
            flush=self._flush,
            has_pending=lambda: bool(self._queue),
            has_full_batch=self._has_full_batch,
            quiet_window_seconds=config.quiet_window_seconds,
            max_wait_seconds=config.max_wait_seconds,
            leading_edge=config.leading_edge,
            name=config.name,
        )
        self._reports: collections.deque[BatchReport] = collections.deque(
            maxlen=REPORT_HISTORY_SIZE
        )

        log.debug(
            event="Initialized Batcher",
            batcher=config.name,
            quiet_window_seconds=config.quiet_window_seconds,
            max_wait_seconds=config.max_wait_seconds,
            leading_edge=config.leading_edge,
            max_batch_size=config.max_batch_size,
            duplicate_policy=config.duplicate_policy.value,
            item_timeout_seconds=config.item_timeout_seconds,
        )

    @property
    def config(self) -> BatcherConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> SchedulerState:
        return self._scheduler.state

    @property
    def pending_count(self) -> int:
        """Number of fingerprints awaiting an outcome, queued or in flight."""
        return len(self._table)

    @property
    def queued_count(self) -> int:
        """Number of items waiting for the next batch."""
        return len(self._queue)

    @property
    def reports(self) -> list[BatchReport]:
        """Reports of the most recent batches, oldest first."""
        return list(self._reports)

    def enqueue(self, item: ItemT) -> asyncio.Future[t.Any]:
        """
        Accept an item for batching without waiting for its outcome.

        Parameters
        ----------
        item : ItemT
            Item to batch.

        Returns
        -------
        asyncio.Future[typing.Any]
            Future completed with the classified value of the item's response
            entry, or with a ``BatcherError``.

        Raises
        ------
        BatcherClosedError
            If the batcher was closed or torn down.
        InvalidItemError
            If the item cannot be fingerprinted.
        DuplicateItemError
            If the item is already pending and duplicates are rejected.
        """
        if self._closed:
            raise BatcherClosedError(f"Batcher {self._config.name!r} is closed")

        try:
            fingerprint = self._strategy.request_fingerprint(item)
            hash(fingerprint)
        except Exception as error:
            log.error(
                event="Failed to fingerprint item",
                batcher=self._config.name,
                error=str(object=error),
            )
            raise InvalidItemError(f"Cannot fingerprint item {item!r}: {error}") from error

        handle = self._table.track(fingerprint=fingerprint)
        if handle.coalesced:
            return handle.future

        queued_count = self._queue.append(entry=handle.entry, item=item)
        log.debug(
            event="Queued item for batch",
            batcher=self._config.name,
            fingerprint=fingerprint,
            queued_count=queued_count,
            state=self._scheduler.state.value,
        )
        self._scheduler.notify()
        if self._has_full_batch():
            log.debug(
                event="Batch size reached",
                batcher=self._config.name,
                max_batch_size=self._config.max_batch_size,
            )
            self._scheduler.flush_now()
        return handle.future

    async def request(self, item: ItemT) -> t.Any:
        """
        Enqueue an item and wait for its outcome.

        Parameters
        ----------
        item : ItemT
            Item to batch.

        Returns
        -------
        typing.Any
            Classified value of the item's response entry.
        """
        return await self.enqueue(item)

    async def flush(self) -> None:
        """Submit queued items now and wait until the batcher is idle."""
        if self._closed:
            return
        if self._queue:
            self._scheduler.flush_now()
        await self._scheduler.wait_idle()

    async def close(self) -> None:
        """
        Flush queued items, wait for their outcomes, then tear down.

        Notes
        -----
        Items enqueued while closing are refused with ``BatcherClosedError``.
        """
        if self._closed:
            return
        self._closed = True
        if self._queue:
            log.info(
                event="Submitting final batch on close",
                batcher=self._config.name,
                queued_count=len(self._queue),
            )
            self._scheduler.flush_now()
        await self._scheduler.wait_idle()
        if self._scheduler.detached:
            return
        await self._release()

    async def teardown(self) -> None:
        """
        Reject every pending item with ``BatchCancelledError`` and stop the
        scheduler. Queued items are dropped and no flush fires afterwards.
        """
        if self._scheduler.detached:
            return
        self._closed = True
        await self._release()

    async def _release(self) -> None:
        dropped = self._queue.clear()
        rejected = self._table.reject_all(
            error=BatchCancelledError(f"Batcher {self._config.name!r} was torn down"),
        )
        await self._scheduler.detach()
        log.debug(
            event="Batcher closed",
            batcher=self._config.name,
            dropped_count=dropped,
            rejected_count=rejected,
        )

    def _has_full_batch(self) -> bool:
        max_batch_size = self._config.max_batch_size
        return max_batch_size is not None and len(self._queue) >= max_batch_size

    def _take_live(self, *, drained: list[QueuedItem]) -> list[QueuedItem]:
        # Items whose entry expired while queued are skipped.
        live: list[QueuedItem] = []
        for queued in drained:
            if not self._table.is_current(queued.entry):
                log.debug(
                    event="Skipped stale queued item",
                    batcher=self._config.name,
                    fingerprint=queued.fingerprint,
                )
                continue
            live.append(queued)
        return live

    async def _flush(self) -> None:
        drained = self._queue.drain(limit=self._config.max_batch_size)
        live = self._take_live(drained=drained)
        if not live:
            return

        batch_id = str(object=uuid.uuid4())
        try:
            batch = assemble(strategy=self._strategy, drained=live, batch_id=batch_id)
        except Exception as error:
            report = self._dispatcher.fail_batch(
                batch_id=batch_id,
                entries=[queued.entry for queued in live],
                error=error,
            )
        else:
            report = await self._dispatcher.dispatch(batch=batch)
        self._reports.append(report)

    async def __aenter__(self) -> Batcher[ItemT]:
        return self

    async def __aexit__(self, *_: t.Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"Batcher(name={self._config.name!r}, "
            f"quiet_window_seconds={self._config.quiet_window_seconds}, "
            f"state={self._scheduler.state.value}, "
            f"pending={len(self._table)}, "
            f"closed={self._closed})"
        )
