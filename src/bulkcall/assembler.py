"""
Queue of accepted items and assembly of drained items into a batch.
"""

from __future__ import annotations

import typing as t
import uuid
from dataclasses import dataclass

import structlog

from bulkcall.pending import PendingEntry
from bulkcall.strategies.base import BatchStrategy

log = structlog.get_logger(__name__)


class QueuedItem(t.NamedTuple):
    entry: PendingEntry
    item: t.Any

    @property
    def fingerprint(self) -> t.Hashable:
        return self.entry.fingerprint


@dataclass(frozen=True)
class Batch:
    """
    Items drained together and the payload built from them.

    Parameters
    ----------
    batch_id : str
        Unique batch identifier.
    entries : tuple[PendingEntry, ...]
        Pending entries of the items, in enqueue order. Outcomes of this batch
        only complete these entries.
    items : tuple[typing.Any, ...]
        Drained items, in enqueue order.
    payload : typing.Any
        Wire payload returned by ``strategy.prepare``.
    """

    batch_id: str
    entries: tuple[PendingEntry, ...]
    items: tuple[t.Any, ...]
    payload: t.Any

    @property
    def fingerprints(self) -> tuple[t.Hashable, ...]:
        return tuple(entry.fingerprint for entry in self.entries)

    def __len__(self) -> int:
        return len(self.items)


class BatchQueue:
    """Append-only ordered queue, emptied by ``drain``."""

    def __init__(self) -> None:
        self._items: list[QueuedItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def append(self, *, entry: PendingEntry, item: t.Any) -> int:
        """
        Queue an item behind every item queued before it.

        Returns
        -------
        int
            Queue length after the append.
        """
        self._items.append(QueuedItem(entry=entry, item=item))
        return len(self._items)

    def drain(self, *, limit: int | None = None) -> list[QueuedItem]:
        """
        Remove and return queued items in enqueue order.

        Parameters
        ----------
        limit : int | None, optional
            Take at most this many items; the rest stay queued.

        Returns
        -------
        list[QueuedItem]
            Drained items.
        """
        if limit is None or limit >= len(self._items):
            drained, self._items = self._items, []
        else:
            drained, self._items = self._items[:limit], self._items[limit:]
        return drained

    def clear(self) -> int:
        dropped = len(self._items)
        self._items = []
        return dropped


def assemble(
    *,
    strategy: BatchStrategy[t.Any, t.Any],
    drained: t.Sequence[QueuedItem],
    batch_id: str | None = None,
) -> Batch:
    """
    Build a batch from drained items through ``strategy.prepare``.

    Parameters
    ----------
    strategy : BatchStrategy
        Strategy supplying the payload transform.
    drained : typing.Sequence[QueuedItem]
        Items drained from the queue.
    batch_id : str | None, optional
        Identifier to give the batch. A random UUID when omitted.

    Returns
    -------
    Batch
        Frozen batch ready for submission.
    """
    if not drained:
        raise ValueError("Cannot assemble an empty batch")
    items = tuple(queued.item for queued in drained)
    batch = Batch(
        batch_id=batch_id or str(object=uuid.uuid4()),
        entries=tuple(queued.entry for queued in drained),
        items=items,
        payload=strategy.prepare(items),
    )
    log.debug(
        event="Assembled batch",
        batch_id=batch.batch_id,
        item_count=len(batch),
    )
    return batch
