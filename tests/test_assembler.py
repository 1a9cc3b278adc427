"""
Tests for BatchQueue and assemble in bulkcall.assembler.
"""

import dataclasses

import pytest

from bulkcall.assembler import BatchQueue, QueuedItem, assemble
from bulkcall.pending import PendingEntry
from tests.mocks.strategies import ScriptedStrategy


class UpperStrategy(ScriptedStrategy):
    def prepare(self, items):
        return {"ids": [item.upper() for item in items]}


def _queued(*items: str) -> list[QueuedItem]:
    return [QueuedItem(entry=PendingEntry(fingerprint=item, waiters=[]), item=item) for item in items]


def _filled_queue(*items: str) -> BatchQueue:
    queue = BatchQueue()
    for queued in _queued(*items):
        queue.append(entry=queued.entry, item=queued.item)
    return queue


def test_append_reports_queue_length():
    """Test that append returns the new queue length."""
    queue = BatchQueue()
    first, second = _queued("a", "b")

    assert not queue
    assert queue.append(entry=first.entry, item=first.item) == 1
    assert queue.append(entry=second.entry, item=second.item) == 2
    assert len(queue) == 2


def test_drain_keeps_enqueue_order():
    """Test that drain returns items in the order they were appended."""
    queue = _filled_queue("c", "a", "b")

    drained = queue.drain()

    assert [queued.item for queued in drained] == ["c", "a", "b"]
    assert len(queue) == 0


def test_drain_limit_leaves_remainder():
    """Test that a limited drain takes the oldest items only."""
    queue = _filled_queue("a", "b", "c", "d", "e")

    first = queue.drain(limit=2)
    second = queue.drain(limit=10)

    assert [queued.fingerprint for queued in first] == ["a", "b"]
    assert [queued.fingerprint for queued in second] == ["c", "d", "e"]
    assert queue.drain() == []


def test_clear_returns_dropped_count():
    """Test that clear empties the queue."""
    queue = _filled_queue("a", "b")

    assert queue.clear() == 2
    assert not queue


def test_assemble_applies_prepare():
    """Test that the payload comes from the strategy prepare hook."""
    drained = _queued("a", "b")

    batch = assemble(strategy=UpperStrategy(), drained=drained, batch_id="batch-1")

    assert batch.batch_id == "batch-1"
    assert batch.fingerprints == ("a", "b")
    assert batch.items == ("a", "b")
    assert batch.payload == {"ids": ["A", "B"]}
    assert len(batch) == 2


def test_assemble_keeps_entry_identity():
    """Test that a batch holds the very entries that were drained."""
    drained = _queued("a", "b")

    batch = assemble(strategy=ScriptedStrategy(), drained=drained)

    assert all(
        batch_entry is queued.entry for batch_entry, queued in zip(batch.entries, drained)
    )


def test_assemble_defaults_to_identity_payload():
    """Test that the base prepare hook passes items through."""
    batch = assemble(strategy=ScriptedStrategy(), drained=_queued("x"))

    assert batch.payload == ["x"]
    assert batch.batch_id


def test_assemble_generates_unique_ids():
    """Test that batches built without an id get distinct ones."""
    drained = _queued("x")
    strategy = ScriptedStrategy()

    first = assemble(strategy=strategy, drained=drained)
    second = assemble(strategy=strategy, drained=drained)

    assert first.batch_id != second.batch_id


def test_assemble_empty_raises():
    """Test that an empty drain cannot become a batch."""
    with pytest.raises(ValueError, match="empty batch"):
        assemble(strategy=ScriptedStrategy(), drained=[])


def test_batch_is_frozen():
    """Test that an assembled batch cannot be mutated."""
    batch = assemble(strategy=ScriptedStrategy(), drained=_queued("a"))

    with pytest.raises(dataclasses.FrozenInstanceError):
        batch.payload = []
