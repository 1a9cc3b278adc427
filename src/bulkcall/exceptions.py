"""
Bulkcall-specific runtime exceptions.

Errors delivered through a caller's future are the terminal outcomes of one
enqueued item. Errors raised directly from ``Batcher.enqueue`` signal misuse.
"""

from __future__ import annotations

import typing as t


class BatcherError(RuntimeError):
    """Base class for every error emitted by the batching engine."""


class ItemRejected(BatcherError):
    """
    The batch response explicitly marked this item as failed.

    Parameters
    ----------
    fingerprint : typing.Hashable
        Fingerprint of the rejected item.
    reason : typing.Any
        Failure payload returned by the strategy ``classify`` hook.
    """

    def __init__(self, *, fingerprint: t.Hashable, reason: t.Any = None) -> None:
        self.fingerprint = fingerprint
        self.reason = reason
        super().__init__(f"Item {fingerprint!r} rejected: {reason!r}")


class TransportFailure(BatcherError):
    """
    The batch submission itself failed, independent of any entry.

    Parameters
    ----------
    batch_id : str
        Identifier of the batch that failed.
    item_count : int
        Number of items carried by the failed batch.
    """

    def __init__(self, *, batch_id: str, item_count: int) -> None:
        self.batch_id = batch_id
        self.item_count = item_count
        super().__init__(f"Batch {batch_id} failed in transport ({item_count} item(s))")


class UnmatchedResponse(BatcherError):
    """
    The item was submitted but the response held no entry for it.

    Parameters
    ----------
    fingerprint : typing.Hashable
        Fingerprint that had no response entry.
    batch_id : str
        Identifier of the batch the item was part of.
    """

    def __init__(self, *, fingerprint: t.Hashable, batch_id: str) -> None:
        self.fingerprint = fingerprint
        self.batch_id = batch_id
        super().__init__(f"No response received for {fingerprint!r} in batch {batch_id}")


class BatchCancelledError(BatcherError):
    """Delivered to every pending future when the batcher is torn down."""


class ItemTimeoutError(BatcherError):
    """
    The item did not complete within the configured per-item timeout.

    Parameters
    ----------
    fingerprint : typing.Hashable
        Fingerprint of the expired item.
    timeout_seconds : float
        Timeout that elapsed.
    """

    def __init__(self, *, fingerprint: t.Hashable, timeout_seconds: float) -> None:
        self.fingerprint = fingerprint
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Item {fingerprint!r} timed out after {timeout_seconds}s")


class BatcherClosedError(BatcherError):
    """Raised by ``enqueue`` once the batcher has been torn down."""


class DuplicateItemError(BatcherError):
    """
    Raised by ``enqueue`` when a fingerprint is already pending and the
    duplicate policy forbids reuse.
    """

    def __init__(self, *, fingerprint: t.Hashable) -> None:
        self.fingerprint = fingerprint
        super().__init__(f"Item {fingerprint!r} is already pending")


class InvalidItemError(BatcherError, ValueError):
    """Raised by ``enqueue`` when an item cannot be fingerprinted."""


def is_batcher_error(*, error: BaseException) -> bool:
    """
    Detect whether an exception chain contains a batching engine error.

    Parameters
    ----------
    error : BaseException
        Top-level exception to inspect.

    Returns
    -------
    bool
        ``True`` when the exception or any nested cause/context is a
        ``BatcherError``.
    """
    seen: set[int] = set()
    to_visit: list[BaseException] = [error]
    while to_visit:
        current = to_visit.pop()
        current_id = id(current)
        if current_id in seen:
            continue
        seen.add(current_id)

        if isinstance(current, BatcherError):
            return True

        cause = getattr(current, "__cause__", None)
        if isinstance(cause, BaseException):
            to_visit.append(cause)
        context = getattr(current, "__context__", None)
        if isinstance(context, BaseException):
            to_visit.append(context)

    return False
