"""
Correlation table from fingerprint to the futures waiting on it.
"""

from __future__ import annotations

import asyncio
import time
import typing as t
from dataclasses import dataclass, field

import structlog

from bulkcall.config import DuplicatePolicy
from bulkcall.exceptions import DuplicateItemError, ItemTimeoutError

log = structlog.get_logger(__name__)


@dataclass(eq=False)
class PendingEntry:
    """
    An item accepted by the batcher and not yet completed.

    Entries compare by identity. A fingerprint tracked again after its entry
    expired gets a new entry, and outcomes meant for the old one never reach it.
    """

    fingerprint: t.Hashable
    waiters: list[asyncio.Future[t.Any]]
    created_at: float = field(default_factory=time.monotonic)
    timeout_handle: asyncio.TimerHandle | None = None


@dataclass(frozen=True)
class CompletionHandle:
    """
    Result of tracking a fingerprint.

    Parameters
    ----------
    future : asyncio.Future[typing.Any]
        Future handed back to the caller.
    coalesced : bool
        ``True`` when the fingerprint was already pending and the future joined
        the existing entry; the item must not be queued again.
    entry : PendingEntry
        Entry the future waits on.
    """

    future: asyncio.Future[t.Any]
    coalesced: bool
    entry: PendingEntry


class PendingTable:
    """
    Track outstanding completions keyed by fingerprint.

    Each entry is completed exactly once and is removed from the table before
    any of its waiters observes the outcome.

    Parameters
    ----------
    duplicate_policy : DuplicatePolicy
        Behaviour when a fingerprint is tracked twice.
    item_timeout_seconds : float | None
        Reject entries still pending after this many seconds.
    name : str
        Batcher name used in logs.
    """

    def __init__(
        self,
        *,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.COALESCE,
        item_timeout_seconds: float | None = None,
        name: str = "batcher",
    ) -> None:
        self._duplicate_policy = duplicate_policy
        self._item_timeout_seconds = item_timeout_seconds
        self._name = name
        self._entries: dict[t.Hashable, PendingEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries

    def fingerprints(self) -> list[t.Hashable]:
        return list(self._entries)

    def track(self, *, fingerprint: t.Hashable) -> CompletionHandle:
        """
        Register a new waiter for ``fingerprint``.

        Parameters
        ----------
        fingerprint : typing.Hashable
            Request fingerprint of the enqueued item.

        Returns
        -------
        CompletionHandle
            Caller future and whether it joined an existing entry.

        Raises
        ------
        DuplicateItemError
            If the fingerprint is pending and the policy is ``REJECT``.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[t.Any] = loop.create_future()

        existing = self._entries.get(fingerprint)
        if existing is not None:
            if self._duplicate_policy is DuplicatePolicy.REJECT:
                log.warning(
                    event="Rejected duplicate fingerprint",
                    batcher=self._name,
                    fingerprint=fingerprint,
                )
                raise DuplicateItemError(fingerprint=fingerprint)
            existing.waiters.append(future)
            log.debug(
                event="Coalesced duplicate fingerprint",
                batcher=self._name,
                fingerprint=fingerprint,
                waiter_count=len(existing.waiters),
            )
            return CompletionHandle(future=future, coalesced=True, entry=existing)

        entry = PendingEntry(fingerprint=fingerprint, waiters=[future])
        if self._item_timeout_seconds is not None:
            entry.timeout_handle = loop.call_later(
                self._item_timeout_seconds,
                self._expire,
                entry,
            )
        self._entries[fingerprint] = entry
        return CompletionHandle(future=future, coalesced=False, entry=entry)

    def is_current(self, entry: PendingEntry) -> bool:
        """Whether ``entry`` is still the pending entry for its fingerprint."""
        return self._entries.get(entry.fingerprint) is entry

    def resolve(
        self,
        *,
        fingerprint: t.Hashable,
        value: t.Any,
        entry: PendingEntry | None = None,
    ) -> bool:
        """
        Complete every waiter of ``fingerprint`` with ``value``.

        Parameters
        ----------
        fingerprint : typing.Hashable
            Fingerprint to complete.
        value : typing.Any
            Value delivered to the waiters.
        entry : PendingEntry | None, optional
            Entry the outcome belongs to. Nothing is completed when another
            entry has since replaced it under the same fingerprint.

        Returns
        -------
        bool
            ``False`` when the fingerprint, or that entry, was not pending.
        """
        popped = self._pop(fingerprint=fingerprint, entry=entry, action="resolve")
        if popped is None:
            return False
        for waiter in popped.waiters:
            if not waiter.done():
                waiter.set_result(value)
        return True

    def reject(
        self,
        *,
        fingerprint: t.Hashable,
        error: BaseException,
        entry: PendingEntry | None = None,
    ) -> bool:
        """
        Fail every waiter of ``fingerprint`` with ``error``.

        Returns
        -------
        bool
            ``False`` when the fingerprint, or that entry, was not pending.
        """
        popped = self._pop(fingerprint=fingerprint, entry=entry, action="reject")
        if popped is None:
            return False
        self._fail(entry=popped, error=error)
        return True

    def reject_many(self, *, entries: t.Iterable[PendingEntry], error: BaseException) -> int:
        """
        Fail the given entries, skipping those completed or replaced since.

        Returns
        -------
        int
            Number of entries rejected.
        """
        rejected = 0
        for entry in entries:
            if not self.is_current(entry):
                continue
            del self._entries[entry.fingerprint]
            self._fail(entry=entry, error=error)
            rejected += 1
        return rejected

    def reject_all(self, *, error: BaseException) -> int:
        """
        Fail every pending entry with the same error and clear the table.

        Returns
        -------
        int
            Number of entries rejected.
        """
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            self._fail(entry=entry, error=error)
        if entries:
            log.debug(
                event="Rejected all pending entries",
                batcher=self._name,
                rejected_count=len(entries),
                error=str(object=error),
            )
        return len(entries)

    def _pop(
        self,
        *,
        fingerprint: t.Hashable,
        entry: PendingEntry | None,
        action: str,
    ) -> PendingEntry | None:
        current = self._entries.get(fingerprint)
        if current is None or (entry is not None and current is not entry):
            log.warning(
                event="No pending entry for fingerprint",
                batcher=self._name,
                fingerprint=fingerprint,
                action=action,
                replaced=current is not None,
            )
            return None
        del self._entries[fingerprint]
        if current.timeout_handle is not None:
            current.timeout_handle.cancel()
            current.timeout_handle = None
        return current

    @staticmethod
    def _fail(*, entry: PendingEntry, error: BaseException) -> None:
        if entry.timeout_handle is not None:
            entry.timeout_handle.cancel()
            entry.timeout_handle = None
        for waiter in entry.waiters:
            if not waiter.done():
                waiter.set_exception(error)

    def _expire(self, entry: PendingEntry) -> None:
        # A newer entry may have replaced this one under the same fingerprint.
        if not self.is_current(entry):
            return
        del self._entries[entry.fingerprint]
        entry.timeout_handle = None
        timeout_seconds = t.cast(float, self._item_timeout_seconds)
        log.warning(
            event="Pending entry timed out",
            batcher=self._name,
            fingerprint=entry.fingerprint,
            timeout_seconds=timeout_seconds,
        )
        self._fail(
            entry=entry,
            error=ItemTimeoutError(
                fingerprint=entry.fingerprint,
                timeout_seconds=timeout_seconds,
            ),
        )
