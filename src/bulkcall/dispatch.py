"""
Submission of an assembled batch and correlation of its response entries
back to pending futures.
"""

from __future__ import annotations

import asyncio
import typing as t

import structlog
from pydantic import BaseModel, ConfigDict, Field

from bulkcall.assembler import Batch
from bulkcall.exceptions import ItemRejected, TransportFailure, UnmatchedResponse
from bulkcall.pending import PendingEntry, PendingTable
from bulkcall.strategies.base import BatchStrategy, Failure, Success
from bulkcall.utils.logging import logging_context

log = structlog.get_logger(__name__)


class BatchReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: str
    size: int = Field(description="number of items submitted")
    resolved: int = Field(default=0, description="entries completed with a value")
    rejected: int = Field(default=0, description="entries rejected by classify")
    unmatched: int = Field(default=0, description="items with no response entry")
    ignored: int = Field(
        default=0,
        description="response entries that completed no pending item",
    )
    transport_error: str | None = Field(
        default=None, description="optional, error message when the submission itself failed"
    )

    @property
    def ok(self) -> bool:
        return self.transport_error is None and self.rejected == 0 and self.unmatched == 0


class Dispatcher:
    """
    Submit batches through the strategy transport and complete their items.

    Parameters
    ----------
    strategy : BatchStrategy
        Strategy supplying ``submit``, ``entries``, ``response_fingerprint``
        and ``classify``.
    table : PendingTable
        Table holding the futures to complete.
    name : str
        Batcher name used in logs.
    """

    def __init__(
        self,
        *,
        strategy: BatchStrategy[t.Any, t.Any],
        table: PendingTable,
        name: str = "batcher",
    ) -> None:
        self._strategy = strategy
        self._table = table
        self._name = name

    async def dispatch(self, *, batch: Batch) -> BatchReport:
        """
        Submit ``batch`` and deliver one outcome per item.

        Parameters
        ----------
        batch : Batch
            Batch to submit.

        Returns
        -------
        BatchReport
            Counters describing how the batch was delivered.
        """
        with logging_context(batcher=self._name, batch_id=batch.batch_id):
            log.info(event="Submitting batch", item_count=len(batch))
            try:
                response = await self._strategy.submit(batch.payload)
                entries = list(self._strategy.entries(response))
            except asyncio.CancelledError:
                raise
            except Exception as error:
                return self.fail_batch(
                    batch_id=batch.batch_id,
                    entries=batch.entries,
                    error=error,
                )

            report = self._apply_entries(batch=batch, entries=entries)
            log.info(
                event="Batch dispatched",
                resolved=report.resolved,
                rejected=report.rejected,
                unmatched=report.unmatched,
                ignored=report.ignored,
            )
            return report

    def fail_batch(
        self,
        *,
        batch_id: str,
        entries: t.Sequence[PendingEntry],
        error: BaseException,
    ) -> BatchReport:
        """
        Reject every item of a batch with a ``TransportFailure``.

        Parameters
        ----------
        batch_id : str
            Identifier of the failed batch.
        entries : typing.Sequence[PendingEntry]
            Pending entries carried by the batch. Entries replaced since the
            batch was drained are left alone.
        error : BaseException
            Underlying error, chained as the failure cause.

        Returns
        -------
        BatchReport
            Report carrying the transport error.
        """
        failure = TransportFailure(batch_id=batch_id, item_count=len(entries))
        failure.__cause__ = error
        log.error(
            event="Batch submission failed",
            batcher=self._name,
            batch_id=batch_id,
            item_count=len(entries),
            error=str(object=error),
        )
        self._table.reject_many(entries=entries, error=failure)
        return BatchReport(
            batch_id=batch_id,
            size=len(entries),
            transport_error=str(object=error),
        )

    def _apply_entries(self, *, batch: Batch, entries: t.Sequence[t.Any]) -> BatchReport:
        expected = {entry.fingerprint: entry for entry in batch.entries}
        seen: set[t.Hashable] = set()
        resolved = rejected = ignored = 0

        for response_entry in entries:
            try:
                fingerprint = self._strategy.response_fingerprint(response_entry)
                hash(fingerprint)
            except Exception as error:
                log.warning(
                    event="Failed to fingerprint response entry",
                    error=str(object=error),
                )
                ignored += 1
                continue

            if fingerprint not in expected:
                log.warning(event="Response entry matches no batch item", fingerprint=fingerprint)
                ignored += 1
                continue
            if fingerprint in seen:
                log.warning(event="Duplicate response entry ignored", fingerprint=fingerprint)
                ignored += 1
                continue
            seen.add(fingerprint)
            pending = expected[fingerprint]

            try:
                outcome = self._strategy.classify(response_entry)
            except Exception as error:
                rejection = ItemRejected(fingerprint=fingerprint, reason=error)
                rejection.__cause__ = error
                outcome = None
            else:
                rejection = None

            if isinstance(outcome, Success):
                if self._table.resolve(fingerprint=fingerprint, value=outcome.value, entry=pending):
                    resolved += 1
                else:
                    ignored += 1
                continue

            if rejection is None:
                reason = (
                    outcome.error
                    if isinstance(outcome, Failure)
                    else TypeError(f"classify returned {type(outcome).__name__}")
                )
                rejection = ItemRejected(fingerprint=fingerprint, reason=reason)
            if self._table.reject(fingerprint=fingerprint, error=rejection, entry=pending):
                rejected += 1
            else:
                ignored += 1

        unmatched = 0
        for pending in batch.entries:
            if pending.fingerprint in seen:
                continue
            missing = UnmatchedResponse(fingerprint=pending.fingerprint, batch_id=batch.batch_id)
            if self._table.reject(fingerprint=pending.fingerprint, error=missing, entry=pending):
                unmatched += 1
        if unmatched:
            log.error(event="Missing batch results", missing_count=unmatched)

        return BatchReport(
            batch_id=batch.batch_id,
            size=len(batch),
            resolved=resolved,
            rejected=rejected,
            unmatched=unmatched,
            ignored=ignored,
        )
