from __future__ import annotations

import typing as t
from dataclasses import dataclass

ItemT = t.TypeVar("ItemT")
EntryT = t.TypeVar("EntryT")
ValueT = t.TypeVar("ValueT")


@dataclass(frozen=True)
class Success(t.Generic[ValueT]):
    """
    Positive per-entry outcome.

    Parameters
    ----------
    value : ValueT
        Value delivered to the caller's future.
    """

    value: ValueT


@dataclass(frozen=True)
class Failure:
    """
    Negative per-entry outcome.

    Parameters
    ----------
    error : typing.Any
        Failure payload wrapped into ``ItemRejected.reason``.
    """

    error: t.Any


Outcome = t.Union[Success[t.Any], Failure]


@t.runtime_checkable
class BatchStrategy(t.Protocol[ItemT, EntryT]):
    """
    Capabilities the batching engine consumes from its caller.

    Notes
    -----
    ``request_fingerprint`` and ``response_fingerprint`` must be pure and
    return equal hashable values for an item and its response entry. Equality
    of the two is the only correlation mechanism.
    """

    def request_fingerprint(self, item: ItemT) -> t.Hashable: ...

    def response_fingerprint(self, entry: EntryT) -> t.Hashable: ...

    def prepare(self, items: t.Sequence[ItemT]) -> t.Any: ...

    async def submit(self, payload: t.Any) -> t.Any: ...

    def entries(self, response: t.Any) -> t.Iterable[EntryT]: ...

    def classify(self, entry: EntryT) -> Outcome: ...


class BaseStrategy(t.Generic[ItemT, EntryT]):
    """
    Convenience base implementing the optional hooks.

    Subclasses provide ``request_fingerprint``, ``response_fingerprint`` and
    ``submit``. ``prepare`` passes items through as a list, ``entries``
    iterates the response and ``classify`` treats every entry as a success
    whose value is the entry itself.
    """

    name: str = "base"

    def request_fingerprint(self, item: ItemT) -> t.Hashable:
        raise NotImplementedError

    def response_fingerprint(self, entry: EntryT) -> t.Hashable:
        raise NotImplementedError

    def prepare(self, items: t.Sequence[ItemT]) -> t.Any:
        return list(items)

    async def submit(self, payload: t.Any) -> t.Any:
        raise NotImplementedError

    def entries(self, response: t.Any) -> t.Iterable[EntryT]:
        return t.cast(t.Iterable[EntryT], response)

    def classify(self, entry: EntryT) -> Outcome:
        return Success(value=entry)


class CallbackStrategy(BaseStrategy[ItemT, EntryT]):
    """
    Strategy assembled from plain callables.

    Parameters
    ----------
    request_fingerprint : typing.Callable[[ItemT], typing.Hashable]
        Derive the identity of an enqueued item.
    response_fingerprint : typing.Callable[[EntryT], typing.Hashable]
        Derive the identity of a response entry.
    submit : typing.Callable[[typing.Any], typing.Awaitable[typing.Any]]
        Transport call performing the bulk request.
    prepare : typing.Callable[[typing.Sequence[ItemT]], typing.Any] | None, optional
        Transform drained items into the wire payload. Defaults to a list copy.
    classify : typing.Callable[[EntryT], Outcome] | None, optional
        Decide success or failure per entry. Defaults to success.
    entries : typing.Callable[[typing.Any], typing.Iterable[EntryT]] | None, optional
        Extract response entries from the transport response. Defaults to
        iterating the response.
    name : str, optional
        Name used in logs.
    """

    def __init__(
        self,
        *,
        request_fingerprint: t.Callable[[ItemT], t.Hashable],
        response_fingerprint: t.Callable[[EntryT], t.Hashable],
        submit: t.Callable[[t.Any], t.Awaitable[t.Any]],
        prepare: t.Callable[[t.Sequence[ItemT]], t.Any] | None = None,
        classify: t.Callable[[EntryT], Outcome] | None = None,
        entries: t.Callable[[t.Any], t.Iterable[EntryT]] | None = None,
        name: str = "callback",
    ) -> None:
        self.name = name
        self._request_fingerprint = request_fingerprint
        self._response_fingerprint = response_fingerprint
        self._submit = submit
        self._prepare = prepare
        self._classify = classify
        self._entries = entries

    def request_fingerprint(self, item: ItemT) -> t.Hashable:
        return self._request_fingerprint(item)

    def response_fingerprint(self, entry: EntryT) -> t.Hashable:
        return self._response_fingerprint(entry)

    def prepare(self, items: t.Sequence[ItemT]) -> t.Any:
        if self._prepare is None:
            return super().prepare(items)
        return self._prepare(items)

    async def submit(self, payload: t.Any) -> t.Any:
        return await self._submit(payload)

    def entries(self, response: t.Any) -> t.Iterable[EntryT]:
        if self._entries is None:
            return super().entries(response)
        return self._entries(response)

    def classify(self, entry: EntryT) -> Outcome:
        if self._classify is None:
            return super().classify(entry)
        return self._classify(entry)
