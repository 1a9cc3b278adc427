"""
Main endpoint for users.
Exposes ``presence_batcher``, a ready-made batcher for presence lookups.
"""

import typing as t

import httpx

from bulkcall.config import BatcherConfig
from bulkcall.core import Batcher
from bulkcall.strategies.presence import PresenceStrategy


def presence_batcher(
    base_url: str,
    headers: dict[str, str] | None = None,
    config: BatcherConfig | None = None,
    client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
    **options: t.Any,
) -> Batcher[str]:
    """
    Build a batcher coalescing presence lookups into ``compositions`` calls.<br>
    Use it as an async context manager so pending lookups are flushed on exit.

    Parameters
    ----------
    base_url : str
        Presence service base URL.
    headers : dict[str, str] | None, optional
        Headers sent with every bulk call.
    config : BatcherConfig | None, optional
        Batcher configuration. Defaults to ``BatcherConfig(name="presence")``.
    client_factory : typing.Callable[[], httpx.AsyncClient] | None, optional
        Factory for the HTTP client used per bulk call.
    **options : typing.Any
        ``BatcherConfig`` fields overriding ``config``.

    Returns
    -------
    Batcher[str]
        Batcher whose items are subject ids and whose futures resolve to
        ``PresenceStatus`` values.
    """
    strategy = PresenceStrategy(
        base_url=base_url,
        headers=headers,
        client_factory=client_factory,
    )
    if config is None:
        options.setdefault("name", "presence")
    return Batcher(strategy=strategy, config=config, **options)
