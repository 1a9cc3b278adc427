import logging
import typing as t
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def setup_logging(*, level: int | str = logging.WARNING, json_logs: bool = False) -> None:
    """
    Route bulkcall structlog events through stdlib logging.

    Parameters
    ----------
    level : int | str, optional
        Level applied to the ``bulkcall`` logger.
    json_logs : bool, optional
        Render events as JSON lines instead of console key/value pairs.
    """
    logging.getLogger(name="bulkcall").setLevel(level)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def logging_context(**bindings: t.Any) -> Iterator[dict[str, t.Any]]:
    """
    Bind context variables for the duration of a block.

    Keys already bound by an enclosing block keep their outer value, so a
    dispatch running under a caller's ``batcher`` binding reports the caller's
    name. ``None`` values are not bound.

    Parameters
    ----------
    **bindings : typing.Any
        Context variables to bind.

    Yields
    ------
    dict[str, typing.Any]
        Bindings actually added by this block.
    """
    current = structlog.contextvars.get_contextvars()
    added = {
        key: value
        for key, value in bindings.items()
        if value is not None and key not in current
    }
    with structlog.contextvars.bound_contextvars(**added):
        yield added
