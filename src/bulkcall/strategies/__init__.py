from bulkcall.strategies.base import (
    BaseStrategy,
    BatchStrategy,
    CallbackStrategy,
    Failure,
    Outcome,
    Success,
)
from bulkcall.strategies.presence import PresenceStatus, PresenceStrategy

__all__ = [
    "BaseStrategy",
    "BatchStrategy",
    "CallbackStrategy",
    "Failure",
    "Outcome",
    "PresenceStatus",
    "PresenceStrategy",
    "Success",
]
