from .api import presence_batcher as presence_batcher
from .config import BatcherConfig as BatcherConfig
from .config import DuplicatePolicy as DuplicatePolicy
from .core import Batcher as Batcher
from .exceptions import BatchCancelledError as BatchCancelledError
from .exceptions import BatcherClosedError as BatcherClosedError
from .exceptions import BatcherError as BatcherError
from .exceptions import DuplicateItemError as DuplicateItemError
from .exceptions import InvalidItemError as InvalidItemError
from .exceptions import ItemRejected as ItemRejected
from .exceptions import ItemTimeoutError as ItemTimeoutError
from .exceptions import TransportFailure as TransportFailure
from .exceptions import UnmatchedResponse as UnmatchedResponse
from .strategies.base import CallbackStrategy as CallbackStrategy
from .strategies.base import Failure as Failure
from .strategies.base import Success as Success

__all__ = [
    "Batcher",
    "BatcherConfig",
    "DuplicatePolicy",
    "CallbackStrategy",
    "Success",
    "Failure",
    "presence_batcher",
    "BatcherError",
    "ItemRejected",
    "TransportFailure",
    "UnmatchedResponse",
    "BatchCancelledError",
    "ItemTimeoutError",
    "BatcherClosedError",
    "DuplicateItemError",
    "InvalidItemError",
]
