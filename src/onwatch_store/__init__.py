"""onwatch store library."""

from .exceptions import (
    CycleAlreadyOpenError,
    NoActiveCycleError,
    SessionNotFoundError,
    StoreError,
    StoreErrorCodes,
)
from .memory import InMemoryCycleStore
from .models import Cycle, Session
from .sqlite import SqliteCycleStore
from .store import CycleStore

__all__ = [
    "CycleStore",
    "InMemoryCycleStore",
    "SqliteCycleStore",
    "Cycle",
    "Session",
    "StoreError",
    "StoreErrorCodes",
    "CycleAlreadyOpenError",
    "NoActiveCycleError",
    "SessionNotFoundError",
]
