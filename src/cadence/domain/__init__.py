# Domain Package
from .exceptions import (
    CadenceError,
    HistoryStoreError,
    InvariantBrokenError,
)
from .models import Attempt, Grade, MemoryState, ReviewRecord, ScheduledState, ScheduleResult
from .parameters import DEFAULT_PARAMETERS, PARAMETER_BOUNDS, FsrsParameters
from .ports import ReviewHistoryStore

__all__ = [
    "Attempt",
    "CadenceError",
    "DEFAULT_PARAMETERS",
    "FsrsParameters",
    "Grade",
    "HistoryStoreError",
    "InvariantBrokenError",
    "MemoryState",
    "PARAMETER_BOUNDS",
    "ReviewHistoryStore",
    "ReviewRecord",
    "ScheduleResult",
    "ScheduledState",
]
