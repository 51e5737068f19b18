"""
Domain error types.

Numeric degeneracy is never an error in Cadence: the memory model falls back
to safe values instead. These exceptions cover the remaining hard failures.
"""


class CadenceError(Exception):
    """Base class for domain errors."""

    code: str = "CADENCE_ERROR"


class InvariantBrokenError(CadenceError):
    """A logic invariant failed and there is no safe value to return."""

    code = "INVARIANT_BROKEN"


class HistoryStoreError(CadenceError):
    """The review-history store could not be read or written."""

    code = "HISTORY_STORE_ERROR"
