"""
Per-user cache of fitted parameters.

An entry is reused while it is younger than the TTL and the user's history has
grown by fewer than ``refit_after`` records since it was fitted.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from cadence.domain.parameters import FsrsParameters


@dataclass(frozen=True)
class CachedFit:
    parameters: FsrsParameters
    error: float
    fitted_at: float
    record_count: int


class ParameterCache:
    """
    In-process cache keyed by user id.

    A TTL of 0 disables the cache entirely.
    """

    def __init__(
        self,
        ttl_seconds: float,
        refit_after: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.refit_after = refit_after
        self._clock = clock
        self._entries: dict[str, CachedFit] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, user_id: str, record_count: int) -> CachedFit | None:
        if not self.enabled:
            return None

        entry = self._entries.get(user_id)
        if entry is None:
            return None

        age = self._clock() - entry.fitted_at
        grown = record_count - entry.record_count
        if age >= self.ttl_seconds or grown >= self.refit_after or grown < 0:
            del self._entries[user_id]
            return None
        return entry

    def put(
        self, user_id: str, parameters: FsrsParameters, error: float, record_count: int
    ) -> None:
        if not self.enabled:
            return
        self._entries[user_id] = CachedFit(
            parameters=parameters,
            error=error,
            fitted_at=self._clock(),
            record_count=record_count,
        )

    def invalidate(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._entries.clear()
        else:
            self._entries.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._entries)
