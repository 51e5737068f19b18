"""
Domain models for memory scheduling.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum

from .constants import SUCCESS_GRADE


def as_utc(value: datetime | None) -> datetime | None:
    """Read naive datetimes as UTC so every stored timestamp is comparable."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Grade(IntEnum):
    """Discrete recall quality. 0-2 are failures, 3-5 are successes."""

    BLACKOUT = 0
    WRONG_FAMILIAR = 1
    WRONG_REMEMBERED = 2
    HARD = 3
    GOOD = 4
    PERFECT = 5

    @property
    def is_success(self) -> bool:
        return self.value >= SUCCESS_GRADE


@dataclass(frozen=True)
class MemoryState:
    """
    Memory state for one (user, question) pair.

    Attributes:
        stability: Days until retrievability decays to 1/e.
        difficulty: Intrinsic item hardness (0.1-10.0).
        repetitions: Consecutive successful reviews since the last failure.
        last_review: Time of the review that produced this state.
    """

    stability: float
    difficulty: float
    repetitions: int
    last_review: datetime | None = None


@dataclass(frozen=True)
class Attempt:
    """
    Raw outcome of answering a question.

    Attributes:
        correct: Whether the answer was accepted.
        time_ms: Answer latency in milliseconds, if measured.
        score: Graded score (0-100) for free-text questions. Wins over
            correctness when present.
    """

    correct: bool
    time_ms: int | None = None
    score: float | None = None


@dataclass(frozen=True)
class ReviewRecord:
    """
    One append-only history row, written after each attempt.

    Model fields may be None: older rows predate the memory model.
    """

    created_at: datetime | None
    score: float
    stability: float | None = None
    difficulty: float | None = None
    interval_days: float | None = None
    repetitions: int | None = None
    last_revised_at: datetime | None = None
    next_review_due: datetime | None = None
    user_id: str | None = None
    question_id: str | None = None
    record_id: str | None = None

    @property
    def has_memory_state(self) -> bool:
        return self.stability is not None and self.difficulty is not None

    def to_memory_state(self, last_review: datetime | None) -> MemoryState:
        """Seed a memory state from the stored fields of this record."""
        return MemoryState(
            stability=self.stability or 0.0,
            difficulty=self.difficulty or 0.0,
            repetitions=self.repetitions or 0,
            last_review=last_review,
        )


@dataclass(frozen=True)
class ScheduleResult:
    """
    Output of a single memory-model step.

    ``fallbacks`` names every guard that replaced a degenerate value.
    The scheduling outcome is still valid when it is non-empty.
    """

    stability: float
    difficulty: float
    repetitions: int
    next_due: datetime
    interval_days: float
    fallbacks: tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.fallbacks)


@dataclass(frozen=True)
class ScheduledState:
    """Persist-ready result of recording an attempt."""

    user_id: str
    question_id: str
    grade: int
    stability: float
    difficulty: float
    repetitions: int
    next_due: datetime
    interval_days: float
    stored_interval_days: int
    reviewed_at: datetime
    parameters_source: str
    fallbacks: tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.fallbacks)
