"""
Scheduling Service: Application layer orchestrator.

Loads a learner's prior state and history, picks parameters (defaults or a
per-user fit), runs the memory model, validates the result and appends it to
the history store.
"""

import asyncio
import logging
import math
import weakref
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from cadence.application.config import AppConfig
from cadence.application.grading import attempt_to_grade, grade_to_score
from cadence.application.memory_model import ANOMALY_FALLBACKS, advance
from cadence.application.optimizer import optimized_parameters_for_user
from cadence.application.parameter_cache import ParameterCache
from cadence.domain.constants import (
    FALLBACK_DIFFICULTY,
    FALLBACK_STABILITY,
    MAX_DIFFICULTY,
    MAX_STABILITY,
    MIN_DIFFICULTY,
    MIN_STABILITY,
)
from cadence.domain.exceptions import InvariantBrokenError
from cadence.domain.models import Attempt, MemoryState, ReviewRecord, ScheduledState, as_utc
from cadence.domain.parameters import DEFAULT_PARAMETERS, FsrsParameters
from cadence.domain.ports import ReviewHistoryStore

logger = logging.getLogger(__name__)

PARAMETERS_DEFAULT = "default"
PARAMETERS_OPTIMIZED = "optimized"
PARAMETERS_CACHED = "cached"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def stored_interval_days(interval_days: float) -> int:
    """
    Integer day count for persistence.

    Sub-day intervals store as 0; everything else rounds half up.
    """
    if not math.isfinite(interval_days) or interval_days < 1:
        return 0
    return int(math.floor(interval_days + 0.5))


class SchedulingService:
    """
    Application service for recording attempts and scheduling the next review.

    Depends on the ReviewHistoryStore abstraction, not a concrete adapter.
    Attempts on the same (user, question) pair are serialized in-process, so
    read-compute-append cannot interleave and lose an update.
    """

    def __init__(
        self,
        store: ReviewHistoryStore,
        config: AppConfig | None = None,
        defaults: FsrsParameters = DEFAULT_PARAMETERS,
        cache: ParameterCache | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            store: The repository (port) for review history.
            config: Resolved configuration; uses AppConfig defaults if not provided.
            defaults: Parameters used whenever per-user fitting is skipped.
            cache: Optional fitted-parameter cache; built from config if not provided.
            clock: Source of "now", injectable for tests.
        """
        self._store = store
        self._config = config or AppConfig()
        self._defaults = defaults
        self._cache = cache or ParameterCache(
            ttl_seconds=self._config.parameter_cache_ttl_seconds,
            refit_after=self._config.parameter_refit_after,
        )
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def cache(self) -> ParameterCache:
        return self._cache

    async def parameters_for_user(self, user_id: str) -> tuple[FsrsParameters, str]:
        """
        Parameters to schedule this user with, and where they came from.

        Users below the minimum history size always get the defaults. Cache
        staleness follows the uncapped record count, so a fit is refreshed
        even once the fetched history is pinned at ``history_limit``.
        """
        total = await self._store.count_user_records(user_id)
        if total < self._config.min_records_for_optimization:
            return self._defaults, PARAMETERS_DEFAULT

        cached = self._cache.get(user_id, total)
        if cached is not None:
            return cached.parameters, PARAMETERS_CACHED

        history = await self._store.get_user_history(user_id, self._config.history_limit)
        for record in history:
            if record.user_id is not None and record.user_id != user_id:
                raise InvariantBrokenError(
                    f"History store returned record {record.record_id} of user "
                    f"{record.user_id} for user {user_id}"
                )

        # CPU-bound; keep the event loop responsive while it runs.
        result = await asyncio.to_thread(
            optimized_parameters_for_user,
            history,
            self._defaults,
            self._config.min_records_for_optimization,
            self._config.optimizer_max_iterations,
            self._config.optimizer_learning_rate,
            self._config.optimizer_min_error,
        )
        logger.info(
            f"Fitted parameters for user {user_id} on {len(history)} of {total} records: "
            f"error={result.error:.4f} iterations={result.iterations}"
        )
        self._cache.put(user_id, result.parameters, result.error, total)
        return result.parameters, PARAMETERS_OPTIMIZED

    async def get_prior_state(
        self, user_id: str, question_id: str, now: datetime
    ) -> MemoryState | None:
        """Memory state from the latest record, or None when there is none to resume."""
        latest = await self._store.get_latest_record(user_id, question_id)
        if latest is None or not latest.has_memory_state:
            return None
        return latest.to_memory_state(latest.last_revised_at or now)

    async def calculate_question_state(
        self,
        user_id: str,
        question_id: str,
        attempt: Attempt,
        now: datetime | None = None,
    ) -> ScheduledState:
        """
        Compute the state to persist for an attempt, without writing it.

        Args:
            user_id: The learner.
            question_id: The question attempted.
            attempt: Raw outcome of the attempt.
            now: Review time; defaults to the service clock.

        Returns:
            ScheduledState with clamped, persist-ready values.
        """
        now = as_utc(now or self._clock())

        prior = await self.get_prior_state(user_id, question_id, now)
        params, source = await self.parameters_for_user(user_id)
        grade = attempt_to_grade(attempt)

        result = advance(prior, grade, now, params, self._config.target_retention)

        fallbacks = list(result.fallbacks)
        stability = result.stability
        if not (math.isfinite(stability) and stability > 0):
            fallbacks.append("validated_stability")
            stability = FALLBACK_STABILITY
        difficulty = result.difficulty
        if not (math.isfinite(difficulty) and difficulty > 0):
            fallbacks.append("validated_difficulty")
            difficulty = FALLBACK_DIFFICULTY
        next_due = result.next_due
        if not isinstance(next_due, datetime):
            fallbacks.append("validated_next_due")
            next_due = now + timedelta(days=1)

        anomalies = [f for f in fallbacks if f in ANOMALY_FALLBACKS or f.startswith("validated_")]
        if anomalies:
            logger.warning(
                f"Degraded schedule for user={user_id} question={question_id}: "
                f"{', '.join(anomalies)}"
            )
        elif fallbacks:
            logger.debug(f"Formula fallbacks for {user_id}/{question_id}: {fallbacks}")

        return ScheduledState(
            user_id=user_id,
            question_id=question_id,
            grade=int(grade),
            stability=max(MIN_STABILITY, min(MAX_STABILITY, stability)),
            difficulty=max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, difficulty)),
            repetitions=max(0, int(result.repetitions)),
            next_due=next_due,
            interval_days=result.interval_days,
            stored_interval_days=stored_interval_days(result.interval_days),
            reviewed_at=now,
            parameters_source=source,
            fallbacks=tuple(fallbacks),
        )

    async def record_attempt(
        self,
        user_id: str,
        question_id: str,
        attempt: Attempt,
        now: datetime | None = None,
    ) -> ScheduledState:
        """
        Schedule an attempt and append the resulting record to the store.

        Holds the (user, question) lock across read, compute and append.
        """
        async with self._lock_for(user_id, question_id):
            state = await self.calculate_question_state(user_id, question_id, attempt, now)
            score = attempt.score if attempt.score is not None else grade_to_score(state.grade)
            await self._store.append(
                ReviewRecord(
                    created_at=state.reviewed_at,
                    score=score,
                    stability=state.stability,
                    difficulty=state.difficulty,
                    interval_days=state.stored_interval_days,
                    repetitions=state.repetitions,
                    last_revised_at=state.reviewed_at,
                    next_review_due=state.next_due,
                    user_id=user_id,
                    question_id=question_id,
                )
            )
        return state

    def _lock_for(self, user_id: str, question_id: str) -> asyncio.Lock:
        key = (user_id, question_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
