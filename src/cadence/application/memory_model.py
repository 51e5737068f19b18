"""
FSRS memory model.

Pure implementation of the stability/difficulty/retrievability update.
No I/O, no shared state: every call takes explicit inputs and returns a new result.

- Stability (S): days until retrievability decays to 1/e.
- Difficulty (D): intrinsic hardness of the item, 0.1-10.0, mean-reverting.
- Retrievability (R): probability of recall now, exp(-t/S).

Every arithmetic step has a finite/range guard with a documented fallback, so
a usable next-due date comes out even for corrupted stored state. Guards that
fire are reported in ``ScheduleResult.fallbacks``.
"""

import logging
import math
from datetime import datetime, timedelta

from cadence.domain.constants import (
    DEFAULT_TARGET_RETENTION,
    FALLBACK_DIFFICULTY,
    FALLBACK_INTERVAL_DAYS,
    FALLBACK_RETRIEVABILITY,
    FALLBACK_STABILITY,
    MAX_DIFFICULTY,
    MAX_GRADE,
    MAX_STABILITY,
    MAX_TARGET_RETENTION,
    MIN_DIFFICULTY,
    MIN_GRADE,
    MIN_INTERVAL_DAYS,
    MIN_STABILITY,
    MIN_TARGET_RETENTION,
    SECONDS_PER_DAY,
    SUCCESS_GRADE,
    SUCCESS_GROWTH_FALLBACK,
)
from cadence.domain.models import Grade, MemoryState, ScheduleResult
from cadence.domain.parameters import DEFAULT_PARAMETERS, FsrsParameters

logger = logging.getLogger(__name__)

# Fallback names reported in ScheduleResult.fallbacks
FALLBACK_GRADE = "grade"
FALLBACK_INITIAL_STABILITY = "initial_stability"
FALLBACK_INITIAL_DIFFICULTY = "initial_difficulty"
FALLBACK_PRIOR_STABILITY = "prior_stability"
FALLBACK_PRIOR_DIFFICULTY = "prior_difficulty"
FALLBACK_PRIOR_REPETITIONS = "prior_repetitions"
FALLBACK_LAST_REVIEW = "last_review"
FALLBACK_DIFFICULTY_UPDATE = "difficulty_update"
FALLBACK_SUCCESS_STABILITY = "success_stability"
FALLBACK_FAILURE_STABILITY = "failure_stability"
FALLBACK_TARGET_RETENTION = "target_retention"
FALLBACK_INTERVAL = "interval"
FALLBACK_NEXT_DUE = "next_due"

# Fallbacks caused by bad stored data or broken date math, as opposed to a
# formula legitimately collapsing for the current weights.
ANOMALY_FALLBACKS = frozenset(
    {
        FALLBACK_GRADE,
        FALLBACK_PRIOR_STABILITY,
        FALLBACK_PRIOR_DIFFICULTY,
        FALLBACK_PRIOR_REPETITIONS,
        FALLBACK_LAST_REVIEW,
        FALLBACK_TARGET_RETENTION,
        FALLBACK_INTERVAL,
        FALLBACK_NEXT_DUE,
    }
)


# ---------- Numeric helpers ----------


def _is_positive(value: float) -> bool:
    return math.isfinite(value) and value > 0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


def _pow(base: float, exponent: float) -> float:
    try:
        return math.pow(base, exponent)
    except (OverflowError, ValueError):
        return math.inf


def clamp_grade(grade: float) -> int:
    """
    Clamp to [0, 5], then round half up.

    NaN is treated as a blackout (0).
    """
    if math.isnan(grade):
        return MIN_GRADE
    clamped = _clamp(grade, MIN_GRADE, MAX_GRADE)
    return int(math.floor(clamped + 0.5))


# ---------- Formulas ----------


def initial_stability(grade: float, params: FsrsParameters = DEFAULT_PARAMETERS) -> float:
    """S0(G) = w0 * (w1 * (G - 1) + 1), clamped to [0.1, 365]."""
    value = _raw_initial_stability(clamp_grade(grade), params)
    if not _is_positive(value):
        return FALLBACK_STABILITY
    return _clamp(value, MIN_STABILITY, MAX_STABILITY)


def initial_difficulty(grade: float, params: FsrsParameters = DEFAULT_PARAMETERS) -> float:
    """D0(G) = w2 * (w3 * (G - 4) + 1), clamped to [0.1, 10]."""
    value = _raw_initial_difficulty(clamp_grade(grade), params)
    if not _is_positive(value):
        return FALLBACK_DIFFICULTY
    return _clamp(value, MIN_DIFFICULTY, MAX_DIFFICULTY)


def retrievability(elapsed_days: float, stability: float) -> float:
    """R = exp(-t / S). Full recall before any time has passed."""
    if not stability > 0:
        return 0.0
    if elapsed_days <= 0:
        return 1.0
    return math.exp(-elapsed_days / stability)


def update_difficulty(
    difficulty: float, grade: float, params: FsrsParameters = DEFAULT_PARAMETERS
) -> float:
    """D' = w5 * D0(3) + (1 - w5) * (D + w4 * (G - 3)), clamped to [0.1, 10]."""
    value = _raw_update_difficulty(difficulty, clamp_grade(grade), params)
    if not math.isfinite(value):
        return FALLBACK_DIFFICULTY
    return _clamp(value, MIN_DIFFICULTY, MAX_DIFFICULTY)


def success_stability(
    stability: float,
    difficulty: float,
    retrievability_: float,
    params: FsrsParameters = DEFAULT_PARAMETERS,
) -> float:
    """S' = S * (1 + e^w6 * D^w7 * S^w8 * (e^((1-R) * w9) - 1))."""
    value, _ = _success_stability(stability, difficulty, retrievability_, params)
    return value


def failure_stability(
    stability: float,
    difficulty: float,
    retrievability_: float,
    params: FsrsParameters = DEFAULT_PARAMETERS,
) -> float:
    """S' = w10 * D^w11 * S^w12 * (e^((1-R) * w13) - 1)."""
    value, _ = _failure_stability(stability, difficulty, retrievability_, params)
    return value


def next_interval(stability: float, target_retention: float = DEFAULT_TARGET_RETENTION) -> float:
    """
    Days until retrievability decays to ``target_retention``.

    I = -S * ln(R_target), floored at 5 minutes. Sub-day intervals are valid.
    Returns exactly 1 day when the result is not usable.
    """
    value, _ = _interval(stability, target_retention)
    return value


def _raw_initial_stability(grade: int, params: FsrsParameters) -> float:
    return params.w0 * (params.w1 * (grade - 1) + 1)


def _raw_initial_difficulty(grade: int, params: FsrsParameters) -> float:
    return params.w2 * (params.w3 * (grade - 4) + 1)


def _raw_update_difficulty(difficulty: float, grade: int, params: FsrsParameters) -> float:
    mean_reversion = params.w5 * initial_difficulty(SUCCESS_GRADE, params)
    return mean_reversion + (1 - params.w5) * (difficulty + params.w4 * (grade - 3))


def _sanitize_inputs(
    stability: float, difficulty: float, retrievability_: float
) -> tuple[float, float, float]:
    if not _is_positive(stability):
        stability = FALLBACK_STABILITY
    if not _is_positive(difficulty):
        difficulty = FALLBACK_DIFFICULTY
    if not (math.isfinite(retrievability_) and 0 <= retrievability_ <= 1):
        retrievability_ = FALLBACK_RETRIEVABILITY
    return stability, difficulty, retrievability_


def _success_stability(
    stability: float, difficulty: float, retrievability_: float, params: FsrsParameters
) -> tuple[float, bool]:
    stability, difficulty, retrievability_ = _sanitize_inputs(
        stability, difficulty, retrievability_
    )
    growth = (
        _exp(params.w6)
        * _pow(difficulty, params.w7)
        * _pow(stability, params.w8)
        * (_exp((1 - retrievability_) * params.w9) - 1)
    )
    value = stability * (1 + growth)
    if not _is_positive(value):
        return max(MIN_STABILITY, stability * SUCCESS_GROWTH_FALLBACK), True
    return _clamp(value, MIN_STABILITY, MAX_STABILITY), False


def _failure_stability(
    stability: float, difficulty: float, retrievability_: float, params: FsrsParameters
) -> tuple[float, bool]:
    stability, difficulty, retrievability_ = _sanitize_inputs(
        stability, difficulty, retrievability_
    )
    value = (
        params.w10
        * _pow(difficulty, params.w11)
        * _pow(stability, params.w12)
        * (_exp((1 - retrievability_) * params.w13) - 1)
    )
    if not _is_positive(value):
        return FALLBACK_STABILITY, True
    return _clamp(value, MIN_STABILITY, MAX_STABILITY), False


def _interval(stability: float, target_retention: float) -> tuple[float, bool]:
    if not _is_positive(stability):
        return FALLBACK_INTERVAL_DAYS, True
    value = -stability * math.log(target_retention)
    if not _is_positive(value):
        return FALLBACK_INTERVAL_DAYS, True
    return max(MIN_INTERVAL_DAYS, value), False


# ---------- Scheduling step ----------


def _elapsed_days(last_review: datetime, now: datetime) -> float:
    if (last_review.tzinfo is None) != (now.tzinfo is None):
        # Mixed naive/aware timestamps: read the naive one in now's zone.
        last_review = last_review.replace(tzinfo=now.tzinfo)
    return max(0.0, (now - last_review).total_seconds() / SECONDS_PER_DAY)


def initial_memory_state(now: datetime) -> MemoryState:
    """State of a never-reviewed item. ``advance`` treats it as a first review."""
    return MemoryState(stability=0.0, difficulty=0.0, repetitions=0, last_review=now)


def advance(
    prior: MemoryState | None,
    grade: float,
    now: datetime,
    params: FsrsParameters = DEFAULT_PARAMETERS,
    target_retention: float = DEFAULT_TARGET_RETENTION,
) -> ScheduleResult:
    """
    Compute the memory state after a review.

    Args:
        prior: State before this review; None (or zero repetitions) means
            first review.
        grade: Recall grade. Clamped to [0, 5] and rounded.
        now: Time of this review.
        params: Model weights.
        target_retention: Retrievability at which the item becomes due.

    Returns:
        ScheduleResult with the new state, interval and due date.
    """
    fallbacks: list[str] = []

    if isinstance(grade, float) and math.isnan(grade):
        fallbacks.append(FALLBACK_GRADE)
    g = clamp_grade(grade)

    prior_repetitions = 0
    if prior is not None:
        reps = prior.repetitions
        if isinstance(reps, (int, float)) and math.isfinite(reps) and reps >= 0:
            prior_repetitions = int(reps)
        else:
            fallbacks.append(FALLBACK_PRIOR_REPETITIONS)

    if prior is None or prior_repetitions == 0:
        raw_s = _raw_initial_stability(g, params)
        if _is_positive(raw_s):
            stability = _clamp(raw_s, MIN_STABILITY, MAX_STABILITY)
        else:
            fallbacks.append(FALLBACK_INITIAL_STABILITY)
            stability = FALLBACK_STABILITY

        raw_d = _raw_initial_difficulty(g, params)
        if _is_positive(raw_d):
            difficulty = _clamp(raw_d, MIN_DIFFICULTY, MAX_DIFFICULTY)
        else:
            fallbacks.append(FALLBACK_INITIAL_DIFFICULTY)
            difficulty = FALLBACK_DIFFICULTY

        repetitions = 1 if g >= SUCCESS_GRADE else 0
    else:
        prior_s = prior.stability
        if not _is_positive(prior_s):
            fallbacks.append(FALLBACK_PRIOR_STABILITY)
            prior_s = FALLBACK_STABILITY
        prior_d = prior.difficulty
        if not _is_positive(prior_d):
            fallbacks.append(FALLBACK_PRIOR_DIFFICULTY)
            prior_d = FALLBACK_DIFFICULTY
        last_review = prior.last_review
        if not isinstance(last_review, datetime):
            fallbacks.append(FALLBACK_LAST_REVIEW)
            last_review = now

        elapsed = _elapsed_days(last_review, now)
        r = retrievability(elapsed, prior_s)

        raw_d = _raw_update_difficulty(prior_d, g, params)
        if math.isfinite(raw_d):
            difficulty = _clamp(raw_d, MIN_DIFFICULTY, MAX_DIFFICULTY)
        else:
            fallbacks.append(FALLBACK_DIFFICULTY_UPDATE)
            difficulty = FALLBACK_DIFFICULTY

        if g >= SUCCESS_GRADE:
            stability, fell_back = _success_stability(prior_s, difficulty, r, params)
            if fell_back:
                fallbacks.append(FALLBACK_SUCCESS_STABILITY)
            repetitions = prior_repetitions + 1
        else:
            stability, fell_back = _failure_stability(prior_s, difficulty, r, params)
            if fell_back:
                fallbacks.append(FALLBACK_FAILURE_STABILITY)
            repetitions = 0

        logger.debug(
            f"elapsed={elapsed:.4f}d R={r:.4f} grade={g} "
            f"S {prior_s:.4f}->{stability:.4f} D {prior_d:.4f}->{difficulty:.4f}"
        )

    stability = _clamp(stability, MIN_STABILITY, MAX_STABILITY)

    if not math.isfinite(target_retention):
        fallbacks.append(FALLBACK_TARGET_RETENTION)
        target_retention = DEFAULT_TARGET_RETENTION
    target_retention = _clamp(target_retention, MIN_TARGET_RETENTION, MAX_TARGET_RETENTION)

    interval_days, fell_back = _interval(stability, target_retention)
    if fell_back:
        fallbacks.append(FALLBACK_INTERVAL)
        logger.debug(f"Interval fell back to {FALLBACK_INTERVAL_DAYS} day (S={stability})")

    try:
        next_due = now + timedelta(days=interval_days)
    except OverflowError:
        fallbacks.append(FALLBACK_NEXT_DUE)
        interval_days = FALLBACK_INTERVAL_DAYS
        next_due = now + timedelta(days=1)

    return ScheduleResult(
        stability=stability,
        difficulty=difficulty,
        repetitions=repetitions,
        next_due=next_due,
        interval_days=interval_days,
        fallbacks=tuple(fallbacks),
    )


def preview_intervals(
    prior: MemoryState | None,
    now: datetime,
    params: FsrsParameters = DEFAULT_PARAMETERS,
    target_retention: float = DEFAULT_TARGET_RETENTION,
) -> dict[Grade, float]:
    """Interval (days) each possible grade would produce, without persisting anything."""
    return {
        grade: advance(prior, grade, now, params, target_retention).interval_days
        for grade in Grade
    }
