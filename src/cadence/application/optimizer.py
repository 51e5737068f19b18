"""
Per-user parameter optimizer.

Fits the 17 model weights to a learner's own review history by minimizing the
relative error between the intervals the model would have scheduled and the
intervals that were actually recorded.

Gradient descent with central finite differences, one weight at a time. Every
candidate, including the finite-difference steps, stays inside PARAMETER_BOUNDS, and the
result is the best parameter set ever observed rather than the last one.

This is a pure computation module with no I/O.
"""

import logging
import math
from dataclasses import dataclass, replace

from cadence.application.grading import score_to_grade
from cadence.application.memory_model import advance
from cadence.domain.constants import (
    DEFAULT_LEARNING_RATE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_ERROR,
    FINITE_DIFFERENCE_STEP,
    LEARNING_RATE_DECAY,
    MIN_RECORDS_FOR_USER_FIT,
    MIN_RECORDS_TO_FIT,
    SECONDS_PER_DAY,
    STALL_ITERATIONS_BEFORE_DECAY,
    USER_FIT_LEARNING_RATE,
    USER_FIT_MAX_ITERATIONS,
    USER_FIT_MIN_ERROR,
)
from cadence.domain.models import MemoryState, ReviewRecord, as_utc
from cadence.domain.parameters import (
    DEFAULT_PARAMETERS,
    PARAMETER_NAMES,
    FsrsParameters,
    clamp_to_bounds,
    clamp_weight,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimizationResult:
    """Best parameters found, their loss, and how many iterations ran."""

    parameters: FsrsParameters
    error: float
    iterations: int


def extract_review_history(records: list[ReviewRecord]) -> list[ReviewRecord]:
    """Drop records without a timestamp and sort the rest chronologically (naive read as UTC)."""
    timed = [
        replace(r, created_at=as_utc(r.created_at)) for r in records if r.created_at is not None
    ]
    return sorted(timed, key=lambda r: r.created_at)


def prediction_error(records: list[ReviewRecord], params: FsrsParameters) -> float:
    """
    Mean relative interval error of ``params`` over a chronological history.

    The first record seeds the memory state from its stored fields. Each later
    record is re-graded from its score and replayed through the model; the
    predicted interval is compared with the recorded one as
    ``|predicted - actual| / max(actual, 1)``. Transitions with no elapsed
    time are skipped.

    Returns:
        Average relative error, or 0.0 when there are fewer than 2 records
        or no usable transitions.
    """
    if len(records) < 2:
        return 0.0

    first = records[0]
    state: MemoryState = first.to_memory_state(first.created_at)
    total_error = 0.0
    transitions = 0

    for previous, record in zip(records, records[1:]):
        elapsed_days = (record.created_at - previous.created_at).total_seconds() / SECONDS_PER_DAY
        if elapsed_days <= 0:
            continue

        predicted = advance(state, score_to_grade(record.score), record.created_at, params)

        actual = record.interval_days or 1
        total_error += abs(predicted.interval_days - actual) / max(actual, 1)
        transitions += 1

        state = MemoryState(
            stability=predicted.stability,
            difficulty=predicted.difficulty,
            repetitions=predicted.repetitions,
            last_review=record.created_at,
        )

    return total_error / transitions if transitions else 0.0


def _gradient(
    records: list[ReviewRecord], params: FsrsParameters, name: str, step: float
) -> float:
    """Central-difference slope of the loss along one weight, sampled inside its bound."""
    value = getattr(params, name)
    forward = clamp_weight(name, value + step)
    backward = clamp_weight(name, value - step)
    span = forward - backward
    if span <= 0:
        return 0.0

    error_forward = prediction_error(records, params.replace(**{name: forward}))
    error_backward = prediction_error(records, params.replace(**{name: backward}))
    slope = (error_forward - error_backward) / span
    return slope if math.isfinite(slope) else 0.0


def optimize(
    records: list[ReviewRecord],
    initial_params: FsrsParameters = DEFAULT_PARAMETERS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    learning_rate: float = DEFAULT_LEARNING_RATE,
    min_error: float = DEFAULT_MIN_ERROR,
) -> OptimizationResult:
    """
    Fit weights to a review history with finite-difference gradient descent.

    Args:
        records: Historical review records (any order; untimed ones are dropped).
        initial_params: Starting point, usually the defaults.
        max_iterations: Hard cap on descent steps.
        learning_rate: Initial step size; decays by 0.9 while progress stalls.
        min_error: Stop as soon as the loss is below this.

    Returns:
        OptimizationResult with the best parameters seen. With fewer than 10
        records ``initial_params`` is returned untouched, with error 0 and
        0 iterations.
    """
    history = extract_review_history(records)
    if len(history) < MIN_RECORDS_TO_FIT:
        logger.debug(f"Skipping optimization: {len(history)} records < {MIN_RECORDS_TO_FIT}")
        return OptimizationResult(parameters=initial_params, error=0.0, iterations=0)

    current = clamp_to_bounds(initial_params)
    current_error = initial_error = prediction_error(history, current)
    best, best_error = current, current_error
    stalled = 0
    iterations = 0

    for _ in range(max_iterations):
        if current_error < min_error:
            break

        gradients = {
            name: _gradient(history, current, name, FINITE_DIFFERENCE_STEP)
            for name in PARAMETER_NAMES
        }
        current = FsrsParameters(
            **{
                name: clamp_weight(name, getattr(current, name) - learning_rate * grad)
                for name, grad in gradients.items()
            }
        )
        current_error = prediction_error(history, current)
        iterations += 1

        if current_error < best_error:
            best, best_error = current, current_error
            stalled = 0
        else:
            stalled += 1
            if stalled > STALL_ITERATIONS_BEFORE_DECAY:
                learning_rate *= LEARNING_RATE_DECAY

    logger.debug(
        f"Optimization finished after {iterations} iterations: "
        f"error {initial_error:.4f} -> {best_error:.4f}"
    )
    return OptimizationResult(parameters=best, error=best_error, iterations=iterations)


def optimized_parameters_for_user(
    records: list[ReviewRecord],
    defaults: FsrsParameters = DEFAULT_PARAMETERS,
    min_records: int = MIN_RECORDS_FOR_USER_FIT,
    max_iterations: int = USER_FIT_MAX_ITERATIONS,
    learning_rate: float = USER_FIT_LEARNING_RATE,
    min_error: float = USER_FIT_MIN_ERROR,
) -> OptimizationResult:
    """
    Fit a user's weights across all their questions.

    Users with fewer than ``min_records`` attempts get ``defaults`` unchanged.
    The threshold never goes below 20, whatever the caller passes.
    """
    if len(records) < max(min_records, MIN_RECORDS_FOR_USER_FIT):
        return OptimizationResult(parameters=defaults, error=0.0, iterations=0)
    return optimize(records, defaults, max_iterations, learning_rate, min_error)
