"""
Grade mapping for raw attempt outcomes.

Converts a score or a correctness+latency pair into a grade in 0..5.
This is a pure computation module with no I/O.
"""

import math

from cadence.domain.constants import (
    FAST_ANSWER_MS,
    MODERATE_ANSWER_MS,
    SCORE_GRADE_THRESHOLDS,
)
from cadence.domain.models import Attempt, Grade


def score_to_grade(score: float) -> Grade:
    """
    Map a 0-100 score to a grade.

    Scores outside [0, 100] are clamped first. Thresholds: >=95 -> 5,
    >=85 -> 4, >=70 -> 3, >=50 -> 2, >=30 -> 1, else 0.
    """
    if math.isnan(score):
        return Grade.BLACKOUT

    clamped = max(0.0, min(100.0, score))
    for threshold, grade in SCORE_GRADE_THRESHOLDS:
        if clamped >= threshold:
            return Grade(grade)
    return Grade.BLACKOUT


def correctness_to_grade(correct: bool, latency_ms: int | None = None) -> Grade:
    """
    Map a binary outcome to a grade.

    Incorrect answers are always 0. Correct answers grade by speed when a
    latency is known (<5s -> 5, <10s -> 4, else 3) and default to 3 otherwise.
    """
    if not correct:
        return Grade.BLACKOUT

    if latency_ms is None:
        return Grade.HARD

    if latency_ms < FAST_ANSWER_MS:
        return Grade.PERFECT
    if latency_ms < MODERATE_ANSWER_MS:
        return Grade.GOOD
    return Grade.HARD


def grade_to_score(grade: int) -> float:
    """
    Lowest score that maps back to ``grade``.

    Used to persist a score for attempts graded by correctness, so the
    optimizer can re-derive the same grade from history.
    """
    for threshold, value in SCORE_GRADE_THRESHOLDS:
        if grade >= value:
            return float(threshold)
    return 0.0


def attempt_to_grade(attempt: Attempt) -> Grade:
    """Grade an attempt, preferring its score when one is present."""
    if attempt.score is not None:
        return score_to_grade(attempt.score)
    return correctness_to_grade(attempt.correct, attempt.time_ms)
