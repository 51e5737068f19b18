from datetime import datetime, timezone

from cadence.domain.models import Grade, ReviewRecord, ScheduleResult


def test_grade_success_threshold():
    assert [g.is_success for g in Grade] == [False, False, False, True, True, True]


def test_review_record_memory_state():
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    legacy = ReviewRecord(created_at=created, score=80.0)
    assert not legacy.has_memory_state

    record = ReviewRecord(
        created_at=created, score=80.0, stability=4.0, difficulty=6.0, repetitions=2
    )
    assert record.has_memory_state
    state = record.to_memory_state(created)
    assert (state.stability, state.difficulty, state.repetitions) == (4.0, 6.0, 2)
    assert state.last_review == created


def test_schedule_result_degraded_flag():
    due = datetime(2024, 1, 2, tzinfo=timezone.utc)
    clean = ScheduleResult(stability=1.0, difficulty=5.0, repetitions=1, next_due=due, interval_days=1.0)
    assert not clean.degraded

    degraded = ScheduleResult(
        stability=1.0,
        difficulty=5.0,
        repetitions=1,
        next_due=due,
        interval_days=1.0,
        fallbacks=("prior_stability",),
    )
    assert degraded.degraded
