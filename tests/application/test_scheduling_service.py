import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cadence.application.config import AppConfig
from cadence.application.optimizer import OptimizationResult
from cadence.application.parameter_cache import ParameterCache
from cadence.application.scheduling_service import SchedulingService, stored_interval_days
from cadence.domain.exceptions import InvariantBrokenError
from cadence.domain.models import Attempt, ReviewRecord
from cadence.domain.parameters import DEFAULT_PARAMETERS
from cadence.infrastructure.adapters.memory_store import InMemoryHistoryStore

FIT_PATH = "cadence.application.scheduling_service.optimized_parameters_for_user"


class YieldingStore(InMemoryHistoryStore):
    """Memory store that gives other tasks a chance to run on every call."""

    async def get_latest_record(self, user_id, question_id):
        await asyncio.sleep(0)
        return await super().get_latest_record(user_id, question_id)

    async def append(self, record):
        await asyncio.sleep(0)
        return await super().append(record)


@pytest.fixture
def config(mock_home):
    return AppConfig(parameter_cache_ttl_seconds=0.0)


@pytest.fixture
def store():
    return InMemoryHistoryStore()


@pytest.fixture
def service(store, config, now):
    return SchedulingService(store, config=config, clock=lambda: now)


@pytest.mark.parametrize(
    "days, stored", [(0.003, 0), (0.99, 0), (1.0, 1), (1.49, 1), (1.5, 2), (12.7, 13), (math.nan, 0)]
)
def test_stored_interval_days(days, stored):
    assert stored_interval_days(days) == stored


@pytest.mark.asyncio
async def test_first_attempt_then_failure(service, store, now):
    first = await service.record_attempt("u1", "q1", Attempt(correct=True, time_ms=3200))

    assert first.grade == 5
    assert first.repetitions == 1
    assert first.parameters_source == "default"
    assert first.interval_days == pytest.approx(-first.stability * math.log(0.9))
    assert first.stored_interval_days == 0
    assert first.next_due == now + timedelta(days=first.interval_days)

    saved = await store.get_latest_record("u1", "q1")
    assert saved.record_id.startswith("rev_")
    assert saved.score == 95.0
    assert saved.stability == first.stability
    assert saved.last_revised_at == now

    later = now + timedelta(days=2)
    second = await service.record_attempt("u1", "q1", Attempt(correct=False), now=later)
    assert second.grade == 0
    assert second.repetitions == 0
    assert len(store) == 2


@pytest.mark.asyncio
async def test_score_is_persisted_as_given(service, store):
    await service.record_attempt("u1", "q1", Attempt(correct=True, score=88.5))
    saved = await store.get_latest_record("u1", "q1")
    assert saved.score == 88.5


@pytest.mark.asyncio
async def test_calculate_does_not_write(service, store):
    state = await service.calculate_question_state("u1", "q1", Attempt(correct=True))
    assert state.grade == 3
    assert len(store) == 0


@pytest.mark.asyncio
async def test_legacy_record_without_state_is_first_review(store, service, now):
    await store.append(ReviewRecord(created_at=now - timedelta(days=3), score=90.0, user_id="u1", question_id="q1"))
    state = await service.calculate_question_state("u1", "q1", Attempt(correct=True, time_ms=7000))
    assert state.repetitions == 1


@pytest.mark.asyncio
async def test_corrupted_prior_state_degrades_with_warning(store, service, now, caplog):
    await store.append(
        ReviewRecord(
            created_at=now - timedelta(days=1),
            score=90.0,
            stability=math.nan,
            difficulty=5.0,
            repetitions=2,
            last_revised_at=now - timedelta(days=1),
            user_id="u1",
            question_id="q1",
        )
    )

    with caplog.at_level(logging.WARNING, logger="cadence.application.scheduling_service"):
        state = await service.record_attempt("u1", "q1", Attempt(correct=True, time_ms=4000))

    assert state.degraded
    assert "prior_stability" in state.fallbacks
    assert 0.1 <= state.stability <= 365.0
    assert "Degraded schedule for user=u1 question=q1" in caplog.text


@pytest.mark.asyncio
async def test_defaults_below_twenty_records(service, store, history_factory):
    for record in history_factory(19):
        await store.append(record)

    with patch(FIT_PATH) as mock_fit:
        params, source = await service.parameters_for_user("u1")

    mock_fit.assert_not_called()
    assert params is DEFAULT_PARAMETERS
    assert source == "default"


@pytest.mark.asyncio
async def test_fitted_parameters_are_used_and_cached(mock_home, store, now, history_factory):
    config = AppConfig(parameter_cache_ttl_seconds=3600, parameter_refit_after=5)
    service = SchedulingService(store, config=config, clock=lambda: now)
    for record in history_factory(20):
        await store.append(record)

    fitted = DEFAULT_PARAMETERS.replace(w0=0.9)
    with patch(FIT_PATH, return_value=OptimizationResult(fitted, 0.1, 3)) as mock_fit:
        first = await service.parameters_for_user("u1")
        second = await service.parameters_for_user("u1")

    assert first == (fitted, "optimized")
    assert second == (fitted, "cached")
    mock_fit.assert_called_once()
    assert mock_fit.call_args.args[2] == 20


@pytest.mark.asyncio
async def test_cache_disabled_refits_every_time(service, store, history_factory):
    for record in history_factory(20):
        await store.append(record)

    with patch(FIT_PATH, return_value=OptimizationResult(DEFAULT_PARAMETERS, 0.1, 3)) as mock_fit:
        await service.parameters_for_user("u1")
        _, source = await service.parameters_for_user("u1")

    assert source == "optimized"
    assert mock_fit.call_count == 2


@pytest.mark.asyncio
async def test_foreign_history_is_an_invariant_error(config, history_factory):
    store = MagicMock()
    store.count_user_records = AsyncMock(return_value=25)
    store.get_user_history = AsyncMock(return_value=history_factory(3, user_id="someone-else"))
    service = SchedulingService(store, config=config)

    with pytest.raises(InvariantBrokenError):
        await service.parameters_for_user("u1")


@pytest.mark.asyncio
async def test_concurrent_attempts_on_same_question_are_serialized(config, now):
    store = YieldingStore()
    service = SchedulingService(store, config=config, clock=lambda: now)

    states = await asyncio.gather(
        *(service.record_attempt("u1", "q1", Attempt(correct=True, time_ms=2000)) for _ in range(5))
    )

    assert sorted(s.repetitions for s in states) == [1, 2, 3, 4, 5]
    assert len(store) == 5


@pytest.mark.asyncio
async def test_different_questions_do_not_share_state(service):
    a = await service.record_attempt("u1", "qa", Attempt(correct=True, time_ms=2000))
    b = await service.record_attempt("u1", "qb", Attempt(correct=True, time_ms=2000))
    assert a.repetitions == b.repetitions == 1


def test_custom_cache_is_used(store, config):
    cache = ParameterCache(ttl_seconds=10, refit_after=1)
    assert SchedulingService(store, config=config, cache=cache).cache is cache


@pytest.mark.asyncio
async def test_cache_expires_once_growth_passes_history_limit(mock_home, store, now, history_factory):
    config = AppConfig(history_limit=30, parameter_cache_ttl_seconds=3600, parameter_refit_after=5)
    service = SchedulingService(store, config=config, clock=lambda: now)
    for record in history_factory(30):
        await store.append(record)

    with patch(FIT_PATH, return_value=OptimizationResult(DEFAULT_PARAMETERS, 0.1, 3)) as mock_fit:
        _, first = await service.parameters_for_user("u1")

        # The fetched history stays pinned at 30 records from here on.
        for record in history_factory(2, start=now + timedelta(days=100)):
            await store.append(record)
        _, after_two = await service.parameters_for_user("u1")

        for record in history_factory(18, start=now + timedelta(days=200)):
            await store.append(record)
        _, after_twenty = await service.parameters_for_user("u1")

    assert (first, after_two, after_twenty) == ("optimized", "cached", "optimized")
    assert mock_fit.call_count == 2
    assert len(mock_fit.call_args.args[0]) == 30


@pytest.mark.asyncio
async def test_naive_review_time_mixes_with_aware_clock(service, store, now):
    naive = datetime(2024, 1, 1, 9)
    first = await service.record_attempt("u1", "q1", Attempt(correct=True, time_ms=3000), now=naive)
    await service.record_attempt("u1", "q1", Attempt(correct=True, time_ms=3000))
    third = await service.record_attempt("u1", "q1", Attempt(correct=True, time_ms=3000))

    assert first.reviewed_at == naive.replace(tzinfo=timezone.utc)
    assert third.repetitions == 3
    history = await store.get_user_history("u1", 10)
    assert [r.created_at.tzinfo for r in history] == [timezone.utc] * 3
    assert history[0].created_at == datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
