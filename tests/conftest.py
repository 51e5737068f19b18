from datetime import datetime, timedelta, timezone

import pytest

from cadence.domain.models import ReviewRecord

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and the default database
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr("cadence.application.config.CONFIG_FILES", [])
    return home


def make_history(count, user_id="u1", question_id="q1", start=NOW, spacing_days=2):
    """A plausible review history: alternating good and lapsed reviews, oldest first."""
    records = []
    for i in range(count):
        score = 90.0 if i % 3 else 40.0
        created = start + timedelta(days=i * spacing_days)
        records.append(
            ReviewRecord(
                created_at=created,
                score=score,
                stability=3.0 + i,
                difficulty=5.0,
                interval_days=float(spacing_days + (i % 4)),
                repetitions=i % 3,
                last_revised_at=created,
                user_id=user_id,
                question_id=question_id,
            )
        )
    return records


@pytest.fixture
def history():
    return make_history(12)


@pytest.fixture
def history_factory():
    return make_history
