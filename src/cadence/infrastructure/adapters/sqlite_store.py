"""
SQLite History Store: Infrastructure adapter for a single-file database.

Implements ReviewHistoryStore on one append-only ``review_records`` table.
Timestamps are stored as ISO-8601 strings; naive datetimes are read as UTC.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from cadence.domain.exceptions import HistoryStoreError
from cadence.domain.models import ReviewRecord, as_utc
from cadence.domain.ports import ReviewHistoryStore
from cadence.infrastructure.ids import generate_record_id

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS review_records (
    record_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    question_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    score REAL NOT NULL,
    stability REAL,
    difficulty REAL,
    interval_days REAL,
    repetitions INTEGER,
    last_revised_at TEXT,
    next_review_due TEXT
);
CREATE INDEX IF NOT EXISTS idx_records_user
    ON review_records(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_records_user_question
    ON review_records(user_id, question_id, created_at);
"""

COLUMNS = (
    "record_id, user_id, question_id, created_at, score, stability, difficulty, "
    "interval_days, repetitions, last_revised_at, next_review_due"
)


def _to_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_text(value: str | None) -> datetime | None:
    if value is None:
        return None
    return as_utc(datetime.fromisoformat(value))


def _row_to_record(row: sqlite3.Row) -> ReviewRecord:
    return ReviewRecord(
        record_id=row["record_id"],
        user_id=row["user_id"],
        question_id=row["question_id"],
        created_at=_from_text(row["created_at"]),
        score=row["score"],
        stability=row["stability"],
        difficulty=row["difficulty"],
        interval_days=row["interval_days"],
        repetitions=row["repetitions"],
        last_revised_at=_from_text(row["last_revised_at"]),
        next_review_due=_from_text(row["next_review_due"]),
    )


class SqliteHistoryStore(ReviewHistoryStore):
    """
    Stores review records in SQLite.

    Each call opens its own connection; the table is created on first use.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._initialized = False

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as e:
            raise HistoryStoreError(f"Cannot open history database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            if not self._initialized:
                conn.executescript(SCHEMA)
                self._initialized = True
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise HistoryStoreError(f"History database error: {e}") from e
        finally:
            conn.close()

    async def get_latest_record(self, user_id: str, question_id: str) -> ReviewRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {COLUMNS} FROM review_records "
                "WHERE user_id = ? AND question_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (user_id, question_id),
            ).fetchone()
        return _row_to_record(row) if row else None

    async def get_user_history(self, user_id: str, limit: int) -> list[ReviewRecord]:
        if limit <= 0:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {COLUMNS} FROM review_records WHERE user_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        # Newest-first to cap at the most recent; hand back oldest-first.
        return [_row_to_record(row) for row in reversed(rows)]

    async def count_user_records(self, user_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM review_records WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    async def append(self, record: ReviewRecord) -> ReviewRecord:
        if record.user_id is None or record.question_id is None:
            raise ValueError("ReviewRecord.user_id and question_id are required for storage")
        if record.created_at is None:
            raise ValueError("ReviewRecord.created_at is required for storage")
        if record.record_id is None:
            record = replace(record, record_id=generate_record_id())

        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO review_records ({COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.record_id,
                    record.user_id,
                    record.question_id,
                    _to_text(record.created_at),
                    record.score,
                    record.stability,
                    record.difficulty,
                    record.interval_days,
                    record.repetitions,
                    _to_text(record.last_revised_at),
                    _to_text(record.next_review_due),
                ),
            )
        logger.debug(f"Appended {record.record_id} for {record.user_id}/{record.question_id}")
        return record
