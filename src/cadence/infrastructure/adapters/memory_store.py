"""
In-memory History Store: Infrastructure adapter for tests and ephemeral use.
"""

from dataclasses import replace

from cadence.domain.models import ReviewRecord, as_utc
from cadence.domain.ports import ReviewHistoryStore
from cadence.infrastructure.ids import generate_record_id


class InMemoryHistoryStore(ReviewHistoryStore):
    """
    Keeps records in per-user lists, in insertion order.

    Nothing is shared between instances.
    """

    def __init__(self, records: list[ReviewRecord] | None = None):
        self._by_user: dict[str, list[ReviewRecord]] = {}
        for record in records or []:
            self._insert(record)

    async def get_latest_record(self, user_id: str, question_id: str) -> ReviewRecord | None:
        for record in reversed(self._sorted(user_id)):
            if record.question_id == question_id:
                return record
        return None

    async def get_user_history(self, user_id: str, limit: int) -> list[ReviewRecord]:
        if limit <= 0:
            return []
        return self._sorted(user_id)[-limit:]

    async def count_user_records(self, user_id: str) -> int:
        return len(self._by_user.get(user_id, []))

    async def append(self, record: ReviewRecord) -> ReviewRecord:
        return self._insert(record)

    def _insert(self, record: ReviewRecord) -> ReviewRecord:
        if record.user_id is None:
            raise ValueError("ReviewRecord.user_id is required for storage")
        record = replace(
            record,
            created_at=as_utc(record.created_at),
            last_revised_at=as_utc(record.last_revised_at),
            next_review_due=as_utc(record.next_review_due),
        )
        if record.record_id is None:
            record = replace(record, record_id=generate_record_id())
        self._by_user.setdefault(record.user_id, []).append(record)
        return record

    def _sorted(self, user_id: str) -> list[ReviewRecord]:
        # Stable sort keeps insertion order for equal timestamps; untimed rows go first.
        records = self._by_user.get(user_id, [])
        return sorted(records, key=lambda r: (r.created_at is not None, r.created_at or 0))

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_user.values())
