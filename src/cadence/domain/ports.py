"""
Ports (interfaces) for review-history storage.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import ReviewRecord


class ReviewHistoryStore(ABC):
    """
    Port for reading and appending review records.

    Implementations:
        - InMemoryHistoryStore: Dict-backed, for tests and ephemeral use.
        - SqliteHistoryStore: Single-file SQLite database.
    """

    @abstractmethod
    async def get_latest_record(self, user_id: str, question_id: str) -> ReviewRecord | None:
        """
        Fetch the most recent record for a (user, question) pair.

        Returns:
            The newest ReviewRecord, or None if the question was never attempted.
        """
        pass

    @abstractmethod
    async def get_user_history(self, user_id: str, limit: int) -> list[ReviewRecord]:
        """
        Fetch a user's history across all questions.

        Args:
            user_id: The learner.
            limit: Maximum number of records; the most recent ones are kept.

        Returns:
            List of ReviewRecord objects, sorted by created_at ascending.
        """
        pass

    @abstractmethod
    async def count_user_records(self, user_id: str) -> int:
        """
        Total number of records stored for a user, across all questions.

        Unlike get_user_history this is not capped, so it keeps growing
        after the history limit is reached.
        """
        pass

    @abstractmethod
    async def append(self, record: ReviewRecord) -> ReviewRecord:
        """
        Append a record. Records are immutable once written.

        Returns:
            The stored record, with ``record_id`` assigned.
        """
        pass
