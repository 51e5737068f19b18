"""
History Store Factory
Centralizes the logic for selecting the review-history adapter.
"""

from cadence.application.config import AppConfig
from cadence.application.scheduling_service import SchedulingService
from cadence.domain.ports import ReviewHistoryStore
from cadence.infrastructure.adapters.memory_store import InMemoryHistoryStore
from cadence.infrastructure.adapters.sqlite_store import SqliteHistoryStore


def get_history_store(config: AppConfig) -> ReviewHistoryStore:
    """
    Returns the ReviewHistoryStore implementation selected by config.backend.
    """
    if config.backend == "memory":
        return InMemoryHistoryStore()
    return SqliteHistoryStore(config.database_path)


def get_scheduling_service(config: AppConfig) -> SchedulingService:
    """Build a SchedulingService wired to the configured store."""
    return SchedulingService(store=get_history_store(config), config=config)
