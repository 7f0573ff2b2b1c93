"""
Repository Factory
Centralizes the logic for selecting the storage adapter and wiring services.
"""

import logging
from dataclasses import dataclass

from srscore.application.config import AppConfig
from srscore.application.deck_service import DeckService
from srscore.application.queue_builder import QueueService
from srscore.application.review_service import ReviewService
from srscore.application.scheduler import RatingProcessor
from srscore.application.stats.service import StatsService
from srscore.domain.ports import SchedulingRepository
from srscore.infrastructure.adapters.memory import InMemoryRepository
from srscore.infrastructure.adapters.sqlite_store import SqliteRepository

logger = logging.getLogger(__name__)


def get_repository(config: AppConfig) -> SchedulingRepository:
    """
    Returns the SchedulingRepository implementation selected by config.
    """
    if config.backend == "memory":
        logger.debug("Backend: in-memory")
        return InMemoryRepository()

    logger.debug(f"Backend: SQLite ({config.database_path})")
    return SqliteRepository(config.database_path)


@dataclass
class Services:
    """Application services sharing one repository."""

    repo: SchedulingRepository
    decks: DeckService
    queue: QueueService
    reviews: ReviewService
    stats: StatsService

    def close(self) -> None:
        if isinstance(self.repo, SqliteRepository):
            self.repo.close()


def build_services(config: AppConfig, repo: SchedulingRepository | None = None) -> Services:
    """Wire every application service against one repository."""
    repo = repo or get_repository(config)
    settings = config.scheduler
    return Services(
        repo=repo,
        decks=DeckService(repo, settings),
        queue=QueueService(repo, settings, config.tz, config.default_queue_limit),
        reviews=ReviewService(repo, RatingProcessor(settings)),
        stats=StatsService(repo, tz=config.tz),
    )
