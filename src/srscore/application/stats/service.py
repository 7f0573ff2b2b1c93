"""
Stats Service: Application layer orchestrator.

Coordinates fetching cards and review events from the repository and
aggregating them into statistics.
"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo

from srscore.application.scope import load_scope
from srscore.domain.constants import DEFAULT_HISTORY_DAYS
from srscore.domain.days import day_start, local_date
from srscore.domain.models import Scope
from srscore.domain.ports import SchedulingRepository
from srscore.domain.stats.models import DailyActivity, StatsRange, StatsSummary

from .metrics_calculator import MetricsCalculator

logger = logging.getLogger(__name__)


class StatsService:
    """
    Application service for study statistics.

    Follows Dependency Inversion: depends on SchedulingRepository abstraction,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        repo: SchedulingRepository,
        calculator: MetricsCalculator | None = None,
        tz: tzinfo = timezone.utc,
    ):
        """
        Args:
            repo: The repository (port) for fetching cards and events.
            calculator: Optional custom calculator; uses one bound to ``tz`` if not provided.
            tz: Timezone defining the learner's calendar day.
        """
        self._repo = repo
        self._calc = calculator or MetricsCalculator(tz)

    async def aggregate_stats(
        self,
        scope: Scope,
        stats_range: StatsRange | None = None,
        now: datetime | None = None,
    ) -> StatsSummary:
        """
        Summarize study activity for a scope.

        Args:
            scope: User, or one of the user's decks.
            stats_range: Range to summarize; defaults to today.
            now: Reference time for "today" and the streak; defaults to the current time.

        Raises:
            NotFound: If the scope names a missing or foreign deck.
        """
        now = now or datetime.now(timezone.utc)
        stats_range = stats_range or StatsRange.today(now, self._calc.tz)

        _, cards = await load_scope(self._repo, scope)
        if not cards:
            return StatsSummary()

        # Totals and the streak need the whole history
        events = await self._repo.list_events([c.id for c in cards])
        logger.debug(f"Aggregating {len(events)} review events over {len(cards)} cards")
        return self._calc.aggregate_stats(events, cards, stats_range, now)

    async def aggregate_history(
        self,
        scope: Scope,
        days: int = DEFAULT_HISTORY_DAYS,
        now: datetime | None = None,
    ) -> list[DailyActivity]:
        """
        Per-day activity for the last ``days`` days.

        Raises:
            NotFound: If the scope names a missing or foreign deck.
        """
        now = now or datetime.now(timezone.utc)
        if days <= 0:
            days = DEFAULT_HISTORY_DAYS
        _, cards = await load_scope(self._repo, scope)
        if not cards:
            return []

        first_day = local_date(now, self._calc.tz) - timedelta(days=days)
        since = day_start(first_day, self._calc.tz)
        events = await self._repo.list_events([c.id for c in cards], since=since)
        return self._calc.aggregate_history(events, cards, now, days)
