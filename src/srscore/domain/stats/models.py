"""
Domain models for study statistics.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from srscore.domain.days import day_bounds, local_date


@dataclass(frozen=True)
class StatsRange:
    """
    Half-open time range [start, end) for statistics queries.
    """

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"range end {self.end} precedes start {self.start}")

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end

    @classmethod
    def today(cls, now: datetime, tz: tzinfo = timezone.utc) -> "StatsRange":
        """The local calendar day containing ``now``."""
        start, end = day_bounds(local_date(now, tz), tz)
        return cls(start=start, end=end)

    @classmethod
    def last_days(cls, now: datetime, days: int, tz: tzinfo = timezone.utc) -> "StatsRange":
        """The ``days`` local calendar days ending with today."""
        today = local_date(now, tz)
        start, _ = day_bounds(today - timedelta(days=max(days, 1) - 1), tz)
        _, end = day_bounds(today, tz)
        return cls(start=start, end=end)


@dataclass
class StatsSummary:
    """
    Aggregated study activity for a scope.

    Range fields cover the requested StatsRange; total fields cover the whole
    review log of live cards.
    """

    # In range
    reviews: int = 0
    cards_studied: int = 0
    new_cards: int = 0  # First-time studies
    review_cards: int = 0  # Repeated reviews
    total_time_ms: int = 0
    avg_time_ms: int = 0
    study_days: int = 0

    # Overall
    total_cards: int = 0
    total_reviews: int = 0
    total_time_all_ms: int = 0
    total_time_studied: str = "00:00:00"  # HH:MM:SS
    total_study_days: int = 0
    streak_days: int = 0


@dataclass(frozen=True)
class DailyActivity:
    """Study activity for a single local calendar day."""

    day: date
    card_count: int
    time_spent_ms: int
