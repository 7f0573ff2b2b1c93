"""
Metrics calculator for deriving study statistics from the review log.

This is a pure computation module with no I/O.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone, tzinfo

from srscore.domain.constants import DEFAULT_HISTORY_DAYS
from srscore.domain.days import ensure_aware, local_date
from srscore.domain.models import Card, ReviewEvent
from srscore.domain.stats.models import DailyActivity, StatsRange, StatsSummary


def compute_streak(active_days: Iterable[date], today: date) -> int:
    """
    Count consecutive active days ending today or yesterday.

    Walks backward from the most recent active day and stops at the first gap,
    so a missed day earlier in the history does not reset the current run.
    """
    days = set(active_days)
    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def format_duration(ms: int) -> str:
    """Format milliseconds as HH:MM:SS (hours may exceed 24)."""
    total_seconds = max(ms, 0) // 1000
    hours, rem = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class MetricsCalculator:
    """
    Computes study statistics from review events and card states.

    Stateless and side-effect free. Events of cards that are unknown or
    soft-deleted are ignored, matching what the learner can still see.
    """

    def __init__(self, tz: tzinfo = timezone.utc):
        self.tz = tz

    def aggregate_stats(
        self,
        events: Iterable[ReviewEvent],
        cards: Iterable[Card],
        stats_range: StatsRange,
        now: datetime,
    ) -> StatsSummary:
        """
        Summarize activity within a range, plus overall totals.

        A zero-event history yields an all-zero summary.
        """
        live_cards = [c for c in cards if not c.is_deleted]
        visible = self._visible_events(events, live_cards)
        in_range = [e for e in visible if stats_range.contains(ensure_aware(e.reviewed_at))]

        summary = StatsSummary()

        # In range
        summary.reviews = len(in_range)
        summary.cards_studied = len({e.card_id for e in in_range})
        summary.new_cards = sum(1 for e in in_range if e.is_first_study)
        summary.review_cards = summary.reviews - summary.new_cards
        summary.total_time_ms = sum(e.time_spent_ms for e in in_range)
        summary.avg_time_ms = summary.total_time_ms // summary.reviews if summary.reviews else 0
        summary.study_days = len(self._active_days(in_range))

        # Overall
        all_days = self._active_days(visible)
        summary.total_cards = len(live_cards)
        summary.total_reviews = len(visible)
        summary.total_time_all_ms = sum(e.time_spent_ms for e in visible)
        summary.total_time_studied = format_duration(summary.total_time_all_ms)
        summary.total_study_days = len(all_days)
        summary.streak_days = compute_streak(all_days, local_date(now, self.tz))

        return summary

    def aggregate_history(
        self,
        events: Iterable[ReviewEvent],
        cards: Iterable[Card],
        now: datetime,
        days: int = DEFAULT_HISTORY_DAYS,
    ) -> list[DailyActivity]:
        """
        Daily review counts and time for the last ``days`` days, oldest first.

        Only days with at least one review are returned.
        """
        if days <= 0:
            days = DEFAULT_HISTORY_DAYS

        today = local_date(now, self.tz)
        first_day = today - timedelta(days=days)

        counts: dict[date, int] = defaultdict(int)
        times: dict[date, int] = defaultdict(int)
        for event in self._visible_events(events, [c for c in cards if not c.is_deleted]):
            day = local_date(event.reviewed_at, self.tz)
            if first_day <= day <= today:
                counts[day] += 1
                times[day] += event.time_spent_ms

        return [
            DailyActivity(day=day, card_count=counts[day], time_spent_ms=times[day])
            for day in sorted(counts)
        ]

    def _visible_events(
        self, events: Iterable[ReviewEvent], live_cards: list[Card]
    ) -> list[ReviewEvent]:
        live_ids = {c.id for c in live_cards}
        return [e for e in events if e.card_id in live_ids]

    def _active_days(self, events: Iterable[ReviewEvent]) -> set[date]:
        return {local_date(e.reviewed_at, self.tz) for e in events}
