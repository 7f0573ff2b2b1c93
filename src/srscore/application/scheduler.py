"""
Rating processor: the spaced-repetition state machine.

Maps (card, rating, now) to the card's next scheduling state plus the review
event to persist. This is a pure computation module with no I/O; the only
source of nondeterminism is the injectable random generator used for fuzz.

State machine:
1. New cards enter the learning ladder (or graduate at once on Easy)
2. Learning/Relearning cards walk the ladder and graduate past its end
3. Review cards grow their interval by ease, or lapse into Relearning
"""

import logging
import math
import random
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta

from srscore.application.config import SchedulerSettings
from srscore.application.id_service import new_event_id
from srscore.domain.days import ensure_aware
from srscore.domain.errors import ClockRegression, InvalidRating, InvalidTimeSpent
from srscore.domain.models import Card, CardState, Rating, ReviewEvent

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def validate_rating(rating: object) -> Rating:
    """
    Coerce a raw rating into a Rating.

    Raises:
        InvalidRating: If the value is not an integer in 1..4.
    """
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRating(rating)
    try:
        return Rating(rating)
    except ValueError:
        raise InvalidRating(rating) from None


def validate_time_spent(time_spent_ms: object) -> int:
    if isinstance(time_spent_ms, bool) or not isinstance(time_spent_ms, int):
        raise InvalidTimeSpent(time_spent_ms)
    if time_spent_ms < 0:
        raise InvalidTimeSpent(time_spent_ms)
    return time_spent_ms


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


class RatingProcessor:
    """
    Applies ratings to cards.

    Stateless apart from the random generator, which is consumed only when a
    Review-state interval longer than one day is fuzzed.
    """

    def __init__(
        self,
        settings: SchedulerSettings | None = None,
        rng: random.Random | None = None,
        id_factory: Callable[[], str] = new_event_id,
    ):
        """
        Args:
            settings: Algorithm constants; defaults are used if not provided.
            rng: Random source for fuzz. Seeded from settings.fuzz_seed if not provided.
            id_factory: Generates review event IDs.
        """
        self.settings = settings or SchedulerSettings()
        self._rng = rng if rng is not None else random.Random(self.settings.fuzz_seed)
        self._new_id = id_factory
        self._ladder = self.settings.ladder

    def apply_rating(
        self,
        card: Card,
        rating: int,
        now: datetime,
        time_spent_ms: int = 0,
    ) -> tuple[Card, ReviewEvent]:
        """
        Compute the card's next state after a rating.

        Args:
            card: Current card state. Never mutated.
            rating: 1=Again, 2=Hard, 3=Good, 4=Easy.
            now: Time of the rating; must not precede card.last_reviewed_at.
            time_spent_ms: Time the learner spent on the card.

        Returns:
            Tuple of (new card state, review event to append).

        Raises:
            InvalidRating: Rating outside 1..4.
            InvalidTimeSpent: Negative time spent.
            ClockRegression: ``now`` is earlier than the last review.
        """
        rating = validate_rating(rating)
        time_spent_ms = validate_time_spent(time_spent_ms)
        now = ensure_aware(now)
        if card.last_reviewed_at is not None and now < ensure_aware(card.last_reviewed_at):
            raise ClockRegression(card.id, now, card.last_reviewed_at)

        if card.state is CardState.NEW:
            updated = self._rate_new(card, rating, now)
        elif card.state.in_ladder:
            updated = self._rate_ladder(card, rating, now)
        else:
            updated = self._rate_review(card, rating, now)

        updated = replace(
            updated,
            review_count=card.review_count + 1,
            last_reviewed_at=now,
            first_reviewed_at=card.first_reviewed_at or now,
        )

        event = ReviewEvent(
            id=self._new_id(),
            card_id=card.id,
            rating=int(rating),
            time_spent_ms=time_spent_ms,
            reviewed_at=now,
            prev_state=card.state,
            new_state=updated.state,
            prev_interval=card.interval,
            new_interval=updated.interval,
            prev_ease=card.ease,
            new_ease=updated.ease,
        )
        return updated, event

    # ------------------------------------------------------------------
    # Per-state transitions
    # ------------------------------------------------------------------

    def _rate_new(self, card: Card, rating: Rating, now: datetime) -> Card:
        if rating is Rating.EASY:
            return self._graduate(card, self.settings.easy_interval_days, now)
        return self._schedule_step(card, CardState.LEARNING, 0, now)

    def _rate_ladder(self, card: Card, rating: Rating, now: datetime) -> Card:
        # Clamp in case the ladder was shortened after the card was scheduled
        step = min(max(card.learning_step, 0), len(self._ladder) - 1)
        relearning = card.state is CardState.RELEARNING

        if rating is Rating.AGAIN:
            return self._schedule_step(card, card.state, 0, now)

        if rating is Rating.HARD:
            return self._schedule_step(card, card.state, step, now)

        if rating is Rating.GOOD:
            next_step = step + 1
            if next_step < len(self._ladder):
                return self._schedule_step(card, card.state, next_step, now)
            days = (
                self.settings.relearning_interval_days
                if relearning
                else self.settings.graduating_interval_days
            )
            return self._graduate(card, days, now)

        days = (
            self.settings.relearning_easy_interval_days
            if relearning
            else self.settings.easy_interval_days
        )
        return self._graduate(card, days, now)

    def _rate_review(self, card: Card, rating: Rating, now: datetime) -> Card:
        s = self.settings
        base_days = max(card.interval / ONE_DAY, 1.0)
        ease = self._clamp_ease(card.ease)

        if rating is Rating.AGAIN:
            ease = self._clamp_ease(ease - s.again_penalty)
            logger.debug(f"Card {card.id} lapsed; ease {card.ease:.2f} -> {ease:.2f}")
            lapsed = replace(card, ease=ease, laps_count=card.laps_count + 1)
            return self._schedule_step(lapsed, CardState.RELEARNING, 0, now)

        if rating is Rating.HARD:
            ease = self._clamp_ease(ease - s.hard_penalty)
            raw_days = base_days * s.hard_factor
        elif rating is Rating.GOOD:
            raw_days = base_days * ease
        else:
            ease = self._clamp_ease(ease + s.easy_ease_bonus)
            raw_days = base_days * ease * s.easy_bonus

        days = self._fuzz(self._clamp_days(raw_days))
        interval = timedelta(days=days)
        return replace(
            card,
            state=CardState.REVIEW,
            learning_step=0,
            ease=ease,
            interval=interval,
            due_at=now + interval,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _schedule_step(self, card: Card, state: CardState, step: int, now: datetime) -> Card:
        delay = self._ladder[step]
        return replace(
            card,
            state=state,
            learning_step=step,
            interval=delay,
            due_at=now + delay,
        )

    def _graduate(self, card: Card, interval_days: float, now: datetime) -> Card:
        days = self._clamp_days(interval_days)
        interval = timedelta(days=days)
        logger.debug(f"Card {card.id} graduated from {card.state.value} with {days}d interval")
        return replace(
            card,
            state=CardState.REVIEW,
            learning_step=0,
            ease=self._clamp_ease(card.ease),
            interval=interval,
            due_at=now + interval,
        )

    def _clamp_ease(self, ease: float) -> float:
        ease = max(ease, self.settings.min_ease)
        if self.settings.max_ease is not None:
            ease = min(ease, self.settings.max_ease)
        return ease

    def _clamp_days(self, days: float) -> int:
        """Round to whole days within [1, max_interval_days]."""
        return min(max(_round_half_up(days), 1), self.settings.max_interval_days)

    def _fuzz(self, days: int) -> int:
        """
        Spread due dates by +/- fuzz_factor so cards rated together
        do not stay clustered. Intervals of one day are left alone.
        """
        if days <= 1 or self.settings.fuzz_factor == 0:
            return days
        delta = days * self.settings.fuzz_factor
        return self._clamp_days(days + self._rng.uniform(-delta, delta))


def apply_rating(
    card: Card,
    rating: int,
    now: datetime,
    time_spent_ms: int = 0,
    settings: SchedulerSettings | None = None,
    rng: random.Random | None = None,
) -> tuple[Card, ReviewEvent]:
    """
    Convenience wrapper around RatingProcessor.apply_rating.
    """
    return RatingProcessor(settings, rng).apply_rating(card, rating, now, time_spent_ms)
