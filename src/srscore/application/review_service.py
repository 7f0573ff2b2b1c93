"""
Review Service: Application layer orchestrator for rating submission.

Loads the card, applies the rating and persists the new state together with
its review event, holding the card's lock for the whole sequence.
"""

import logging
from datetime import datetime, timezone

from srscore.application.locks import CardLockRegistry
from srscore.application.scheduler import RatingProcessor, validate_rating, validate_time_spent
from srscore.domain.errors import NotFound, SchedulingError
from srscore.domain.models import Card, ReviewEvent
from srscore.domain.ports import SchedulingRepository

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Application service for submitting ratings.

    A rejected rating (invalid input, clock regression, concurrent update)
    leaves the stored card exactly as it was.
    """

    def __init__(
        self,
        repo: SchedulingRepository,
        processor: RatingProcessor | None = None,
        locks: CardLockRegistry | None = None,
    ):
        self._repo = repo
        self._processor = processor or RatingProcessor()
        self._locks = locks or CardLockRegistry()

    async def review_card(
        self,
        card_id: str,
        rating: int,
        time_spent_ms: int = 0,
        now: datetime | None = None,
        user_id: str | None = None,
    ) -> tuple[Card, ReviewEvent]:
        """
        Rate a card and persist the outcome.

        Args:
            card_id: Card to rate.
            rating: 1=Again, 2=Hard, 3=Good, 4=Easy.
            time_spent_ms: Time the learner spent on the card.
            now: Time of the rating; defaults to the current time.
            user_id: If given, the card's deck must belong to this user.

        Returns:
            Tuple of (stored card state, appended review event).

        Raises:
            InvalidRating: Rating outside 1..4; checked before any lookup.
            InvalidTimeSpent: Negative time spent.
            NotFound: Missing or deleted card, or a card of another user.
            ClockRegression: ``now`` precedes the card's last review.
            StaleCardState: The card changed underneath us (another writer
                outside this registry).
        """
        validate_rating(rating)
        validate_time_spent(time_spent_ms)
        now = now or datetime.now(timezone.utc)

        async with self._locks.hold(card_id):
            card = await self._repo.get_card(card_id)
            if user_id is not None:
                deck = await self._repo.get_deck(card.deck_id)
                if deck.user_id != user_id:
                    raise NotFound("card", card_id)

            try:
                updated, event = self._processor.apply_rating(card, rating, now, time_spent_ms)
                await self._repo.save_review(
                    updated, event, expected_review_count=card.review_count
                )
            except SchedulingError as e:
                logger.warning(f"Rejected rating {rating!r} for card {card_id}: {e}")
                raise

        logger.info(
            f"Card {card_id} rated {event.rating}: {card.state.value} -> {updated.state.value}, "
            f"due {updated.due_at.isoformat() if updated.due_at else 'never'}"
        )
        return updated, event
