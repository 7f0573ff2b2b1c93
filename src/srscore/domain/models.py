"""
Domain models for cards, decks and review events.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum, IntEnum

from .constants import DEFAULT_EASE, DEFAULT_NEW_CARDS_PER_DAY
from .days import ensure_aware


class CardState(str, Enum):
    """Learning state of a card. States cycle; none is terminal."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"

    @property
    def in_ladder(self) -> bool:
        """True while the card walks the learning/relearning ladder."""
        return self in (CardState.LEARNING, CardState.RELEARNING)


class Rating(IntEnum):
    """Button pressed by the learner."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


@dataclass(frozen=True)
class Card:
    """
    Scheduling state of a single card.

    Content is owned elsewhere; only the fields the scheduler reads and writes
    live here. Instances are immutable: a rating yields a new Card so readers
    never see a partially applied update.

    Attributes:
        id: Card identifier.
        deck_id: Owning deck.
        state: Current learning state.
        learning_step: Index into the ladder (0 outside Learning/Relearning).
        interval: Current interval; sub-day while learning, whole days in review.
        ease: Multiplicative growth factor used in Review state.
        due_at: When the card becomes eligible. None only for unrated New cards.
        review_count: Total ratings applied.
        laps_count: Times the card was forgotten in Review state.
        last_reviewed_at: Timestamp of the most recent rating.
        first_reviewed_at: Timestamp of the first rating.
        created_at: Insertion time; orders New cards.
        deleted_at: Soft-delete marker.
    """

    id: str
    deck_id: str
    state: CardState = CardState.NEW
    learning_step: int = 0
    interval: timedelta = timedelta(0)
    ease: float = DEFAULT_EASE
    due_at: datetime | None = None
    review_count: int = 0
    laps_count: int = 0
    last_reviewed_at: datetime | None = None
    first_reviewed_at: datetime | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    @classmethod
    def new(
        cls,
        card_id: str,
        deck_id: str,
        created_at: datetime,
        ease: float = DEFAULT_EASE,
    ) -> "Card":
        """Build a card as it is when first added to a deck."""
        return cls(id=card_id, deck_id=deck_id, ease=ease, created_at=created_at)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_due(self, now: datetime) -> bool:
        """
        True iff the card has been scheduled and its due time has passed.

        New cards are never due by time; they are surfaced by the daily
        new-card budget instead.
        """
        if self.state is CardState.NEW or self.due_at is None:
            return False
        return self.due_at <= ensure_aware(now)

    def reset(self, ease: float = DEFAULT_EASE) -> "Card":
        """Return the card to New state, keeping identity and creation time."""
        return Card.new(self.id, self.deck_id, self.created_at, ease=ease)

    def mark_deleted(self, when: datetime) -> "Card":
        return replace(self, deleted_at=when)


@dataclass(frozen=True)
class ReviewEvent:
    """
    A single append-only review log entry.

    Attributes:
        id: Event identifier (ULID).
        card_id: The card that was reviewed.
        rating: Button pressed (1=Again, 2=Hard, 3=Good, 4=Easy).
        time_spent_ms: Time the learner spent on the card.
        reviewed_at: When the rating was applied.
        prev_state: Card state before the rating. NEW marks a first study.
        new_state: Card state after the rating.
        prev_interval: Interval before the rating.
        new_interval: Interval after the rating.
        prev_ease: Ease before the rating.
        new_ease: Ease after the rating.
    """

    id: str
    card_id: str
    rating: int
    time_spent_ms: int
    reviewed_at: datetime
    prev_state: CardState
    new_state: CardState
    prev_interval: timedelta
    new_interval: timedelta
    prev_ease: float
    new_ease: float

    @property
    def is_first_study(self) -> bool:
        return self.prev_state is CardState.NEW


@dataclass(frozen=True)
class Deck:
    """A user's collection of cards, with its daily new-card budget."""

    id: str
    user_id: str
    name: str
    new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class Scope:
    """
    The unit for selection and statistics queries.

    A scope is either every deck a user owns, or one deck of that user.
    """

    user_id: str
    deck_id: str | None = None
