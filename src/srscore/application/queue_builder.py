"""
Queue builder for daily study sessions.

Builds the ordered batch of cards to present next by:
1. Taking learning/relearning cards whose step delay has elapsed
2. Taking review cards that are due, most overdue first
3. Admitting new cards in insertion order, within today's new-card budget
4. Spreading the new cards evenly through the reviews
"""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo

from srscore.application.config import SchedulerSettings
from srscore.application.scope import load_scope
from srscore.domain.days import day_bounds, ensure_aware, local_date
from srscore.domain.models import Card, CardState, Deck, Scope
from srscore.domain.ports import SchedulingRepository

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class DueQueue:
    """Result of queue building."""

    cards: list[Card]  # Final ordered batch, truncated to the limit
    learning: list[Card]  # Due learning/relearning cards
    review: list[Card]  # Due review cards
    new: list[Card]  # New cards admitted by today's budget
    new_budget: dict[str, int] = field(default_factory=dict)  # deck_id -> new cards left today


@dataclass
class DeckCounts:
    """Per-deck card counts for today, as shown on a deck overview."""

    new: int = 0  # New cards still available today
    learning: int = 0  # Learning/relearning cards due by end of today
    review: int = 0  # Review cards due by end of today
    completed_today: int = 0  # Reviewed today and not due again today

    @property
    def due(self) -> int:
        return self.new + self.learning + self.review


def build_due_queue(
    decks: Sequence[Deck],
    cards: Iterable[Card],
    now: datetime,
    limit: int,
    settings: SchedulerSettings | None = None,
    tz: tzinfo = timezone.utc,
) -> DueQueue:
    """
    Build the ordered study batch for a set of decks.

    Args:
        decks: Decks in scope. Deleted decks are ignored.
        cards: Cards of those decks. Deleted cards and cards of other decks are ignored.
        now: Selection time.
        limit: Maximum cards to return; <= 0 returns nothing.
        settings: Scheduler settings (for the user-wide new-card limit).
        tz: Timezone defining the learner's calendar day.

    Returns:
        DueQueue with the ordered batch and its buckets.
    """
    settings = settings or SchedulerSettings()
    now = ensure_aware(now)
    today = local_date(now, tz)

    live_decks = {d.id: d for d in decks if not d.is_deleted}
    candidates = [c for c in cards if not c.is_deleted and c.deck_id in live_decks]

    learning = sorted(
        (c for c in candidates if c.state.in_ladder and c.is_due(now)),
        key=_due_key,
    )
    review = sorted(
        (c for c in candidates if c.state is CardState.REVIEW and c.is_due(now)),
        key=_due_key,
    )

    budget = _new_card_budget(live_decks, candidates, today, tz)
    total_left = _total_new_left(settings, budget, live_decks, candidates, today, tz)
    new = _admit_new_cards(candidates, budget, total_left)

    if limit <= 0:
        ordered: list[Card] = []
    else:
        ordered = (learning + _interleave(review, new))[:limit]

    logger.debug(
        f"Queue at {now.isoformat()}: {len(learning)} learning, {len(review)} review, "
        f"{len(new)} new -> {len(ordered)} selected"
    )

    return DueQueue(
        cards=ordered,
        learning=learning,
        review=review,
        new=new,
        new_budget=budget,
    )


def select_due(
    decks: Sequence[Deck],
    cards: Iterable[Card],
    now: datetime,
    limit: int,
    settings: SchedulerSettings | None = None,
    tz: tzinfo = timezone.utc,
) -> list[Card]:
    """
    Select the ordered batch of cards to present next.

    Learning/relearning cards come first, then due reviews interleaved with
    the new cards admitted by today's budget. Repeated calls with the same
    inputs return the same list.
    """
    return build_due_queue(decks, cards, now, limit, settings, tz).cards


def count_due(
    decks: Sequence[Deck],
    cards: Iterable[Card],
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> dict[str, DeckCounts]:
    """
    Count today's workload per deck.

    Unlike selection, learning and review counts include cards that become
    due later today.
    """
    now = ensure_aware(now)
    today = local_date(now, tz)
    today_start, tomorrow_start = day_bounds(today, tz)

    live_decks = {d.id: d for d in decks if not d.is_deleted}
    candidates = [c for c in cards if not c.is_deleted and c.deck_id in live_decks]
    counts = {deck_id: DeckCounts() for deck_id in live_decks}
    new_available: Counter[str] = Counter()

    for card in candidates:
        deck_counts = counts[card.deck_id]
        if card.state is CardState.NEW:
            new_available[card.deck_id] += 1
            continue

        due_today = card.due_at is not None and card.due_at < tomorrow_start
        if due_today and card.state.in_ladder:
            deck_counts.learning += 1
        elif due_today and card.state is CardState.REVIEW:
            deck_counts.review += 1

        reviewed_today = (
            card.last_reviewed_at is not None
            and today_start <= ensure_aware(card.last_reviewed_at) < tomorrow_start
        )
        if reviewed_today and not due_today:
            deck_counts.completed_today += 1

    budget = _new_card_budget(live_decks, candidates, today, tz)
    for deck_id, deck_counts in counts.items():
        deck_counts.new = min(budget[deck_id], new_available[deck_id])

    return counts


def _due_key(card: Card) -> tuple[datetime, str]:
    return (card.due_at or _EPOCH, card.id)


def _insertion_key(card: Card) -> tuple[datetime, str]:
    created = ensure_aware(card.created_at) if card.created_at else _EPOCH
    return (created, card.id)


def _introduced_on(cards: Iterable[Card], day: date, tz: tzinfo) -> Counter[str]:
    """Per deck, how many cards received their first rating on ``day``."""
    introduced: Counter[str] = Counter()
    for card in cards:
        if card.first_reviewed_at is not None and local_date(card.first_reviewed_at, tz) == day:
            introduced[card.deck_id] += 1
    return introduced


def _new_card_budget(
    decks: dict[str, Deck],
    cards: list[Card],
    today: date,
    tz: tzinfo,
) -> dict[str, int]:
    """
    New cards each deck may still introduce today.

    Exhausting the budget is not an error; the deck simply offers no more
    new cards until the next local midnight.
    """
    introduced = _introduced_on(cards, today, tz)
    return {
        deck_id: max(0, deck.new_cards_per_day - introduced[deck_id])
        for deck_id, deck in decks.items()
    }


def _total_new_left(
    settings: SchedulerSettings,
    budget: dict[str, int],
    decks: dict[str, Deck],
    cards: list[Card],
    today: date,
    tz: tzinfo,
) -> int:
    """Remaining user-wide new-card allowance across the decks in scope."""
    per_deck_total = sum(budget.values())
    if settings.daily_new_limit is None:
        return per_deck_total
    introduced = sum(_introduced_on(cards, today, tz).values())
    return min(per_deck_total, max(0, settings.daily_new_limit - introduced))


def _admit_new_cards(
    cards: list[Card],
    budget: dict[str, int],
    total_left: int,
) -> list[Card]:
    """
    Walk new cards in insertion order, admitting each while both its deck's
    budget and the user-wide allowance last.
    """
    left = dict(budget)
    admitted: list[Card] = []

    for card in sorted((c for c in cards if c.state is CardState.NEW), key=_insertion_key):
        if total_left <= 0:
            break
        if left.get(card.deck_id, 0) <= 0:
            continue
        admitted.append(card)
        left[card.deck_id] -= 1
        total_left -= 1

    return admitted


def _interleave(review: list[Card], new: list[Card]) -> list[Card]:
    """
    Spread new cards evenly through the reviews.

    Picks from whichever list is further behind its proportional share;
    on a tie the review goes first.
    """
    if not new:
        return list(review)
    if not review:
        return list(new)

    merged: list[Card] = []
    ri = ni = 0
    while ri < len(review) or ni < len(new):
        take_new = ni < len(new) and (
            ri >= len(review) or ni * len(review) < ri * len(new)
        )
        if take_new:
            merged.append(new[ni])
            ni += 1
        else:
            merged.append(review[ri])
            ri += 1
    return merged


class QueueService:
    """
    Application service for building study queues from stored cards.

    Depends on the SchedulingRepository abstraction, not a concrete adapter.
    """

    def __init__(
        self,
        repo: SchedulingRepository,
        settings: SchedulerSettings | None = None,
        tz: tzinfo = timezone.utc,
        default_limit: int = 20,
    ):
        self._repo = repo
        self._settings = settings or SchedulerSettings()
        self._tz = tz
        self._default_limit = default_limit

    async def get_due_cards(
        self,
        scope: Scope,
        now: datetime,
        limit: int | None = None,
    ) -> list[Card]:
        """
        Select the next batch of cards for a user or one of their decks.

        Raises:
            NotFound: If the scope names a missing or foreign deck.
        """
        decks, cards = await load_scope(self._repo, scope)
        if limit is None:
            limit = self._default_limit
        return select_due(decks, cards, now, limit, self._settings, self._tz)

    async def get_deck_counts(self, scope: Scope, now: datetime) -> dict[str, DeckCounts]:
        decks, cards = await load_scope(self._repo, scope)
        return count_due(decks, cards, now, self._tz)
