"""
In-memory repository: Infrastructure adapter backed by dictionaries.

Implements SchedulingRepository for tests and throwaway sessions. Cards are
immutable values swapped in under a lock, so readers always observe a whole
card.
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from srscore.domain.errors import NotFound, StaleCardState
from srscore.domain.models import Card, Deck, ReviewEvent
from srscore.domain.ports import SchedulingRepository

logger = logging.getLogger(__name__)


class InMemoryRepository(SchedulingRepository):
    """
    Process-local storage of decks, cards and review events.
    """

    def __init__(
        self,
        decks: Iterable[Deck] = (),
        cards: Iterable[Card] = (),
        events: Iterable[ReviewEvent] = (),
    ):
        self._lock = threading.Lock()
        self._decks: dict[str, Deck] = {d.id: d for d in decks}
        self._cards: dict[str, Card] = {c.id: c for c in cards}
        self._events: list[ReviewEvent] = list(events)

    async def get_deck(self, deck_id: str) -> Deck:
        deck = self._decks.get(deck_id)
        if deck is None or deck.is_deleted:
            raise NotFound("deck", deck_id)
        return deck

    async def list_decks(self, user_id: str) -> list[Deck]:
        decks = [d for d in self._decks.values() if d.user_id == user_id and not d.is_deleted]
        return sorted(decks, key=lambda d: (d.created_at is None, d.created_at, d.id))

    async def get_card(self, card_id: str) -> Card:
        card = self._cards.get(card_id)
        if card is None or card.is_deleted:
            raise NotFound("card", card_id)
        return card

    async def list_cards(self, deck_ids: list[str]) -> list[Card]:
        wanted = set(deck_ids)
        return [c for c in self._cards.values() if c.deck_id in wanted and not c.is_deleted]

    async def list_events(
        self, card_ids: list[str], since: datetime | None = None
    ) -> list[ReviewEvent]:
        wanted = set(card_ids)
        with self._lock:
            events = [
                e
                for e in self._events
                if e.card_id in wanted and (since is None or e.reviewed_at >= since)
            ]
        return sorted(events, key=lambda e: e.reviewed_at)

    async def add_deck(self, deck: Deck) -> None:
        with self._lock:
            self._decks[deck.id] = deck

    async def update_deck(self, deck: Deck) -> None:
        with self._lock:
            current = self._decks.get(deck.id)
            if current is None or current.is_deleted:
                raise NotFound("deck", deck.id)
            self._decks[deck.id] = replace(
                current, name=deck.name, new_cards_per_day=deck.new_cards_per_day
            )

    async def delete_deck(self, deck_id: str, when: datetime) -> None:
        with self._lock:
            deck = self._decks.get(deck_id)
            if deck is None or deck.is_deleted:
                raise NotFound("deck", deck_id)
            self._decks[deck_id] = replace(deck, deleted_at=when)
            for card in list(self._cards.values()):
                if card.deck_id == deck_id and not card.is_deleted:
                    self._cards[card.id] = card.mark_deleted(when)

    async def add_card(self, card: Card) -> None:
        with self._lock:
            deck = self._decks.get(card.deck_id)
            if deck is None or deck.is_deleted:
                raise NotFound("deck", card.deck_id)
            self._cards[card.id] = card

    async def delete_card(self, card_id: str, when: datetime) -> None:
        with self._lock:
            card = self._cards.get(card_id)
            if card is None or card.is_deleted:
                raise NotFound("card", card_id)
            self._cards[card_id] = card.mark_deleted(when)

    async def reset_progress(self, deck_ids: list[str], ease: float) -> int:
        wanted = set(deck_ids)
        reset = 0
        with self._lock:
            for card in list(self._cards.values()):
                if card.deck_id in wanted and not card.is_deleted:
                    self._cards[card.id] = card.reset(ease)
                    reset += 1
        return reset

    async def save_review(
        self, card: Card, event: ReviewEvent, expected_review_count: int
    ) -> None:
        with self._lock:
            current = self._cards.get(card.id)
            if current is None or current.is_deleted:
                raise NotFound("card", card.id)
            if current.review_count != expected_review_count:
                raise StaleCardState(card.id, expected_review_count)
            self._cards[card.id] = card
            self._events.append(event)
        logger.debug(f"Stored review {event.id} for card {card.id}")
