"""Service for managing decks and the cards they own."""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from srscore.application.config import SchedulerSettings
from srscore.application.id_service import new_card_id, new_deck_id
from srscore.application.scope import load_decks
from srscore.domain.constants import DEFAULT_NEW_CARDS_PER_DAY
from srscore.domain.errors import NotFound
from srscore.domain.models import Card, Deck, Scope
from srscore.domain.ports import SchedulingRepository

logger = logging.getLogger(__name__)


class DeckService:
    """
    Lifecycle of decks and cards: creation, settings, soft deletion and
    progress reset. Never touches scheduling fields except to reset them.
    """

    def __init__(self, repo: SchedulingRepository, settings: SchedulerSettings | None = None):
        self._repo = repo
        self._settings = settings or SchedulerSettings()

    async def create_deck(
        self,
        user_id: str,
        name: str,
        new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY,
        now: datetime | None = None,
    ) -> Deck:
        if new_cards_per_day < 0:
            raise ValueError("new_cards_per_day must not be negative")
        deck = Deck(
            id=new_deck_id(),
            user_id=user_id,
            name=name,
            new_cards_per_day=new_cards_per_day,
            created_at=now or datetime.now(timezone.utc),
        )
        await self._repo.add_deck(deck)
        logger.info(f"Created deck {deck.id} ({name!r}) for user {user_id}")
        return deck

    async def get_deck(self, user_id: str, deck_id: str) -> Deck:
        """
        Raises:
            NotFound: If the deck is missing, deleted, or owned by another user.
        """
        [deck] = await load_decks(self._repo, Scope(user_id, deck_id))
        return deck

    async def list_decks(self, user_id: str) -> list[Deck]:
        return await self._repo.list_decks(user_id)

    async def update_settings(
        self,
        user_id: str,
        deck_id: str,
        new_cards_per_day: int | None = None,
        name: str | None = None,
    ) -> Deck:
        """Change a deck's daily new-card cap and/or its name."""
        deck = await self.get_deck(user_id, deck_id)
        if new_cards_per_day is not None and new_cards_per_day < 0:
            raise ValueError("new_cards_per_day must not be negative")

        updated = replace(
            deck,
            new_cards_per_day=(
                deck.new_cards_per_day if new_cards_per_day is None else new_cards_per_day
            ),
            name=deck.name if name is None else name,
        )
        await self._repo.update_deck(updated)
        logger.info(f"Updated deck {deck_id}: new_cards_per_day={updated.new_cards_per_day}")
        return updated

    async def delete_deck(self, user_id: str, deck_id: str, now: datetime | None = None) -> None:
        await self.get_deck(user_id, deck_id)
        await self._repo.delete_deck(deck_id, now or datetime.now(timezone.utc))
        logger.info(f"Deleted deck {deck_id}")

    async def add_cards(
        self,
        user_id: str,
        deck_id: str,
        count: int = 1,
        now: datetime | None = None,
    ) -> list[Card]:
        """
        Add ``count`` New cards to a deck, in insertion order.

        Cards in one batch get creation times one microsecond apart, so the
        queue keeps their order whatever their ids sort to.
        """
        await self.get_deck(user_id, deck_id)
        created_at = now or datetime.now(timezone.utc)

        cards = []
        for i in range(count):
            card = Card.new(
                new_card_id(),
                deck_id,
                created_at + timedelta(microseconds=i),
                ease=self._settings.default_ease,
            )
            await self._repo.add_card(card)
            cards.append(card)
        return cards

    async def delete_card(self, user_id: str, card_id: str, now: datetime | None = None) -> None:
        card = await self._repo.get_card(card_id)
        try:
            await self.get_deck(user_id, card.deck_id)
        except NotFound:
            raise NotFound("card", card_id) from None
        await self._repo.delete_card(card_id, now or datetime.now(timezone.utc))
        logger.info(f"Deleted card {card_id}")

    async def reset_progress(self, user_id: str, deck_id: str | None = None) -> int:
        """
        Return cards to New state for one deck, or for all of a user's decks.
        Review events are kept.
        """
        decks = await load_decks(self._repo, Scope(user_id, deck_id))
        if not decks:
            return 0
        reset = await self._repo.reset_progress(
            [d.id for d in decks], self._settings.default_ease
        )
        logger.info(f"Reset progress of {reset} cards for user {user_id}")
        return reset
