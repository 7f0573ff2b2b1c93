"""
Ports (interfaces) for scheduling persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import Card, Deck, ReviewEvent


class SchedulingRepository(ABC):
    """
    Port for loading and storing decks, cards and the review log.

    Implementations:
        - InMemoryRepository: process-local dictionaries, for tests and scratch runs.
        - SqliteRepository: a SQLite file with transactional review writes.

    Reads of a Card must reflect the latest committed rating, and a Card is
    only ever replaced as a whole.
    """

    @abstractmethod
    async def get_deck(self, deck_id: str) -> Deck:
        """
        Fetch a live deck.

        Raises:
            NotFound: If the deck does not exist or was deleted.
        """
        pass

    @abstractmethod
    async def list_decks(self, user_id: str) -> list[Deck]:
        """Fetch every live deck owned by the user, oldest first."""
        pass

    @abstractmethod
    async def get_card(self, card_id: str) -> Card:
        """
        Fetch a live card.

        Raises:
            NotFound: If the card does not exist or was deleted.
        """
        pass

    @abstractmethod
    async def list_cards(self, deck_ids: list[str]) -> list[Card]:
        """Fetch every live card belonging to the given decks."""
        pass

    @abstractmethod
    async def list_events(
        self, card_ids: list[str], since: datetime | None = None
    ) -> list[ReviewEvent]:
        """
        Fetch review events for the given cards.

        Args:
            card_ids: Cards whose history is requested.
            since: Optional lower bound (inclusive) on reviewed_at.

        Returns:
            Events sorted by reviewed_at ascending.
        """
        pass

    @abstractmethod
    async def add_deck(self, deck: Deck) -> None:
        pass

    @abstractmethod
    async def update_deck(self, deck: Deck) -> None:
        """
        Replace a deck's mutable settings (name, new_cards_per_day).

        Raises:
            NotFound: If the deck does not exist or was deleted.
        """
        pass

    @abstractmethod
    async def delete_deck(self, deck_id: str, when: datetime) -> None:
        """
        Soft-delete a deck and all of its cards. Review events are kept.

        Raises:
            NotFound: If the deck does not exist or was already deleted.
        """
        pass

    @abstractmethod
    async def add_card(self, card: Card) -> None:
        """
        Raises:
            NotFound: If the card's deck does not exist or was deleted.
        """
        pass

    @abstractmethod
    async def delete_card(self, card_id: str, when: datetime) -> None:
        """
        Raises:
            NotFound: If the card does not exist or was already deleted.
        """
        pass

    @abstractmethod
    async def reset_progress(self, deck_ids: list[str], ease: float) -> int:
        """
        Return every live card in the given decks to New state with the
        given starting ease.

        Returns:
            Number of cards reset.
        """
        pass

    @abstractmethod
    async def save_review(
        self, card: Card, event: ReviewEvent, expected_review_count: int
    ) -> None:
        """
        Atomically overwrite the card and append the event.

        The write only succeeds if the stored card still has
        ``expected_review_count``; otherwise nothing is written.

        Raises:
            NotFound: If the card does not exist or was deleted.
            StaleCardState: If the stored card moved on since it was read.
        """
        pass
