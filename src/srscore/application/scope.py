"""Resolve a Scope into the decks and cards it covers."""

from srscore.domain.errors import NotFound
from srscore.domain.models import Card, Deck, Scope
from srscore.domain.ports import SchedulingRepository


async def load_decks(repo: SchedulingRepository, scope: Scope) -> list[Deck]:
    """
    Fetch the live decks of a scope.

    Raises:
        NotFound: If the scope names a deck that is missing, deleted,
            or owned by another user.
    """
    if scope.deck_id is None:
        return await repo.list_decks(scope.user_id)

    deck = await repo.get_deck(scope.deck_id)
    if deck.user_id != scope.user_id:
        # Do not leak the existence of other users' decks
        raise NotFound("deck", scope.deck_id)
    return [deck]


async def load_scope(
    repo: SchedulingRepository, scope: Scope
) -> tuple[list[Deck], list[Card]]:
    """Fetch the live decks of a scope and every live card in them."""
    decks = await load_decks(repo, scope)
    if not decks:
        return [], []
    cards = await repo.list_cards([d.id for d in decks])
    return decks, cards
