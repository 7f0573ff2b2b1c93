from dataclasses import replace
from datetime import timedelta

import pytest

from srscore.application.config import SchedulerSettings
from srscore.application.deck_service import DeckService
from srscore.application.queue_builder import select_due
from srscore.application.review_service import ReviewService
from srscore.domain.errors import NotFound
from srscore.domain.models import CardState, Rating
from srscore.infrastructure.adapters.memory import InMemoryRepository
from srscore.infrastructure.adapters.sqlite_store import SqliteRepository


@pytest.fixture
def decks(repo):
    return DeckService(repo)


@pytest.mark.asyncio
async def test_create_and_list_decks(decks, t0):
    first = await decks.create_deck("bob", "French", now=t0)
    second = await decks.create_deck("bob", "German", new_cards_per_day=5, now=t0 + timedelta(1))

    assert first.id.startswith("deck_")
    assert first.new_cards_per_day == 20
    listed = await decks.list_decks("bob")
    assert [d.id for d in listed] == [first.id, second.id]
    assert listed[1].new_cards_per_day == 5


@pytest.mark.asyncio
async def test_create_deck_rejects_negative_cap(decks):
    with pytest.raises(ValueError):
        await decks.create_deck("bob", "Bad", new_cards_per_day=-1)


@pytest.mark.asyncio
async def test_update_settings_changes_cap_and_name(decks, repo):
    updated = await decks.update_settings("alice", "deck_1", new_cards_per_day=7)
    assert updated.new_cards_per_day == 7
    assert updated.name == "Spanish"

    renamed = await decks.update_settings("alice", "deck_1", name="Español")
    assert renamed.new_cards_per_day == 7
    assert (await repo.get_deck("deck_1")).name == "Español"


@pytest.mark.asyncio
async def test_update_settings_rejects_negative_cap(decks):
    with pytest.raises(ValueError):
        await decks.update_settings("alice", "deck_1", new_cards_per_day=-3)


@pytest.mark.asyncio
async def test_foreign_deck_is_not_found(decks):
    with pytest.raises(NotFound):
        await decks.get_deck("mallory", "deck_1")
    with pytest.raises(NotFound):
        await decks.add_cards("mallory", "deck_1")


@pytest.mark.asyncio
async def test_add_cards_uses_configured_ease(repo, t0):
    decks = DeckService(repo, SchedulerSettings(default_ease=2.8))
    cards = await decks.add_cards("alice", "deck_1", count=3, now=t0)

    assert len(cards) == 3
    assert len({c.id for c in cards}) == 3
    assert all(c.state is CardState.NEW and c.ease == 2.8 for c in cards)
    assert all(c.due_at is None for c in cards)
    assert len(await repo.list_cards(["deck_1"])) == 3


@pytest.mark.asyncio
async def test_delete_deck_cascades_to_cards_and_keeps_events(decks, repo, processor, t0):
    [card] = await decks.add_cards("alice", "deck_1", now=t0)
    await ReviewService(repo, processor).review_card(card.id, Rating.GOOD, now=t0)

    await decks.delete_deck("alice", "deck_1", now=t0)

    assert await decks.list_decks("alice") == []
    with pytest.raises(NotFound):
        await repo.get_card(card.id)
    assert len(await repo.list_events([card.id])) == 1


@pytest.mark.asyncio
async def test_delete_card(decks, repo, t0):
    kept, dropped = await decks.add_cards("alice", "deck_1", count=2, now=t0)
    await decks.delete_card("alice", dropped.id)

    assert [c.id for c in await repo.list_cards(["deck_1"])] == [kept.id]
    with pytest.raises(NotFound):
        await decks.delete_card("alice", dropped.id)


@pytest.mark.asyncio
async def test_delete_card_of_other_user_is_not_found(decks, t0):
    [card] = await decks.add_cards("alice", "deck_1", now=t0)
    with pytest.raises(NotFound) as exc:
        await decks.delete_card("mallory", card.id)
    assert exc.value.kind == "card"


@pytest.mark.asyncio
async def test_reset_progress_returns_cards_to_new(decks, repo, processor, t0):
    cards = await decks.add_cards("alice", "deck_1", count=2, now=t0)
    reviews = ReviewService(repo, processor)
    for card in cards:
        await reviews.review_card(card.id, Rating.EASY, now=t0)

    assert await decks.reset_progress("alice", "deck_1") == 2

    for card in await repo.list_cards(["deck_1"]):
        assert card.state is CardState.NEW
        assert card.review_count == 0
        assert card.due_at is None
        assert card.first_reviewed_at is None
    assert len(await repo.list_events([c.id for c in cards])) == 2


@pytest.mark.asyncio
async def test_reset_progress_for_user_without_decks(decks):
    assert await decks.reset_progress("nobody") == 0


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        yield InMemoryRepository()
    else:
        repo = SqliteRepository(tmp_path / "decks.db")
        yield repo
        repo.close()


@pytest.mark.asyncio
async def test_reset_progress_uses_configured_ease(backend, deck, processor, t0):
    await backend.add_deck(deck)
    decks = DeckService(backend, SchedulerSettings(default_ease=2.0, max_ease=2.0))
    [card] = await decks.add_cards("alice", "deck_1", now=t0)
    await ReviewService(backend, processor).review_card(card.id, Rating.EASY, now=t0)

    await decks.reset_progress("alice", "deck_1")

    stored = await backend.get_card(card.id)
    assert stored.state is CardState.NEW
    assert stored.ease == 2.0


@pytest.mark.asyncio
async def test_large_batch_keeps_insertion_order(backend, deck, t0):
    roomy = replace(deck, new_cards_per_day=300)
    await backend.add_deck(roomy)
    decks = DeckService(backend)
    added = await decks.add_cards("alice", "deck_1", count=300, now=t0)

    stored = await backend.list_cards(["deck_1"])
    due = select_due([roomy], stored, t0, limit=300)
    assert [c.id for c in due] == [c.id for c in added]
