"""Service for generating stable identifiers for decks, cards and review events."""

from ulid import ULID


def generate_id(prefix: str) -> str:
    """Generate a sortable, collision-resistant ID using ULID."""
    return f"{prefix}_{ULID()}"


def new_deck_id() -> str:
    return generate_id("deck")


def new_card_id() -> str:
    return generate_id("card")


def new_event_id() -> str:
    return generate_id("rev")
