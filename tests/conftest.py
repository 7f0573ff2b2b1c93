import itertools
import logging
import os
import random
from datetime import datetime, timezone

import pytest

from srscore.application.config import SchedulerSettings
from srscore.application.scheduler import RatingProcessor
from srscore.domain.models import Card, Deck
from srscore.infrastructure.adapters.memory import InMemoryRepository

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep a developer's real config file and SRSCORE_* env out of tests."""
    monkeypatch.setattr(
        "srscore.application.config.CONFIG_FILES", [tmp_path / "no-such-config.toml"]
    )
    for name in list(os.environ):
        if name.startswith("SRSCORE_"):
            monkeypatch.delenv(name)

    # The CLI raises the root level for -v flags
    level = logging.getLogger().level
    yield
    logging.getLogger().setLevel(level)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and databases
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def settings():
    return SchedulerSettings()


@pytest.fixture
def processor(settings):
    """Deterministic processor: seeded fuzz and sequential event IDs."""
    counter = itertools.count(1)
    return RatingProcessor(settings, rng=random.Random(42), id_factory=lambda: f"rev_{next(counter)}")


@pytest.fixture
def deck():
    return Deck(id="deck_1", user_id="alice", name="Spanish", created_at=T0)


@pytest.fixture
def new_card():
    return Card.new("card_1", "deck_1", created_at=T0)


@pytest.fixture
def repo(deck):
    return InMemoryRepository(decks=[deck])
