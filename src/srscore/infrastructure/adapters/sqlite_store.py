"""
SQLite Repository: Infrastructure adapter for a local SQLite database.

Implements SchedulingRepository. Review writes run in a single IMMEDIATE
transaction that updates the card only if its review_count is unchanged
(compare-and-swap) and appends the review event; either both land or
neither does.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

from srscore.domain.days import ensure_aware
from srscore.domain.errors import NotFound, StaleCardState
from srscore.domain.models import Card, CardState, Deck, ReviewEvent
from srscore.domain.ports import SchedulingRepository

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS decks (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    new_cards_per_day INTEGER NOT NULL DEFAULT 20,
    created_at TEXT,
    deleted_at TEXT
);
CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    deck_id TEXT NOT NULL,
    state TEXT NOT NULL DEFAULT 'new',
    learning_step INTEGER NOT NULL DEFAULT 0,
    interval_seconds REAL NOT NULL DEFAULT 0,
    ease REAL NOT NULL DEFAULT 2.5,
    due_at TEXT,
    review_count INTEGER NOT NULL DEFAULT 0,
    laps_count INTEGER NOT NULL DEFAULT 0,
    last_reviewed_at TEXT,
    first_reviewed_at TEXT,
    created_at TEXT,
    deleted_at TEXT,
    FOREIGN KEY (deck_id) REFERENCES decks(id)
);
CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL,
    rating INTEGER NOT NULL,
    time_spent_ms INTEGER NOT NULL,
    reviewed_at TEXT NOT NULL,
    prev_state TEXT NOT NULL,
    new_state TEXT NOT NULL,
    prev_interval_seconds REAL NOT NULL,
    new_interval_seconds REAL NOT NULL,
    prev_ease REAL NOT NULL,
    new_ease REAL NOT NULL,
    FOREIGN KEY (card_id) REFERENCES cards(id)
);
CREATE INDEX IF NOT EXISTS idx_cards_deck_id ON cards(deck_id);
CREATE INDEX IF NOT EXISTS idx_cards_due_at ON cards(due_at);
CREATE INDEX IF NOT EXISTS idx_decks_user_id ON decks(user_id);
CREATE INDEX IF NOT EXISTS idx_reviews_card_time ON reviews(card_id, reviewed_at);
"""

CARD_COLUMNS = (
    "id, deck_id, state, learning_step, interval_seconds, ease, due_at, review_count, "
    "laps_count, last_reviewed_at, first_reviewed_at, created_at, deleted_at"
)
DECK_COLUMNS = "id, user_id, name, new_cards_per_day, created_at, deleted_at"
REVIEW_COLUMNS = (
    "id, card_id, rating, time_spent_ms, reviewed_at, prev_state, new_state, "
    "prev_interval_seconds, new_interval_seconds, prev_ease, new_ease"
)


def _ts_to_db(ts: datetime | None) -> str | None:
    """UTC, fixed-width ISO-8601 so that text order equals time order."""
    if ts is None:
        return None
    return ensure_aware(ts).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _ts_from_db(value: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_aware(datetime.fromisoformat(value))


def _placeholders(n: int) -> str:
    return ",".join("?" for _ in range(n))


class SqliteRepository(SchedulingRepository):
    """
    Stores decks, cards and the review log in SQLite.

    One connection is shared per repository and guarded by a lock; use
    ``":memory:"`` for an ephemeral database.
    """

    def __init__(self, path: Path | str):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        logger.debug(f"Opened SQLite repository at {self.path}")

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SqliteRepository":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_deck(row: sqlite3.Row) -> Deck:
        return Deck(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            new_cards_per_day=row["new_cards_per_day"],
            created_at=_ts_from_db(row["created_at"]),
            deleted_at=_ts_from_db(row["deleted_at"]),
        )

    @staticmethod
    def _row_to_card(row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"],
            deck_id=row["deck_id"],
            state=CardState(row["state"]),
            learning_step=row["learning_step"],
            interval=timedelta(seconds=row["interval_seconds"]),
            ease=row["ease"],
            due_at=_ts_from_db(row["due_at"]),
            review_count=row["review_count"],
            laps_count=row["laps_count"],
            last_reviewed_at=_ts_from_db(row["last_reviewed_at"]),
            first_reviewed_at=_ts_from_db(row["first_reviewed_at"]),
            created_at=_ts_from_db(row["created_at"]),
            deleted_at=_ts_from_db(row["deleted_at"]),
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> ReviewEvent:
        return ReviewEvent(
            id=row["id"],
            card_id=row["card_id"],
            rating=row["rating"],
            time_spent_ms=row["time_spent_ms"],
            reviewed_at=_ts_from_db(row["reviewed_at"]),
            prev_state=CardState(row["prev_state"]),
            new_state=CardState(row["new_state"]),
            prev_interval=timedelta(seconds=row["prev_interval_seconds"]),
            new_interval=timedelta(seconds=row["new_interval_seconds"]),
            prev_ease=row["prev_ease"],
            new_ease=row["new_ease"],
        )

    @staticmethod
    def _card_params(card: Card) -> tuple:
        return (
            card.id,
            card.deck_id,
            card.state.value,
            card.learning_step,
            card.interval.total_seconds(),
            card.ease,
            _ts_to_db(card.due_at),
            card.review_count,
            card.laps_count,
            _ts_to_db(card.last_reviewed_at),
            _ts_to_db(card.first_reviewed_at),
            _ts_to_db(card.created_at),
            _ts_to_db(card.deleted_at),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_deck(self, deck_id: str) -> Deck:
        rows = self._query(
            f"SELECT {DECK_COLUMNS} FROM decks WHERE id = ? AND deleted_at IS NULL",
            (deck_id,),
        )
        if not rows:
            raise NotFound("deck", deck_id)
        return self._row_to_deck(rows[0])

    async def list_decks(self, user_id: str) -> list[Deck]:
        rows = self._query(
            f"SELECT {DECK_COLUMNS} FROM decks WHERE user_id = ? AND deleted_at IS NULL "
            "ORDER BY created_at ASC, id ASC",
            (user_id,),
        )
        return [self._row_to_deck(r) for r in rows]

    async def get_card(self, card_id: str) -> Card:
        rows = self._query(
            f"SELECT {CARD_COLUMNS} FROM cards WHERE id = ? AND deleted_at IS NULL",
            (card_id,),
        )
        if not rows:
            raise NotFound("card", card_id)
        return self._row_to_card(rows[0])

    async def list_cards(self, deck_ids: list[str]) -> list[Card]:
        if not deck_ids:
            return []
        rows = self._query(
            f"SELECT {CARD_COLUMNS} FROM cards "
            f"WHERE deck_id IN ({_placeholders(len(deck_ids))}) AND deleted_at IS NULL "
            "ORDER BY created_at ASC, id ASC",
            tuple(deck_ids),
        )
        return [self._row_to_card(r) for r in rows]

    async def list_events(
        self, card_ids: list[str], since: datetime | None = None
    ) -> list[ReviewEvent]:
        if not card_ids:
            return []
        query = (
            f"SELECT {REVIEW_COLUMNS} FROM reviews "
            f"WHERE card_id IN ({_placeholders(len(card_ids))})"
        )
        params: tuple = tuple(card_ids)
        if since is not None:
            query += " AND reviewed_at >= ?"
            params += (_ts_to_db(since),)
        query += " ORDER BY reviewed_at ASC, id ASC"
        return [self._row_to_event(r) for r in self._query(query, params)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_deck(self, deck: Deck) -> None:
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO decks ({DECK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    deck.id,
                    deck.user_id,
                    deck.name,
                    deck.new_cards_per_day,
                    _ts_to_db(deck.created_at),
                    _ts_to_db(deck.deleted_at),
                ),
            )

    async def update_deck(self, deck: Deck) -> None:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE decks SET name = ?, new_cards_per_day = ? "
                "WHERE id = ? AND deleted_at IS NULL",
                (deck.name, deck.new_cards_per_day, deck.id),
            )
            if cur.rowcount == 0:
                raise NotFound("deck", deck.id)

    async def delete_deck(self, deck_id: str, when: datetime) -> None:
        stamp = _ts_to_db(when)
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE decks SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (stamp, deck_id),
            )
            if cur.rowcount == 0:
                raise NotFound("deck", deck_id)
            conn.execute(
                "UPDATE cards SET deleted_at = ? WHERE deck_id = ? AND deleted_at IS NULL",
                (stamp, deck_id),
            )

    async def add_card(self, card: Card) -> None:
        with self._transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM decks WHERE id = ? AND deleted_at IS NULL", (card.deck_id,)
            ).fetchone()
            if exists is None:
                raise NotFound("deck", card.deck_id)
            conn.execute(
                f"INSERT INTO cards ({CARD_COLUMNS}) VALUES ({_placeholders(13)})",
                self._card_params(card),
            )

    async def delete_card(self, card_id: str, when: datetime) -> None:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE cards SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (_ts_to_db(when), card_id),
            )
            if cur.rowcount == 0:
                raise NotFound("card", card_id)

    async def reset_progress(self, deck_ids: list[str], ease: float) -> int:
        if not deck_ids:
            return 0
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE cards SET state = 'new', learning_step = 0, interval_seconds = 0, "
                "ease = ?, due_at = NULL, review_count = 0, laps_count = 0, "
                "last_reviewed_at = NULL, first_reviewed_at = NULL "
                f"WHERE deck_id IN ({_placeholders(len(deck_ids))}) AND deleted_at IS NULL",
                (ease, *deck_ids),
            )
            return cur.rowcount

    async def save_review(
        self, card: Card, event: ReviewEvent, expected_review_count: int
    ) -> None:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE cards SET state = ?, learning_step = ?, interval_seconds = ?, ease = ?, "
                "due_at = ?, review_count = ?, laps_count = ?, last_reviewed_at = ?, "
                "first_reviewed_at = ? "
                "WHERE id = ? AND review_count = ? AND deleted_at IS NULL",
                (
                    card.state.value,
                    card.learning_step,
                    card.interval.total_seconds(),
                    card.ease,
                    _ts_to_db(card.due_at),
                    card.review_count,
                    card.laps_count,
                    _ts_to_db(card.last_reviewed_at),
                    _ts_to_db(card.first_reviewed_at),
                    card.id,
                    expected_review_count,
                ),
            )
            if cur.rowcount == 0:
                live = conn.execute(
                    "SELECT 1 FROM cards WHERE id = ? AND deleted_at IS NULL", (card.id,)
                ).fetchone()
                if live is None:
                    raise NotFound("card", card.id)
                raise StaleCardState(card.id, expected_review_count)

            conn.execute(
                f"INSERT INTO reviews ({REVIEW_COLUMNS}) VALUES ({_placeholders(11)})",
                (
                    event.id,
                    event.card_id,
                    event.rating,
                    event.time_spent_ms,
                    _ts_to_db(event.reviewed_at),
                    event.prev_state.value,
                    event.new_state.value,
                    event.prev_interval.total_seconds(),
                    event.new_interval.total_seconds(),
                    event.prev_ease,
                    event.new_ease,
                ),
            )
        logger.debug(f"Stored review {event.id} for card {card.id}")
