"""Per-card locks serializing rating application."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class CardLockRegistry:
    """
    Hands out one asyncio.Lock per card id.

    Ratings on the same card run one at a time; ratings on different cards
    never wait on each other. Locks are dropped once nobody holds or awaits
    them, so the registry does not grow with the size of the collection.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, card_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(card_id, asyncio.Lock())
        self._users[card_id] = self._users.get(card_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[card_id] -= 1
            if self._users[card_id] == 0:
                del self._users[card_id]
                del self._locks[card_id]

    def __len__(self) -> int:
        return len(self._locks)
