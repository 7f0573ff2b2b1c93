# Storage adapters
from .memory import InMemoryRepository
from .sqlite_store import SqliteRepository

__all__ = ["InMemoryRepository", "SqliteRepository"]
