"""Primary store: relation graph, memories and session logs.

SQLite is the local default; Postgres (asyncpg) is used when a DSN is configured.
Postgres is imported lazily so the SQLite path works without a server.
"""

from .base import MemoryStore, PrimaryStore, RelationStore, SessionLogStore
from .sqlite import SQLiteStore
from .traversal import breadth_first_neighborhood, clamp_hops

__all__ = [
    "MemoryStore",
    "PrimaryStore",
    "RelationStore",
    "SessionLogStore",
    "SQLiteStore",
    "breadth_first_neighborhood",
    "clamp_hops",
]
