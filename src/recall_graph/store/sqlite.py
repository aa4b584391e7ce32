from __future__ import annotations

import asyncio
import json
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import PersistenceError
from ..models import (
    INITIAL_STRENGTH,
    MAX_STRENGTH,
    STRENGTH_STEP,
    EntityRef,
    Memory,
    MemoryType,
    NeighborEntity,
    Owner,
    RelatedEntity,
    Relation,
    RelationCandidate,
    SourceRecord,
    UpsertOutcome,
    entity_key,
    new_id,
    parse_timestamp,
    utcnow,
)
from .base import as_related, merge_entity_refs
from .traversal import breadth_first_neighborhood

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS owners (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  slug TEXT NOT NULL UNIQUE,
  role TEXT,
  description TEXT,
  is_active INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS session_logs (
  id TEXT PRIMARY KEY,
  source TEXT NOT NULL,
  summary TEXT NOT NULL,
  processed INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS memories (
  id TEXT PRIMARY KEY,
  agent_id TEXT NOT NULL REFERENCES owners(id),
  memory_type TEXT NOT NULL,
  content TEXT NOT NULL,
  importance REAL NOT NULL,
  scope TEXT NOT NULL,
  tags TEXT NOT NULL,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS entity_relations (
  id TEXT PRIMARY KEY,
  source_name TEXT NOT NULL,
  source_key TEXT NOT NULL,
  source_type TEXT,
  target_name TEXT NOT NULL,
  target_key TEXT NOT NULL,
  target_type TEXT,
  relation_type TEXT NOT NULL,
  strength REAL NOT NULL,
  mention_count INTEGER NOT NULL DEFAULT 1,
  context TEXT,
  first_seen TEXT NOT NULL,
  last_seen TEXT NOT NULL,
  UNIQUE(source_key, target_key, relation_type)
);

CREATE INDEX IF NOT EXISTS idx_session_logs_pending ON session_logs(source, processed, created_at);
CREATE INDEX IF NOT EXISTS idx_memories_agent ON memories(agent_id, created_at);
CREATE INDEX IF NOT EXISTS idx_relations_source_key ON entity_relations(source_key);
CREATE INDEX IF NOT EXISTS idx_relations_target_key ON entity_relations(target_key);
"""

# One statement: concurrent observers of the same edge cannot lose updates.
UPSERT_RELATION = f"""
INSERT INTO entity_relations(
  id, source_name, source_key, source_type, target_name, target_key, target_type,
  relation_type, strength, mention_count, context, first_seen, last_seen
) VALUES (?,?,?,?,?,?,?,?,{INITIAL_STRENGTH},1,NULLIF(?, ''),?,?)
ON CONFLICT(source_key, target_key, relation_type) DO UPDATE SET
  mention_count = entity_relations.mention_count + 1,
  strength = MIN({MAX_STRENGTH}, entity_relations.strength + {STRENGTH_STEP}),
  last_seen = excluded.last_seen,
  context = COALESCE(NULLIF(excluded.context, ''), entity_relations.context),
  source_type = COALESCE(entity_relations.source_type, excluded.source_type),
  target_type = COALESCE(entity_relations.target_type, excluded.target_type)
RETURNING mention_count
"""

RELATION_COLUMNS = (
    "id, source_name, source_type, target_name, target_type, relation_type, "
    "strength, mention_count, context, first_seen, last_seen"
)


def _relation(row: Sequence[Any]) -> Relation:
    return Relation(
        id=row[0],
        source_name=row[1],
        source_type=row[2],
        target_name=row[3],
        target_type=row[4],
        relation_type=row[5],
        strength=float(row[6]),
        mention_count=int(row[7]),
        context=row[8],
        first_seen=parse_timestamp(row[9]),
        last_seen=parse_timestamp(row[10]),
    )


@dataclass
class SQLiteStore:
    """Local primary store.

    Opens a connection per call. Statements run in worker threads, off the
    event loop.
    """

    path: str

    def __post_init__(self) -> None:
        p = Path(self.path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        self.path = str(p)

    def connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.path)
        con.execute("PRAGMA foreign_keys=ON")
        return con

    def _run(self, sql: str, params: Sequence[Any] = (), *, fetch: str | None = None) -> Any:
        try:
            con = self.connect()
        except sqlite3.Error as e:
            raise PersistenceError(f"sqlite connect failed: {e}") from e
        try:
            cur = con.execute(sql, params)
            if fetch == "one":
                out = cur.fetchone()
            elif fetch == "all":
                out = cur.fetchall()
            else:
                out = cur.rowcount
            con.commit()
            return out
        except sqlite3.Error as e:
            raise PersistenceError(f"sqlite statement failed: {e}") from e
        finally:
            con.close()

    async def _execute(self, sql: str, params: Sequence[Any] = (), *, fetch: str | None = None) -> Any:
        return await asyncio.to_thread(self._run, sql, params, fetch=fetch)

    def _init_schema(self) -> None:
        try:
            con = self.connect()
        except sqlite3.Error as e:
            raise PersistenceError(f"sqlite connect failed: {e}") from e
        try:
            con.executescript(SCHEMA)
            con.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"sqlite schema init failed: {e}") from e
        finally:
            con.close()

    async def ensure_schema(self) -> None:
        await asyncio.to_thread(self._init_schema)

    async def close(self) -> None:
        return None

    # --- relations ---

    async def upsert_relation(self, candidate: RelationCandidate) -> UpsertOutcome:
        now = utcnow().isoformat()
        row = await self._execute(
            UPSERT_RELATION,
            (
                new_id(),
                candidate.source.strip(),
                candidate.source_key,
                candidate.source_type,
                candidate.target.strip(),
                candidate.target_key,
                candidate.target_type,
                candidate.relation.value,
                candidate.context or "",
                now,
                now,
            ),
            fetch="one",
        )
        return UpsertOutcome.CREATED if int(row[0]) == 1 else UpsertOutcome.UPDATED

    async def get_relation(self, source: str, target: str, relation_type: str) -> Relation | None:
        row = await self._execute(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations "
            "WHERE source_key=? AND target_key=? AND relation_type=?",
            (entity_key(source), entity_key(target), relation_type),
            fetch="one",
        )
        return _relation(row) if row else None

    async def related_to(self, name: str) -> list[RelatedEntity]:
        key = entity_key(name)
        rows = await self._execute(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations "
            "WHERE source_key=? OR target_key=? "
            "ORDER BY strength DESC, mention_count DESC",
            (key, key),
            fetch="all",
        )
        return [as_related(_relation(r), key) for r in rows]

    async def _edges_touching(self, keys: Sequence[str]) -> list[Relation]:
        if not keys:
            return []
        marks = ",".join("?" for _ in keys)
        rows = await self._execute(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations "
            f"WHERE source_key IN ({marks}) OR target_key IN ({marks}) "
            "ORDER BY strength DESC, mention_count DESC, last_seen DESC",
            (*keys, *keys),
            fetch="all",
        )
        return [_relation(r) for r in rows]

    async def neighborhood(self, name: str, max_hops: int = 2, limit: int = 50) -> list[NeighborEntity]:
        return await breadth_first_neighborhood(self._edges_touching, name, max_hops=max_hops, limit=limit)

    async def search_entities(self, query: str, limit: int = 10) -> list[EntityRef]:
        q = entity_key(query)
        rows = await self._execute(
            """
            SELECT source_name, source_type FROM entity_relations WHERE instr(source_key, ?) > 0
            UNION
            SELECT target_name, target_type FROM entity_relations WHERE instr(target_key, ?) > 0
            """,
            (q, q),
            fetch="all",
        )
        return merge_entity_refs([EntityRef(name=r[0], type=r[1]) for r in rows], limit)

    async def list_relations(self, limit: int = 100) -> list[Relation]:
        rows = await self._execute(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations ORDER BY last_seen DESC LIMIT ?",
            (max(1, int(limit)),),
            fetch="all",
        )
        return [_relation(r) for r in rows]

    # --- memories ---

    async def insert_memory(self, memory: Memory) -> str:
        await self._execute(
            """
            INSERT INTO memories(id, agent_id, memory_type, content, importance, scope, tags, created_at)
            VALUES (?,?,?,?,?,?,?,?)
            """,
            (
                memory.id,
                memory.agent_id,
                memory.memory_type.value,
                memory.content,
                float(memory.importance),
                memory.scope,
                json.dumps(list(memory.tags)),
                memory.created_at.isoformat(),
            ),
        )
        return memory.id

    async def list_memories(self, agent_id: str | None = None, limit: int = 50) -> list[Memory]:
        sql = "SELECT id, agent_id, memory_type, content, importance, scope, tags, created_at FROM memories"
        params: list[Any] = []
        if agent_id:
            sql += " WHERE agent_id=?"
            params.append(agent_id)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(max(1, int(limit)))
        rows = await self._execute(sql, params, fetch="all")
        return [
            Memory(
                id=r[0],
                agent_id=r[1],
                memory_type=MemoryType(r[2]),
                content=r[3],
                importance=float(r[4]),
                scope=r[5],
                tags=json.loads(r[6] or "[]"),
                created_at=parse_timestamp(r[7]) or utcnow(),
            )
            for r in rows
        ]

    # --- session logs ---

    async def ensure_owner(self, owner: Owner) -> bool:
        created = await self._execute(
            """
            INSERT INTO owners(id, name, slug, role, description, is_active, created_at)
            VALUES (?,?,?,?,?,?,?)
            ON CONFLICT(id) DO NOTHING
            """,
            (owner.id, owner.name, owner.slug, owner.role, owner.description, int(owner.is_active), utcnow().isoformat()),
        )
        return bool(created)

    async def add_session_log(self, source: str, summary: str) -> SourceRecord:
        rec = SourceRecord(id=new_id(), source=source, summary=summary, processed=False, created_at=utcnow())
        await self._execute(
            "INSERT INTO session_logs(id, source, summary, processed, created_at) VALUES (?,?,?,0,?)",
            (rec.id, rec.source, rec.summary, rec.created_at.isoformat()),
        )
        return rec

    async def list_unprocessed(self, source: str) -> list[SourceRecord]:
        rows = await self._execute(
            "SELECT id, source, summary, processed, created_at FROM session_logs "
            "WHERE source=? AND processed=0 ORDER BY created_at, rowid",
            (source,),
            fetch="all",
        )
        return [
            SourceRecord(
                id=r[0],
                source=r[1],
                summary=r[2],
                processed=bool(r[3]),
                created_at=parse_timestamp(r[4]) or utcnow(),
            )
            for r in rows
        ]

    async def mark_processed(self, ids: list[str]) -> int:
        if not ids:
            return 0
        marks = ",".join("?" for _ in ids)
        return int(await self._execute(f"UPDATE session_logs SET processed=1 WHERE id IN ({marks})", ids))

    async def count_unprocessed(self, source: str | None = None) -> int:
        if source is None:
            row = await self._execute("SELECT COUNT(*) FROM session_logs WHERE processed=0", fetch="one")
        else:
            row = await self._execute(
                "SELECT COUNT(*) FROM session_logs WHERE processed=0 AND source=?", (source,), fetch="one"
            )
        return int(row[0])
