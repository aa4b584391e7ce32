from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import asyncpg

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
    utcnow,
)
from .base import as_related, merge_entity_refs
from .traversal import breadth_first_neighborhood

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS owners (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        role TEXT,
        description TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS session_logs (
        id TEXT PRIMARY KEY,
        source TEXT NOT NULL,
        summary TEXT NOT NULL,
        processed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        agent_id TEXT NOT NULL REFERENCES owners(id),
        memory_type TEXT NOT NULL,
        content TEXT NOT NULL,
        importance DOUBLE PRECISION NOT NULL,
        scope TEXT NOT NULL,
        tags TEXT[] NOT NULL DEFAULT '{}',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_relations (
        id TEXT PRIMARY KEY,
        source_name TEXT NOT NULL,
        source_key TEXT NOT NULL,
        source_type TEXT,
        target_name TEXT NOT NULL,
        target_key TEXT NOT NULL,
        target_type TEXT,
        relation_type TEXT NOT NULL,
        strength DOUBLE PRECISION NOT NULL,
        mention_count INTEGER NOT NULL DEFAULT 1,
        context TEXT,
        first_seen TIMESTAMPTZ NOT NULL DEFAULT now(),
        last_seen TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (source_key, target_key, relation_type)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_session_logs_pending ON session_logs(source, processed, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_memories_agent ON memories(agent_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_relations_source_key ON entity_relations(source_key)",
    "CREATE INDEX IF NOT EXISTS idx_relations_target_key ON entity_relations(target_key)",
]

UPSERT_RELATION = f"""
INSERT INTO entity_relations(
    id, source_name, source_key, source_type, target_name, target_key, target_type,
    relation_type, strength, mention_count, context, first_seen, last_seen
)
VALUES($1,$2,$3,$4,$5,$6,$7,$8,{INITIAL_STRENGTH},1,NULLIF($9, ''),$10,$10)
ON CONFLICT (source_key, target_key, relation_type) DO UPDATE SET
    mention_count = entity_relations.mention_count + 1,
    strength = LEAST({MAX_STRENGTH}, entity_relations.strength + {STRENGTH_STEP}),
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

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _relation(r: asyncpg.Record) -> Relation:
    return Relation(
        id=r["id"],
        source_name=r["source_name"],
        source_type=r["source_type"],
        target_name=r["target_name"],
        target_type=r["target_type"],
        relation_type=r["relation_type"],
        strength=float(r["strength"]),
        mention_count=int(r["mention_count"]),
        context=r["context"],
        first_seen=r["first_seen"],
        last_seen=r["last_seen"],
    )


@dataclass
class PostgresStore:
    pool: asyncpg.Pool

    @classmethod
    async def connect(cls, dsn: str) -> "PostgresStore":
        pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=10)
        return cls(pool=pool)

    async def close(self) -> None:
        await self.pool.close()

    async def _fetch(self, q: str, *args: Any) -> list[asyncpg.Record]:
        try:
            async with self.pool.acquire() as con:
                return await con.fetch(q, *args)
        except _DB_ERRORS as e:
            raise PersistenceError(f"postgres query failed: {e}") from e

    async def _fetchrow(self, q: str, *args: Any) -> asyncpg.Record | None:
        try:
            async with self.pool.acquire() as con:
                return await con.fetchrow(q, *args)
        except _DB_ERRORS as e:
            raise PersistenceError(f"postgres query failed: {e}") from e

    async def _execute(self, q: str, *args: Any) -> str:
        try:
            async with self.pool.acquire() as con:
                return await con.execute(q, *args)
        except _DB_ERRORS as e:
            raise PersistenceError(f"postgres statement failed: {e}") from e

    async def ensure_schema(self) -> None:
        try:
            async with self.pool.acquire() as con:
                async with con.transaction():
                    for q in SCHEMA:
                        await con.execute(q)
        except _DB_ERRORS as e:
            raise PersistenceError(f"postgres schema init failed: {e}") from e

    # --- relations ---

    async def upsert_relation(self, candidate: RelationCandidate) -> UpsertOutcome:
        row = await self._fetchrow(
            UPSERT_RELATION,
            new_id(),
            candidate.source.strip(),
            candidate.source_key,
            candidate.source_type,
            candidate.target.strip(),
            candidate.target_key,
            candidate.target_type,
            candidate.relation.value,
            candidate.context or "",
            utcnow(),
        )
        return UpsertOutcome.CREATED if row and int(row["mention_count"]) == 1 else UpsertOutcome.UPDATED

    async def get_relation(self, source: str, target: str, relation_type: str) -> Relation | None:
        row = await self._fetchrow(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations "
            "WHERE source_key=$1 AND target_key=$2 AND relation_type=$3",
            entity_key(source),
            entity_key(target),
            relation_type,
        )
        return _relation(row) if row else None

    async def related_to(self, name: str) -> list[RelatedEntity]:
        key = entity_key(name)
        rows = await self._fetch(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations "
            "WHERE source_key=$1 OR target_key=$1 "
            "ORDER BY strength DESC, mention_count DESC",
            key,
        )
        return [as_related(_relation(r), key) for r in rows]

    async def _edges_touching(self, keys: Sequence[str]) -> list[Relation]:
        if not keys:
            return []
        rows = await self._fetch(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations "
            "WHERE source_key = ANY($1::text[]) OR target_key = ANY($1::text[]) "
            "ORDER BY strength DESC, mention_count DESC, last_seen DESC",
            list(keys),
        )
        return [_relation(r) for r in rows]

    async def neighborhood(self, name: str, max_hops: int = 2, limit: int = 50) -> list[NeighborEntity]:
        return await breadth_first_neighborhood(self._edges_touching, name, max_hops=max_hops, limit=limit)

    async def search_entities(self, query: str, limit: int = 10) -> list[EntityRef]:
        rows = await self._fetch(
            """
            SELECT source_name AS name, source_type AS type FROM entity_relations
            WHERE strpos(source_key, $1) > 0
            UNION
            SELECT target_name AS name, target_type AS type FROM entity_relations
            WHERE strpos(target_key, $1) > 0
            """,
            entity_key(query),
        )
        return merge_entity_refs([EntityRef(name=r["name"], type=r["type"]) for r in rows], limit)

    async def list_relations(self, limit: int = 100) -> list[Relation]:
        rows = await self._fetch(
            f"SELECT {RELATION_COLUMNS} FROM entity_relations ORDER BY last_seen DESC LIMIT $1",
            max(1, int(limit)),
        )
        return [_relation(r) for r in rows]

    # --- memories ---

    async def insert_memory(self, memory: Memory) -> str:
        await self._execute(
            """
            INSERT INTO memories(id, agent_id, memory_type, content, importance, scope, tags, created_at)
            VALUES($1,$2,$3,$4,$5,$6,$7,$8)
            """,
            memory.id,
            memory.agent_id,
            memory.memory_type.value,
            memory.content,
            float(memory.importance),
            memory.scope,
            list(memory.tags),
            memory.created_at,
        )
        return memory.id

    async def list_memories(self, agent_id: str | None = None, limit: int = 50) -> list[Memory]:
        rows = await self._fetch(
            """
            SELECT id, agent_id, memory_type, content, importance, scope, tags, created_at
            FROM memories
            WHERE ($1::text IS NULL OR agent_id = $1)
            ORDER BY created_at DESC
            LIMIT $2
            """,
            agent_id,
            max(1, int(limit)),
        )
        return [
            Memory(
                id=r["id"],
                agent_id=r["agent_id"],
                memory_type=MemoryType(r["memory_type"]),
                content=r["content"],
                importance=float(r["importance"]),
                scope=r["scope"],
                tags=list(r["tags"] or []),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    # --- session logs ---

    async def ensure_owner(self, owner: Owner) -> bool:
        status = await self._execute(
            """
            INSERT INTO owners(id, name, slug, role, description, is_active)
            VALUES($1,$2,$3,$4,$5,$6)
            ON CONFLICT (id) DO NOTHING
            """,
            owner.id,
            owner.name,
            owner.slug,
            owner.role,
            owner.description,
            owner.is_active,
        )
        # asyncpg status string: "INSERT 0 <rows>"
        return status.endswith(" 1")

    async def add_session_log(self, source: str, summary: str) -> SourceRecord:
        rec = SourceRecord(id=new_id(), source=source, summary=summary, processed=False, created_at=utcnow())
        await self._execute(
            "INSERT INTO session_logs(id, source, summary, processed, created_at) VALUES($1,$2,$3,FALSE,$4)",
            rec.id,
            rec.source,
            rec.summary,
            rec.created_at,
        )
        return rec

    async def list_unprocessed(self, source: str) -> list[SourceRecord]:
        rows = await self._fetch(
            """
            SELECT id, source, summary, processed, created_at FROM session_logs
            WHERE source=$1 AND processed=FALSE
            ORDER BY created_at
            """,
            source,
        )
        return [
            SourceRecord(
                id=r["id"],
                source=r["source"],
                summary=r["summary"],
                processed=bool(r["processed"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    async def mark_processed(self, ids: list[str]) -> int:
        if not ids:
            return 0
        status = await self._execute(
            "UPDATE session_logs SET processed=TRUE WHERE id = ANY($1::text[])",
            list(ids),
        )
        return int(status.rsplit(" ", 1)[-1])

    async def count_unprocessed(self, source: str | None = None) -> int:
        row = await self._fetchrow(
            "SELECT COUNT(*)::int AS n FROM session_logs WHERE processed=FALSE AND ($1::text IS NULL OR source=$1)",
            source,
        )
        return int(row["n"]) if row else 0
