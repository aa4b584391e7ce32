from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

INITIAL_STRENGTH = 0.5
STRENGTH_STEP = 0.05
MAX_STRENGTH = 1.0
MAX_NEIGHBORHOOD_HOPS = 3


class RelationType(str, Enum):
    """Closed set of edge types the graph accepts."""

    WORKS_AT = "works_at"
    WORKS_ON = "works_on"
    COLLABORATES_WITH = "collaborates_with"
    PART_OF = "part_of"
    RELATED_TO = "related_to"
    DEPENDS_ON = "depends_on"
    OWNS = "owns"
    MENTIONS = "mentions"
    INFLUENCED_BY = "influenced_by"


class MemoryType(str, Enum):
    DECISION = "decision"
    LEARNING = "learning"
    PREFERENCE = "preference"
    CONTEXT = "context"
    RELATIONSHIP = "relationship"


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


def entity_key(name: str) -> str:
    """Identity of an entity name: entities compare case-insensitively."""
    return name.strip().lower()


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class RelationCandidate:
    """A validated relation as it comes out of the oracle, before persistence."""

    source: str
    target: str
    relation: RelationType
    source_type: str | None = None
    target_type: str | None = None
    context: str | None = None

    @property
    def source_key(self) -> str:
        return entity_key(self.source)

    @property
    def target_key(self) -> str:
        return entity_key(self.target)


@dataclass(frozen=True, slots=True)
class Relation:
    """A persisted directed edge between two named entities."""

    id: str
    source_name: str
    source_type: str | None
    target_name: str
    target_type: str | None
    relation_type: str
    strength: float
    mention_count: int
    context: str | None
    first_seen: datetime | None
    last_seen: datetime | None

    @property
    def source_key(self) -> str:
        return entity_key(self.source_name)

    @property
    def target_key(self) -> str:
        return entity_key(self.target_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source_name,
            "sourceType": self.source_type,
            "target": self.target_name,
            "targetType": self.target_type,
            "relation": self.relation_type,
            "strength": self.strength,
            "mentionCount": self.mention_count,
            "context": self.context,
            "firstSeen": self.first_seen.isoformat() if self.first_seen else None,
            "lastSeen": self.last_seen.isoformat() if self.last_seen else None,
        }


@dataclass(frozen=True, slots=True)
class RelatedEntity:
    """One-hop view of an entity's neighbor."""

    name: str
    type: str | None
    relation: str
    direction: str  # "outgoing" | "incoming"
    strength: float
    mention_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "relation": self.relation,
            "direction": self.direction,
            "strength": self.strength,
            "mentionCount": self.mention_count,
        }


@dataclass(frozen=True, slots=True)
class NeighborEntity:
    name: str
    type: str | None
    relation: str
    hop: int
    via: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "relation": self.relation, "hop": self.hop, "via": self.via}


@dataclass(frozen=True, slots=True)
class EntityRef:
    name: str
    type: str | None


@dataclass(frozen=True, slots=True)
class MemoryExtraction:
    """A validated memory-style extraction."""

    content: str
    type: MemoryType
    importance: float
    tags: tuple[str, ...] = ()

    def is_significant(self, threshold: float) -> bool:
        return self.importance >= threshold or self.type is MemoryType.DECISION


@dataclass(slots=True)
class Memory:
    """A durable fact owned by an agent namespace. Never mutated after insert."""

    agent_id: str
    memory_type: MemoryType
    content: str
    importance: float
    scope: str = "shared"
    tags: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class SourceRecord:
    """A raw session log awaiting (or done with) extraction."""

    id: str
    source: str
    summary: str
    processed: bool
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Owner:
    """Sentinel owner used to namespace memories without a human/agent author."""

    id: str
    name: str
    slug: str
    role: str = "specialist"
    description: str = "Sentinel owner for extracted session memories. Not an actual agent."
    is_active: bool = False


def parse_timestamp(v: Any) -> datetime | None:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=UTC)
    if isinstance(v, str):
        s = v.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=UTC)
    return None
