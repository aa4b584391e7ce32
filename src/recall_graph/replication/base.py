from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class RecallRecord:
    id: str
    text: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StoreStatus:
    available: bool
    detail: str
    count: int | None = None


class RecallStore(Protocol):
    """An auxiliary vector recall store. Upserts raise ReplicationError on failure."""

    name: str

    async def upsert(self, record: RecallRecord) -> None: ...

    async def status(self) -> StoreStatus: ...
