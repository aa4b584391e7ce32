"""Pipeline health: backlog size and recall-store reachability."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors import PersistenceError
from ..models import utcnow
from ..replication.base import RecallStore
from ..replication.replicator import RecallReplicator
from ..store.base import SessionLogStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CheckResult:
    status: str  # "pass" | "fail" | "skip"
    detail: str
    count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status, "detail": self.detail}
        if self.count is not None:
            out["count"] = self.count
        return out


@dataclass(slots=True)
class PipelineHealth:
    checks: dict[str, CheckResult] = field(default_factory=dict)
    alerts: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())

    @property
    def overall(self) -> str:
        return "fail" if self.alerts else "pass"

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "timestamp": self.timestamp,
            "checks": {k: v.to_dict() for k, v in self.checks.items()},
            "alerts": list(self.alerts),
        }


async def _check_store(label: str, store: RecallStore | None, health: PipelineHealth) -> CheckResult:
    if store is None:
        return CheckResult(status="skip", detail=f"{label} store not configured")
    status = await store.status()
    if not status.available:
        health.alerts.append(f"{store.name} unavailable: {status.detail}")
        logger.warning("Pipeline health: %s unavailable: %s", store.name, status.detail)
        return CheckResult(status="fail", detail=f"{store.name} unavailable: {status.detail}")
    return CheckResult(status="pass", detail=f"{store.name} available, {status.detail}", count=status.count)


async def check_pipeline_health(
    store: SessionLogStore,
    replicator: RecallReplicator,
    *,
    source: str | None = None,
    backlog_threshold: int = 20,
) -> PipelineHealth:
    health = PipelineHealth()

    try:
        pending = await store.count_unprocessed(source)
    except PersistenceError as e:
        health.alerts.append(f"Unprocessed backlog check failed: {e}")
        health.checks["unprocessed_backlog"] = CheckResult(status="fail", detail=f"query failed: {e}", count=-1)
    else:
        if pending > backlog_threshold:
            health.alerts.append(f"{pending} unprocessed session logs piling up (>{backlog_threshold})")
            logger.warning("Pipeline health: %d unprocessed session logs", pending)
            health.checks["unprocessed_backlog"] = CheckResult(
                status="fail",
                detail=f"{pending} unprocessed session logs (threshold: {backlog_threshold})",
                count=pending,
            )
        else:
            health.checks["unprocessed_backlog"] = CheckResult(
                status="pass", detail=f"{pending} unprocessed session log(s)", count=pending
            )

    health.checks["fast_store"] = await _check_store("fast", replicator.fast, health)
    health.checks["durable_store"] = await _check_store("durable", replicator.durable, health)
    return health
