from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from ..errors import PersistenceError
from ..jobs.health import check_pipeline_health
from .auth import require_api_key

if TYPE_CHECKING:
    from ..runtime import Runtime

logger = logging.getLogger(__name__)


class ExchangeIn(BaseModel):
    user: str
    assistant: str


class SessionLogIn(BaseModel):
    source: str = Field(min_length=1)
    summary: str = Field(min_length=1)


def create_app(runtime: Runtime) -> FastAPI:
    app = FastAPI(title="Recall Graph", version="0.1.0")
    app.state.runtime = runtime

    @app.get("/health")
    async def health():
        return {"ok": True, "host": os.uname().nodename}

    @app.get("/v1/graph/relations")
    async def relations(limit: int = Query(default=100, ge=1, le=1000), _auth: None = Depends(require_api_key)):
        rels = await runtime.query.recent_relations(limit=limit)
        return {"count": len(rels), "relations": [r.to_dict() for r in rels]}

    @app.get("/v1/graph/entities/{name}/related")
    async def related(name: str, _auth: None = Depends(require_api_key)):
        rels = await runtime.query.related(name)
        return {"entity": name, "related": [r.to_dict() for r in rels]}

    @app.get("/v1/graph/entities/{name}/neighborhood")
    async def neighborhood(name: str, max_hops: int = 2, _auth: None = Depends(require_api_key)):
        # out-of-range hops are clamped by the store, not rejected
        found = await runtime.query.neighborhood(name, max_hops=max_hops)
        return {"entity": name, "neighbors": [n.to_dict() for n in found]}

    @app.get("/v1/graph/search")
    async def search(q: str, limit: int = Query(default=10, ge=1, le=100), _auth: None = Depends(require_api_key)):
        matches = await runtime.query.search(q, limit=limit)
        return {"query": q, "count": len(matches), "results": [m.to_dict() for m in matches]}

    @app.post("/v1/exchanges", status_code=202)
    async def exchange(payload: ExchangeIn, _auth: None = Depends(require_api_key)):
        if runtime.exchange_queue is not None:
            try:
                await runtime.exchange_queue.push(payload.user, payload.assistant)
                return {"accepted": True, "queued": True}
            except Exception as e:
                logger.warning("Exchange queue push failed, extracting in-process: %s", e)
        runtime.live.submit(payload.user, payload.assistant)
        return {"accepted": True, "queued": False}

    @app.post("/v1/sessions/log", status_code=201)
    async def log_session(payload: SessionLogIn, _auth: None = Depends(require_api_key)):
        try:
            rec = await runtime.store.add_session_log(payload.source, payload.summary)
        except PersistenceError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        return {"id": rec.id, "source": rec.source, "processed": rec.processed}

    @app.post("/v1/jobs/session-extraction")
    async def run_session_extraction(_auth: None = Depends(require_api_key)):
        try:
            result = await runtime.job.run()
        except PersistenceError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        return result.to_dict()

    @app.get("/v1/health/pipeline")
    async def pipeline_health(_auth: None = Depends(require_api_key)):
        report = await check_pipeline_health(
            runtime.store,
            runtime.replicator,
            source=runtime.settings.session_source,
            backlog_threshold=runtime.settings.backlog_alert_threshold,
        )
        return report.to_dict()

    return app
