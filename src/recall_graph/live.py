"""Live relation extraction.

Runs after a conversational response has already been produced, so it must
never affect the caller: every failure is logged and swallowed, and the
detached form (`submit`) reports only through the observability counters.
"""

from __future__ import annotations

import asyncio
import logging

from .oracle.adapter import ExtractionOracle
from .store.base import RelationStore

logger = logging.getLogger(__name__)


class LiveRelationExtractor:
    def __init__(self, oracle: ExtractionOracle, store: RelationStore, *, min_chars: int = 150):
        self.oracle = oracle
        self.store = store
        self.min_chars = min_chars
        self.failures = 0
        self.last_error: str | None = None
        self._pending: set[asyncio.Task] = set()

    def _record_failure(self, err: BaseException) -> None:
        self.failures += 1
        self.last_error = f"{type(err).__name__}: {err}"
        logger.warning("Entity relation extraction failed (non-critical): %s", self.last_error)

    async def on_exchange(self, user_text: str, assistant_text: str) -> int:
        """Extract relations from one exchange and upsert them. Returns the upsert count."""
        user_text = user_text or ""
        assistant_text = assistant_text or ""
        if len(user_text) + len(assistant_text) < self.min_chars:
            logger.debug("Skipping trivial exchange (%d chars)", len(user_text) + len(assistant_text))
            return 0

        upserted = 0
        try:
            relations = await self.oracle.extract_relations(user_text, assistant_text)
            for rel in relations:
                await self.store.upsert_relation(rel)
                upserted += 1
        except Exception as e:
            self._record_failure(e)
            return upserted

        if upserted:
            logger.info("Entity relations extracted: %d", upserted)
        return upserted

    def _done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            self._record_failure(err)

    def submit(self, user_text: str, assistant_text: str) -> asyncio.Task:
        """Fire-and-forget: schedule extraction on the running loop and return immediately."""
        task = asyncio.get_running_loop().create_task(self.on_exchange(user_text, assistant_text))
        self._pending.add(task)
        task.add_done_callback(self._done)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
