from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis

if TYPE_CHECKING:
    from .live import LiveRelationExtractor

logger = logging.getLogger(__name__)


class ExchangeQueue:
    """Redis list carrying finished exchanges to the relation worker."""

    def __init__(self, client: Any, name: str):
        self.client = client
        self.name = name

    @classmethod
    def from_url(cls, url: str, name: str) -> "ExchangeQueue":
        return cls(redis.from_url(url), name)

    async def push(self, user_text: str, assistant_text: str) -> None:
        await self.client.lpush(self.name, json.dumps({"user": user_text, "assistant": assistant_text}))

    async def pop(self, timeout: int = 5) -> bytes | str | None:
        # BRPOP returns (key, value)
        item = await self.client.brpop(self.name, timeout=timeout)
        if not item:
            return None
        _key, raw = item
        return raw

    async def close(self) -> None:
        await self.client.aclose()


def decode_exchange(raw: bytes | str) -> tuple[str, str] | None:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    user, assistant = payload.get("user"), payload.get("assistant")
    if not isinstance(user, str) or not isinstance(assistant, str):
        return None
    return user, assistant


async def handle_exchange(raw: bytes | str, extractor: LiveRelationExtractor) -> int:
    exchange = decode_exchange(raw)
    if exchange is None:
        logger.warning("Skipping malformed exchange payload: %r", raw[:200])
        return 0
    return await extractor.on_exchange(*exchange)


async def run_worker(queue: ExchangeQueue, extractor: LiveRelationExtractor) -> None:
    logger.info("Relation worker consuming %s", queue.name)
    while True:
        raw = await queue.pop()
        if raw is None:
            continue
        await handle_exchange(raw, extractor)
