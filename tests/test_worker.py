from __future__ import annotations

import asyncio

from recall_graph.live import LiveRelationExtractor
from recall_graph.worker import ExchangeQueue, decode_exchange, handle_exchange

from .conftest import make_oracle, relations_json

LONG = "We moved the SB-OS relation store onto Postgres this week. " * 3


class FakeRedis:
    def __init__(self):
        self.lists: dict[str, list] = {}
        self.closed = False

    async def lpush(self, name, value):  # noqa: ANN001, ANN201
        self.lists.setdefault(name, []).insert(0, value.encode("utf-8"))
        return len(self.lists[name])

    async def brpop(self, name, timeout=0):  # noqa: ANN001, ANN201
        items = self.lists.get(name) or []
        if not items:
            return None
        return name.encode("utf-8"), items.pop()

    async def aclose(self):  # noqa: ANN201
        self.closed = True


def test_queue_round_trip_is_fifo() -> None:
    q = ExchangeQueue(FakeRedis(), "recall:exchanges")

    async def go():
        await q.push("first user", "first assistant")
        await q.push("second user", "second assistant")
        return [decode_exchange(await q.pop()), decode_exchange(await q.pop()), await q.pop()]

    assert asyncio.run(go()) == [("first user", "first assistant"), ("second user", "second assistant"), None]


def test_decode_rejects_malformed_payloads() -> None:
    assert decode_exchange(b"not json") is None
    assert decode_exchange('["user", "assistant"]') is None
    assert decode_exchange('{"user": "only one side"}') is None
    assert decode_exchange('{"user": "u", "assistant": 3}') is None


def test_handle_exchange_feeds_live_extractor(store) -> None:
    oracle, client = make_oracle(relations_json({"source": "SB-OS", "target": "Postgres", "relation": "depends_on"}))
    live = LiveRelationExtractor(oracle, store)

    raw = ('{"user": "%s", "assistant": "Noted."}' % LONG).encode("utf-8")
    assert asyncio.run(handle_exchange(raw, live)) == 1
    assert asyncio.run(handle_exchange(b"{broken", live)) == 0
    assert client.calls == 1
