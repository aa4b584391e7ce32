from __future__ import annotations

import asyncio
import threading

import pytest

from recall_graph.models import UpsertOutcome
from recall_graph.store.traversal import clamp_hops

from .conftest import candidate


def _upsert(store, *cands):
    async def go():
        return [await store.upsert_relation(c) for c in cands]

    return asyncio.run(go())


def test_first_observation_creates_edge_at_initial_strength(store) -> None:
    outcomes = _upsert(store, candidate("Sayed", "SB-OS"))
    assert outcomes == [UpsertOutcome.CREATED]

    rel = asyncio.run(store.get_relation("Sayed", "SB-OS", "works_on"))
    assert rel is not None
    assert rel.strength == pytest.approx(0.5)
    assert rel.mention_count == 1
    assert rel.first_seen == rel.last_seen


def test_repeat_observation_strengthens_monotonically(store) -> None:
    outcomes = _upsert(store, *(candidate("Sayed", "SB-OS") for _ in range(3)))
    assert outcomes == [UpsertOutcome.CREATED, UpsertOutcome.UPDATED, UpsertOutcome.UPDATED]

    rel = asyncio.run(store.get_relation("Sayed", "SB-OS", "works_on"))
    assert rel.strength == pytest.approx(0.6)
    assert rel.mention_count == 3
    assert rel.last_seen >= rel.first_seen


def test_strength_is_capped_at_one(store) -> None:
    _upsert(store, *(candidate("A", "B") for _ in range(20)))

    rel = asyncio.run(store.get_relation("A", "B", "works_on"))
    assert rel.strength == pytest.approx(1.0)
    assert rel.mention_count == 20


def test_entity_identity_is_case_insensitive(store) -> None:
    outcomes = _upsert(store, candidate("Sayed", "SB-OS"), candidate("sayed", "sb-os"), candidate(" SAYED ", "Sb-Os"))
    assert outcomes[1:] == [UpsertOutcome.UPDATED, UpsertOutcome.UPDATED]

    rels = asyncio.run(store.list_relations())
    assert len(rels) == 1
    # first-seen display name is kept
    assert rels[0].source_name == "Sayed"
    assert rels[0].mention_count == 3


def test_distinct_relation_types_are_distinct_edges(store) -> None:
    _upsert(store, candidate("A", "B", "works_on"), candidate("A", "B", "owns"), candidate("B", "A", "works_on"))
    assert len(asyncio.run(store.list_relations())) == 3


def test_context_kept_unless_new_one_given(store) -> None:
    _upsert(store, candidate("A", "B", context="first"))
    _upsert(store, candidate("A", "B"))
    assert asyncio.run(store.get_relation("A", "B", "works_on")).context == "first"

    _upsert(store, candidate("A", "B", context="second"))
    assert asyncio.run(store.get_relation("A", "B", "works_on")).context == "second"


def test_entity_types_filled_once_known(store) -> None:
    _upsert(store, candidate("A", "B"))
    _upsert(store, candidate("A", "B", source_type="person", target_type="product"))

    rel = asyncio.run(store.get_relation("A", "B", "works_on"))
    assert (rel.source_type, rel.target_type) == ("person", "product")


def test_related_to_reports_direction(store) -> None:
    _upsert(
        store,
        candidate("Sayed", "SB-OS", "works_on"),
        candidate("Sayed", "SB-OS", "works_on"),
        candidate("Acme", "Sayed", "owns"),
    )

    related = asyncio.run(store.related_to("sayed"))
    assert [(r.name, r.relation, r.direction) for r in related] == [
        ("SB-OS", "works_on", "outgoing"),
        ("Acme", "owns", "incoming"),
    ]
    assert related[0].mention_count == 2


def test_related_to_unknown_entity_is_empty(store) -> None:
    assert asyncio.run(store.related_to("nobody")) == []


def test_neighborhood_chain_respects_hop_limit(store) -> None:
    _upsert(
        store,
        candidate("A", "B", "depends_on"),
        candidate("B", "C", "depends_on"),
        candidate("C", "D", "depends_on"),
    )

    two = asyncio.run(store.neighborhood("A", max_hops=2))
    assert [(n.name, n.hop, n.via) for n in two] == [("B", 1, None), ("C", 2, "B")]

    one = asyncio.run(store.neighborhood("A", max_hops=1))
    assert [n.name for n in one] == ["B"]

    three = asyncio.run(store.neighborhood("A", max_hops=3))
    assert [(n.name, n.hop) for n in three] == [("B", 1), ("C", 2), ("D", 3)]


def test_neighborhood_walks_edges_in_both_directions(store) -> None:
    _upsert(store, candidate("B", "A", "mentions"), candidate("C", "B", "mentions"))

    found = asyncio.run(store.neighborhood("a", max_hops=2))
    assert {(n.name, n.hop) for n in found} == {("B", 1), ("C", 2)}


def test_neighborhood_handles_cycles_and_excludes_origin(store) -> None:
    _upsert(
        store,
        candidate("A", "B", "related_to"),
        candidate("B", "C", "related_to"),
        candidate("C", "A", "related_to"),
    )

    found = asyncio.run(store.neighborhood("A", max_hops=3))
    names = [n.name for n in found]
    assert "A" not in names
    assert sorted(names) == ["B", "C"]
    # C is adjacent to A through the closing edge
    assert all(n.hop == 1 for n in found)


def test_neighborhood_respects_limit(store) -> None:
    _upsert(store, *(candidate("hub", f"spoke-{i}", "part_of") for i in range(10)))

    assert len(asyncio.run(store.neighborhood("hub", max_hops=1, limit=4))) == 4


def test_neighborhood_hops_are_clamped(store) -> None:
    _upsert(store, candidate("A", "B"), candidate("B", "C"), candidate("C", "D"), candidate("D", "E"))

    assert [n.name for n in asyncio.run(store.neighborhood("A", max_hops=0))] == ["B"]
    assert "E" not in [n.name for n in asyncio.run(store.neighborhood("A", max_hops=10))]
    assert clamp_hops(-4) == 1
    assert clamp_hops(99) == 3


def test_search_entities_deduplicates_across_ends(store) -> None:
    _upsert(
        store,
        candidate("Sayed", "SB-OS", "works_on", target_type="product"),
        candidate("SB-OS", "Postgres", "depends_on"),
        candidate("Acme", "Beta", "owns"),
    )

    found = asyncio.run(store.search_entities("sb"))
    assert [(e.name, e.type) for e in found] == [("SB-OS", "product")]

    assert len(asyncio.run(store.search_entities("", limit=3))) == 3


def test_concurrent_writers_do_not_lose_updates(store) -> None:
    errors: list[BaseException] = []

    def writer() -> None:
        async def go():
            for _ in range(50):
                await store.upsert_relation(candidate("Sayed", "SB-OS", "works_on"))

        try:
            asyncio.run(go())
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    rels = asyncio.run(store.list_relations())
    assert len(rels) == 1
    assert rels[0].mention_count == 400
    assert rels[0].strength == pytest.approx(1.0)


def test_statements_run_off_the_event_loop_thread(store) -> None:
    seen: list[int] = []
    original = store.connect

    def tracking_connect():  # noqa: ANN202
        seen.append(threading.get_ident())
        return original()

    store.connect = tracking_connect

    async def go():
        loop_thread = threading.get_ident()
        await store.upsert_relation(candidate("A", "B"))
        await store.related_to("A")
        return loop_thread

    loop_thread = asyncio.run(go())
    assert len(seen) == 2
    assert loop_thread not in seen
