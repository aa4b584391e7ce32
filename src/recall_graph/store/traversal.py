"""Breadth-first neighborhood traversal shared by every store backend.

Backends only supply `fetch_edges(keys)`: all relations touching any of the
given entity keys, strongest first. Edges are walked from either endpoint.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

from ..models import MAX_NEIGHBORHOOD_HOPS, NeighborEntity, Relation, entity_key

FetchEdges = Callable[[Sequence[str]], Awaitable[list[Relation]]]


def clamp_hops(max_hops: int) -> int:
    return max(1, min(int(max_hops), MAX_NEIGHBORHOOD_HOPS))


async def breadth_first_neighborhood(
    fetch_edges: FetchEdges,
    name: str,
    *,
    max_hops: int = 2,
    limit: int = 50,
) -> list[NeighborEntity]:
    origin = entity_key(name)
    if not origin or limit <= 0:
        return []

    hops = clamp_hops(max_hops)
    visited: set[str] = {origin}
    frontier: dict[str, str] = {origin: name}
    out: list[NeighborEntity] = []

    for hop in range(1, hops + 1):
        if not frontier:
            break
        edges = await fetch_edges(sorted(frontier))
        next_frontier: dict[str, str] = {}

        for edge in edges:
            ends = (
                (edge.source_key, edge.target_key, edge.target_name, edge.target_type),
                (edge.target_key, edge.source_key, edge.source_name, edge.source_type),
            )
            for near, far, far_name, far_type in ends:
                if near not in frontier or far in visited:
                    continue
                # first (smallest) hop wins
                visited.add(far)
                next_frontier[far] = far_name
                out.append(
                    NeighborEntity(
                        name=far_name,
                        type=far_type,
                        relation=edge.relation_type,
                        hop=hop,
                        via=None if hop == 1 else frontier[near],
                    )
                )
                if len(out) >= limit:
                    return out

        frontier = next_frontier

    return out
