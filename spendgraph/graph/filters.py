"""
Snapshot filters: value threshold, entity type, density and top expenses.

Every filter returns a **new** snapshot.  The kept raw edges are consolidated
and the node statistics recomputed, so a filtered snapshot satisfies the same
invariants as one built straight from rows.
"""

from __future__ import annotations

import math
from typing import Iterable

from spendgraph.config import DENSITY_TOP_PERCENTILE, TOP_EXPENSES_COUNT
from spendgraph.controls import ViewControls
from spendgraph.graph.builder import compute_node_stats, consolidate
from spendgraph.graph.keys import EntityKey, EntityType
from spendgraph.graph.model import GraphSnapshot, RawEdge


def _subgraph(
    snapshot: GraphSnapshot,
    keep: Iterable[EntityKey],
    raw_edges: Iterable[RawEdge],
) -> GraphSnapshot:
    kept = set(keep)
    nodes = {key: node for key, node in snapshot.nodes.items() if key in kept}
    raw = tuple(
        edge for edge in raw_edges if edge.source_id in nodes and edge.target_id in nodes
    )
    edges = consolidate(raw)
    return GraphSnapshot(
        nodes=nodes,
        edges=tuple(edges),
        stats=compute_node_stats(nodes.keys(), edges),
        raw_edges=raw,
        schema=snapshot.schema,
        skipped_rows=snapshot.skipped_rows,
    )


def filter_by_min_value(snapshot: GraphSnapshot, min_value: float) -> GraphSnapshot:
    """
    Keep consolidated edges whose value is at least *min_value*.

    Nodes left without any edge are dropped.
    """
    if min_value <= 0:
        return snapshot

    kept_edges = [edge for edge in snapshot.edges if edge.value >= min_value]
    endpoints = {key for edge in kept_edges for key in edge.key}
    raw = [member for edge in kept_edges for member in edge.members]
    return _subgraph(snapshot, endpoints, raw)


def filter_by_entity_types(
    snapshot: GraphSnapshot,
    entity_types: Iterable[EntityType] | None,
) -> GraphSnapshot:
    """Keep nodes of the given types and the edges between them."""
    if entity_types is None:
        return snapshot

    wanted = set(entity_types)
    keep = [key for key, node in snapshot.nodes.items() if node.type in wanted]
    return _subgraph(snapshot, keep, snapshot.raw_edges)


def filter_by_density(
    snapshot: GraphSnapshot,
    top_percentile: float = DENSITY_TOP_PERCENTILE,
) -> GraphSnapshot:
    """
    Keep the most connected ``ceil(n * top_percentile)`` nodes.

    Ties keep the node that appeared first in the rows.
    """
    if snapshot.is_empty:
        return snapshot

    threshold = math.ceil(len(snapshot.nodes) * top_percentile)
    ranked = sorted(snapshot.nodes, key=lambda key: -snapshot.stats_for(key).degree)
    return _subgraph(snapshot, ranked[:threshold], snapshot.raw_edges)


def filter_top_expenses(
    snapshot: GraphSnapshot,
    top_count: int = TOP_EXPENSES_COUNT,
) -> GraphSnapshot:
    """Keep the *top_count* nodes with the largest total value."""
    if snapshot.is_empty:
        return snapshot

    ranked = sorted(snapshot.nodes, key=lambda key: -snapshot.stats_for(key).total_value)
    return _subgraph(snapshot, ranked[:top_count], snapshot.raw_edges)


def apply_filters(snapshot: GraphSnapshot, controls: ViewControls) -> GraphSnapshot:
    """Apply every active filter in *controls*, threshold first."""
    filtered = filter_by_min_value(snapshot, controls.min_value)
    filtered = filter_by_entity_types(filtered, controls.entity_types)
    if controls.density_mode:
        filtered = filter_by_density(filtered)
    if controls.top_expenses_mode:
        filtered = filter_top_expenses(filtered)
    return filtered
