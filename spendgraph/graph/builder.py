"""
Graph construction for the SpendGraph entity-flow engine.

This module turns flat query-result rows into a :class:`GraphSnapshot` in
three synchronous passes, so that no caller ever observes a partially built
graph:

1. :class:`GraphDataBuilder` resolves every entity to an
   :class:`~spendgraph.graph.keys.EntityKey`, creates one node per key and
   one :class:`RawEdge` per row per hop.
2. :func:`consolidate` merges raw edges sharing an ordered
   ``(source_id, target_id)`` pair into a single :class:`ConsolidatedEdge`.
3. :func:`compute_node_stats` accumulates per-node totals and connection sets
   over the *consolidated* edges.

Invariants
----------
* Exactly one consolidated edge per ordered pair, with

      value = sum(member.value)    count = sum(member.count)

* Consolidated edges come out in order of first occurrence, so re-running the
  build on the same rows yields the same order.
* Three-tier rows (source -> mid -> target) are split into two hops.  Each hop
  carries **half** of the row value and the **full** row count:

      (source, mid, target, v, c)  ->  (source, mid, v/2, c), (mid, target, v/2, c)

  This keeps the flow diagram balanced across columns.  It understates
  per-hop magnitude when several hops share a common total; consumers needing
  exact per-entity totals should query them directly.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import pandas as pd

from spendgraph.graph.keys import EntityKey, EntityKeyRegistry, EntityType, is_blank
from spendgraph.graph.model import (
    ConsolidatedEdge,
    FlowRow,
    FlowSchema,
    GraphSnapshot,
    Node,
    NodeStats,
    RawEdge,
    edge_slug,
)

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> float:
    if value is None or pd.isna(value):
        return 0.0
    return float(value)


def _as_int(value: Any) -> int:
    if value is None or pd.isna(value):
        return 0
    return int(value)


class GraphDataBuilder:
    """
    Build the nodes and raw edges of a snapshot from flow rows.

    Parameters
    ----------
    schema : FlowSchema
        Entity type of each row position.  A row carrying a middle entity is
        only treated as three-tier when ``schema.mid_type`` is set.
    registry : EntityKeyRegistry, optional
        Key registry to use.  A fresh one is created per builder by default.

    Notes
    -----
    Rows whose source or target is missing or blank are skipped, not fatal:
    sparse upstream data produces them routinely.  Negative values are kept
    as-is; the builder does not validate the semantics of the upstream query.
    """

    def __init__(self, schema: FlowSchema, registry: EntityKeyRegistry | None = None) -> None:
        self._schema = schema
        self._registry = registry or EntityKeyRegistry()

    @property
    def schema(self) -> FlowSchema:
        return self._schema

    def build(self, rows: Iterable[FlowRow | Mapping[str, Any]]) -> GraphSnapshot:
        """
        Resolve entities and emit one raw edge per row per hop.

        Parameters
        ----------
        rows : iterable of FlowRow or mapping
            Flow rows in query order.  Mappings are read with
            :meth:`FlowRow.from_mapping`.

        Returns
        -------
        GraphSnapshot
            A *partial* snapshot: ``nodes`` and ``raw_edges`` are populated,
            ``edges`` and ``stats`` are empty.
        """
        nodes: dict[EntityKey, Node] = {}
        raw_edges: list[RawEdge] = []
        skipped = 0

        for row in rows:
            if not isinstance(row, FlowRow):
                row = FlowRow.from_mapping(row)

            if is_blank(row.source) or is_blank(row.target):
                skipped += 1
                logger.debug("Skipping flow row without source/target: %r", row)
                continue

            value = _as_float(row.value)
            count = _as_int(row.count)

            source_id = self._node(nodes, self._schema.source_type, row.source)
            target_id = self._node(nodes, self._schema.target_type, row.target)

            if self._schema.mid_type is not None and not is_blank(row.mid):
                mid_id = self._node(nodes, self._schema.mid_type, row.mid)
                half = value / 2
                raw_edges.append(RawEdge(source_id, mid_id, half, count, row))
                raw_edges.append(RawEdge(mid_id, target_id, half, count, row))
            else:
                raw_edges.append(RawEdge(source_id, target_id, value, count, row))

        if skipped:
            logger.debug("Skipped %d malformed flow rows", skipped)

        return GraphSnapshot(
            nodes=nodes,
            raw_edges=tuple(raw_edges),
            schema=self._schema,
            skipped_rows=skipped,
        )

    def _node(self, nodes: dict[EntityKey, Node], entity_type: EntityType, raw_label: Any) -> EntityKey:
        key = self._registry.key_for(entity_type, str(raw_label))
        if key not in nodes:
            nodes[key] = Node(
                id=key,
                display_label=self._registry.display_label(key),
                type=entity_type,
                color=entity_type.base_color,
            )
        return key


def consolidate(raw_edges: Iterable[RawEdge]) -> list[ConsolidatedEdge]:
    """
    Merge raw edges that connect the same ordered pair of nodes.

    Parameters
    ----------
    raw_edges : iterable of RawEdge
        Raw edges in build order.

    Returns
    -------
    list[ConsolidatedEdge]
        One edge per ordered ``(source_id, target_id)`` pair, in order of
        first occurrence.  Every contributing raw edge is kept in ``members``
        for drill-down.
    """
    merged: dict[str, ConsolidatedEdge] = {}

    for raw in raw_edges:
        key = edge_slug(raw.source_id, raw.target_id)
        edge = merged.get(key)
        if edge is None:
            edge = merged[key] = ConsolidatedEdge(raw.source_id, raw.target_id)
        edge.value += raw.value
        edge.count += raw.count
        edge.members.append(raw)

    return list(merged.values())


def compute_node_stats(
    nodes: Iterable[EntityKey],
    edges: Iterable[ConsolidatedEdge],
) -> dict[EntityKey, NodeStats]:
    """
    Accumulate totals and connection sets for every node.

    Parameters
    ----------
    nodes : iterable of EntityKey
        All node ids of the snapshot.  Nodes without edges get zero stats.
    edges : iterable of ConsolidatedEdge
        Consolidated edges.  Stats must not be computed on raw edges: a
        node's totals are the sum of its *distinct* partner flows.

    Returns
    -------
    dict
        ``{node_id: NodeStats}``.

    Notes
    -----
    Each edge contributes its value and count to each endpoint once, and each
    endpoint gains the other endpoint's id.  A self-loop contributes once and
    adds the node's own id to its connections.
    """
    stats: dict[EntityKey, NodeStats] = {key: NodeStats() for key in nodes}

    for edge in edges:
        for endpoint in {edge.source_id, edge.target_id}:
            node_stats = stats.setdefault(endpoint, NodeStats())
            node_stats.total_value += edge.value
            node_stats.total_count += edge.count
            node_stats.connections.add(edge.other(endpoint))

    return stats


def enrich_snapshot(partial: GraphSnapshot) -> GraphSnapshot:
    """Return a new snapshot with consolidated edges and node stats."""
    edges = consolidate(partial.raw_edges)
    stats = compute_node_stats(partial.nodes.keys(), edges)
    return GraphSnapshot(
        nodes=partial.nodes,
        edges=tuple(edges),
        stats=stats,
        raw_edges=partial.raw_edges,
        schema=partial.schema,
        skipped_rows=partial.skipped_rows,
    )


def build_snapshot(
    rows: Iterable[FlowRow | Mapping[str, Any]],
    schema: FlowSchema,
) -> GraphSnapshot:
    """
    Run the full build: rows -> nodes/raw edges -> consolidation -> stats.

    Returns
    -------
    GraphSnapshot
        Fully built snapshot.  Returns an **empty** snapshot when *rows* is
        empty or every row was malformed.
    """
    partial = GraphDataBuilder(schema).build(rows)
    return enrich_snapshot(partial)
