"""
Data model of the entity-flow graph.

A :class:`GraphSnapshot` is the fully-built, read-only graph for one query
result: its nodes, its consolidated edges and the per-node statistics derived
from them.  Snapshots are never mutated after construction; a new query or a
new filter produces a new snapshot.  The one exception is ``Node.color``,
which :class:`spendgraph.theme.ThemeAdapter` rewrites in place when the theme
changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any, Iterator, Mapping

import networkx as nx
import pandas as pd

from spendgraph.graph.keys import EntityKey, EntityType


@dataclass(frozen=True)
class FlowRow:
    """
    One aggregated query-result record.

    ``mid`` is only set for three-tier rows (e.g. party -> category ->
    supplier).  ``extra`` keeps any further query columns for drill-down.
    """

    source: str | None
    target: str | None
    value: float = 0.0
    count: int = 0
    mid: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "FlowRow":
        known = {"source", "mid", "target", "value", "count"}
        return cls(
            source=row.get("source"),
            target=row.get("target"),
            value=row.get("value", 0.0),
            count=row.get("count", 0),
            mid=row.get("mid"),
            extra={k: v for k, v in row.items() if k not in known},
        )


@dataclass(frozen=True)
class FlowSchema:
    """Entity type denoted by each position of a :class:`FlowRow`."""

    source_type: EntityType
    target_type: EntityType
    mid_type: EntityType | None = None


# Party -> spending category -> supplier (flow diagram).
SANKEY_SCHEMA = FlowSchema(
    source_type=EntityType.PARTY,
    target_type=EntityType.SUPPLIER,
    mid_type=EntityType.CATEGORY,
)

# Deputy -> supplier (entity network).
NETWORK_SCHEMA = FlowSchema(
    source_type=EntityType.DEPUTY,
    target_type=EntityType.SUPPLIER,
)


@dataclass
class Node:
    id: EntityKey
    display_label: str
    type: EntityType
    color: str


@dataclass(frozen=True)
class RawEdge:
    """One hop of one input row, before consolidation."""

    source_id: EntityKey
    target_id: EntityKey
    value: float
    count: int
    source_row: FlowRow = field(compare=False)

    @property
    def key(self) -> tuple[EntityKey, EntityKey]:
        return (self.source_id, self.target_id)


@dataclass
class ConsolidatedEdge:
    """
    All raw edges sharing one ordered ``(source_id, target_id)`` pair.

    Invariant: ``value == sum(m.value for m in members)`` and
    ``count == sum(m.count for m in members)``.
    """

    source_id: EntityKey
    target_id: EntityKey
    value: float = 0.0
    count: int = 0
    members: list[RawEdge] = field(default_factory=list)

    @property
    def key(self) -> tuple[EntityKey, EntityKey]:
        return (self.source_id, self.target_id)

    @property
    def slug(self) -> str:
        return edge_slug(self.source_id, self.target_id)

    @property
    def average_value(self) -> float:
        return self.value / self.count if self.count else 0.0

    def touches(self, key: EntityKey) -> bool:
        return key == self.source_id or key == self.target_id

    def other(self, key: EntityKey) -> EntityKey:
        return self.target_id if key == self.source_id else self.source_id


def edge_slug(source_id: EntityKey, target_id: EntityKey) -> str:
    """Composite grouping key of an ordered pair, e.g. ``"party:pt->category:saude"``."""
    return f"{source_id.slug}->{target_id.slug}"


@dataclass
class NodeStats:
    total_value: float = 0.0
    total_count: int = 0
    connections: set[EntityKey] = field(default_factory=set)

    @property
    def degree(self) -> int:
        return len(self.connections)


@dataclass(frozen=True, eq=False)
class GraphSnapshot:
    """
    Read-only graph for one query result.

    ``edges`` holds consolidated edges and ``stats`` is keyed by node id.  A
    snapshot fresh out of :class:`~spendgraph.graph.builder.GraphDataBuilder`
    is *partial*: ``raw_edges`` is filled but ``edges`` and ``stats`` are
    empty until :func:`~spendgraph.graph.builder.enrich_snapshot` runs.
    """

    nodes: Mapping[EntityKey, Node]
    edges: tuple[ConsolidatedEdge, ...] = ()
    stats: Mapping[EntityKey, NodeStats] = field(default_factory=dict)
    raw_edges: tuple[RawEdge, ...] = ()
    schema: FlowSchema | None = None
    skipped_rows: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, "stats", MappingProxyType(dict(self.stats)))
        object.__setattr__(self, "edges", tuple(self.edges))
        object.__setattr__(self, "raw_edges", tuple(self.raw_edges))

    @classmethod
    def empty(cls, schema: FlowSchema | None = None) -> "GraphSnapshot":
        return cls(nodes={}, schema=schema)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @cached_property
    def _edge_index(self) -> dict[tuple[EntityKey, EntityKey], ConsolidatedEdge]:
        return {edge.key: edge for edge in self.edges}

    def node(self, key: EntityKey) -> Node:
        return self.nodes[key]

    def edge(self, source_id: EntityKey, target_id: EntityKey) -> ConsolidatedEdge:
        return self._edge_index[(source_id, target_id)]

    def has_edge(self, source_id: EntityKey, target_id: EntityKey) -> bool:
        return (source_id, target_id) in self._edge_index

    def incident_edges(self, key: EntityKey) -> Iterator[ConsolidatedEdge]:
        return (edge for edge in self.edges if edge.touches(key))

    def stats_for(self, key: EntityKey) -> NodeStats:
        return self.stats.get(key) or NodeStats()

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------

    def to_networkx(self) -> nx.DiGraph:
        """Directed graph with ``value``/``count`` edge attributes."""
        G = nx.DiGraph()
        for key, node in self.nodes.items():
            stats = self.stats_for(key)
            G.add_node(
                key,
                label=node.display_label,
                type=node.type.slug,
                total_value=stats.total_value,
            )
        for edge in self.edges:
            G.add_edge(edge.source_id, edge.target_id, value=edge.value, count=edge.count)
        return G

    def stats_frame(self) -> pd.DataFrame:
        """One row per node: id, label, type, total value, count and degree."""
        records = [
            {
                "entity_id": key.slug,
                "label": node.display_label,
                "type": node.type.slug,
                "total_value": self.stats_for(key).total_value,
                "total_count": self.stats_for(key).total_count,
                "connections": self.stats_for(key).degree,
            }
            for key, node in self.nodes.items()
        ]
        return pd.DataFrame(
            records,
            columns=["entity_id", "label", "type", "total_value", "total_count", "connections"],
        )

    def edges_frame(self) -> pd.DataFrame:
        records = [
            {
                "source": edge.source_id.slug,
                "target": edge.target_id.slug,
                "value": edge.value,
                "count": edge.count,
                "members": len(edge.members),
            }
            for edge in self.edges
        ]
        return pd.DataFrame(records, columns=["source", "target", "value", "count", "members"])

    def summary(self) -> dict:
        """
        Headline numbers for the statistics strip.

        Node totals double-count each flow (both endpoints receive it), so the
        value and transaction totals are taken from the edges instead.
        """
        per_type = {entity_type.slug: 0 for entity_type in EntityType}
        for node in self.nodes.values():
            per_type[node.type.slug] += 1

        total_value = float(sum(edge.value for edge in self.edges))
        total_count = int(sum(edge.count for edge in self.edges))
        return {
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "per_type": per_type,
            "total_value": total_value,
            "total_transactions": total_count,
            "avg_transaction_value": total_value / total_count if total_count else 0.0,
        }
