"""
Flow (Sankey) layout adapter.

Columns come from each node's :attr:`EntityType.tier`, compressed so that only
the tiers actually present occupy columns.  Within a column nodes are ordered
by ``(tier, -total_value, normalized label)``, which is total and stable: the
same snapshot always produces the same plan.
"""

from __future__ import annotations

import logging

import plotly.graph_objects as go

from spendgraph.config import SANKEY_HEIGHT, SANKEY_LABEL_MAX_LENGTH, SANKEY_WIDTH
from spendgraph.controls import ViewControls
from spendgraph.formatting import format_currency, truncate
from spendgraph.graph.keys import EntityKey
from spendgraph.graph.model import GraphSnapshot
from spendgraph.layout.base import (
    EdgeInstruction,
    LayoutAdapter,
    LayoutUnavailableError,
    NodeInstruction,
    RenderPlan,
)
from spendgraph.layout.engines import FlowLayoutEngine, SankeyLayoutEngine
from spendgraph.theme import Theme, edge_color, hex_to_rgba, label_color

logger = logging.getLogger(__name__)


def flow_columns(snapshot: GraphSnapshot) -> dict[EntityKey, int]:
    """Column of every node: its type's tier, renumbered to 0..n-1."""
    tiers = sorted({node.type.tier for node in snapshot.nodes.values()})
    column_of_tier = {tier: column for column, tier in enumerate(tiers)}
    return {key: column_of_tier[node.type.tier] for key, node in snapshot.nodes.items()}


def flow_sort_key(snapshot: GraphSnapshot, key: EntityKey) -> tuple:
    node = snapshot.nodes[key]
    return (node.type.tier, -snapshot.stats_for(key).total_value, key.normalized)


class FlowLayoutAdapter(LayoutAdapter):
    """
    Translate a snapshot for a :class:`FlowLayoutEngine` and back.

    Parameters
    ----------
    engine : FlowLayoutEngine, optional
        Layout collaborator.  Defaults to :class:`SankeyLayoutEngine` sized
        *width* x *height*.
    label_max_length : int
        Longer node labels are cut and suffixed with ``"..."``.
    """

    kind = "flow"

    def __init__(
        self,
        engine: FlowLayoutEngine | None = None,
        width: float = SANKEY_WIDTH,
        height: float = SANKEY_HEIGHT,
        label_max_length: int = SANKEY_LABEL_MAX_LENGTH,
    ) -> None:
        self.width = width
        self.height = height
        self.engine = engine or SankeyLayoutEngine(width=width, height=height)
        self.label_max_length = label_max_length

    def label_colors(self, snapshot: GraphSnapshot, theme: Theme) -> dict[EntityKey, str]:
        # labels sit on the background, next to the node
        color = label_color(None, theme)
        return {key: color for key in snapshot.nodes}

    def plan(self, snapshot: GraphSnapshot, controls: ViewControls, theme: Theme) -> RenderPlan:
        if snapshot.is_empty:
            return RenderPlan.empty(self.kind, self.width, self.height, theme)

        columns = flow_columns(snapshot)
        ordered = sorted(snapshot.nodes, key=lambda key: flow_sort_key(snapshot, key))
        engine_nodes = [{"id": key.slug, "column": columns[key]} for key in ordered]
        engine_links = [
            {"source": e.source_id.slug, "target": e.target_id.slug, "value": e.value}
            for e in snapshot.edges
        ]

        try:
            result = self.engine.layout(engine_nodes, engine_links)
            boxes = result["nodes"]
            links = result["links"]
            if len(links) != len(engine_links):
                raise ValueError(f"expected {len(engine_links)} links, got {len(links)}")
            node_instructions = [self._node(snapshot, key, boxes[key.slug], theme) for key in ordered]
        except Exception as exc:
            raise LayoutUnavailableError(f"Flow layout failed: {exc}") from exc

        stroke = edge_color(theme)
        edge_instructions = []
        for edge, link in zip(snapshot.edges, links):
            edge_instructions.append(
                EdgeInstruction(
                    source_id=edge.source_id,
                    target_id=edge.target_id,
                    value=edge.value,
                    width=float(link["width"]),
                    color=stroke,
                    path=link["path"],
                    label=format_currency(edge.value, abbreviated=True) if controls.show_edge_amounts else None,
                    hover=(
                        f"{snapshot.nodes[edge.source_id].display_label} → "
                        f"{snapshot.nodes[edge.target_id].display_label}<br>"
                        f"{format_currency(edge.value)}"
                    ),
                )
            )

        logger.debug("Flow plan: %d nodes in %d columns, %d links", len(ordered), len(set(columns.values())), len(edge_instructions))
        return RenderPlan(
            kind=self.kind,
            nodes=tuple(node_instructions),
            edges=tuple(edge_instructions),
            width=self.width,
            height=self.height,
            theme=theme,
        )

    def _node(self, snapshot: GraphSnapshot, key: EntityKey, box: dict, theme: Theme) -> NodeInstruction:
        node = snapshot.nodes[key]
        x0, x1, y0, y1 = (float(box[k]) for k in ("x0", "x1", "y0", "y1"))
        return NodeInstruction(
            id=key,
            x0=x0,
            y0=y0,
            x1=x1,
            y1=y1,
            color=node.color,
            label=truncate(node.display_label, self.label_max_length),
            label_anchor="start" if x0 < self.width / 2 else "end",
            label_color=label_color(None, theme),
            hover=f"{node.type.display_name}: {node.display_label}<br>{format_currency(snapshot.stats_for(key).total_value)}",
        )

    def figure(self, plan: RenderPlan) -> go.Figure:
        """
        ``go.Sankey`` trace with the plan's node positions pinned.

        plotly wants normalized node centers in (0, 1); opacity is folded
        into rgba colors.
        """
        theme = plan.theme
        fig = go.Figure()
        if plan.placeholder or not plan.nodes:
            fig.update_layout(
                paper_bgcolor=theme.background,
                plot_bgcolor=theme.background,
                annotations=[dict(text="Sem dados para exibir", showarrow=False, font=dict(color=theme.text))],
                xaxis=dict(visible=False),
                yaxis=dict(visible=False),
            )
            return fig

        index = {instruction.id: n for n, instruction in enumerate(plan.nodes)}

        def _clip(value: float) -> float:
            return min(max(value, 0.001), 0.999)

        fig.add_trace(
            go.Sankey(
                arrangement="fixed",
                node=dict(
                    label=[n.label or "" for n in plan.nodes],
                    color=[hex_to_rgba(n.color, n.opacity) for n in plan.nodes],
                    x=[_clip(n.x / plan.width) for n in plan.nodes],
                    y=[_clip(n.y / plan.height) for n in plan.nodes],
                    thickness=max(n.x1 - n.x0 for n in plan.nodes),
                    pad=10,
                    customdata=[n.hover for n in plan.nodes],
                    hovertemplate="%{customdata}<extra></extra>",
                ),
                link=dict(
                    source=[index[e.source_id] for e in plan.edges],
                    target=[index[e.target_id] for e in plan.edges],
                    value=[max(e.value, 0.0) for e in plan.edges],
                    color=[hex_to_rgba(e.color, 0.6 * e.opacity) for e in plan.edges],
                    label=[e.label or "" for e in plan.edges],
                    customdata=[e.hover for e in plan.edges],
                    hovertemplate="%{customdata}<extra></extra>",
                ),
                textfont=dict(color=theme.text),
            )
        )
        fig.update_layout(
            width=plan.width,
            height=plan.height,
            paper_bgcolor=theme.background,
            font=dict(color=theme.text),
            margin=dict(l=10, r=10, t=10, b=10),
        )
        return fig
