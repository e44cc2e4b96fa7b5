"""
Network (force-directed) layout adapter.

Sizing rules
------------
* node radius      ``max(8, sqrt(max(total_value, 0)) * 0.2 + 5)``
* collision radius ``max(8, sqrt(max(total_value, 0)) * 0.1 + 5)``
* edge width       ``max(1, sqrt(max(value, 0)) * 0.5)``
* charge           ``-force_strength * 50``

A node label is shown when the node's total exceeds
:data:`~spendgraph.config.LABEL_VALUE_THRESHOLD` or when the labels toggle is
on, truncated to the entity type's ``label_limit``.

Drag and zoom gestures are applied to the adapter's own state (pinned nodes,
zoom transform) and forwarded unchanged to the bound
:class:`~spendgraph.interaction.controller.InteractionController`.
"""

from __future__ import annotations

import logging
import math
from typing import Callable

import plotly.graph_objects as go

from spendgraph.config import (
    FORCE_STRENGTH_FACTOR,
    LABEL_VALUE_THRESHOLD,
    LINK_DISTANCE,
    LINK_STRENGTH,
    NETWORK_HEIGHT,
    NETWORK_WIDTH,
    SIMULATION_TICKS,
    ZOOM_SCALE_EXTENT,
)
from spendgraph.controls import ViewControls
from spendgraph.formatting import format_currency, truncate
from spendgraph.graph.keys import EntityKey
from spendgraph.graph.model import GraphSnapshot
from spendgraph.interaction.controller import InteractionController
from spendgraph.layout.base import (
    EdgeInstruction,
    LayoutAdapter,
    LayoutUnavailableError,
    NodeInstruction,
    RenderPlan,
)
from spendgraph.layout.engines import ForceLayoutEngine, ForceParams, Position, SpringLayoutEngine
from spendgraph.theme import NODE_STROKE, MUTED_TEXT, Theme, edge_color, hex_to_rgba, label_color

logger = logging.getLogger(__name__)


def node_radius(total_value: float) -> float:
    return max(8.0, math.sqrt(max(total_value, 0.0)) * 0.2 + 5)


def collision_radius(total_value: float) -> float:
    return max(8.0, math.sqrt(max(total_value, 0.0)) * 0.1 + 5)


def edge_width(value: float) -> float:
    return max(1.0, math.sqrt(max(value, 0.0)) * 0.5)


def charge_for_strength(strength: float) -> float:
    return -strength * FORCE_STRENGTH_FACTOR


class NetworkLayoutAdapter(LayoutAdapter):
    """
    Translate a snapshot for a :class:`ForceLayoutEngine` and back.

    Positions from the last simulation seed the next one, so re-planning
    after a control change moves nodes from where they were.
    """

    kind = "network"

    def __init__(
        self,
        engine: ForceLayoutEngine | None = None,
        width: float = NETWORK_WIDTH,
        height: float = NETWORK_HEIGHT,
        ticks: int = SIMULATION_TICKS,
        tick_listener: Callable[[int, dict[str, Position]], None] | None = None,
    ) -> None:
        self.engine = engine or SpringLayoutEngine()
        self.width = width
        self.height = height
        self.ticks = ticks
        self.tick_listener = tick_listener
        self.positions: dict[str, Position] = {}
        self.pinned: dict[str, Position] = {}
        self.zoom_scale = 1.0
        self.zoom_center: Position = (width / 2, height / 2)
        self.ticks_seen = 0
        self._controller: InteractionController | None = None

    def bind(self, controller: InteractionController) -> None:
        self._controller = controller

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def _on_tick(self, tick: int, positions: dict[str, Position]) -> None:
        self.positions = dict(positions)
        self.ticks_seen += 1
        if self.tick_listener is not None:
            self.tick_listener(tick, positions)

    def params_for(self, snapshot: GraphSnapshot, controls: ViewControls) -> ForceParams:
        return ForceParams(
            width=self.width,
            height=self.height,
            link_distance=LINK_DISTANCE,
            link_strength=LINK_STRENGTH,
            charge=charge_for_strength(controls.force_strength),
            ticks=self.ticks,
            collision_radius={
                key.slug: collision_radius(snapshot.stats_for(key).total_value)
                for key in snapshot.nodes
            },
        )

    def label_colors(self, snapshot: GraphSnapshot, theme: Theme) -> dict[EntityKey, str]:
        return {key: label_color(node, theme) for key, node in snapshot.nodes.items()}

    def plan(self, snapshot: GraphSnapshot, controls: ViewControls, theme: Theme) -> RenderPlan:
        if snapshot.is_empty:
            return RenderPlan.empty(self.kind, self.width, self.height, theme)

        node_ids = [key.slug for key in snapshot.nodes]
        links = [(edge.source_id.slug, edge.target_id.slug) for edge in snapshot.edges]
        params = self.params_for(snapshot, controls)

        try:
            positions = self.engine.simulate(
                node_ids,
                links,
                params,
                positions=self.positions,
                pinned=self.pinned,
                on_tick=self._on_tick,
            )
            missing = [i for i in node_ids if i not in positions]
            if missing:
                raise ValueError(f"no position for {len(missing)} node(s), e.g. {missing[0]}")
        except Exception as exc:
            raise LayoutUnavailableError(f"Network layout failed: {exc}") from exc

        self.positions = dict(positions)
        logger.debug("Network plan: %d nodes, %d edges, charge %.0f", len(node_ids), len(links), params.charge)

        nodes = []
        for key, node in snapshot.nodes.items():
            x, y = positions[key.slug]
            stats = snapshot.stats_for(key)
            r = node_radius(stats.total_value)
            show = controls.show_labels or stats.total_value > LABEL_VALUE_THRESHOLD
            nodes.append(
                NodeInstruction(
                    id=key,
                    x0=x - r,
                    y0=y - r,
                    x1=x + r,
                    y1=y + r,
                    color=node.color,
                    label=truncate(node.display_label, node.type.label_limit, suffix="") if show else None,
                    label_color=label_color(node, theme),
                    stroke_color=NODE_STROKE,
                    stroke_width=2.0,
                    hover=(
                        f"{node.type.display_name}: {node.display_label}<br>"
                        f"{format_currency(stats.total_value)}<br>"
                        f"{stats.degree} conexões"
                    ),
                )
            )

        stroke = edge_color(theme)
        edges = []
        for edge in snapshot.edges:
            source = positions[edge.source_id.slug]
            target = positions[edge.target_id.slug]
            edges.append(
                EdgeInstruction(
                    source_id=edge.source_id,
                    target_id=edge.target_id,
                    value=edge.value,
                    width=edge_width(edge.value),
                    color=stroke,
                    points=(tuple(source), tuple(target)),
                    label=format_currency(edge.value) if controls.show_edge_amounts else None,
                    hover=f"{format_currency(edge.value)} em {edge.count} transações",
                )
            )

        return RenderPlan(
            kind=self.kind,
            nodes=tuple(nodes),
            edges=tuple(edges),
            width=self.width,
            height=self.height,
            theme=theme,
        )

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def drag_start(self, key: EntityKey) -> None:
        position = self.positions.get(key.slug)
        if position is not None:
            self.pinned[key.slug] = position
        self._forward("drag", phase="start", node=key, position=position)

    def drag(self, key: EntityKey, x: float, y: float) -> None:
        self.pinned[key.slug] = (x, y)
        self.positions[key.slug] = (x, y)
        self._forward("drag", phase="move", node=key, position=(x, y))

    def drag_end(self, key: EntityKey) -> None:
        self.pinned.pop(key.slug, None)
        self._forward("drag", phase="end", node=key, position=self.positions.get(key.slug))

    def zoom(self, scale: float, center: Position | None = None) -> float:
        low, high = ZOOM_SCALE_EXTENT
        self.zoom_scale = min(max(scale, low), high)
        if center is not None:
            self.zoom_center = center
        self._forward("zoom", scale=self.zoom_scale, center=self.zoom_center)
        return self.zoom_scale

    def reset_zoom(self) -> float:
        """Fit every node on the canvas (never zooming in past 1x)."""
        if not self.positions:
            return self.zoom(1.0, (self.width / 2, self.height / 2))
        xs = [p[0] for p in self.positions.values()]
        ys = [p[1] for p in self.positions.values()]
        scale = min(
            self.width / (max(xs) - min(xs) + 100),
            self.height / (max(ys) - min(ys) + 100),
        )
        center = ((min(xs) + max(xs)) / 2, (min(ys) + max(ys)) / 2)
        return self.zoom(min(scale, 1.0), center)

    def _forward(self, name: str, **payload) -> None:
        if self._controller is not None:
            self._controller.gesture(name, **payload)

    # ------------------------------------------------------------------
    # plotly
    # ------------------------------------------------------------------

    def figure(self, plan: RenderPlan) -> go.Figure:
        theme = plan.theme
        fig = go.Figure()

        for edge in plan.edges:
            (x0, y0), (x1, y1) = edge.points
            fig.add_trace(
                go.Scatter(
                    x=[x0, x1],
                    y=[y0, y1],
                    mode="lines",
                    line=dict(width=edge.width, color=hex_to_rgba(edge.color, 0.6)),
                    opacity=edge.opacity,
                    hoverinfo="text",
                    text=edge.hover,
                    showlegend=False,
                )
            )

        labelled = [e for e in plan.edges if e.label]
        if labelled:
            fig.add_trace(
                go.Scatter(
                    x=[(e.points[0][0] + e.points[1][0]) / 2 for e in labelled],
                    y=[(e.points[0][1] + e.points[1][1]) / 2 for e in labelled],
                    mode="text",
                    text=[e.label for e in labelled],
                    textfont=dict(size=8, color=MUTED_TEXT),
                    hoverinfo="skip",
                    showlegend=False,
                )
            )

        if plan.nodes:
            fig.add_trace(
                go.Scatter(
                    x=[n.x for n in plan.nodes],
                    y=[n.y for n in plan.nodes],
                    mode="markers+text",
                    marker=dict(
                        size=[2 * n.radius for n in plan.nodes],
                        color=[n.color for n in plan.nodes],
                        opacity=[n.opacity for n in plan.nodes],
                        line=dict(width=[n.stroke_width for n in plan.nodes], color=[n.stroke_color for n in plan.nodes]),
                    ),
                    text=[n.label or "" for n in plan.nodes],
                    textfont=dict(size=10, color=[n.label_color for n in plan.nodes]),
                    hovertext=[n.hover for n in plan.nodes],
                    hoverinfo="text",
                    customdata=[n.id.slug for n in plan.nodes],
                    showlegend=False,
                )
            )

        half_w = self.width / 2 / self.zoom_scale
        half_h = self.height / 2 / self.zoom_scale
        cx, cy = self.zoom_center
        if plan.width > 0 and plan.height > 0:
            fig.update_layout(width=plan.width, height=plan.height)
        fig.update_layout(
            paper_bgcolor=theme.background,
            plot_bgcolor=theme.background,
            font=dict(color=theme.text),
            margin=dict(l=0, r=0, t=0, b=0),
            xaxis=dict(visible=False, range=[cx - half_w, cx + half_w]),
            # screen coordinates grow downwards
            yaxis=dict(visible=False, range=[cy + half_h, cy - half_h]),
            dragmode="pan",
            hovermode="closest",
        )
        if plan.placeholder:
            fig.add_annotation(
                text="Sem dados para exibir",
                xref="paper",
                yref="paper",
                x=0.5,
                y=0.5,
                showarrow=False,
                font=dict(color=theme.text),
            )
        return fig
