"""
Abstract base class for the layout adapters.

A layout adapter translates a :class:`~spendgraph.graph.model.GraphSnapshot`
into the input format of an external layout collaborator, runs it, and
translates the result back into a :class:`RenderPlan`: a flat list of
:class:`NodeInstruction` and :class:`EdgeInstruction` objects carrying
position, color, opacity and label.  Nothing downstream of the adapter needs
to know which collaborator produced the positions.

Strategy Pattern roles
----------------------
* **Strategy interface** -> :class:`LayoutAdapter` (this module)
* **Concrete strategies** -> :class:`~spendgraph.layout.flow.FlowLayoutAdapter`,
  :class:`~spendgraph.layout.network.NetworkLayoutAdapter`
* **Context** -> :class:`spendgraph.view.GraphView`
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Mapping

import plotly.graph_objects as go

from spendgraph.config import FULL_OPACITY
from spendgraph.controls import ViewControls
from spendgraph.graph.keys import EntityKey
from spendgraph.graph.model import GraphSnapshot, Node
from spendgraph.interaction.controller import OpacityPartition
from spendgraph.theme import Theme


class LayoutUnavailableError(RuntimeError):
    """The layout collaborator failed or is missing."""


@dataclass(frozen=True)
class NodeInstruction:
    """
    Draw one node.

    ``(x0, y0)``-``(x1, y1)`` is the bounding box: a column rectangle in the
    flow diagram, the circle's box in the network.  ``label`` is ``None`` when
    the label is hidden.
    """

    id: EntityKey
    x0: float
    y0: float
    x1: float
    y1: float
    color: str
    opacity: float = FULL_OPACITY
    label: str | None = None
    label_anchor: str = "middle"
    label_color: str = "#FFFFFF"
    stroke_color: str = "#FFFFFF"
    stroke_width: float = 0.0
    hover: str = ""

    @property
    def x(self) -> float:
        return (self.x0 + self.x1) / 2

    @property
    def y(self) -> float:
        return (self.y0 + self.y1) / 2

    @property
    def radius(self) -> float:
        return (self.x1 - self.x0) / 2


@dataclass(frozen=True)
class EdgeInstruction:
    """
    Draw one consolidated edge.

    Flow edges carry an SVG ``path``; network edges carry straight-line
    ``points``.  ``label`` is the optional amount shown at the midpoint.
    """

    source_id: EntityKey
    target_id: EntityKey
    value: float
    width: float
    color: str
    opacity: float = FULL_OPACITY
    path: str = ""
    points: tuple[tuple[float, float], ...] = ()
    label: str | None = None
    hover: str = ""

    @property
    def key(self) -> tuple[EntityKey, EntityKey]:
        return (self.source_id, self.target_id)


@dataclass(frozen=True)
class RenderPlan:
    kind: str
    nodes: tuple[NodeInstruction, ...] = ()
    edges: tuple[EdgeInstruction, ...] = ()
    width: float = 0.0
    height: float = 0.0
    theme: Theme = Theme.DARK
    placeholder: bool = False

    @classmethod
    def empty(cls, kind: str, width: float = 0.0, height: float = 0.0, theme: Theme = Theme.DARK) -> "RenderPlan":
        """Placeholder plan shown while no graph (or no layout) is available."""
        return cls(kind=kind, width=width, height=height, theme=theme, placeholder=True)

    def node(self, key: EntityKey) -> NodeInstruction:
        for instruction in self.nodes:
            if instruction.id == key:
                return instruction
        raise KeyError(key)

    def edge(self, source_id: EntityKey, target_id: EntityKey) -> EdgeInstruction:
        for instruction in self.edges:
            if instruction.key == (source_id, target_id):
                return instruction
        raise KeyError((source_id, target_id))

    def with_partition(self, partition: OpacityPartition) -> "RenderPlan":
        """Same plan with opacities taken from a highlight partition."""
        return replace(
            self,
            nodes=tuple(replace(n, opacity=partition.node(n.id)) for n in self.nodes),
            edges=tuple(replace(e, opacity=partition.edge(e.key)) for e in self.edges),
        )

    def with_selection(self, key: EntityKey | None, color: str, width: float) -> "RenderPlan":
        """Same plan with the stroke of node *key* replaced; ``None`` is a no-op."""
        if key is None:
            return self
        return replace(
            self,
            nodes=tuple(
                replace(n, stroke_color=color, stroke_width=width) if n.id == key else n
                for n in self.nodes
            ),
        )

    def with_colors(
        self,
        nodes: Mapping[EntityKey, Node],
        edge_color: str,
        theme: Theme,
        label_colors: Mapping[EntityKey, str],
    ) -> "RenderPlan":
        """Same geometry with node fills, edge strokes and label colors replaced."""
        return replace(
            self,
            theme=theme,
            nodes=tuple(
                replace(
                    n,
                    color=nodes[n.id].color if n.id in nodes else n.color,
                    label_color=label_colors.get(n.id, n.label_color),
                )
                for n in self.nodes
            ),
            edges=tuple(replace(e, color=edge_color) for e in self.edges),
        )


class LayoutAdapter(ABC):
    """
    Abstract strategy interface for graph layouts.

    Concrete adapters must override :meth:`plan` and :meth:`figure`.  On a
    collaborator failure :meth:`plan` raises :class:`LayoutUnavailableError`;
    it never returns a half-built plan.
    """

    kind: str = ""

    @abstractmethod
    def plan(self, snapshot: GraphSnapshot, controls: ViewControls, theme: Theme) -> RenderPlan:
        """
        Lay out *snapshot* and return draw instructions.

        Parameters
        ----------
        snapshot : GraphSnapshot
            Fully built (and already filtered) snapshot.
        controls : ViewControls
            Label toggles and layout parameters.
        theme : Theme
            Used for edge and label colors; node fills come from ``Node.color``.

        Raises
        ------
        LayoutUnavailableError
            When the layout collaborator fails.
        """

    @abstractmethod
    def label_colors(self, snapshot: GraphSnapshot, theme: Theme) -> dict[EntityKey, str]:
        """Label color of every node for *theme*."""

    @abstractmethod
    def figure(self, plan: RenderPlan) -> go.Figure:
        """Build a plotly figure from a render plan."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"{self.name}()"
