"""
Default layout collaborators.

The adapters in :mod:`spendgraph.layout.flow` and
:mod:`spendgraph.layout.network` only talk to these through the small
:class:`FlowLayoutEngine` / :class:`ForceLayoutEngine` interfaces, using plain
string ids and numbers.  Any other engine honoring the same contract can be
injected instead.

* :class:`SankeyLayoutEngine` -- column layout for the flow diagram: nodes
  stacked per column in the given order, heights proportional to throughput,
  links drawn as horizontal cubic Bezier bands.
* :class:`SpringLayoutEngine` -- force layout for the network, advancing
  :func:`networkx.spring_layout` one iteration per tick, with a collision
  pass and support for pinned (dragged) nodes.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable

import networkx as nx
import numpy as np

from spendgraph.config import (
    CHARGE_STRENGTH,
    LINK_DISTANCE,
    LINK_STRENGTH,
    NETWORK_HEIGHT,
    NETWORK_WIDTH,
    SANKEY_HEIGHT,
    SANKEY_MARGIN,
    SANKEY_NODE_PADDING,
    SANKEY_NODE_WIDTH,
    SANKEY_WIDTH,
    SIMULATION_TICKS,
)

logger = logging.getLogger(__name__)

Position = tuple[float, float]
TickCallback = Callable[[int, dict[str, Position]], None]


# ============================================================================
# FLOW (SANKEY)
# ============================================================================


class FlowLayoutEngine(ABC):
    @abstractmethod
    def layout(self, nodes: list[dict], links: list[dict]) -> dict:
        """
        Position the nodes and links of a flow diagram.

        Parameters
        ----------
        nodes : list of dict
            ``{"id": str, "column": int}`` in the desired top-to-bottom order.
        links : list of dict
            ``{"source": str, "target": str, "value": float}``.

        Returns
        -------
        dict
            ``{"nodes": {id: {"x0", "x1", "y0", "y1"}}, "links": [{"source",
            "target", "path", "width"}, ...]}`` with links in input order.
        """


def link_path(x0: float, y0: float, x1: float, y1: float) -> str:
    """Horizontal cubic Bezier from ``(x0, y0)`` to ``(x1, y1)``."""
    xm = (x0 + x1) / 2
    return f"M{x0:.2f},{y0:.2f}C{xm:.2f},{y0:.2f} {xm:.2f},{y1:.2f} {x1:.2f},{y1:.2f}"


class SankeyLayoutEngine(FlowLayoutEngine):
    """
    Column layout with d3-sankey geometry.

    A node's throughput is ``max(incoming, outgoing)``; one vertical scale
    ``ky`` (pixels per unit of value) is shared by every column, chosen so the
    fullest column fits the canvas.  Negative link values count as zero.
    """

    def __init__(
        self,
        width: float = SANKEY_WIDTH,
        height: float = SANKEY_HEIGHT,
        margin: float = SANKEY_MARGIN,
        node_width: float = SANKEY_NODE_WIDTH,
        node_padding: float = SANKEY_NODE_PADDING,
    ) -> None:
        self.width = width
        self.height = height
        self.margin = margin
        self.node_width = node_width
        self.node_padding = node_padding

    def layout(self, nodes: list[dict], links: list[dict]) -> dict:
        ids = [node["id"] for node in nodes]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate node id in flow layout input")

        known = set(ids)
        incoming: dict[str, float] = defaultdict(float)
        outgoing: dict[str, float] = defaultdict(float)
        for link in links:
            if link["source"] not in known or link["target"] not in known:
                raise ValueError(f"Link references unknown node: {link}")
            value = max(float(link["value"]), 0.0)
            outgoing[link["source"]] += value
            incoming[link["target"]] += value

        throughput = {i: max(incoming[i], outgoing[i]) for i in ids}

        columns: dict[int, list[str]] = defaultdict(list)
        for node in nodes:
            columns[int(node["column"])].append(node["id"])
        n_columns = max(columns) + 1 if columns else 0

        usable_height = self.height - 2 * self.margin
        scales = []
        for members in columns.values():
            total = sum(throughput[i] for i in members)
            if total > 0:
                free = usable_height - (len(members) - 1) * self.node_padding
                scales.append(max(free, 0.0) / total)
        ky = min(scales) if scales else 0.0

        if n_columns > 1:
            step = (self.width - 2 * self.margin - self.node_width) / (n_columns - 1)
        else:
            step = 0.0

        boxes: dict[str, dict[str, float]] = {}
        for column, members in columns.items():
            x0 = self.margin + column * step
            y = self.margin
            for node_id in members:
                # zero-throughput nodes still get a visible sliver
                height = max(throughput[node_id] * ky, 1.0)
                boxes[node_id] = {"x0": x0, "x1": x0 + self.node_width, "y0": y, "y1": y + height}
                y += height + self.node_padding

        # Stack link bands within each node, ordered by the far end's position.
        out_offset = {i: boxes[i]["y0"] for i in ids}
        in_offset = {i: boxes[i]["y0"] for i in ids}
        order = sorted(range(len(links)), key=lambda n: (boxes[links[n]["target"]]["y0"], n))
        source_y: dict[int, float] = {}
        for n in order:
            link = links[n]
            width = max(float(link["value"]), 0.0) * ky
            source_y[n] = out_offset[link["source"]] + width / 2
            out_offset[link["source"]] += width

        order = sorted(range(len(links)), key=lambda n: (boxes[links[n]["source"]]["y0"], n))
        target_y: dict[int, float] = {}
        for n in order:
            link = links[n]
            width = max(float(link["value"]), 0.0) * ky
            target_y[n] = in_offset[link["target"]] + width / 2
            in_offset[link["target"]] += width

        laid_out = []
        for n, link in enumerate(links):
            source, target = boxes[link["source"]], boxes[link["target"]]
            laid_out.append(
                {
                    "source": link["source"],
                    "target": link["target"],
                    "width": max(float(link["value"]), 0.0) * ky,
                    "path": link_path(source["x1"], source_y[n], target["x0"], target_y[n]),
                }
            )

        return {"nodes": boxes, "links": laid_out}


# ============================================================================
# NETWORK (FORCE)
# ============================================================================


@dataclass(frozen=True)
class ForceParams:
    width: float = NETWORK_WIDTH
    height: float = NETWORK_HEIGHT
    link_distance: float = LINK_DISTANCE
    link_strength: float = LINK_STRENGTH
    charge: float = CHARGE_STRENGTH
    ticks: int = SIMULATION_TICKS
    collision_radius: dict[str, float] = field(default_factory=dict)


class ForceLayoutEngine(ABC):
    @abstractmethod
    def simulate(
        self,
        node_ids: list[str],
        links: list[tuple[str, str]],
        params: ForceParams,
        positions: dict[str, Position] | None = None,
        pinned: dict[str, Position] | None = None,
        on_tick: TickCallback | None = None,
    ) -> dict[str, Position]:
        """
        Run the simulation and return final canvas positions.

        *positions* seeds the run (e.g. the previous layout), *pinned* nodes
        stay where they are, and *on_tick* receives ``(tick, positions)``
        after every step.
        """


class SpringLayoutEngine(ForceLayoutEngine):
    """
    Fruchterman-Reingold via :func:`networkx.spring_layout`.

    The optimal node distance is the link distance, widened by the square
    root of the charge magnitude relative to the default charge, so a
    stronger repulsion spreads the graph out.
    """

    def __init__(self, seed: int = 42) -> None:
        self.seed = seed

    def simulate(
        self,
        node_ids: list[str],
        links: list[tuple[str, str]],
        params: ForceParams,
        positions: dict[str, Position] | None = None,
        pinned: dict[str, Position] | None = None,
        on_tick: TickCallback | None = None,
    ) -> dict[str, Position]:
        if not node_ids:
            return {}

        G = nx.Graph()
        G.add_nodes_from(node_ids)
        G.add_edges_from(links, weight=params.link_strength / LINK_STRENGTH)

        rng = np.random.default_rng(self.seed)
        pinned = {k: v for k, v in (pinned or {}).items() if k in G}
        pos: dict[str, np.ndarray] = {}
        for node_id in node_ids:
            if node_id in pinned:
                pos[node_id] = np.asarray(pinned[node_id], dtype=float)
            elif positions and node_id in positions:
                pos[node_id] = np.asarray(positions[node_id], dtype=float)
            else:
                pos[node_id] = rng.uniform((0, 0), (params.width, params.height))

        k = params.link_distance * math.sqrt(abs(params.charge) / abs(CHARGE_STRENGTH))
        center = np.array([params.width / 2, params.height / 2])
        radii = np.array([params.collision_radius.get(i, 0.0) for i in node_ids])
        free = np.array([i not in pinned for i in node_ids])
        logger.debug(
            "Spring layout: %d nodes, %d links, %d pinned, k=%.1f",
            len(node_ids), len(links), len(pinned), k,
        )

        for tick in range(params.ticks):
            pos = nx.spring_layout(
                G,
                k=k,
                pos=pos,
                fixed=list(pinned) or None,
                iterations=1,
                scale=None,
                seed=self.seed,
            )
            coords = np.array([pos[i] for i in node_ids], dtype=float)
            if not pinned:
                coords += center - coords.mean(axis=0)
            coords = self._resolve_collisions(coords, radii, free)
            pos = {node_id: coords[n] for n, node_id in enumerate(node_ids)}

            if on_tick is not None:
                on_tick(tick, {i: (float(p[0]), float(p[1])) for i, p in pos.items()})

        return {i: (float(p[0]), float(p[1])) for i, p in pos.items()}

    @staticmethod
    def _resolve_collisions(coords: np.ndarray, radii: np.ndarray, free: np.ndarray) -> np.ndarray:
        """Push overlapping free nodes apart along the line joining them."""
        if len(coords) < 2 or not radii.any():
            return coords

        delta = coords[:, None, :] - coords[None, :, :]
        distance = np.linalg.norm(delta, axis=-1)
        np.fill_diagonal(distance, np.inf)
        overlap = radii[:, None] + radii[None, :] - distance
        overlap = np.where(overlap > 0, overlap, 0.0)
        if not overlap.any():
            return coords

        safe = np.where(np.isfinite(distance) & (distance > 0), distance, 1.0)
        push = (delta / safe[..., None]) * (overlap / 2)[..., None]
        return coords + push.sum(axis=1) * free[:, None]
