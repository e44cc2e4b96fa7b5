"""
Theme-aware colors for graph elements.

:class:`ThemeAdapter` rewrites ``Node.color`` for a theme and answers the
theme lookups used by the layout adapters (edge stroke, label colors).  It
never touches edges, statistics, focus or search state, and recoloring is a
pure function of ``(node type, node label, theme)``, so applying it twice
gives the same colors as applying it once.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Iterable

import plotly.express as px

from spendgraph.graph.keys import EntityType
from spendgraph.graph.model import Node

SELECTION_GOLD = "#FFD700"
NODE_STROKE = "#FFFFFF"
MUTED_TEXT = "#9CA3AF"

# Ordinal palettes of the flow diagram, one per column.
FLOW_PALETTES: dict[EntityType, list[str]] = {
    EntityType.PARTY: px.colors.qualitative.D3,
    EntityType.CATEGORY: px.colors.qualitative.Set3,
    EntityType.SUPPLIER: px.colors.qualitative.Dark2,
    EntityType.DEPUTY: px.colors.qualitative.D3,
}


class Theme(Enum):
    """Dashboard theme with its chrome colors."""

    DARK = ("dark", "#0f1419", "#FFFFFF", "#374151")
    LIGHT = ("light", "#f3f4f6", "#000000", "#e5e7eb")

    def __init__(self, slug: str, background: str, text: str, border: str) -> None:
        self.slug = slug
        self.background = background
        self.text = text
        self.border = border

    @classmethod
    def from_name(cls, name: "str | Theme") -> "Theme":
        if isinstance(name, Theme):
            return name
        for member in cls:
            if member.slug == str(name).strip().lower():
                return member
        raise ValueError(f"Unknown theme: {name!r}")


def adjust_brightness(color: str, percent: float) -> str:
    """Shift each RGB channel of a ``#rrggbb`` color by *percent* of 255."""
    value = int(color.lstrip("#"), 16)
    amount = round(2.55 * percent)
    channels = [(value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF]
    r, g, b = (min(255, max(0, c + amount)) for c in channels)
    return f"#{r:02x}{g:02x}{b:02x}"


def contrast_color(background: str) -> str:
    """Black or white, whichever reads better on *background*."""
    value = int(background.lstrip("#"), 16)
    r, g, b = (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF
    brightness = (r * 299 + g * 587 + b * 114) / 1000
    return "#000000" if brightness > 128 else "#FFFFFF"


def hex_to_rgba(color: str, alpha: float = 1.0) -> str:
    value = int(color.lstrip("#"), 16)
    return f"rgba({(value >> 16) & 0xFF}, {(value >> 8) & 0xFF}, {value & 0xFF}, {alpha})"


def _as_hex(color: str) -> str:
    # plotly palettes mix "#rrggbb" and "rgb(r,g,b)"
    if color.startswith("#"):
        return color
    r, g, b = (int(part) for part in color[color.index("(") + 1 : color.index(")")].split(","))
    return f"#{r:02x}{g:02x}{b:02x}"


def _stable_index(text: str, size: int) -> int:
    digest = hashlib.md5(text.encode("utf-8")).hexdigest()
    return int(digest, 16) % size


class ThemeAdapter:
    """
    Compute node colors for a theme.

    Parameters
    ----------
    ordinal : bool
        ``True`` colors each entity from its column's ordinal palette (flow
        diagram); ``False`` colors by entity type (network).
    """

    # Light backgrounds need slightly darker fills.
    LIGHT_SHIFT = -15

    def __init__(self, ordinal: bool = False) -> None:
        self.ordinal = ordinal

    def node_color(self, node: Node, theme: Theme) -> str:
        if self.ordinal:
            palette = FLOW_PALETTES[node.type]
            color = _as_hex(palette[_stable_index(node.id.normalized, len(palette))])
        else:
            color = node.type.base_color
        if theme is Theme.LIGHT:
            color = adjust_brightness(color, self.LIGHT_SHIFT)
        return color

    def recolor(self, nodes: Iterable[Node], theme: Theme | str) -> None:
        """Rewrite ``color`` of every node in place."""
        theme = Theme.from_name(theme)
        for node in nodes:
            node.color = self.node_color(node, theme)


def edge_color(theme: Theme | str) -> str:
    return Theme.from_name(theme).border


def label_color(node: Node | None, theme: Theme | str) -> str:
    """
    Color of a node's label.

    Labels drawn over a node fill use the fill's contrast color; in the flow
    diagram the label sits on the background instead (pass ``node=None``).
    """
    if node is None:
        return Theme.from_name(theme).text
    return contrast_color(node.color)
