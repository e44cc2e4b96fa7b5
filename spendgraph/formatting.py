"""pt-BR number formatting and info panel content."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from spendgraph.graph.keys import EntityKey
from spendgraph.graph.model import ConsolidatedEdge, Node, NodeStats

_PT_BR = str.maketrans({",": ".", ".": ","})


def _pt_br(value: float, decimals: int) -> str:
    return f"{value:,.{decimals}f}".translate(_PT_BR)


def format_currency(value: float | None, abbreviated: bool = False) -> str:
    """
    Format *value* as Brazilian reais, e.g. ``R$ 1.234,56``.

    With ``abbreviated=True`` values from one thousand up are shortened to
    ``R$ 1,5K`` / ``R$ 12K`` / ``R$ 3,4M``.
    """
    value = float(value or 0.0)
    sign = "-" if value < 0 else ""
    magnitude = abs(value)

    if abbreviated:
        if magnitude >= 1_000_000:
            millions = magnitude / 1_000_000
            return f"{sign}R$ {_pt_br(millions, 0 if millions >= 10 else 1)}M"
        if magnitude >= 10_000:
            return f"{sign}R$ {_pt_br(magnitude / 1000, 0)}K"
        if magnitude >= 1000:
            return f"{sign}R$ {_pt_br(magnitude / 1000, 1)}K"

    return f"{sign}R$ {_pt_br(magnitude, 2)}"


def format_number(value: float | int | None) -> str:
    """Group thousands with dots; up to three decimals, trailing zeros dropped."""
    if value is None:
        return "0"
    if float(value).is_integer():
        return _pt_br(int(value), 0)
    text = _pt_br(float(value), 3).rstrip("0")
    return text.rstrip(",")


def truncate(text: str, limit: int | None, suffix: str = "...") -> str:
    if limit is None or len(text) <= limit:
        return text
    return text[:limit] + suffix


@dataclass(frozen=True)
class InfoPanel:
    """Content of the single hover info panel."""

    title: str
    rows: list[tuple[str, str]] = field(default_factory=list)
    subtitle: str = ""


def node_panel(node: Node, stats: NodeStats) -> InfoPanel:
    return InfoPanel(
        title=f"{node.type.display_name}: {node.display_label}",
        subtitle="Elemento do diagrama",
        rows=[
            ("Valor Total", format_currency(stats.total_value)),
            ("Transações", format_number(stats.total_count)),
            ("Conexões", str(stats.degree)),
        ],
    )


def edge_panel(edge: ConsolidatedEdge, nodes: Mapping[EntityKey, Node]) -> InfoPanel:
    source = nodes[edge.source_id].display_label
    target = nodes[edge.target_id].display_label
    return InfoPanel(
        title=f"Fluxo: {source} → {target}",
        subtitle="Conexão entre elementos",
        rows=[
            ("Valor Total", format_currency(edge.value)),
            ("Transações", format_number(edge.count)),
            ("Valor Médio", format_currency(edge.average_value)),
        ],
    )
