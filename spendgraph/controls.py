"""User-visible controls, delivered to the engine as plain values."""

from __future__ import annotations

from dataclasses import dataclass, replace

from spendgraph.config import DEFAULT_FORCE_STRENGTH, DEFAULT_MIN_VALUE
from spendgraph.graph.keys import EntityType


@dataclass(frozen=True)
class ViewControls:
    """
    Snapshot of every control the engine consumes.

    ``entity_types`` of ``None`` means "all types".  ``force_strength`` is only
    read by the network view.
    """

    min_value: float = DEFAULT_MIN_VALUE
    entity_types: frozenset[EntityType] | None = None
    search: str = ""
    show_labels: bool = False
    show_edge_amounts: bool = False
    force_strength: int = DEFAULT_FORCE_STRENGTH
    density_mode: bool = False
    top_expenses_mode: bool = False

    def with_changes(self, **changes) -> "ViewControls":
        if "entity_types" in changes and changes["entity_types"] is not None:
            changes["entity_types"] = frozenset(changes["entity_types"])
        return replace(self, **changes)

    @property
    def filters_active(self) -> bool:
        return (
            self.min_value > 0
            or self.entity_types is not None
            or self.density_mode
            or self.top_expenses_mode
        )
