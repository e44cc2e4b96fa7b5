"""
One interactive graph view: query -> snapshot -> filters -> layout -> plan.

:class:`GraphView` owns everything with a lifetime longer than one render:
the current snapshot, the :class:`InteractionController`, the theme and the
last good render plan.  Views are plain objects; the dashboard keeps one per
tab.

Query results arrive asynchronously.  Each :meth:`GraphView.load` takes a new
generation number and its result is only applied if no later load started in
the meantime, so a slow query can never overwrite a newer one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import plotly.graph_objects as go

from spendgraph.config import DEFAULT_THEME, SELECTION_STROKE_WIDTH
from spendgraph.controls import ViewControls
from spendgraph.data.loader import DuckDBQueryRunner
from spendgraph.formatting import InfoPanel, edge_panel, node_panel
from spendgraph.graph.builder import build_snapshot
from spendgraph.graph.filters import apply_filters
from spendgraph.graph.keys import EntityKey
from spendgraph.graph.model import FlowRow, FlowSchema, GraphSnapshot
from spendgraph.interaction.controller import FocusKind, InteractionController
from spendgraph.layout.base import LayoutAdapter, LayoutUnavailableError, RenderPlan
from spendgraph.theme import SELECTION_GOLD, Theme, ThemeAdapter, edge_color

logger = logging.getLogger(__name__)

# Controls that change which nodes/edges exist.
_FILTER_FIELDS = {"min_value", "entity_types", "density_mode", "top_expenses_mode"}
# Controls that only change the layout or labels.
_LAYOUT_FIELDS = {"show_labels", "show_edge_amounts", "force_strength"}


@dataclass(frozen=True)
class RenderResult:
    """A render plan with highlight opacities applied, or the reason there is none."""

    plan: RenderPlan
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GraphView:
    """
    Parameters
    ----------
    adapter : LayoutAdapter
        Flow or network layout adapter.
    schema : FlowSchema
        How query rows map to entity types.
    runner : DuckDBQueryRunner, optional
        Query collaborator; anything with an awaitable ``run(sql)`` works.
    theme : Theme or str
    controls : ViewControls, optional
    """

    def __init__(
        self,
        adapter: LayoutAdapter,
        schema: FlowSchema,
        runner: DuckDBQueryRunner | None = None,
        theme: Theme | str = DEFAULT_THEME,
        controls: ViewControls | None = None,
    ) -> None:
        self.adapter = adapter
        self.schema = schema
        self.runner = runner
        self.theme = Theme.from_name(theme)
        self.theme_adapter = ThemeAdapter(ordinal=adapter.kind == "flow")
        self.controls = controls or ViewControls()
        self.controller = InteractionController()
        if hasattr(adapter, "bind"):
            adapter.bind(self.controller)

        self._source = GraphSnapshot.empty(schema)
        self.snapshot = self._source
        self._generation = 0
        self._plan: RenderPlan | None = None
        self._last_good: RenderPlan | None = None
        self._error: str | None = None
        self._selection: str | None = None

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    async def load(self, sql: str) -> bool:
        """
        Run *sql* and replace the snapshot with its result.

        Returns ``False`` when the result was discarded because a newer load
        started while this one was running, whether it succeeded or failed.
        Errors of the current load propagate and leave the snapshot in place.
        """
        if self.runner is None:
            raise RuntimeError("GraphView has no query runner")

        self._generation += 1
        generation = self._generation
        try:
            result = await self.runner.run(sql)
        except Exception:
            if generation == self._generation:
                raise
            logger.debug(
                "Discarding stale query failure (generation %d, current %d)",
                generation,
                self._generation,
                exc_info=True,
            )
            return False

        if generation != self._generation:
            logger.debug(
                "Discarding stale query result (generation %d, current %d)",
                generation,
                self._generation,
            )
            return False

        self.set_rows(result.flow_rows())
        return True

    def set_rows(self, rows: Iterable[FlowRow | Mapping[str, Any]]) -> GraphSnapshot:
        """Build a new snapshot from *rows* and make it current."""
        self._source = build_snapshot(rows, self.schema)
        if self._source.skipped_rows:
            logger.info("Skipped %d rows without source or target", self._source.skipped_rows)
        self._refresh()
        return self.snapshot

    def _refresh(self) -> None:
        snapshot = apply_filters(self._source, self.controls)
        self.theme_adapter.recolor(snapshot.nodes.values(), self.theme)
        self.snapshot = snapshot
        self.controller.attach(snapshot)
        self._selection = None
        if self.controls.search:
            self.controller.search(self.controls.search)
        self._invalidate()

    def _invalidate(self) -> None:
        self._plan = None
        self._error = None

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def update_controls(self, **changes) -> ViewControls:
        previous = self.controls
        self.controls = previous.with_changes(**changes)
        changed = {
            name for name in changes if getattr(previous, name) != getattr(self.controls, name)
        }

        if changed & _FILTER_FIELDS:
            # _refresh re-applies the search on the new snapshot
            self._refresh()
            return self.controls
        if changed & _LAYOUT_FIELDS:
            self._invalidate()
        if "search" in changed:
            self.controller.search(self.controls.search)
        return self.controls

    def search(self, query: str) -> None:
        """Debounced search box callback."""
        self.update_controls(search=query)

    def set_theme(self, theme: Theme | str) -> None:
        """Recolor in place; geometry and interaction state are kept."""
        self.theme = Theme.from_name(theme)
        self.theme_adapter.recolor(self.snapshot.nodes.values(), self.theme)
        if self._plan is not None and not self._plan.placeholder:
            self._plan = self._plan.with_colors(
                self.snapshot.nodes,
                edge_color(self.theme),
                self.theme,
                self.adapter.label_colors(self.snapshot, self.theme),
            )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self) -> RenderResult:
        """
        Current plan with highlight opacities applied.

        A layout failure is reported once in :attr:`RenderResult.error`; the
        last good plan (or an empty placeholder) is returned in its place
        until the snapshot or the controls change.
        """
        if self._plan is None and self._error is None:
            try:
                self._plan = self.adapter.plan(self.snapshot, self.controls, self.theme)
                self._last_good = self._plan
            except LayoutUnavailableError as exc:
                logger.warning("Visualization unavailable: %s", exc)
                self._error = str(exc)

        if self._error is not None:
            fallback = self._last_good or RenderPlan.empty(
                self.adapter.kind, self.adapter.width, self.adapter.height, self.theme
            )
            return RenderResult(self._highlight(fallback), self._error)

        return RenderResult(self._highlight(self._plan))

    def _highlight(self, plan: RenderPlan) -> RenderPlan:
        focus = self.controller.focus
        selected = focus.target if focus.kind is FocusKind.NODE else None
        return plan.with_partition(self.controller.partition()).with_selection(
            selected, SELECTION_GOLD, SELECTION_STROKE_WIDTH
        )

    def figure(self) -> go.Figure:
        return self.adapter.figure(self.render().plan)

    # ------------------------------------------------------------------
    # Interaction helpers
    # ------------------------------------------------------------------

    def find(self, slug: str) -> EntityKey | None:
        for key in self.snapshot.nodes:
            if key.slug == slug:
                return key
        return None

    def focus_slug(self, slug: str | None) -> None:
        """Focus the node with *slug*, or clear the focus for ``None``."""
        key = self.find(slug) if slug else None
        if key is None:
            self.controller.close()
        else:
            self.controller.pointer_enter(key)

    def select(self, slug: str | None) -> bool:
        """
        Apply a selection reported by a chart or picker widget.

        Widgets report their current selection on every rerun, so a repeated
        report is ignored; otherwise it would undo an explicit close.  A
        selection that becomes empty clears the focus.  Returns whether the
        focus was touched.
        """
        if slug == self._selection:
            return False
        self._selection = slug
        self.focus_slug(slug)
        return True

    def info_panel(self) -> InfoPanel | None:
        focus = self.controller.focus
        if focus.kind is FocusKind.NODE:
            return node_panel(self.snapshot.nodes[focus.target], self.snapshot.stats_for(focus.target))
        if focus.kind is FocusKind.EDGE:
            return edge_panel(self.snapshot.edge(*focus.target), self.snapshot.nodes)
        return None
