"""
Hover focus, highlight partition and event dispatch for one graph view.

The controller is a small state machine with two states, ``IDLE`` and
``FOCUSED(target)``, where the target is a node or a consolidated edge.  A
search overlay (:class:`~spendgraph.interaction.search.SearchMatcher`) is
composed on top: an element is drawn at full opacity only when it is both
focus-emphasized and search-matched.

Events
------
Listeners subscribe by name:

* ``"focus_changed"`` -- ``callback(focus, detail)`` where *detail* is the
  :class:`NodeStats` of a focused node or the focused :class:`ConsolidatedEdge`
* ``"focus_cleared"`` -- ``callback()``
* ``"highlight"``     -- ``callback(command)`` with a :class:`HighlightCommand`
* ``"gesture"``       -- ``callback(name, payload)`` for drag/zoom forwarding

A listener that raises is logged and skipped; the remaining listeners still
run and the focus state is left consistent.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Union

from spendgraph.config import DIM_OPACITY, FULL_OPACITY
from spendgraph.graph.keys import EntityKey
from spendgraph.graph.model import ConsolidatedEdge, GraphSnapshot, Node, RawEdge
from spendgraph.interaction.search import SearchMatcher, SearchState

logger = logging.getLogger(__name__)

EdgeKey = tuple[EntityKey, EntityKey]
Element = Union[EntityKey, Node, ConsolidatedEdge, RawEdge, EdgeKey]

FOCUS_CHANGED = "focus_changed"
FOCUS_CLEARED = "focus_cleared"
HIGHLIGHT = "highlight"
GESTURE = "gesture"
EVENTS = (FOCUS_CHANGED, FOCUS_CLEARED, HIGHLIGHT, GESTURE)


class FocusKind(Enum):
    NONE = "none"
    NODE = "node"
    EDGE = "edge"


@dataclass(frozen=True)
class FocusState:
    kind: FocusKind = FocusKind.NONE
    target: EntityKey | EdgeKey | None = None

    @classmethod
    def idle(cls) -> "FocusState":
        return cls()

    @classmethod
    def on_node(cls, key: EntityKey) -> "FocusState":
        return cls(FocusKind.NODE, key)

    @classmethod
    def on_edge(cls, source_id: EntityKey, target_id: EntityKey) -> "FocusState":
        return cls(FocusKind.EDGE, (source_id, target_id))

    @property
    def is_idle(self) -> bool:
        return self.kind is FocusKind.NONE


@dataclass(frozen=True)
class OpacityPartition:
    """Per-element opacity; elements not listed are drawn at full opacity."""

    node_opacity: Mapping[EntityKey, float]
    edge_opacity: Mapping[EdgeKey, float]

    def node(self, key: EntityKey) -> float:
        return self.node_opacity.get(key, FULL_OPACITY)

    def edge(self, key: EdgeKey) -> float:
        return self.edge_opacity.get(key, FULL_OPACITY)

    @property
    def emphasized_nodes(self) -> frozenset[EntityKey]:
        return frozenset(k for k, v in self.node_opacity.items() if v == FULL_OPACITY)

    @property
    def emphasized_edges(self) -> frozenset[EdgeKey]:
        return frozenset(k for k, v in self.edge_opacity.items() if v == FULL_OPACITY)

    @property
    def is_uniform(self) -> bool:
        return all(v == FULL_OPACITY for v in self.node_opacity.values()) and all(
            v == FULL_OPACITY for v in self.edge_opacity.values()
        )


@dataclass(frozen=True)
class HighlightCommand:
    focus: FocusState
    search: SearchState
    partition: OpacityPartition


class InteractionController:
    """
    Owns the :class:`FocusState` and :class:`SearchState` of one view.

    Parameters
    ----------
    snapshot : GraphSnapshot, optional
        Graph the pointer events refer to.  Replace it with :meth:`attach`.
    full_opacity, dim_opacity : float
        Opacity of emphasized and de-emphasized elements.
    """

    def __init__(
        self,
        snapshot: GraphSnapshot | None = None,
        full_opacity: float = FULL_OPACITY,
        dim_opacity: float = DIM_OPACITY,
    ) -> None:
        self._snapshot = snapshot if snapshot is not None else GraphSnapshot.empty()
        self._full = full_opacity
        self._dim = dim_opacity
        self._focus = FocusState.idle()
        self._search = SearchMatcher()
        self._search.reset(self._snapshot.nodes)
        self._listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._command = self._build_command()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> GraphSnapshot:
        return self._snapshot

    @property
    def focus(self) -> FocusState:
        return self._focus

    @property
    def search_state(self) -> SearchState:
        return self._search.state

    @property
    def state(self) -> str:
        return "IDLE" if self._focus.is_idle else "FOCUSED"

    @property
    def command(self) -> HighlightCommand:
        """The most recent highlight command."""
        return self._command

    def partition(self) -> OpacityPartition:
        return self._command.partition

    def attach(self, snapshot: GraphSnapshot) -> None:
        """
        Switch to a new snapshot.

        Focus and search refer to elements of the old graph, so both are
        reset.  Listeners get ``focus_cleared`` if something was focused.
        """
        was_focused = not self._focus.is_idle
        self._snapshot = snapshot
        self._focus = FocusState.idle()
        self._search.reset(snapshot.nodes)
        self._command = self._build_command()
        if was_focused:
            self._emit(FOCUS_CLEARED)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, event: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register *callback* for *event*; returns a function that unsubscribes."""
        if event not in EVENTS:
            raise ValueError(f"Unknown interaction event: {event!r}")
        self._listeners[event].append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return unsubscribe

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                logger.exception("Listener %r failed on %s", callback, event)

    # ------------------------------------------------------------------
    # Pointer events
    # ------------------------------------------------------------------

    def pointer_enter(self, element: Element) -> None:
        focus = self._focus_for(element)
        if focus is None or focus == self._focus:
            return

        self._focus = focus
        self._command = self._build_command()
        self._emit(FOCUS_CHANGED, focus, self._detail(focus))
        self._emit(HIGHLIGHT, self._command)

    def pointer_move(self, element: Element) -> None:
        focus = self._focus_for(element)
        if focus is not None and focus == self._focus:
            self._emit(HIGHLIGHT, self._command)

    def pointer_leave(self, element: Element) -> None:
        focus = self._focus_for(element)
        if focus is None or focus != self._focus:
            return
        self._clear_focus()

    def close(self) -> None:
        """Info panel close button: clear the focus if there is one."""
        if not self._focus.is_idle:
            self._clear_focus()

    def gesture(self, name: str, **payload: Any) -> None:
        """Forward a drag or zoom gesture to ``gesture`` listeners."""
        self._emit(GESTURE, name, payload)

    def _clear_focus(self) -> None:
        self._focus = FocusState.idle()
        self._command = self._build_command()
        self._emit(FOCUS_CLEARED)
        self._emit(HIGHLIGHT, self._command)

    # ------------------------------------------------------------------
    # Search overlay
    # ------------------------------------------------------------------

    def search(self, query: str) -> SearchState:
        """Apply a (debounced) search query; a blank query clears the overlay."""
        state = self._search.update(query, self._snapshot.nodes)
        self._command = self._build_command()
        self._emit(HIGHLIGHT, self._command)
        return state

    def clear_search(self) -> SearchState:
        return self.search("")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _focus_for(self, element: Element) -> FocusState | None:
        if isinstance(element, Node):
            element = element.id
        elif isinstance(element, (ConsolidatedEdge, RawEdge)):
            element = element.key

        if isinstance(element, EntityKey):
            if element not in self._snapshot.nodes:
                logger.debug("Ignoring pointer event for unknown node %s", element)
                return None
            return FocusState.on_node(element)

        if isinstance(element, tuple) and len(element) == 2:
            if not self._snapshot.has_edge(*element):
                logger.debug("Ignoring pointer event for unknown edge %s", element)
                return None
            return FocusState.on_edge(*element)

        raise TypeError(f"Unsupported interaction element: {element!r}")

    def _detail(self, focus: FocusState):
        if focus.kind is FocusKind.NODE:
            return self._snapshot.stats_for(focus.target)
        return self._snapshot.edge(*focus.target)

    def _focus_sets(self) -> tuple[set[EntityKey], set[EdgeKey]]:
        snapshot = self._snapshot
        if self._focus.kind is FocusKind.NODE:
            key = self._focus.target
            nodes = set(snapshot.stats_for(key).connections) | {key}
            edges = {edge.key for edge in snapshot.incident_edges(key)}
            return nodes, edges
        if self._focus.kind is FocusKind.EDGE:
            source_id, target_id = self._focus.target
            return {source_id, target_id}, {self._focus.target}
        return set(snapshot.nodes), {edge.key for edge in snapshot.edges}

    def _build_command(self) -> HighlightCommand:
        focus_nodes, focus_edges = self._focus_sets()
        is_match = self._search.is_match

        node_opacity = {
            key: self._full if key in focus_nodes and is_match(key) else self._dim
            for key in self._snapshot.nodes
        }
        edge_opacity = {
            edge.key: (
                self._full
                if edge.key in focus_edges and (is_match(edge.source_id) or is_match(edge.target_id))
                else self._dim
            )
            for edge in self._snapshot.edges
        }
        return HighlightCommand(
            focus=self._focus,
            search=self._search.state,
            partition=OpacityPartition(
                MappingProxyType(node_opacity), MappingProxyType(edge_opacity)
            ),
        )
