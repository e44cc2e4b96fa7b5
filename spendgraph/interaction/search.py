"""
Free-text search over node labels.

:class:`SearchMatcher` owns the :class:`SearchState` of one view.  Matching is
a case-insensitive substring test against each node's display label; a blank
query matches every node, so clearing the search fully undoes any dimming.

Debouncing is the caller's job (see :mod:`spendgraph.interaction.debounce`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from spendgraph.graph.keys import EntityKey
from spendgraph.graph.model import Node


@dataclass(frozen=True)
class SearchState:
    query: str = ""
    matched_ids: frozenset[EntityKey] = frozenset()

    @property
    def active(self) -> bool:
        return bool(self.query)


def _node_values(nodes: Mapping[EntityKey, Node] | Iterable[Node]) -> Iterable[Node]:
    if isinstance(nodes, Mapping):
        return nodes.values()
    return nodes


def match(query: str, nodes: Mapping[EntityKey, Node] | Iterable[Node]) -> set[EntityKey]:
    """Ids of the nodes whose display label contains *query* (case-insensitive)."""
    term = (query or "").strip().casefold()
    values = _node_values(nodes)
    if not term:
        return {node.id for node in values}
    return {node.id for node in values if term in node.display_label.casefold()}


class SearchMatcher:
    """Keeps the current query and its matched ids for one graph view."""

    def __init__(self) -> None:
        self._state = SearchState()

    @property
    def state(self) -> SearchState:
        return self._state

    def update(self, query: str, nodes: Mapping[EntityKey, Node] | Iterable[Node]) -> SearchState:
        query = (query or "").strip()
        self._state = SearchState(query=query, matched_ids=frozenset(match(query, nodes)))
        return self._state

    def reset(self, nodes: Mapping[EntityKey, Node] | Iterable[Node]) -> SearchState:
        return self.update("", nodes)

    def is_match(self, key: EntityKey) -> bool:
        return not self._state.active or key in self._state.matched_ids
