"""
Typed entity identifiers for the entity-flow graph.

Every graph node is identified by an :class:`EntityKey`: the pair of an
:class:`EntityType` and a raw label as it came out of the query.  Two keys are
equal when their types match and their labels match after normalization
(surrounding whitespace stripped, inner whitespace collapsed, case-folded), so
``"Saúde "`` and ``"SAÚDE"`` of the same type map to the same node while the
original spelling is kept for display.

The type is part of the identity: a supplier and a category that happen to
share a display string are distinct nodes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_WHITESPACE = re.compile(r"\s+")


class EntityType(Enum):
    """
    Closed set of entity kinds found in the expenses dataset.

    Each member carries its own presentation policy so renderers never branch
    on type strings:

    * ``display_name`` -- pt-BR name shown in info panels
    * ``tier``         -- default column in the three-level flow layout
    * ``label_limit``  -- network label truncation (``None`` = no limit)
    * ``base_color``   -- entity color before theme adjustment
    """

    PARTY = ("party", "Partido", 0, None, "#2E86AB")
    CATEGORY = ("category", "Categoria", 1, None, "#A23B72")
    SUPPLIER = ("supplier", "Fornecedor", 2, 20, "#EF4444")
    DEPUTY = ("deputy", "Deputado", 0, 15, "#3B82F6")

    def __init__(
        self,
        slug: str,
        display_name: str,
        tier: int,
        label_limit: int | None,
        base_color: str,
    ) -> None:
        self.slug = slug
        self.display_name = display_name
        self.tier = tier
        self.label_limit = label_limit
        self.base_color = base_color

    @classmethod
    def from_slug(cls, slug: str) -> "EntityType":
        for member in cls:
            if member.slug == slug:
                return member
        raise ValueError(f"Unknown entity type: {slug!r}")


def normalize_label(raw_label: str) -> str:
    """Matching form of a label: stripped, whitespace collapsed, case-folded."""
    return _WHITESPACE.sub(" ", raw_label.strip()).casefold()


def is_blank(raw_label: object) -> bool:
    """True for ``None``, non-strings that stringify empty, and whitespace."""
    if raw_label is None:
        return True
    return not str(raw_label).strip()


@dataclass(frozen=True)
class EntityKey:
    """
    Immutable identifier of one real-world entity.

    Equality and hashing use ``(type, normalized)`` only; ``raw_label`` is
    carried along for display but ignored when comparing keys.
    """

    type: EntityType
    raw_label: str = field(compare=False)
    normalized: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized", normalize_label(self.raw_label))

    @property
    def slug(self) -> str:
        """Deterministic string id, e.g. ``"party:pt"``; used as layout id."""
        return f"{self.type.slug}:{self.normalized}"

    def __str__(self) -> str:
        return self.slug


def key_for(entity_type: EntityType, raw_label: str) -> EntityKey:
    """Return the key for ``raw_label`` of the given type (pure function)."""
    return EntityKey(entity_type, str(raw_label))


class EntityKeyRegistry:
    """
    Canonicalizes keys for one graph build.

    :func:`key_for` alone is enough for equality; the registry additionally
    hands back the *first* key instance seen for an entity so that the display
    label of a node is the first spelling encountered in the rows.
    """

    def __init__(self) -> None:
        self._keys: dict[EntityKey, EntityKey] = {}

    def key_for(self, entity_type: EntityType, raw_label: str) -> EntityKey:
        candidate = key_for(entity_type, str(raw_label).strip())
        return self._keys.setdefault(candidate, candidate)

    def display_label(self, key: EntityKey) -> str:
        return self._keys.get(key, key).raw_label

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self):
        return iter(self._keys.values())
