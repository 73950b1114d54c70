"""Pull projection: expand an entity id into a map of named attributes.

A pull pattern is a list of:
    - attribute names              ``user/email``
    - the wildcard                 ``*``       (every attribute, plus db/id)
    - the identifier               ``db/id``
    - ref attribute to subpattern  ``{"user/friends": ["user/email"]}``

Cardinality-many values come back as lists in assertion order. A reference
without a subpattern comes back as ``{"db/id": id}``. Attributes the entity
does not hold are left out of the map.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from factdb.domain.entities import DB_ID, Attribute
from factdb.domain.services.fact_index import FactIndex
from factdb.domain.services.schema_registry import SchemaRegistry
from factdb.domain.value_objects import EntityId, normalize_ident
from factdb.ports.inbound.fact_store import QueryError, UnknownAttribute


WILDCARD = "*"


@dataclass
class PullAttr:
    """One attribute selected by a pull pattern."""

    name: str
    subpattern: PullPattern | None = None


@dataclass
class PullPattern:
    """A parsed pull pattern."""

    attrs: list[PullAttr] = field(default_factory=list)
    wildcard: bool = False
    include_id: bool = False

    def __str__(self) -> str:
        parts: list[str] = []
        if self.wildcard:
            parts.append(WILDCARD)
        if self.include_id:
            parts.append(f":{DB_ID}")
        for attr in self.attrs:
            if attr.subpattern is None:
                parts.append(f":{attr.name}")
            else:
                parts.append(f"{{:{attr.name} {attr.subpattern}}}")
        return f"[{' '.join(parts)}]"


def parse_pull_pattern(spec: Any) -> PullPattern:
    """Parse a pull pattern from data.

    Raises:
        QueryError: If the pattern is malformed.
    """
    if isinstance(spec, str):
        if str(spec) == WILDCARD:
            return PullPattern(wildcard=True)
        spec = [spec]
    if not isinstance(spec, Sequence):
        raise QueryError(f"Pull pattern must be a list, got {spec!r}")

    pattern = PullPattern()
    for item in spec:
        if isinstance(item, Mapping):
            for key, sub in item.items():
                pattern.attrs.append(PullAttr(_attr_name(key), parse_pull_pattern(sub)))
        elif isinstance(item, str) and str(item) == WILDCARD:
            pattern.wildcard = True
        else:
            name = _attr_name(item)
            if name == DB_ID:
                pattern.include_id = True
            else:
                pattern.attrs.append(PullAttr(name))
    return pattern


def _attr_name(item: Any) -> str:
    try:
        return normalize_ident(item)
    except ValueError as e:
        raise QueryError(f"Invalid pull pattern element {item!r}") from e


class PullProjector:
    """Evaluates pull patterns against the current fact set."""

    def __init__(self, schema: SchemaRegistry, index: FactIndex) -> None:
        self._schema = schema
        self._index = index

    def validate(self, pattern: PullPattern) -> None:
        """Check that every attribute named by ``pattern`` is declared.

        Raises:
            UnknownAttribute: If an attribute is not declared.
            QueryError: If a subpattern is attached to a non-ref attribute.
        """
        for attr in pattern.attrs:
            attribute = self._schema.require(attr.name, UnknownAttribute)
            if attr.subpattern is not None:
                if not attribute.is_ref:
                    raise QueryError(
                        f"Subpattern given for :{attr.name}, which is not a reference"
                    )
                self.validate(attr.subpattern)

    def pull(self, pattern: PullPattern, eid: EntityId) -> dict[str, Any] | None:
        """Project one entity. Returns None if the entity holds no facts."""
        if not self._index.has_entity(eid):
            return None
        return self._project(pattern, eid)

    def _project(self, pattern: PullPattern, eid: EntityId) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if pattern.include_id or pattern.wildcard:
            result[DB_ID] = eid

        held = self._index.entity_attributes(eid)
        if pattern.wildcard:
            for name, values in held.items():
                attribute = self._schema.get(name)
                if attribute is not None:
                    result[name] = self._render(attribute, values, None)

        for attr in pattern.attrs:
            values = held.get(attr.name)
            if not values:
                continue
            attribute = self._schema.require(attr.name, UnknownAttribute)
            result[attr.name] = self._render(attribute, values, attr.subpattern)

        return result

    def _render(
        self,
        attribute: Attribute,
        values: list[Any],
        subpattern: PullPattern | None,
    ) -> Any:
        if attribute.is_ref:
            rendered = [self._render_ref(EntityId(v), subpattern) for v in values]
        else:
            rendered = list(values)
        if attribute.is_many:
            return rendered
        return rendered[0]

    def _render_ref(self, eid: EntityId, subpattern: PullPattern | None) -> dict[str, Any]:
        if subpattern is None:
            return {DB_ID: eid}
        return self._project(subpattern, eid)
