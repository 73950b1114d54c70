"""In-memory covering indexes over the current fact set.

Three indexes hold the same datoms in different orders:

    EAVT: entity -> attribute -> value      (entity maps, pull)
    AEVT: attribute -> entity -> value      (patterns with a bound attribute)
    AVET: attribute -> value -> entity      (lookup refs, uniqueness, bound values)

EAVT and AEVT share their innermost ``value -> Datom`` maps, so a write
touches two structures. Value maps preserve assertion order, which is the
order cardinality-many values are returned in.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Iterator

from factdb.domain.entities import Datom
from factdb.domain.value_objects import EntityId


class IndexName(Enum):
    """Names of the covering indexes."""

    EAVT = "eavt"
    AEVT = "aevt"
    AVET = "avet"

    @classmethod
    def parse(cls, raw: str | IndexName) -> IndexName:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).lstrip(":").lower())
        except ValueError as e:
            raise ValueError(f"Unknown index {raw!r}, expected one of eavt, aevt, avet") from e


def _sorted_values(values: Iterable[Any]) -> list[Any]:
    items = list(values)
    try:
        return sorted(items)
    except TypeError:
        return sorted(items, key=lambda v: (type(v).__name__, repr(v)))


class FactIndex:
    """Indexed set of current datoms."""

    def __init__(self) -> None:
        self._eavt: dict[EntityId, dict[str, dict[Any, Datom]]] = {}
        self._aevt: dict[str, dict[EntityId, dict[Any, Datom]]] = {}
        self._avet: dict[str, dict[Any, dict[EntityId, Datom]]] = {}
        self._datom_count = 0

    def add(self, datom: Datom) -> bool:
        """Add an asserted datom. Returns False if the fact was already present."""
        values = self._eavt.setdefault(datom.e, {}).get(datom.a)
        if values is None:
            values = {}
            self._eavt[datom.e][datom.a] = values
            self._aevt.setdefault(datom.a, {})[datom.e] = values
        if datom.v in values:
            return False
        values[datom.v] = datom
        self._avet.setdefault(datom.a, {}).setdefault(datom.v, {})[datom.e] = datom
        self._datom_count += 1
        return True

    def remove(self, e: EntityId, a: str, v: Any) -> bool:
        """Remove a fact. Returns False if it was not present."""
        attrs = self._eavt.get(e)
        if attrs is None or a not in attrs or v not in attrs[a]:
            return False

        values = attrs[a]
        del values[v]
        if not values:
            del attrs[a]
            del self._aevt[a][e]
            if not self._aevt[a]:
                del self._aevt[a]
        if not attrs:
            del self._eavt[e]

        holders = self._avet[a][v]
        del holders[e]
        if not holders:
            del self._avet[a][v]
            if not self._avet[a]:
                del self._avet[a]

        self._datom_count -= 1
        return True

    def has_entity(self, e: Any) -> bool:
        """Check whether an entity holds at least one fact."""
        return e in self._eavt

    def values(self, e: EntityId, a: str) -> list[Any]:
        """Values of one attribute of one entity, in assertion order."""
        return list(self._eavt.get(e, {}).get(a, {}))

    def entity_attributes(self, e: EntityId) -> dict[str, list[Any]]:
        """Every attribute of an entity with its values."""
        return {a: list(values) for a, values in self._eavt.get(e, {}).items()}

    def holders(self, a: str, v: Any) -> list[EntityId]:
        """Entities holding value ``v`` for attribute ``a``."""
        try:
            return list(self._avet.get(a, {}).get(v, {}))
        except TypeError:
            # unhashable values are never stored
            return []

    def match(
        self,
        e: EntityId | None = None,
        a: str | None = None,
        v: Any = None,
        *,
        v_bound: bool = False,
    ) -> Iterator[Datom]:
        """Iterate datoms matching the bound components.

        ``v`` is only used when ``v_bound`` is set, so that ``None`` and other
        falsy values can be matched explicitly.
        """
        if e is not None:
            attrs = self._eavt.get(e)
            if attrs is None:
                return
            if a is not None:
                values = attrs.get(a, {})
                if v_bound:
                    datom = _safe_get(values, v)
                    if datom is not None:
                        yield datom
                    return
                yield from list(values.values())
                return
            for values in list(attrs.values()):
                if v_bound:
                    datom = _safe_get(values, v)
                    if datom is not None:
                        yield datom
                else:
                    yield from list(values.values())
            return

        if a is not None:
            if v_bound:
                holders = _safe_get(self._avet.get(a, {}), v) or {}
                yield from list(holders.values())
                return
            for values in list(self._aevt.get(a, {}).values()):
                yield from list(values.values())
            return

        for attrs in list(self._eavt.values()):
            for values in list(attrs.values()):
                if v_bound:
                    datom = _safe_get(values, v)
                    if datom is not None:
                        yield datom
                else:
                    yield from list(values.values())

    def datoms(self, index: IndexName | str, *components: Any) -> Iterator[Datom]:
        """Iterate an index in sort order, restricted by leading components.

        Example:
            >>> list(index.datoms("avet", "user/email", "sally@x.com"))
            [#datom[1001 :user/email 'sally@x.com' 1000 true]]
        """
        name = IndexName.parse(index)
        if len(components) > 3:
            raise ValueError("At most three leading components may be given")

        if name is IndexName.EAVT:
            entities = [components[0]] if components else sorted(self._eavt)
            for e in entities:
                attrs = self._eavt.get(e, {})
                names = [components[1]] if len(components) > 1 else sorted(attrs)
                for a in names:
                    yield from self._ordered(attrs.get(a, {}), components[2:])
        elif name is IndexName.AEVT:
            names = [components[0]] if components else sorted(self._aevt)
            for a in names:
                entities = self._aevt.get(a, {})
                ids = [components[1]] if len(components) > 1 else sorted(entities)
                for e in ids:
                    yield from self._ordered(entities.get(e, {}), components[2:])
        else:
            names = [components[0]] if components else sorted(self._avet)
            for a in names:
                by_value = self._avet.get(a, {})
                values = [components[1]] if len(components) > 1 else _sorted_values(by_value)
                for v in values:
                    holders = _safe_get(by_value, v) or {}
                    ids = [components[2]] if len(components) > 2 else sorted(holders)
                    for e in ids:
                        datom = holders.get(e)
                        if datom is not None:
                            yield datom

    @staticmethod
    def _ordered(values: dict[Any, Datom], rest: tuple[Any, ...]) -> Iterator[Datom]:
        if rest:
            datom = _safe_get(values, rest[0])
            if datom is not None:
                yield datom
            return
        for v in _sorted_values(values):
            yield values[v]

    def entity_ids(self) -> list[EntityId]:
        return list(self._eavt)

    @property
    def entity_count(self) -> int:
        return len(self._eavt)

    def __len__(self) -> int:
        return self._datom_count


def _safe_get(mapping: dict[Any, Any], key: Any) -> Any:
    try:
        return mapping.get(key)
    except TypeError:
        return None
