"""Schema registry: declared attributes and their validation.

The registry is the only integrity gate of the store: an attribute must be
declared before any entity may hold a value for it. Declarations are checked
in two phases so a transaction can be rejected without side effects:

    1. plan()     - parse records and detect conflicts, no mutation
    2. install()  - register the planned attributes once the batch is accepted

Redeclaration rules:
    - same value type and cardinality: accepted (doc/unique may change)
    - different value type or cardinality: SchemaConflict
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterator, Mapping, Sequence

from factdb.domain.entities import (
    DB_CARDINALITY,
    DB_DOC,
    DB_ID,
    DB_IDENT,
    DB_INSTALL_ATTRIBUTE,
    DB_UNIQUE,
    DB_VALUE_TYPE,
    SYSTEM_ATTRIBUTES,
    Attribute,
)
from factdb.domain.value_objects import (
    Cardinality,
    EntityId,
    Uniqueness,
    ValueType,
    normalize_ident,
)
from factdb.ports.inbound.fact_store import (
    SchemaConflict,
    SchemaError,
    UndeclaredAttribute,
)


_RECORD_KEYS = frozenset(
    {DB_ID, DB_IDENT, DB_VALUE_TYPE, DB_CARDINALITY, DB_UNIQUE, DB_DOC, DB_INSTALL_ATTRIBUTE}
)


def is_schema_record(record: Mapping[str, Any]) -> bool:
    """Check whether an entity map declares an attribute."""
    return any(_safe_ident(key) == DB_VALUE_TYPE for key in record)


def _safe_ident(key: Any) -> str | None:
    try:
        return normalize_ident(key)
    except ValueError:
        return None


@dataclass(frozen=True)
class PlannedAttribute:
    """A parsed declaration and the attribute it redeclares, if any."""

    attribute: Attribute
    existing: Attribute | None
    tempid: Any = None

    @property
    def is_new(self) -> bool:
        return self.existing is None

    @property
    def changed_facts(self) -> dict[str, Any]:
        """System facts that differ from the existing declaration."""
        facts = self.attribute.facts()
        if self.existing is None:
            return facts
        current = self.existing.facts()
        return {k: v for k, v in facts.items() if current.get(k) != v}


class SchemaRegistry:
    """Registry of declared attributes, keyed by name and by entity id."""

    def __init__(self) -> None:
        self._by_ident: dict[str, Attribute] = {}
        self._by_id: dict[EntityId, Attribute] = {}
        for attribute in SYSTEM_ATTRIBUTES:
            self._register(attribute)

    def parse_record(self, record: Mapping[str, Any]) -> Attribute:
        """Parse one schema record into an (unregistered) attribute.

        Raises:
            SchemaError: If the record is malformed.
        """
        fields: dict[str, Any] = {}
        for key, value in record.items():
            ident = _safe_ident(key)
            if ident is None or ident not in _RECORD_KEYS:
                raise SchemaError(f"Unexpected key {key!r} in schema record")
            fields[ident] = value

        if DB_IDENT not in fields:
            raise SchemaError("Schema record is missing :db/ident")
        try:
            ident = normalize_ident(fields[DB_IDENT])
        except ValueError as e:
            raise SchemaError(f"Invalid :db/ident: {e}") from e
        if ident == DB_ID:
            raise SchemaError(":db/id cannot be declared as an attribute")

        if DB_VALUE_TYPE not in fields:
            raise SchemaError(f"Schema record for :{ident} is missing :db/valueType")
        if DB_CARDINALITY not in fields:
            raise SchemaError(f"Schema record for :{ident} is missing :db/cardinality")

        try:
            value_type = ValueType.parse(fields[DB_VALUE_TYPE])
            cardinality = Cardinality.parse(fields[DB_CARDINALITY])
            unique = (
                Uniqueness.parse(fields[DB_UNIQUE])
                if fields.get(DB_UNIQUE) is not None
                else None
            )
        except ValueError as e:
            raise SchemaError(f"Invalid schema record for :{ident}: {e}") from e

        doc = fields.get(DB_DOC)
        if doc is not None and not isinstance(doc, str):
            raise SchemaError(f"Invalid :db/doc for :{ident}: expected a string")

        return Attribute(
            ident=ident,
            value_type=value_type,
            cardinality=cardinality,
            unique=unique,
            doc=doc,
        )

    def plan(self, records: Sequence[Mapping[str, Any]]) -> list[PlannedAttribute]:
        """Parse records and check them against the registry without mutating it.

        Raises:
            SchemaError: If a record is malformed.
            SchemaConflict: If an attribute is redeclared incompatibly, either
                against the registry or within ``records``.
        """
        planned: dict[str, PlannedAttribute] = {}
        for record in records:
            attribute = self.parse_record(record)
            tempid = next(
                (v for k, v in record.items() if _safe_ident(k) == DB_ID), None
            )

            existing = self._by_ident.get(attribute.ident)
            if existing is not None:
                if any(a.ident == existing.ident for a in SYSTEM_ATTRIBUTES):
                    raise SchemaConflict(
                        attribute.ident,
                        f"System attribute :{attribute.ident} cannot be redeclared",
                    )
                if not existing.is_compatible_with(attribute):
                    raise SchemaConflict(
                        attribute.ident,
                        f"Attribute :{attribute.ident} is declared as "
                        f":{existing.value_type.value} :{existing.cardinality.value}, "
                        f"cannot redeclare as :{attribute.value_type.value} "
                        f":{attribute.cardinality.value}",
                    )
                attribute = replace(
                    attribute,
                    id=existing.id,
                    unique=attribute.unique or existing.unique,
                    doc=attribute.doc if attribute.doc is not None else existing.doc,
                )

            previous = planned.get(attribute.ident)
            if previous is not None and previous.attribute != attribute:
                raise SchemaConflict(
                    attribute.ident,
                    f"Attribute :{attribute.ident} is declared twice with different definitions",
                )

            planned[attribute.ident] = PlannedAttribute(attribute, existing, tempid)

        return list(planned.values())

    def install(self, attribute: Attribute) -> Attribute:
        """Register a planned attribute. New attributes must carry their entity id."""
        if not attribute.id:
            raise ValueError(f"Attribute :{attribute.ident} has no entity id")
        self._register(attribute)
        return attribute

    def _register(self, attribute: Attribute) -> None:
        self._by_ident[attribute.ident] = attribute
        self._by_id[attribute.id] = attribute

    def get(self, ident: str) -> Attribute | None:
        """Look up an attribute by name, or None if undeclared."""
        try:
            return self._by_ident.get(normalize_ident(ident))
        except ValueError:
            return None

    def require(
        self,
        ident: str,
        error: type[UndeclaredAttribute] = UndeclaredAttribute,
    ) -> Attribute:
        """Look up an attribute by name.

        Args:
            ident: Attribute name
            error: Error class raised when the attribute is not declared

        Raises:
            UndeclaredAttribute: Or the given subclass, if the attribute is not declared.
        """
        attribute = self.get(ident)
        if attribute is None:
            raise error(str(ident).lstrip(":"))
        return attribute

    def by_id(self, eid: EntityId) -> Attribute | None:
        """Look up an attribute by its entity id."""
        return self._by_id.get(eid)

    def __contains__(self, ident: object) -> bool:
        return isinstance(ident, str) and self.get(ident) is not None

    def __iter__(self) -> Iterator[Attribute]:
        return iter(list(self._by_ident.values()))

    def __len__(self) -> int:
        return len(self._by_ident)

    @property
    def user_attributes(self) -> list[Attribute]:
        """Attributes declared by users, in declaration order."""
        system = {a.ident for a in SYSTEM_ATTRIBUTES}
        return [a for a in self._by_ident.values() if a.ident not in system]
