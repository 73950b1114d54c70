"""Attribute entity: a declared, typed field of the schema.

Every attribute is itself an entity. Its declaration is stored as facts on
that entity, which is what makes the schema queryable with datalog:

    [:find ?ident :where [?a :db/valueType :db.type/ref] [?a :db/ident ?ident]]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from factdb.domain.value_objects import (
    Cardinality,
    EntityId,
    INVALID_ENTITY_ID,
    Keyword,
    Uniqueness,
    ValueType,
)


# System attribute names
DB_ID = "db/id"
DB_IDENT = "db/ident"
DB_VALUE_TYPE = "db/valueType"
DB_CARDINALITY = "db/cardinality"
DB_UNIQUE = "db/unique"
DB_DOC = "db/doc"
DB_TX_INSTANT = "db/txInstant"
DB_ADD = "db/add"
DB_INSTALL_ATTRIBUTE = "db.install/_attribute"


@dataclass(frozen=True)
class Attribute:
    """A declared attribute.

    Attributes:
        ident: Namespaced attribute name, e.g. ``user/email``
        value_type: Type every value of the attribute must have
        cardinality: One value or a set of values per entity
        unique: Optional uniqueness constraint
        doc: Optional documentation string
        id: Entity id of the attribute itself
    """

    ident: str
    value_type: ValueType
    cardinality: Cardinality = Cardinality.ONE
    unique: Uniqueness | None = None
    doc: str | None = None
    id: EntityId = INVALID_ENTITY_ID

    @property
    def is_ref(self) -> bool:
        return self.value_type is ValueType.REF

    @property
    def is_many(self) -> bool:
        return self.cardinality is Cardinality.MANY

    @property
    def is_unique(self) -> bool:
        return self.unique is not None

    @property
    def is_identity(self) -> bool:
        return self.unique is Uniqueness.IDENTITY

    def is_compatible_with(self, other: Attribute) -> bool:
        """Check whether ``other`` may redeclare this attribute.

        Value type and cardinality are fixed once declared; ``doc`` and
        ``unique`` may change.
        """
        return (
            self.value_type is other.value_type
            and self.cardinality is other.cardinality
        )

    def facts(self) -> dict[str, Any]:
        """Return the system facts describing this attribute."""
        facts: dict[str, Any] = {
            DB_IDENT: Keyword(self.ident),
            DB_VALUE_TYPE: self.value_type.keyword,
            DB_CARDINALITY: self.cardinality.keyword,
        }
        if self.unique is not None:
            facts[DB_UNIQUE] = self.unique.keyword
        if self.doc is not None:
            facts[DB_DOC] = self.doc
        return facts

    def __str__(self) -> str:
        parts = [f":{self.ident}", f":{self.value_type.value}", f":{self.cardinality.value}"]
        if self.unique is not None:
            parts.append(f":{self.unique.value}")
        return f"Attribute({' '.join(parts)})"


SYSTEM_ATTRIBUTES: tuple[Attribute, ...] = (
    Attribute(
        DB_IDENT,
        ValueType.KEYWORD,
        unique=Uniqueness.IDENTITY,
        doc="Attribute used to uniquely name an entity.",
        id=EntityId(1),
    ),
    Attribute(
        DB_VALUE_TYPE,
        ValueType.KEYWORD,
        doc="Type of the values of an attribute.",
        id=EntityId(2),
    ),
    Attribute(
        DB_CARDINALITY,
        ValueType.KEYWORD,
        doc="Whether an attribute holds one value or a set of values.",
        id=EntityId(3),
    ),
    Attribute(
        DB_UNIQUE,
        ValueType.KEYWORD,
        doc="Uniqueness constraint of an attribute.",
        id=EntityId(4),
    ),
    Attribute(
        DB_DOC,
        ValueType.STRING,
        doc="Documentation string for an entity.",
        id=EntityId(5),
    ),
    Attribute(
        DB_TX_INSTANT,
        ValueType.INSTANT,
        doc="Wall-clock time at which a transaction was committed.",
        id=EntityId(6),
    ),
)
