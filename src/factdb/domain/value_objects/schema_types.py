"""Schema enumerations: value types, cardinality and uniqueness."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from factdb.domain.value_objects.identifiers import Keyword, normalize_ident


class _KeywordEnum(Enum):
    """Enum whose values are keyword names, parsed leniently."""

    @classmethod
    def parse(cls, raw: Any):
        """Parse ``:db.type/string``, ``db.type/string`` or an enum member."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(normalize_ident(raw))
        except ValueError as e:
            allowed = ", ".join(f":{m.value}" for m in cls)
            raise ValueError(f"{raw!r} is not one of {allowed}") from e

    @property
    def keyword(self) -> Keyword:
        return Keyword(self.value)


class ValueType(_KeywordEnum):
    """Types an attribute value may have."""

    STRING = "db.type/string"
    LONG = "db.type/long"
    DOUBLE = "db.type/double"
    BOOLEAN = "db.type/boolean"
    KEYWORD = "db.type/keyword"
    REF = "db.type/ref"
    INSTANT = "db.type/instant"
    UUID = "db.type/uuid"

    def coerce(self, value: Any) -> Any:
        """Return ``value`` in the canonical Python form for this type.

        References are resolved by the transactor, so REF only checks that
        the value is an integer id.

        Raises:
            ValueError: If the value does not belong to this type
        """
        if self is ValueType.STRING:
            if isinstance(value, str) and not isinstance(value, Keyword):
                return str(value)
        elif self is ValueType.LONG or self is ValueType.REF:
            if isinstance(value, int) and not isinstance(value, bool):
                return int(value)
        elif self is ValueType.DOUBLE:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        elif self is ValueType.BOOLEAN:
            if isinstance(value, bool):
                return value
        elif self is ValueType.KEYWORD:
            if isinstance(value, str):
                return Keyword(value)
        elif self is ValueType.INSTANT:
            if isinstance(value, datetime):
                return value
        elif self is ValueType.UUID:
            if isinstance(value, uuid.UUID):
                return value
            if isinstance(value, str):
                try:
                    return uuid.UUID(value)
                except ValueError:
                    pass
        raise ValueError(f"{value!r} is not a valid :{self.value} value")


class Cardinality(_KeywordEnum):
    """Whether an attribute holds one value or a set of values per entity."""

    ONE = "db.cardinality/one"
    MANY = "db.cardinality/many"


class Uniqueness(_KeywordEnum):
    """Uniqueness constraint of an attribute.

    VALUE rejects a second entity asserting the same value. IDENTITY makes a
    tempid carrying an already-held value resolve to the holding entity.
    """

    VALUE = "db.unique/value"
    IDENTITY = "db.unique/identity"
