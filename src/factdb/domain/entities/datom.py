"""Datom: the atomic unit of storage.

A datom is one fact ``(e, a, v)`` together with the transaction that wrote
it and whether it was asserted or retracted. An entity's map is a view over
the datoms sharing its id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

from factdb.domain.value_objects import EntityId, TxId


@dataclass(frozen=True, slots=True)
class Datom:
    """A single fact.

    Attributes:
        e: Entity id
        a: Attribute name
        v: Value; reference values are entity ids
        tx: Transaction that wrote the datom
        added: False for the retraction of a replaced cardinality-one value

    Example:
        >>> e, a, v, tx, added = Datom(EntityId(1001), "user/age", 34, TxId(1000))
    """

    e: EntityId
    a: str
    v: Any
    tx: TxId
    added: bool = True

    def __iter__(self) -> Iterator[Any]:
        return iter((self.e, self.a, self.v, self.tx, self.added))

    def __repr__(self) -> str:
        return f"#datom[{self.e} :{self.a} {self.v!r} {self.tx} {str(self.added).lower()}]"
