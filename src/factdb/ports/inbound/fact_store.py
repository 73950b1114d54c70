"""Fact store port: the API offered to clients of the database.

This inbound port defines the contract for declaring schema, writing
batches of entity maps and reading them back with datalog, pull and the
raw index API. It also defines the errors raised across that contract.

Key responsibilities:
- Register attribute declarations and reject incompatible redeclarations
- Replace temporary ids with permanent ids consistently across a batch
- Evaluate conjunctive pattern queries over the full fact set
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Iterator, Mapping, Protocol, Sequence

from factdb.domain.entities import Attribute, Datom, TxReport


class FactDBError(Exception):
    """Base class for all fact database errors."""

    pass


class SchemaError(FactDBError):
    """A schema record is malformed."""

    pass


class SchemaConflict(SchemaError):
    """An attribute was redeclared with an incompatible type or cardinality."""

    def __init__(self, attribute: str, message: str) -> None:
        super().__init__(message)
        self.attribute = attribute


class UndeclaredAttribute(FactDBError):
    """An entity map used an attribute that is not in the schema."""

    def __init__(self, attribute: str, message: str | None = None) -> None:
        super().__init__(message or f"Attribute :{attribute} is not declared")
        self.attribute = attribute


class UnknownAttribute(UndeclaredAttribute):
    """A query or pull pattern referenced an attribute that is not in the schema."""

    pass


class TransactionError(FactDBError):
    """A transaction batch was rejected; nothing from it was written."""

    pass


class InvalidValue(TransactionError):
    """A value does not match its attribute's value type."""

    pass


class DanglingReference(TransactionError):
    """A reference does not resolve to an existing entity."""

    pass


class UniqueConflict(TransactionError):
    """A unique value is already held by another entity."""

    pass


class DatomConflict(TransactionError):
    """A batch asserts two values for one cardinality-one attribute of one entity."""

    pass


class QueryError(FactDBError):
    """A query is malformed or cannot be evaluated."""

    pass


class ParseError(FactDBError):
    """Query or transaction text could not be read."""

    pass


class DatabaseNotFound(FactDBError):
    """No database exists under the requested URL."""

    pass


class FactStore(Protocol):
    """Protocol for a fact database.

    Implementations hold the schema and the indexed fact set and are
    single-threaded: each call runs to completion before returning.
    """

    @abstractmethod
    def declare_attributes(self, records: Sequence[Mapping[str, Any]]) -> TxReport:
        """Register attribute declarations.

        Args:
            records: Maps with ``db/ident``, ``db/valueType``, ``db/cardinality``
                and optionally ``db/unique`` and ``db/doc``.

        Returns:
            Report of the transaction that installed the attributes.

        Raises:
            SchemaConflict: If an attribute is redeclared incompatibly.
            SchemaError: If a record is malformed.
        """
        ...

    @abstractmethod
    def transact(self, tx_data: Sequence[Any] | str) -> TxReport:
        """Write a batch of entity maps and ``[:db/add e a v]`` assertions.

        Raises:
            UndeclaredAttribute: If a map uses an attribute not in the schema.
            TransactionError: If any fact of the batch is rejected.
        """
        ...

    @abstractmethod
    def q(self, query: Any, *inputs: Any) -> Any:
        """Evaluate a datalog query.

        Raises:
            UnknownAttribute: If a pattern references an undeclared attribute.
            QueryError: If the query is malformed.
        """
        ...

    @abstractmethod
    def pull(self, pattern: Any, eid: Any) -> dict[str, Any] | None:
        """Project an entity into a map of the attributes named by ``pattern``."""
        ...

    @abstractmethod
    def pull_many(self, pattern: Any, eids: Sequence[Any]) -> list[dict[str, Any] | None]:
        """Project several entities, keeping the order of ``eids``."""
        ...

    @abstractmethod
    def entity(self, eid: Any) -> dict[str, Any] | None:
        """Return the map view of every fact held by an entity."""
        ...

    @abstractmethod
    def datoms(self, index: str, *components: Any) -> Iterator[Datom]:
        """Iterate datoms of an index, optionally restricted by leading components."""
        ...

    @abstractmethod
    def attribute(self, ident: str) -> Attribute:
        """Return the declaration of an attribute."""
        ...
