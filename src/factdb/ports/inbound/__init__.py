"""Inbound ports for the fact database."""

from factdb.ports.inbound.fact_store import (
    DanglingReference,
    DatabaseNotFound,
    DatomConflict,
    FactDBError,
    FactStore,
    InvalidValue,
    ParseError,
    QueryError,
    SchemaConflict,
    SchemaError,
    TransactionError,
    UndeclaredAttribute,
    UniqueConflict,
    UnknownAttribute,
)

__all__ = [
    "FactStore",
    "FactDBError",
    "SchemaError",
    "SchemaConflict",
    "UndeclaredAttribute",
    "UnknownAttribute",
    "TransactionError",
    "InvalidValue",
    "DanglingReference",
    "UniqueConflict",
    "DatomConflict",
    "QueryError",
    "ParseError",
    "DatabaseNotFound",
]
