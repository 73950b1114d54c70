"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: APIs offered to clients (FactStore) and the errors they raise
- Outbound ports: Dependencies on external systems (TransactionLog)

Adapters implement these ports with concrete functionality.
"""

from factdb.ports.inbound import (
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
from factdb.ports.outbound import TransactionLog

__all__ = [
    # Inbound ports
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
    # Outbound ports
    "TransactionLog",
]
