"""Application layer - orchestrates domain services for fact database operations.

This module provides the EntityStore that coordinates schema declaration,
transactions and queries, the Database read facade, and the connection
registry of named databases.
"""

from factdb.application.connection import (
    Connection,
    connect,
    create_database,
    delete_database,
    list_databases,
    parse_url,
    q,
    reset_databases,
    use_metrics,
)
from factdb.application.query_executor import QueryExecutor
from factdb.application.store import Database, EntityStore

__all__ = [
    "Connection",
    "Database",
    "EntityStore",
    "QueryExecutor",
    "connect",
    "create_database",
    "delete_database",
    "list_databases",
    "parse_url",
    "q",
    "reset_databases",
    "use_metrics",
]
