"""Connections and the registry of named in-memory databases.

Databases are addressed by URL, ``factdb:mem://<name>`` (the ``factdb:``
prefix is optional), and live for the lifetime of the process.

Usage:
    import factdb

    factdb.create_database("factdb:mem://tutorial")
    conn = factdb.connect("factdb:mem://tutorial")
    conn.transact([{"user/email": "sally@x.com"}])
    factdb.q("[:find ?e :where [?e :user/email]]", conn.db())
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Sequence

from factdb.application.store import Database, EntityStore
from factdb.domain.entities import TxReport
from factdb.infrastructure.logging import get_logger
from factdb.infrastructure.metrics import MetricsRegistry
from factdb.ports.inbound.fact_store import DatabaseNotFound
from factdb.ports.outbound.transaction_log import TransactionLog


logger = get_logger(__name__)

_URL_PATTERN = re.compile(r"^(?:factdb:)?mem://(?P<name>[A-Za-z0-9_.\-]+)$")

_databases: dict[str, EntityStore] = {}
_metrics: MetricsRegistry | None = None


def parse_url(url: str) -> str:
    """Return the database name of a ``factdb:mem://<name>`` URL.

    Raises:
        ValueError: If the URL is not a supported database URL
    """
    match = _URL_PATTERN.match(url.strip()) if isinstance(url, str) else None
    if match is None:
        raise ValueError(f"Unsupported database URL {url!r}, expected factdb:mem://<name>")
    return match.group("name")


def use_metrics(metrics: MetricsRegistry | None) -> None:
    """Set the metrics registry used by databases created from now on."""
    global _metrics
    _metrics = metrics


def create_database(url: str) -> bool:
    """Create an empty database. Returns False if it already exists."""
    name = parse_url(url)
    if name in _databases:
        return False
    _databases[name] = EntityStore(name, metrics=_metrics)
    logger.info("database_created", database=name)
    return True


def delete_database(url: str) -> bool:
    """Delete a database. Returns False if it did not exist."""
    name = parse_url(url)
    if _databases.pop(name, None) is None:
        return False
    logger.info("database_deleted", database=name)
    return True


def list_databases() -> list[str]:
    return sorted(_databases)


def reset_databases() -> None:
    """Drop every database in the registry."""
    _databases.clear()


def connect(url: str, create: bool = False) -> Connection:
    """Connect to a database.

    Args:
        url: Database URL
        create: Create the database if it does not exist

    Raises:
        DatabaseNotFound: If the database does not exist and ``create`` is False
    """
    name = parse_url(url)
    if create:
        create_database(url)
    store = _databases.get(name)
    if store is None:
        raise DatabaseNotFound(f"No database named {name!r}, create it with create_database")
    return Connection(store)


class Connection:
    """Handle used to write to a database and obtain database values."""

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    @property
    def name(self) -> str:
        return self._store.name

    @property
    def url(self) -> str:
        return f"factdb:mem://{self._store.name}"

    @property
    def store(self) -> EntityStore:
        return self._store

    def transact(self, tx_data: Sequence[Any] | str) -> TxReport:
        """Write a batch of entity maps and list forms, or their EDN text."""
        return self._store.transact(tx_data)

    def declare_attributes(self, records: Sequence[Mapping[str, Any]] | str) -> TxReport:
        """Register attribute declarations."""
        return self._store.declare_attributes(records)

    def db(self) -> Database:
        """Return the current database value."""
        return self._store.db()

    def log(self) -> TransactionLog:
        """Return the transaction log."""
        return self._store.log

    def __repr__(self) -> str:
        return f"Connection({self.url!r})"


def q(query: Any, db: Database, *inputs: Any) -> Any:
    """Evaluate a datalog query against a database value.

    Example:
        >>> q('[:find ?e :in $ ?email :where [?e :user/email ?email]]', conn.db(), "sally@x.com")
        {(1001,)}
    """
    if not isinstance(db, Database):
        raise TypeError(f"q expects a database value as its second argument, got {db!r}")
    return db.q(query, *inputs)
