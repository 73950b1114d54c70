"""Entity store - unified entry point for one database.

This module provides the EntityStore class that orchestrates the schema
registry, the fact index, the transactor, the transaction log and the
datalog executor, and the Database read facade handed out to clients.

Usage:
    from factdb.application import EntityStore

    store = EntityStore("tutorial")
    store.declare_attributes([
        {":db/ident": ":user/email", ":db/valueType": ":db.type/string",
         ":db/cardinality": ":db.cardinality/one", ":db/unique": ":db.unique/identity"},
    ])
    store.transact([{":user/email": "sally@x.com"}])
    store.q("[:find ?e :where [?e :user/email]]")
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Iterator, Mapping, Sequence

from factdb.adapters.inbound.datalog_parser import DatalogParser, Query
from factdb.adapters.inbound.edn_reader import read_string
from factdb.adapters.outbound.memory_log import InMemoryTransactionLog
from factdb.application.query_executor import QueryExecutor
from factdb.domain.entities import DB_IDENT, Attribute, Datom, TxReport
from factdb.domain.services import (
    FactIndex,
    IndexName,
    PullPattern,
    PullProjector,
    SchemaRegistry,
    Transactor,
    is_schema_record,
    parse_pull_pattern,
)
from factdb.domain.value_objects import EntityId, Keyword, is_entity_id, is_lookup_ref
from factdb.infrastructure.config import FactDBConfig, get_config
from factdb.infrastructure.logging import get_logger
from factdb.infrastructure.metrics import MetricsRegistry, get_metrics
from factdb.infrastructure.tracing import trace_span
from factdb.ports.inbound.fact_store import (
    FactDBError,
    FactStore,
    QueryError,
    SchemaError,
    UnknownAttribute,
)
from factdb.ports.outbound.transaction_log import TransactionLog


class EntityStore:
    """One named database: schema, facts and the operations over them.

    The store is single-threaded: every call runs to completion before
    returning, and a rejected transaction leaves no trace.
    """

    def __init__(
        self,
        name: str = "default",
        config: FactDBConfig | None = None,
        metrics: MetricsRegistry | None = None,
        log: TransactionLog | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store and write the system attributes.

        Args:
            name: Database name, used in logs and metric labels
            config: Configuration; the global configuration if None
            metrics: Metrics registry; the global registry if None
            log: Transaction log; an in-memory log if None
            clock: Source of ``db/txInstant`` values
        """
        self._name = name
        self._config = config or get_config()
        self._metrics = metrics or get_metrics()
        self._log: TransactionLog = log if log is not None else InMemoryTransactionLog()
        self._logger = get_logger(__name__, database=name)

        self._schema = SchemaRegistry()
        self._index = FactIndex()
        self._transactor = Transactor(
            self._schema,
            self._index,
            id_start=self._config.store.id_start,
            partition=self._config.store.default_partition,
            clock=clock,
        )
        self._projector = PullProjector(self._schema, self._index)
        self._parser = DatalogParser()
        self._executor = QueryExecutor(
            self._schema,
            self._index,
            max_bindings=self._config.query.max_bindings,
        )

        self._log.append(self._transactor.bootstrap())
        self._update_gauges()

    @property
    def name(self) -> str:
        return self._name

    @property
    def basis_t(self) -> int:
        """Id of the last committed transaction."""
        last = self._log.last()
        return last.basis_t if last else 0

    @property
    def log(self) -> TransactionLog:
        return self._log

    # Writes

    def declare_attributes(self, records: Sequence[Mapping[str, Any]] | str) -> TxReport:
        """Register attribute declarations.

        Raises:
            SchemaError: If an item is not a well-formed schema record.
            SchemaConflict: If an attribute is redeclared incompatibly.
        """
        if isinstance(records, str):
            records = read_string(records)
        if not isinstance(records, (list, tuple)):
            raise SchemaError("Schema must be a list of attribute records")
        for record in records:
            if not isinstance(record, Mapping):
                raise SchemaError(f"Schema record must be a map, got {record!r}")
            if not is_schema_record(record):
                # Reports the missing keys
                self._schema.parse_record(record)

        report = self.transact(records)
        self._logger.info(
            "attributes_declared",
            count=len(records),
            total=len(self._schema.user_attributes),
        )
        return report

    def transact(self, tx_data: Sequence[Any] | str) -> TxReport:
        """Write a batch of entity maps and ``[:db/add e a v]`` assertions.

        Args:
            tx_data: A list of maps and list forms, or its EDN text

        Raises:
            ParseError: If EDN text cannot be read.
            UndeclaredAttribute: If a map uses an attribute not in the schema.
            TransactionError: If any fact of the batch is rejected.
        """
        start = time.perf_counter()
        with trace_span("transact", database=self._name) as span:
            try:
                if isinstance(tx_data, str):
                    tx_data = read_string(tx_data)
                report = self._transactor.transact(tx_data)
            except FactDBError as e:
                self._metrics.transactions_total.labels(status="rejected").inc()
                self._logger.warning(
                    "transaction_rejected",
                    error=type(e).__name__,
                    reason=str(e),
                )
                raise

            self._log.append(report)
            span.set("tx_id", int(report.tx_id))
            span.set("datoms", len(report))

        self._metrics.transactions_total.labels(status="committed").inc()
        self._metrics.datoms_written_total.inc(len(report))
        self._metrics.transaction_latency_seconds.observe(time.perf_counter() - start)
        self._update_gauges()

        self._logger.info(
            "transaction_committed",
            tx_id=report.tx_id,
            datoms=len(report),
            tempids=len(report.tempids),
        )
        return report

    # Reads

    def db(self) -> Database:
        """Return the read facade at the current basis."""
        return Database(self, self._name, self.basis_t)

    def parse_query(self, query: Any) -> Query:
        if isinstance(query, Query):
            return query
        return self._parser.parse(query)

    def q(self, query: Any, *inputs: Any) -> Any:
        """Evaluate a datalog query.

        Args:
            query: EDN text, query data or a parsed ``Query``
            *inputs: Values for the ``:in`` bindings after ``$``

        Raises:
            ParseError: If query text cannot be read.
            UnknownAttribute: If a pattern references an undeclared attribute.
            QueryError: If the query is malformed or evaluation fails.
        """
        start = time.perf_counter()
        with trace_span("query", database=self._name) as span:
            try:
                parsed = self.parse_query(query)
                result = self._executor.execute(parsed, inputs)
            except FactDBError as e:
                self._metrics.queries_total.labels(status="error").inc()
                self._logger.warning("query_failed", error=type(e).__name__, reason=str(e))
                raise
            size = _result_size(result)
            span.set("result_size", size)

        elapsed = time.perf_counter() - start
        self._metrics.queries_total.labels(status="success").inc()
        self._metrics.query_latency_seconds.observe(elapsed)
        self._metrics.query_result_size.observe(size)
        self._logger.debug(
            "query_evaluated",
            query=str(parsed),
            results=size,
            elapsed_ms=round(elapsed * 1000, 3),
        )
        return result

    def pull(self, pattern: Any, eid: Any) -> dict[str, Any] | None:
        """Project an entity through a pull pattern.

        Returns None if the entity does not exist.

        Raises:
            UnknownAttribute: If the pattern names an undeclared attribute.
        """
        parsed = self._pull_pattern(pattern)
        resolved = self.resolve_entity(eid)
        if resolved is None:
            return None
        return self._projector.pull(parsed, resolved)

    def pull_many(self, pattern: Any, eids: Sequence[Any]) -> list[dict[str, Any] | None]:
        """Project several entities through one pull pattern."""
        parsed = self._pull_pattern(pattern)
        results = []
        for eid in eids:
            resolved = self.resolve_entity(eid)
            results.append(None if resolved is None else self._projector.pull(parsed, resolved))
        return results

    def entity(self, eid: Any) -> dict[str, Any] | None:
        """Return every fact held by an entity as a map, including ``db/id``."""
        resolved = self.resolve_entity(eid)
        if resolved is None:
            return None
        return self._projector.pull(PullPattern(wildcard=True), resolved)

    def datoms(self, index: str | IndexName, *components: Any) -> Iterator[Datom]:
        """Iterate an index in sort order, restricted by leading components.

        Entity components may be lookup refs or idents; attribute components
        may carry a leading colon.

        Raises:
            ValueError: If the index name is unknown.
            UnknownAttribute: If an attribute component is not declared.
        """
        name = IndexName.parse(index)
        parts = list(components)
        if name is IndexName.EAVT:
            slots = ("e", "a", "v")
        elif name is IndexName.AEVT:
            slots = ("a", "e", "v")
        else:
            slots = ("a", "v", "e")

        for position, slot in enumerate(slots[: len(parts)]):
            if slot == "a":
                parts[position] = self.attribute(parts[position]).ident
            elif slot == "e":
                resolved = self.resolve_entity(parts[position])
                if resolved is None:
                    return iter(())
                parts[position] = resolved
        return self._index.datoms(name, *parts)

    def attribute(self, ident: str) -> Attribute:
        """Return the declaration of an attribute.

        Raises:
            UnknownAttribute: If the attribute is not declared.
        """
        return self._schema.require(ident, UnknownAttribute)

    @property
    def attributes(self) -> list[Attribute]:
        """User-declared attributes in declaration order."""
        return self._schema.user_attributes

    def resolve_entity(self, ref: Any) -> EntityId | None:
        """Resolve an entity id, ident keyword or lookup ref to an existing id."""
        if is_entity_id(ref):
            eid = EntityId(ref)
            return eid if self._index.has_entity(eid) else None
        if isinstance(ref, Keyword):
            holders = self._index.holders(DB_IDENT, ref)
            return holders[0] if holders else None
        if is_lookup_ref(ref):
            attribute = self.attribute(ref[0])
            if not attribute.is_unique:
                raise QueryError(f"Lookup ref attribute :{attribute.ident} is not unique")
            holders = self._index.holders(attribute.ident, ref[1])
            return holders[0] if holders else None
        return None

    def _pull_pattern(self, pattern: Any) -> PullPattern:
        if isinstance(pattern, PullPattern):
            parsed = pattern
        else:
            if isinstance(pattern, str) and pattern.strip().startswith("["):
                pattern = read_string(pattern)
            parsed = parse_pull_pattern(pattern)
        self._projector.validate(parsed)
        return parsed

    # Statistics

    def _update_gauges(self) -> None:
        self._metrics.attributes_declared.labels(database=self._name).set(
            len(self._schema.user_attributes)
        )
        self._metrics.entities.labels(database=self._name).set(self._index.entity_count)

    def get_stats(self) -> dict[str, Any]:
        """Get database statistics."""
        return {
            "name": self._name,
            "basis_t": self.basis_t,
            "datoms": len(self._index),
            "entities": self._index.entity_count,
            "attributes": len(self._schema.user_attributes),
            "transactions": len(self._log),
            "next_id": self._transactor.next_id,
        }


class Database:
    """Read facade over an entity store.

    Reads always see the store's current facts; ``basis_t`` records the
    last transaction committed when the facade was obtained.
    """

    def __init__(self, store: FactStore, name: str, basis_t: int) -> None:
        self._store = store
        self._name = name
        self._basis_t = basis_t

    @property
    def basis_t(self) -> int:
        return self._basis_t

    @property
    def name(self) -> str:
        return self._name

    def q(self, query: Any, *inputs: Any) -> Any:
        return self._store.q(query, *inputs)

    def pull(self, pattern: Any, eid: Any) -> dict[str, Any] | None:
        return self._store.pull(pattern, eid)

    def pull_many(self, pattern: Any, eids: Sequence[Any]) -> list[dict[str, Any] | None]:
        return self._store.pull_many(pattern, eids)

    def entity(self, eid: Any) -> dict[str, Any] | None:
        return self._store.entity(eid)

    def datoms(self, index: str | IndexName, *components: Any) -> Iterator[Datom]:
        return self._store.datoms(index, *components)

    def attribute(self, ident: str) -> Attribute:
        return self._store.attribute(ident)

    def __repr__(self) -> str:
        return f"Database(name={self.name!r}, basis_t={self._basis_t})"


def _result_size(result: Any) -> int:
    if result is None:
        return 0
    if isinstance(result, (set, list)):
        return len(result)
    return 1
