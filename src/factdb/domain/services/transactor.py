"""Transactor: turns a batch of entity maps into datoms.

A batch is processed in two phases. The planning phase expands maps and
``[:db/add e a v]`` forms into assertions, resolves every entity reference
and checks every constraint without touching the store. Only if the whole
batch is accepted does the commit phase install new attributes and write
the datoms, so a rejected batch leaves no trace.

Entity references:
    - permanent ids (positive integers) must name an existing entity
    - tempids (negative integers, strings, TempId) get one permanent id per
      distinct placeholder, shared by every reference to it in the batch
    - lookup refs ``(unique_attr, value)`` and keywords (``db/ident`` values)
      name the entity holding that value
    - a tempid whose map carries an already-held ``db.unique/identity`` value
      resolves to the holder (upsert)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Hashable, Iterable, Mapping, Sequence

from factdb.domain.entities import (
    DB_ADD,
    DB_CARDINALITY,
    DB_ID,
    DB_IDENT,
    DB_TX_INSTANT,
    DB_UNIQUE,
    DB_VALUE_TYPE,
    SYSTEM_ATTRIBUTES,
    Attribute,
    Datom,
    TxReport,
)
from factdb.domain.services.fact_index import FactIndex
from factdb.domain.services.schema_registry import (
    PlannedAttribute,
    SchemaRegistry,
    is_schema_record,
)
from factdb.domain.value_objects import (
    DEFAULT_PARTITION,
    SYSTEM_ID_LIMIT,
    EntityId,
    Keyword,
    TempId,
    TxId,
    is_entity_id,
    is_lookup_ref,
    is_tempid,
    normalize_ident,
)
from factdb.ports.inbound.fact_store import (
    DanglingReference,
    DatomConflict,
    InvalidValue,
    TransactionError,
    UndeclaredAttribute,
    UniqueConflict,
)


# Attributes that only schema records may assert
_SCHEMA_ONLY = frozenset({DB_VALUE_TYPE, DB_CARDINALITY, DB_UNIQUE, DB_TX_INSTANT})


@dataclass(frozen=True)
class _Pending:
    """An entity named by tempid whose permanent id is not yet allocated."""

    key: Hashable


@dataclass
class _Assertion:
    entity: Any
    attribute: Attribute
    value: Any


@dataclass
class _Batch:
    """Working state of one transaction while it is being planned."""

    schema: SchemaRegistry
    index: FactIndex
    next_id: int
    partition: str
    attributes: dict[str, Attribute] = field(default_factory=dict)
    new_attributes: list[Attribute] = field(default_factory=list)
    raw: list[_Assertion] = field(default_factory=list)
    tempids: dict[Hashable, EntityId] = field(default_factory=dict)
    new_ids: set[EntityId] = field(default_factory=set)
    assertions: list[tuple[EntityId, Attribute, Any]] = field(default_factory=list)

    def allocate(self) -> EntityId:
        eid = EntityId(self.next_id)
        self.next_id += 1
        self.new_ids.add(eid)
        return eid

    def attribute(self, ident: Any) -> Attribute:
        try:
            name = normalize_ident(ident)
        except ValueError as e:
            raise TransactionError(f"Invalid attribute name {ident!r}: {e}") from e
        planned = self.attributes.get(name)
        if planned is not None:
            return planned
        return self.schema.require(name)

    def exists(self, eid: EntityId) -> bool:
        return self.index.has_entity(eid) or eid in self.new_ids


class Transactor:
    """Writes transaction batches into a fact index."""

    def __init__(
        self,
        schema: SchemaRegistry,
        index: FactIndex,
        *,
        id_start: int = 1000,
        partition: str = DEFAULT_PARTITION,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if id_start < SYSTEM_ID_LIMIT:
            raise ValueError(f"id_start must be at least {SYSTEM_ID_LIMIT}, got {id_start}")
        self._schema = schema
        self._index = index
        self._next_id = id_start
        self._partition = partition
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def next_id(self) -> int:
        """Id the next allocated entity will receive."""
        return self._next_id

    def bootstrap(self) -> TxReport:
        """Write the facts describing the system attributes."""
        tx_id = TxId(max(a.id for a in SYSTEM_ATTRIBUTES) + 1)
        instant = self._clock()
        written = [self._write(Datom(EntityId(tx_id), DB_TX_INSTANT, instant, tx_id))]
        for attribute in SYSTEM_ATTRIBUTES:
            for a, v in attribute.facts().items():
                written.append(self._write(Datom(attribute.id, a, v, tx_id)))
        return TxReport(tx_id=tx_id, tx_instant=instant, tx_data=written)

    def transact(self, tx_data: Iterable[Any]) -> TxReport:
        """Plan and commit one batch.

        Args:
            tx_data: Entity maps, schema records and ``[:db/add e a v]`` forms.

        Returns:
            Report with the tempid mapping and the datoms written.

        Raises:
            UndeclaredAttribute: If a map uses an attribute that is not declared.
            SchemaConflict: If a schema record redeclares an attribute incompatibly.
            TransactionError: If the batch is rejected for any other reason.
        """
        if isinstance(tx_data, (str, bytes, Mapping)) or not isinstance(tx_data, Iterable):
            raise TransactionError("Transaction data must be a sequence of maps or lists")
        items = list(tx_data)

        batch = _Batch(
            schema=self._schema,
            index=self._index,
            next_id=self._next_id,
            partition=self._partition,
        )

        schema_records = [i for i in items if isinstance(i, Mapping) and is_schema_record(i)]
        for planned in self._schema.plan(schema_records):
            self._plan_attribute(batch, planned)

        for item in items:
            if isinstance(item, Mapping):
                if not is_schema_record(item):
                    self._expand_map(batch, item)
            elif isinstance(item, (list, tuple)):
                self._expand_list(batch, item)
            else:
                raise TransactionError(f"Invalid transaction item {item!r}")

        self._resolve(batch)
        self._check(batch)
        return self._commit(batch)

    # Planning

    def _plan_attribute(self, batch: _Batch, planned: PlannedAttribute) -> None:
        attribute = planned.attribute
        if planned.is_new:
            attribute = replace(attribute, id=batch.allocate())
            batch.new_attributes.append(attribute)
            if planned.tempid is not None and is_tempid(planned.tempid):
                batch.tempids[_tempid_key(planned.tempid)] = attribute.id
        elif planned.changed_facts:
            batch.new_attributes.append(attribute)
        batch.attributes[attribute.ident] = attribute

        system = {a.ident: a for a in SYSTEM_ATTRIBUTES}
        for a, v in planned.changed_facts.items():
            batch.raw.append(_Assertion(attribute.id, system[a], v))

    def _expand_map(self, batch: _Batch, item: Mapping[Any, Any]) -> None:
        entity: Any = None
        pairs: list[tuple[Attribute, Any]] = []
        for key, value in item.items():
            if _ident_or_none(key) == DB_ID:
                entity = value
                continue
            pairs.append((self._user_attribute(batch, key), value))

        if not pairs:
            raise TransactionError(f"Entity map {dict(item)!r} has no attributes")
        if entity is None:
            entity = TempId.new(batch.partition)

        for attribute, value in pairs:
            for v in self._expand_values(batch, attribute, value):
                batch.raw.append(_Assertion(entity, attribute, v))

    def _expand_list(self, batch: _Batch, item: Sequence[Any]) -> None:
        op = _ident_or_none(item[0]) if item else None
        if op != DB_ADD:
            raise TransactionError(
                f"Unsupported list form {list(item)!r}, expected [:db/add e a v]"
            )
        if len(item) != 4:
            raise TransactionError(f"[:db/add e a v] takes 3 arguments, got {len(item) - 1}")
        _, entity, ident, value = item
        batch.raw.append(_Assertion(entity, self._user_attribute(batch, ident), value))

    def _user_attribute(self, batch: _Batch, ident: Any) -> Attribute:
        attribute = batch.attribute(ident)
        if attribute.ident in _SCHEMA_ONLY:
            raise TransactionError(
                f"Attribute :{attribute.ident} may only be asserted by a schema record"
            )
        return attribute

    def _expand_values(self, batch: _Batch, attribute: Attribute, value: Any) -> list[Any]:
        if attribute.is_many and isinstance(value, (list, tuple, set, frozenset)):
            if attribute.is_ref and self._is_lookup(batch, value):
                return [value]
            return list(value)
        return [value]

    def _is_lookup(self, batch: _Batch, ref: Any) -> bool:
        if not is_lookup_ref(ref):
            return False
        try:
            return batch.attribute(ref[0]).is_unique
        except (TransactionError, UndeclaredAttribute):
            return False

    # Resolution

    def _resolve(self, batch: _Batch) -> None:
        entities = [self._resolve_entity(batch, a.entity) for a in batch.raw]

        # Identity upserts: a tempid carrying an already-held identity value
        upserts: dict[Hashable, EntityId] = {}
        for assertion, entity in zip(batch.raw, entities):
            if not isinstance(entity, _Pending) or not assertion.attribute.is_identity:
                continue
            if assertion.attribute.is_ref:
                continue
            value = _coerce(assertion.attribute, assertion.value)
            holders = batch.index.holders(assertion.attribute.ident, value)
            if not holders:
                continue
            previous = upserts.setdefault(entity.key, holders[0])
            if previous != holders[0]:
                raise UniqueConflict(
                    f"Tempid {entity.key!r} upserts to both {previous} and {holders[0]}"
                )

        for entity in entities:
            if isinstance(entity, _Pending) and entity.key not in batch.tempids:
                batch.tempids[entity.key] = upserts.get(entity.key) or batch.allocate()

        for assertion, entity in zip(batch.raw, entities):
            eid = batch.tempids[entity.key] if isinstance(entity, _Pending) else entity
            attribute = assertion.attribute
            if attribute.is_ref:
                value = self._resolve_ref_value(batch, attribute, assertion.value)
            else:
                value = _coerce(attribute, assertion.value)
            batch.assertions.append((eid, attribute, value))

    def _resolve_entity(self, batch: _Batch, ref: Any) -> EntityId | _Pending:
        if is_entity_id(ref):
            eid = EntityId(ref)
            if not batch.exists(eid):
                raise DanglingReference(f"Entity {ref} does not exist")
            return eid
        if isinstance(ref, Keyword):
            return self._lookup(batch, (DB_IDENT, ref))
        if is_tempid(ref):
            return _Pending(_tempid_key(ref))
        if is_lookup_ref(ref):
            return self._lookup(batch, ref)
        raise TransactionError(f"Invalid entity reference {ref!r}")

    def _resolve_ref_value(self, batch: _Batch, attribute: Attribute, value: Any) -> EntityId:
        if is_entity_id(value):
            eid = EntityId(value)
            if not batch.exists(eid):
                raise DanglingReference(
                    f"Value {value} of :{attribute.ident} does not name an existing entity"
                )
            return eid
        if isinstance(value, Keyword):
            return self._lookup(batch, (DB_IDENT, value))
        if is_tempid(value):
            key = _tempid_key(value)
            if key not in batch.tempids:
                raise DanglingReference(
                    f"Tempid {value!r} used as a value of :{attribute.ident} "
                    f"does not name an entity in this transaction"
                )
            return batch.tempids[key]
        if is_lookup_ref(value):
            return self._lookup(batch, value)
        raise InvalidValue(f"{value!r} is not a valid reference for :{attribute.ident}")

    def _lookup(self, batch: _Batch, ref: Sequence[Any]) -> EntityId:
        attribute = batch.attribute(ref[0])
        if not attribute.is_unique:
            raise TransactionError(
                f"Lookup ref attribute :{attribute.ident} is not unique"
            )
        value = _coerce(attribute, ref[1])
        holders = batch.index.holders(attribute.ident, value)
        if not holders:
            raise DanglingReference(
                f"Lookup ref [:{attribute.ident} {ref[1]!r}] does not name an entity"
            )
        return holders[0]

    def _check(self, batch: _Batch) -> None:
        seen: dict[tuple[EntityId, str, Any], None] = {}
        single: dict[tuple[EntityId, str], Any] = {}
        owners: dict[tuple[str, Any], EntityId] = {}
        unique_assertions: list[tuple[EntityId, Attribute, Any]] = []

        for eid, attribute, value in batch.assertions:
            key = (eid, attribute.ident, value)
            if key in seen:
                continue
            seen[key] = None
            unique_assertions.append((eid, attribute, value))

            if not attribute.is_many:
                previous = single.setdefault((eid, attribute.ident), value)
                if previous != value:
                    raise DatomConflict(
                        f"Two values for cardinality-one :{attribute.ident} of entity "
                        f"{eid}: {previous!r} and {value!r}"
                    )

            if attribute.is_unique:
                owner = owners.setdefault((attribute.ident, value), eid)
                holders = [h for h in batch.index.holders(attribute.ident, value) if h != eid]
                if owner != eid or holders:
                    other = holders[0] if holders else owner
                    raise UniqueConflict(
                        f"Unique value {value!r} of :{attribute.ident} is already held "
                        f"by entity {other}"
                    )

        batch.assertions = unique_assertions

    # Commit

    def _commit(self, batch: _Batch) -> TxReport:
        tx_id = TxId(batch.allocate())
        instant = self._clock()

        for attribute in batch.new_attributes:
            self._schema.install(attribute)

        written = [self._write(Datom(EntityId(tx_id), DB_TX_INSTANT, instant, tx_id))]
        for eid, attribute, value in batch.assertions:
            current = self._index.values(eid, attribute.ident)
            if value in current:
                continue
            if not attribute.is_many:
                for old in current:
                    self._index.remove(eid, attribute.ident, old)
                    written.append(Datom(eid, attribute.ident, old, tx_id, added=False))
            written.append(self._write(Datom(eid, attribute.ident, value, tx_id)))

        self._next_id = batch.next_id
        return TxReport(
            tx_id=tx_id,
            tx_instant=instant,
            tempids=dict(batch.tempids),
            tx_data=written,
        )

    def _write(self, datom: Datom) -> Datom:
        self._index.add(datom)
        return datom


def _tempid_key(ref: Any) -> Hashable:
    if isinstance(ref, str):
        return str(ref)
    return ref


def _ident_or_none(key: Any) -> str | None:
    try:
        return normalize_ident(key)
    except ValueError:
        return None


def _coerce(attribute: Attribute, value: Any) -> Any:
    try:
        return attribute.value_type.coerce(value)
    except ValueError as e:
        raise InvalidValue(f"Invalid value for :{attribute.ident}: {e}") from e
