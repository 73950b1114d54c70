"""Unit tests for the transactor."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from factdb.domain.entities import Datom
from factdb.domain.services import FactIndex, SchemaRegistry, Transactor
from factdb.domain.value_objects import EntityId, Keyword, TempId
from factdb.ports import (
    DanglingReference,
    DatomConflict,
    InvalidValue,
    SchemaConflict,
    TransactionError,
    UndeclaredAttribute,
    UniqueConflict,
)


INSTANT = datetime(2024, 1, 1, tzinfo=timezone.utc)

SCHEMA: list[dict[str, Any]] = [
    {
        "db/ident": "user/email",
        "db/valueType": "db.type/string",
        "db/cardinality": "db.cardinality/one",
        "db/unique": "db.unique/identity",
    },
    {
        "db/ident": "user/handle",
        "db/valueType": "db.type/string",
        "db/cardinality": "db.cardinality/one",
        "db/unique": "db.unique/value",
    },
    {
        "db/ident": "user/age",
        "db/valueType": "db.type/long",
        "db/cardinality": "db.cardinality/one",
    },
    {
        "db/ident": "user/friends",
        "db/valueType": "db.type/ref",
        "db/cardinality": "db.cardinality/many",
    },
    {
        "db/ident": "user/name",
        "db/valueType": "db.type/string",
        "db/cardinality": "db.cardinality/one",
    },
]


class Env:
    """Schema, index and transactor wired together."""

    def __init__(self) -> None:
        self.schema = SchemaRegistry()
        self.index = FactIndex()
        self.transactor = Transactor(
            self.schema, self.index, id_start=1000, clock=lambda: INSTANT
        )
        self.transactor.bootstrap()
        self.transactor.transact(SCHEMA)

    def snapshot(self) -> list[Datom]:
        return list(self.index.datoms("eavt"))


@pytest.fixture
def env() -> Env:
    return Env()


@pytest.mark.unit
class TestBootstrapAndSchema:
    """Tests for system facts and schema installation."""

    def test_bootstrap_writes_system_facts(self) -> None:
        schema = SchemaRegistry()
        index = FactIndex()
        report = Transactor(schema, index, clock=lambda: INSTANT).bootstrap()

        assert report.tx_id == 7
        assert index.holders("db/ident", "db/doc") == [5]
        assert report.tx_data[0] == Datom(EntityId(7), "db/txInstant", INSTANT, report.tx_id)

    def test_attributes_are_entities(self, env: Env) -> None:
        attribute = env.schema.require("user/email")

        assert attribute.id == 1000
        assert env.index.holders("db/ident", "user/email") == [1000]
        assert env.index.values(attribute.id, "db/unique") == ["db.unique/identity"]

    def test_user_ids_follow_schema(self, env: Env) -> None:
        # five attributes and the schema transaction
        assert env.transactor.next_id == 1006

    def test_id_start_below_system_range(self) -> None:
        with pytest.raises(ValueError):
            Transactor(SchemaRegistry(), FactIndex(), id_start=10)

    def test_schema_and_data_in_one_batch(self, env: Env) -> None:
        report = env.transactor.transact(
            [
                {"db/id": "sally", "user/nick": "sal"},
                {
                    "db/ident": "user/nick",
                    "db/valueType": "db.type/string",
                    "db/cardinality": "db.cardinality/one",
                },
            ]
        )

        sally = report.tempids["sally"]
        assert env.index.values(sally, "user/nick") == ["sal"]

    def test_incompatible_schema_rejected(self, env: Env) -> None:
        with pytest.raises(SchemaConflict):
            env.transactor.transact(
                [
                    {
                        "db/ident": "user/age",
                        "db/valueType": "db.type/string",
                        "db/cardinality": "db.cardinality/one",
                    }
                ]
            )


@pytest.mark.unit
class TestTempids:
    """Tests for temporary id resolution."""

    def test_tempids_resolve_consistently(self, env: Env) -> None:
        report = env.transactor.transact(
            [
                {"db/id": "sally", "user/email": "sally@x.com", "user/age": 34},
                {"db/id": "frank", "user/email": "frank@x.com", "user/friends": ["sally"]},
            ]
        )

        sally = report.tempids["sally"]
        frank = report.tempids["frank"]
        assert (sally, frank) == (1006, 1007)
        assert report.tx_id == 1008
        assert env.index.values(frank, "user/friends") == [sally]

    def test_map_without_id_gets_new_entity(self, env: Env) -> None:
        report = env.transactor.transact(
            [{"user/email": "a@x.com"}, {"user/email": "b@x.com"}]
        )

        assert len(report.tempids) == 2
        assert len(set(report.tempids.values())) == 2

    def test_negative_int_and_tempid_objects(self, env: Env) -> None:
        tempid = TempId("db.part/user", -1)
        report = env.transactor.transact(
            [
                {"db/id": tempid, "user/email": "a@x.com"},
                {"db/id": -2, "user/email": "b@x.com", "user/friends": [tempid]},
            ]
        )

        a = report.resolve_tempid(tempid)
        b = report.resolve_tempid(-2)
        assert env.index.values(b, "user/friends") == [a]

    def test_same_tempid_merges_maps(self, env: Env) -> None:
        report = env.transactor.transact(
            [
                {"db/id": "sally", "user/email": "sally@x.com"},
                {"db/id": "sally", "user/age": 34},
            ]
        )

        sally = report.tempids["sally"]
        assert env.index.entity_attributes(sally) == {
            "user/email": ["sally@x.com"],
            "user/age": [34],
        }

    def test_list_form(self, env: Env) -> None:
        report = env.transactor.transact(
            [
                [":db/add", "sally", ":user/email", "sally@x.com"],
                [Keyword("db/add"), "sally", "user/age", 34],
            ]
        )

        assert env.index.values(report.tempids["sally"], "user/age") == [34]

    def test_tempid_only_in_value_position(self, env: Env) -> None:
        with pytest.raises(DanglingReference):
            env.transactor.transact([{"user/email": "a@x.com", "user/friends": ["ghost"]}])


@pytest.mark.unit
class TestUpdates:
    """Tests for writes against existing entities."""

    @pytest.fixture
    def sally(self, env: Env) -> EntityId:
        report = env.transactor.transact(
            [{"db/id": "sally", "user/email": "sally@x.com", "user/age": 34}]
        )
        return report.tempids["sally"]

    def test_cardinality_one_replaces_value(self, env: Env, sally: EntityId) -> None:
        report = env.transactor.transact([{"db/id": sally, "user/age": 35}])

        assert env.index.values(sally, "user/age") == [35]
        retracted = [d for d in report.tx_data if not d.added]
        assert retracted == [Datom(sally, "user/age", 34, report.tx_id, added=False)]

    def test_cardinality_many_accumulates(self, env: Env, sally: EntityId) -> None:
        first = env.transactor.transact([{"user/email": "a@x.com"}])
        second = env.transactor.transact([{"user/email": "b@x.com"}])
        a = next(iter(first.tempids.values()))
        b = next(iter(second.tempids.values()))

        env.transactor.transact([{"db/id": sally, "user/friends": [a]}])
        env.transactor.transact([{"db/id": sally, "user/friends": b}])

        assert env.index.values(sally, "user/friends") == [a, b]

    def test_reasserting_is_a_no_op(self, env: Env, sally: EntityId) -> None:
        before = len(env.index)
        report = env.transactor.transact([{"db/id": sally, "user/age": 34}])

        # only the transaction's own db/txInstant fact
        assert len(report.tx_data) == 1
        assert len(env.index) == before + 1

    def test_identity_upsert(self, env: Env, sally: EntityId) -> None:
        report = env.transactor.transact(
            [{"db/id": "s", "user/email": "sally@x.com", "user/name": "Sally"}]
        )

        assert report.tempids["s"] == sally
        assert env.index.values(sally, "user/name") == ["Sally"]

    def test_lookup_ref_as_entity(self, env: Env, sally: EntityId) -> None:
        env.transactor.transact([[":db/add", ["user/email", "sally@x.com"], "user/age", 40]])

        assert env.index.values(sally, "user/age") == [40]

    def test_lookup_ref_as_value(self, env: Env, sally: EntityId) -> None:
        report = env.transactor.transact(
            [{"user/email": "frank@x.com", "user/friends": [("user/email", "sally@x.com")]}]
        )
        frank = next(iter(report.tempids.values()))

        assert env.index.values(frank, "user/friends") == [sally]

    def test_single_lookup_ref_for_many_attribute(self, env: Env, sally: EntityId) -> None:
        report = env.transactor.transact(
            [{"user/email": "frank@x.com", "user/friends": ["user/email", "sally@x.com"]}]
        )
        frank = next(iter(report.tempids.values()))

        assert env.index.values(frank, "user/friends") == [sally]

    def test_keyword_names_attribute_entity(self, env: Env) -> None:
        env.transactor.transact([{"db/id": Keyword("user/age"), "db/doc": "Age in years"}])

        assert env.schema.require("user/age").id == 1002
        assert env.index.values(EntityId(1002), "db/doc") == ["Age in years"]


@pytest.mark.unit
class TestRejections:
    """Tests for rejected batches."""

    def test_undeclared_attribute(self, env: Env) -> None:
        with pytest.raises(UndeclaredAttribute) as exc_info:
            env.transactor.transact([{"user/nope": 1}])

        assert exc_info.value.attribute == "user/nope"

    def test_invalid_value(self, env: Env) -> None:
        with pytest.raises(InvalidValue):
            env.transactor.transact([{"user/age": "old"}])

    def test_dangling_permanent_id(self, env: Env) -> None:
        with pytest.raises(DanglingReference):
            env.transactor.transact([{"user/email": "a@x.com", "user/friends": [99999]}])

    def test_dangling_lookup_ref(self, env: Env) -> None:
        with pytest.raises(DanglingReference):
            env.transactor.transact([[":db/add", ["user/email", "nobody@x.com"], "user/age", 1]])

    def test_lookup_ref_requires_unique_attribute(self, env: Env) -> None:
        with pytest.raises(TransactionError, match="not unique"):
            env.transactor.transact([[":db/add", ["user/age", 34], "user/name", "x"]])

    def test_unique_value_conflict(self, env: Env) -> None:
        env.transactor.transact([{"user/handle": "sal"}])

        with pytest.raises(UniqueConflict):
            env.transactor.transact([{"user/handle": "sal"}])

    def test_unique_value_conflict_within_batch(self, env: Env) -> None:
        with pytest.raises(UniqueConflict):
            env.transactor.transact([{"user/handle": "sal"}, {"user/handle": "sal"}])

    def test_identity_held_by_other_permanent_entity(self, env: Env) -> None:
        report = env.transactor.transact(
            [{"db/id": "a", "user/email": "a@x.com"}, {"db/id": "b", "user/email": "b@x.com"}]
        )

        with pytest.raises(UniqueConflict):
            env.transactor.transact([{"db/id": report.tempids["b"], "user/email": "a@x.com"}])

    def test_two_values_for_cardinality_one(self, env: Env) -> None:
        with pytest.raises(DatomConflict):
            env.transactor.transact(
                [{"db/id": "x", "user/age": 1}, {"db/id": "x", "user/age": 2}]
            )

    def test_schema_only_attribute(self, env: Env) -> None:
        with pytest.raises(TransactionError, match="schema record"):
            env.transactor.transact([{"db/cardinality": "db.cardinality/many"}])

    def test_empty_map(self, env: Env) -> None:
        with pytest.raises(TransactionError):
            env.transactor.transact([{"db/id": "x"}])

    def test_unsupported_list_form(self, env: Env) -> None:
        with pytest.raises(TransactionError, match="db/add"):
            env.transactor.transact([[":db/retract", 1006, "user/age", 1]])

    def test_tx_data_must_be_a_sequence(self, env: Env) -> None:
        with pytest.raises(TransactionError):
            env.transactor.transact({"user/age": 1})

    def test_rejected_batch_leaves_no_trace(self, env: Env) -> None:
        env.transactor.transact([{"user/handle": "sal"}])
        before = env.snapshot()
        next_id = env.transactor.next_id

        with pytest.raises(UniqueConflict):
            env.transactor.transact(
                [
                    {"user/email": "new@x.com", "user/age": 20},
                    {
                        "db/ident": "user/score",
                        "db/valueType": "db.type/long",
                        "db/cardinality": "db.cardinality/one",
                    },
                    {"user/handle": "sal"},
                ]
            )

        assert env.snapshot() == before
        assert env.transactor.next_id == next_id
        assert env.schema.get("user/score") is None
