"""Integration tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from factdb import __version__
from factdb.adapters.inbound.rest_api import create_app, to_json
from factdb.domain.value_objects import Keyword


SCHEMA = [
    {
        "db/ident": "user/email",
        "db/valueType": "db.type/string",
        "db/cardinality": "db.cardinality/one",
        "db/unique": "db.unique/identity",
    },
    {
        "db/ident": "user/age",
        "db/valueType": "db.type/long",
        "db/cardinality": "db.cardinality/one",
    },
    {
        "db/ident": "user/tags",
        "db/valueType": "db.type/keyword",
        "db/cardinality": "db.cardinality/many",
    },
]


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def tutorial(client):
    client.post("/databases/tutorial")
    response = client.post("/databases/tutorial/schema", json={"attributes": SCHEMA})
    assert response.status_code == 200
    return client


class TestRestApi:
    """Test cases for the HTTP endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}

    def test_create_and_delete_database(self, client):
        assert client.post("/databases/demo").json()["created"] is True
        assert client.post("/databases/demo").json()["created"] is False

        response = client.delete("/databases/demo")
        assert response.status_code == 200
        assert response.json()["deleted"] is True

        assert client.delete("/databases/demo").status_code == 404

    def test_unknown_database(self, client):
        response = client.post("/databases/missing/transact", json={"tx_data": []})

        assert response.status_code == 404
        assert response.json()["error"] == "DatabaseNotFound"

    def test_transact_and_query(self, tutorial):
        response = tutorial.post(
            "/databases/tutorial/transact",
            json={
                "tx_data": [
                    {"db/id": "sally", "user/email": "sally@x.com", "user/age": 34},
                    {"db/id": "frank", "user/email": "frank@x.com", "user/age": 14},
                ]
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert set(body["tempids"]) == {"sally", "frank"}
        assert body["basis_t"] == body["tx_id"]

        response = tutorial.post(
            "/databases/tutorial/q",
            json={
                "query": "[:find (pull ?e [:user/email :user/age]) "
                ":where [?e :user/age ?a] [(>= ?a 21)]]"
            },
        )
        assert response.status_code == 200
        assert response.json() == {"result": [[{"user/email": "sally@x.com", "user/age": 34}]]}

    def test_query_with_inputs(self, tutorial):
        tutorial.post(
            "/databases/tutorial/transact",
            json={"edn": '[{:user/email "sally@x.com" :user/age 34 :user/tags [:admin]}]'},
        )

        response = tutorial.post(
            "/databases/tutorial/q",
            json={
                "query": "[:find ?t . :in $ ?email :where [?e :user/email ?email] [?e :user/tags ?t]]",
                "inputs": ["sally@x.com"],
            },
        )

        assert response.json() == {"result": "admin"}

    def test_query_as_data(self, tutorial):
        tutorial.post("/databases/tutorial/transact", json={"tx_data": [{"user/age": 14}]})

        response = tutorial.post(
            "/databases/tutorial/q",
            json={"query": [":find", ["?a", "..."], ":where", ["_", "user/age", "?a"]]},
        )

        assert response.json() == {"result": [14]}

    def test_query_as_data_with_predicate(self, tutorial):
        tutorial.post(
            "/databases/tutorial/transact",
            json={
                "tx_data": [
                    {"user/email": "sally@x.com", "user/age": 34},
                    {"user/email": "frank@x.com", "user/age": 14},
                ]
            },
        )

        response = tutorial.post(
            "/databases/tutorial/q",
            json={
                "query": [
                    ":find", ["pull", "?e", ["user/email", "user/age"]],
                    ":where", ["?e", "user/age", "?a"], [[">=", "?a", 21]],
                ]
            },
        )
        assert response.status_code == 200
        assert response.json() == {"result": [[{"user/email": "sally@x.com", "user/age": 34}]]}

        response = tutorial.post(
            "/databases/tutorial/q",
            json={
                "query": {
                    "find": [["?e", "..."]],
                    "in": ["$", "?min"],
                    "where": [["?e", "user/age", "?a"], [["<", "?a", "?min"]]],
                },
                "inputs": [21],
            },
        )
        assert response.status_code == 200
        assert len(response.json()["result"]) == 1

    def test_unhashable_input(self, tutorial):
        response = tutorial.post(
            "/databases/tutorial/q",
            json={"query": "[:find ?x :in $ ?x]", "inputs": [[1, 2]]},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "QueryError"

    def test_entity(self, tutorial):
        response = tutorial.post(
            "/databases/tutorial/transact",
            json={"tx_data": [{"db/id": "s", "user/email": "sally@x.com"}]},
        )
        eid = response.json()["tempids"]["s"]

        response = tutorial.get(f"/databases/tutorial/entity/{eid}")
        assert response.status_code == 200
        assert response.json() == {"db/id": eid, "user/email": "sally@x.com"}

        assert tutorial.get("/databases/tutorial/entity/99999").status_code == 404

    def test_rejected_transaction(self, tutorial):
        response = tutorial.post(
            "/databases/tutorial/transact", json={"tx_data": [{"user/nope": 1}]}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "UndeclaredAttribute"

    def test_unique_conflict(self, tutorial):
        tutorial.post("/databases/tutorial/transact", json={"tx_data": [{"user/email": "a@x.com"}]})
        response = tutorial.post(
            "/databases/tutorial/transact",
            json={"tx_data": [{"db/id": 1, "user/email": "a@x.com"}]},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "UniqueConflict"

    def test_schema_conflict(self, tutorial):
        response = tutorial.post(
            "/databases/tutorial/schema",
            json={
                "edn": "[{:db/ident :user/age :db/valueType :db.type/string "
                ":db/cardinality :db.cardinality/one}]"
            },
        )

        assert response.status_code == 409
        assert response.json()["error"] == "SchemaConflict"

    def test_bad_query(self, tutorial):
        response = tutorial.post("/databases/tutorial/q", json={"query": "[:find ?e :where [?e"})

        assert response.status_code == 400
        assert response.json()["error"] == "ParseError"

    def test_stats(self, tutorial):
        response = tutorial.get("/stats")

        assert response.status_code == 200
        stats = response.json()["databases"]["tutorial"]
        assert stats["attributes"] == 3
        assert stats["transactions"] == 2


class TestToJson:
    def test_converts_collections_and_keywords(self):
        value = {Keyword("user/tags"): frozenset({Keyword("admin")}), "pair": (1, 2)}

        assert to_json(value) == {"user/tags": ["admin"], "pair": [1, 2]}
