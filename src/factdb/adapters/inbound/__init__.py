"""Inbound adapters for the fact database.

Inbound adapters handle incoming requests and convert them to
internal domain operations.

Exports:
    EDN Reader:
        - read_string, read_all: Read EDN text into Python values
    Datalog Parser:
        - DatalogParser: Parser that converts queries to query plans
        - Query: Parsed query plan

The REST API lives in ``factdb.adapters.inbound.rest_api`` and is imported
explicitly, since it depends on the application layer.
"""

from factdb.adapters.inbound.datalog_parser import (
    Constant,
    DataPattern,
    DatalogParser,
    FindAggregate,
    FindKind,
    FindPull,
    FindSpec,
    FindVariable,
    FunctionClause,
    Input,
    InputKind,
    PredicateClause,
    Query,
    Variable,
    Wildcard,
)
from factdb.adapters.inbound.edn_reader import read_all, read_string

__all__ = [
    # EDN reader
    "read_string",
    "read_all",
    # Datalog parser
    "DatalogParser",
    "Query",
    "FindKind",
    "FindSpec",
    "FindVariable",
    "FindPull",
    "FindAggregate",
    "Input",
    "InputKind",
    # Terms and clauses
    "Variable",
    "Constant",
    "Wildcard",
    "DataPattern",
    "PredicateClause",
    "FunctionClause",
]
