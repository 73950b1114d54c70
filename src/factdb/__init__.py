"""
factdb - In-memory fact database

An entity store holding facts as (entity, attribute, value) triples under a
declared attribute schema, queried with datalog pattern queries and pull
projection.

Usage:
    import factdb

    conn = factdb.connect("factdb:mem://tutorial", create=True)
    conn.declare_attributes('''
        [{:db/ident :user/email :db/valueType :db.type/string
          :db/cardinality :db.cardinality/one :db/unique :db.unique/identity}]
    ''')
    conn.transact([{"user/email": "sally@x.com"}])
    factdb.q("[:find (pull ?e [:user/email]) :where [?e :user/email]]", conn.db())
"""

__version__ = "0.1.0"

from factdb.adapters.inbound.edn_reader import read_all, read_string
from factdb.application import (
    Connection,
    Database,
    EntityStore,
    connect,
    create_database,
    delete_database,
    list_databases,
    parse_url,
    q,
)
from factdb.domain.entities import Datom, TxReport
from factdb.domain.value_objects import Keyword, Symbol, TempId
from factdb.ports import (
    DanglingReference,
    DatabaseNotFound,
    DatomConflict,
    FactDBError,
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
    "__version__",
    # Connections
    "Connection",
    "Database",
    "EntityStore",
    "connect",
    "create_database",
    "delete_database",
    "list_databases",
    "parse_url",
    "q",
    # Data
    "Datom",
    "TxReport",
    "Keyword",
    "Symbol",
    "TempId",
    "read_string",
    "read_all",
    # Errors
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
