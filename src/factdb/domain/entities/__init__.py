"""Domain entities for the fact database.

Exports:
    Attribute:
        - Attribute: A declared, typed attribute (itself an entity)
        - SYSTEM_ATTRIBUTES: Attributes bootstrapped into every database
        - DB_* constants: Names of the system attributes

    Datom:
        - Datom: A single (e, a, v, tx, added) fact

    TxReport:
        - TxReport: Outcome of a transaction batch
"""

from factdb.domain.entities.attribute import (
    DB_ADD,
    DB_CARDINALITY,
    DB_DOC,
    DB_ID,
    DB_IDENT,
    DB_INSTALL_ATTRIBUTE,
    DB_TX_INSTANT,
    DB_UNIQUE,
    DB_VALUE_TYPE,
    SYSTEM_ATTRIBUTES,
    Attribute,
)
from factdb.domain.entities.datom import Datom
from factdb.domain.entities.tx_report import TxReport

__all__ = [
    "Attribute",
    "SYSTEM_ATTRIBUTES",
    "DB_ADD",
    "DB_CARDINALITY",
    "DB_DOC",
    "DB_ID",
    "DB_IDENT",
    "DB_INSTALL_ATTRIBUTE",
    "DB_TX_INSTANT",
    "DB_UNIQUE",
    "DB_VALUE_TYPE",
    "Datom",
    "TxReport",
]
