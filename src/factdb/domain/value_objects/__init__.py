"""Value objects for the fact database domain.

Value objects are immutable types that represent domain concepts.

Exports:
    Identifiers:
        - EntityId, TxId: Type-safe entity and transaction identifiers
        - TempId: Temporary id valid within one transaction batch
        - Keyword, Symbol: EDN name types
        - normalize_ident, is_tempid, is_entity_id, is_lookup_ref: Helpers

    Schema Types:
        - ValueType: Attribute value types
        - Cardinality: One or many values per entity
        - Uniqueness: Value or identity uniqueness
"""

from factdb.domain.value_objects.identifiers import (
    DEFAULT_PARTITION,
    INVALID_ENTITY_ID,
    SYSTEM_ID_LIMIT,
    EntityId,
    Keyword,
    Symbol,
    TempId,
    TxId,
    is_entity_id,
    is_lookup_ref,
    is_tempid,
    normalize_ident,
)
from factdb.domain.value_objects.schema_types import Cardinality, Uniqueness, ValueType

__all__ = [
    # Identifiers
    "EntityId",
    "TxId",
    "TempId",
    "Keyword",
    "Symbol",
    "DEFAULT_PARTITION",
    "INVALID_ENTITY_ID",
    "SYSTEM_ID_LIMIT",
    "normalize_ident",
    "is_tempid",
    "is_entity_id",
    "is_lookup_ref",
    # Schema types
    "ValueType",
    "Cardinality",
    "Uniqueness",
]
