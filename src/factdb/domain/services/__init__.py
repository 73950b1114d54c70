"""Domain services for business logic.

Services coordinate entities and value objects: the schema registry gates
every write, the fact index stores datoms, the transactor resolves tempids
and the pull projector renders entities as maps.
"""

from factdb.domain.services.fact_index import FactIndex, IndexName
from factdb.domain.services.pull import (
    PullAttr,
    PullPattern,
    PullProjector,
    parse_pull_pattern,
)
from factdb.domain.services.schema_registry import (
    PlannedAttribute,
    SchemaRegistry,
    is_schema_record,
)
from factdb.domain.services.transactor import Transactor

__all__ = [
    "FactIndex",
    "IndexName",
    "PullAttr",
    "PullPattern",
    "PullProjector",
    "parse_pull_pattern",
    "PlannedAttribute",
    "SchemaRegistry",
    "is_schema_record",
    "Transactor",
]
