"""Identifiers and name primitives for the fact database.

Entity ids are plain positive integers handed out by the store. Before a
batch is written, entities are named by temporary ids: negative integers,
strings, or explicit ``TempId`` values. Attribute names are namespaced
keywords such as ``user/email``; a leading colon is accepted everywhere and
stripped on the way in.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, NewType


EntityId = NewType("EntityId", int)
"""Permanent identifier of an entity. Attributes and transactions are entities too."""

TxId = NewType("TxId", int)
"""Identifier of the transaction entity that wrote a datom."""

INVALID_ENTITY_ID = EntityId(0)

SYSTEM_ID_LIMIT = 100
"""Ids below this value are reserved for bootstrapped system entities."""

DEFAULT_PARTITION = "db.part/user"


class Keyword(str):
    """An EDN keyword.

    The string value is the keyword name without its leading colon, so a
    keyword compares and hashes equal to the plain attribute name.

    Example:
        >>> Keyword(":user/email") == "user/email"
        True
        >>> Keyword("user/email").namespace
        'user'
    """

    __slots__ = ()

    def __new__(cls, name: str) -> Keyword:
        if name.startswith(":"):
            name = name[1:]
        if not name:
            raise ValueError("keyword name must not be empty")
        return super().__new__(cls, name)

    @property
    def namespace(self) -> str | None:
        ns, sep, _ = self.rpartition("/")
        return ns if sep else None

    @property
    def name(self) -> str:
        return self.rpartition("/")[2]

    def __repr__(self) -> str:
        return f":{str.__str__(self)}"


class Symbol(str):
    """An EDN symbol, e.g. ``?e``, ``_`` or ``pull``."""

    __slots__ = ()

    @property
    def is_variable(self) -> bool:
        return self.startswith("?")

    @property
    def is_wildcard(self) -> bool:
        return self == "_"

    def __repr__(self) -> str:
        return str.__str__(self)


_fresh_tempids = itertools.count(-1_000_000, -1)


@dataclass(frozen=True, slots=True)
class TempId:
    """Temporary entity id valid within a single transaction batch.

    Attributes:
        partition: Partition the permanent id is allocated in
        idx: Caller-chosen index; ``TempId.new()`` picks a unique one
    """

    partition: str = DEFAULT_PARTITION
    idx: int = -1

    @classmethod
    def new(cls, partition: str = DEFAULT_PARTITION) -> TempId:
        """Create a tempid that is distinct from every other generated tempid."""
        return cls(partition=normalize_ident(partition), idx=next(_fresh_tempids))

    def __repr__(self) -> str:
        return f"#db/id[:{self.partition} {self.idx}]"


def normalize_ident(name: Any) -> str:
    """Return the canonical attribute name for ``name``.

    Raises:
        ValueError: If ``name`` is not a non-empty string
    """
    if not isinstance(name, str):
        raise ValueError(f"attribute name must be a string, got {type(name).__name__}")
    text = str(name)
    if text.startswith(":"):
        text = text[1:]
    if not text:
        raise ValueError("attribute name must not be empty")
    return text


def is_tempid(ref: Any) -> bool:
    """Check whether ``ref`` names an entity by temporary id."""
    if isinstance(ref, TempId):
        return True
    if isinstance(ref, bool):
        return False
    if isinstance(ref, int):
        return ref < 0
    return isinstance(ref, str) and not isinstance(ref, Keyword)


def is_entity_id(ref: Any) -> bool:
    """Check whether ``ref`` is a permanent entity id."""
    return isinstance(ref, int) and not isinstance(ref, bool) and ref > 0


def is_lookup_ref(ref: Any) -> bool:
    """Check whether ``ref`` is a lookup ref ``(unique_attr, value)``."""
    return (
        isinstance(ref, (list, tuple))
        and len(ref) == 2
        and isinstance(ref[0], str)
        and not isinstance(ref[1], (list, tuple, set, frozenset, dict))
    )
