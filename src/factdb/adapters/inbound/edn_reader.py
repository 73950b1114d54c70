"""EDN reader for query and transaction text.

Reading is delegated to ``edn_format``; this adapter converts the library's
values into the ones the rest of factdb works with:

    EDN                     Python
    ---                     ------
    [a b]                   list
    (a b)                   tuple
    {k v}                   dict
    #{a b}                  frozenset
    "text"                  str
    42, -7, 1.5             int, float
    :user/email             Keyword
    ?e, _, pull             Symbol
    nil, true, false        None, True, False
    #db/id[:db.part/user]   TempId
    #inst "2024-01-01"      datetime (UTC)
    #uuid "..."             uuid.UUID

Example:
    >>> read_string('[:find ?e :where [?e :user/email]]')
    [:find, ?e, :where, [?e, :user/email]]
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence, Set
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

import edn_format

from factdb.domain.value_objects import DEFAULT_PARTITION, Keyword, Symbol, TempId
from factdb.ports.inbound.fact_store import ParseError


def _convert(value: Any) -> Any:
    """Turn an ``edn_format`` value into a factdb value."""
    if isinstance(value, edn_format.Keyword):
        return Keyword(str(value))
    if isinstance(value, edn_format.Symbol):
        return Symbol(str(value))
    if value is None or isinstance(value, (bool, int, float, str, TempId)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if type(value) is tuple:
        return tuple(_convert(item) for item in value)
    if isinstance(value, Mapping):
        result: dict[Any, Any] = {}
        for key, item in value.items():
            key = _convert(key)
            try:
                result[key] = _convert(item)
            except TypeError as e:
                raise ParseError(f"Map key {key!r} is not hashable") from e
        return result
    if isinstance(value, Set):
        try:
            return frozenset(_convert(item) for item in value)
        except TypeError as e:
            raise ParseError("Set elements must be hashable") from e
    if isinstance(value, Sequence):
        return [_convert(item) for item in value]
    return value


def _read_tempid(element: Any) -> TempId:
    """Handler for the ``#db/id`` tag."""
    value = _convert(element)
    if not isinstance(value, list) or not 1 <= len(value) <= 2:
        raise ParseError("#db/id expects [partition] or [partition idx]")
    partition = value[0]
    if not isinstance(partition, Keyword):
        raise ParseError("#db/id partition must be a keyword")
    if len(value) == 1:
        return TempId.new(str(partition) or DEFAULT_PARTITION)
    idx = value[1]
    if not isinstance(idx, int) or isinstance(idx, bool) or idx >= 0:
        raise ParseError("#db/id index must be a negative integer")
    return TempId(partition=str(partition), idx=idx)


edn_format.add_tag("db/id", _read_tempid)


def read_all(text: str) -> list[Any]:
    """Read every EDN form in ``text``.

    Raises:
        ParseError: If the text is not valid EDN
    """
    try:
        forms = edn_format.loads_all(text)
    except (ValueError, TypeError) as e:
        # decode errors and malformed tag payloads
        raise ParseError(f"Invalid EDN: {e}") from e
    return [_convert(form) for form in forms or ()]


def read_string(text: str) -> Any:
    """Read one EDN form from ``text``.

    Raises:
        ParseError: If the text is empty, invalid or holds several forms
    """
    forms = read_all(text)
    if not forms:
        raise ParseError("Empty input")
    if len(forms) > 1:
        raise ParseError(f"Expected one form, found {len(forms)}")
    return forms[0]
