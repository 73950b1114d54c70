"""Datalog query executor using the Volcano iterator model.

A parsed query becomes a left-deep chain of operators, one per where
clause, fed by the bindings of the ``:in`` arguments:

    Input -> PatternJoin -> PatternJoin -> PredicateFilter -> ...

Each operator pulls partial bindings (``{?var: value}``) from its child,
extends or filters them against the fact index and passes them on. The
final bindings are projected through the find spec: variables, pull
patterns or grouped aggregates.

References:
    - Graefe, "Volcano" (1994)
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, Sequence

from factdb.adapters.inbound.datalog_parser import (
    Clause,
    Constant,
    DataPattern,
    FindAggregate,
    FindKind,
    FindPull,
    FunctionClause,
    Input,
    InputKind,
    PredicateClause,
    Query,
    Term,
    Variable,
)
from factdb.domain.entities import DB_IDENT
from factdb.domain.services import FactIndex, PullProjector, SchemaRegistry
from factdb.domain.value_objects import EntityId, Keyword, is_entity_id, normalize_ident
from factdb.ports.inbound.fact_store import QueryError, UnknownAttribute


Binding = dict[Variable, Any]

# Marks a constant reference that names no entity; the pattern matches nothing
_UNRESOLVED = object()


class Operator(ABC):
    """Base class for executor operators (Volcano model)."""

    @abstractmethod
    def open(self) -> None:
        """Initialize the operator."""
        pass

    @abstractmethod
    def next(self) -> Binding | None:
        """Return the next binding or None if exhausted."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        pass

    def __iter__(self) -> Iterator[Binding]:
        """Allow iteration over operator results."""
        self.open()
        try:
            while True:
                binding = self.next()
                if binding is None:
                    break
                yield binding
        finally:
            self.close()


class InputOperator(Operator):
    """Produces the initial bindings from the ``:in`` arguments."""

    def __init__(self, bindings: list[Binding]) -> None:
        self._bindings = bindings
        self._position = 0

    def open(self) -> None:
        self._position = 0

    def next(self) -> Binding | None:
        if self._position >= len(self._bindings):
            return None
        binding = self._bindings[self._position]
        self._position += 1
        return dict(binding)

    def close(self) -> None:
        self._position = 0


class PatternJoinOperator(Operator):
    """Joins each incoming binding with the datoms matching a data pattern."""

    def __init__(
        self,
        child: Operator,
        pattern: DataPattern,
        index: FactIndex,
        schema: SchemaRegistry,
        max_bindings: int,
    ) -> None:
        self._child = child
        self._pattern = pattern
        self._index = index
        self._schema = schema
        self._max_bindings = max_bindings
        self._pending: Iterator[Binding] = iter(())
        self._produced = 0

    def open(self) -> None:
        self._child.open()
        self._pending = iter(())
        self._produced = 0

    def next(self) -> Binding | None:
        while True:
            binding = next(self._pending, None)
            if binding is not None:
                self._produced += 1
                if self._produced > self._max_bindings:
                    raise QueryError(
                        f"Query exceeded the limit of {self._max_bindings} bindings "
                        f"at {self._pattern}"
                    )
                return binding
            outer = self._child.next()
            if outer is None:
                return None
            self._pending = self._join(outer)

    def close(self) -> None:
        self._child.close()
        self._pending = iter(())

    def _join(self, binding: Binding) -> Iterator[Binding]:
        pattern = self._pattern

        e = self._entity_value(pattern.e, binding)
        a = self._attribute_value(pattern.a, binding)
        if e is _UNRESOLVED or a is _UNRESOLVED:
            return
        v_bound, v = self._value(pattern.v, binding, a)
        if v is _UNRESOLVED:
            return

        for datom in self._index.match(e, a, v, v_bound=v_bound):
            extended = dict(binding)
            slots = ((pattern.e, datom.e), (pattern.a, Keyword(datom.a)), (pattern.v, datom.v))
            # Variables bound on entry already constrained the index lookup
            if all(
                term in binding or _unify(extended, term, value)
                for term, value in slots
            ) and _unify(extended, pattern.tx, datom.tx):
                yield extended

    def _entity_value(self, term: Term, binding: Binding) -> Any:
        if isinstance(term, Variable):
            if term not in binding:
                return None
            return self._resolve_entity(binding[term])
        if isinstance(term, Constant):
            return self._resolve_entity(term.value)
        return None

    def _attribute_value(self, term: Term, binding: Binding) -> Any:
        if isinstance(term, Constant):
            return str(term.value)
        if isinstance(term, Variable) and term in binding:
            value = binding[term]
            if is_entity_id(value):
                attribute = self._schema.by_id(EntityId(value))
                return attribute.ident if attribute else _UNRESOLVED
            try:
                return normalize_ident(value)
            except ValueError:
                return _UNRESOLVED
        return None

    def _value(self, term: Term, binding: Binding, a: str | None) -> tuple[bool, Any]:
        if isinstance(term, Variable):
            if term not in binding:
                return False, None
            value = binding[term]
        elif isinstance(term, Constant):
            value = term.value
        else:
            return False, None

        attribute = self._schema.get(a) if a else None
        if attribute is not None and attribute.is_ref:
            value = self._resolve_entity(value)
        return True, value

    def _resolve_entity(self, ref: Any) -> Any:
        if is_entity_id(ref):
            return ref
        if isinstance(ref, Keyword):
            holders = self._index.holders(DB_IDENT, ref)
            return holders[0] if holders else _UNRESOLVED
        if isinstance(ref, tuple) and len(ref) == 2:
            try:
                holders = self._index.holders(normalize_ident(ref[0]), ref[1])
            except ValueError:
                return _UNRESOLVED
            return holders[0] if holders else _UNRESOLVED
        return _UNRESOLVED


class PredicateFilterOperator(Operator):
    """Filter operator that applies a comparison predicate."""

    def __init__(self, child: Operator, clause: PredicateClause) -> None:
        self._child = child
        self._clause = clause

    def open(self) -> None:
        self._child.open()

    def next(self) -> Binding | None:
        while True:
            binding = self._child.next()
            if binding is None:
                return None
            args = [_evaluate(term, binding, self._clause) for term in self._clause.args]
            if _compare(self._clause.op, args):
                return binding

    def close(self) -> None:
        self._child.close()


class FunctionBindOperator(Operator):
    """Binds the result of a function call to an output variable."""

    def __init__(self, child: Operator, clause: FunctionClause) -> None:
        self._child = child
        self._clause = clause
        self._fn = _FUNCTIONS[clause.fn]

    def open(self) -> None:
        self._child.open()

    def next(self) -> Binding | None:
        while True:
            binding = self._child.next()
            if binding is None:
                return None
            args = [_evaluate(term, binding, self._clause) for term in self._clause.args]
            try:
                result = self._fn(*args)
            except (TypeError, ValueError, ZeroDivisionError, IndexError) as e:
                raise QueryError(f"Cannot evaluate {self._clause}: {e}") from e
            if _unify(binding, self._clause.output, result):
                return binding

    def close(self) -> None:
        self._child.close()


def _unify(binding: Binding, term: Term, value: Any) -> bool:
    """Bind ``term`` to ``value``, or check it against an existing binding."""
    if isinstance(term, Variable):
        if term in binding:
            return binding[term] == value
        binding[term] = value
    return True


def _evaluate(term: Term, binding: Binding, clause: Clause) -> Any:
    if isinstance(term, Variable):
        if term not in binding:
            raise QueryError(f"Insufficient bindings: {term} not bound in {clause}")
        return binding[term]
    if isinstance(term, Constant):
        return term.value
    raise QueryError(f"Wildcard is not allowed in {clause}")


def _compare(op: str, args: list[Any]) -> bool:
    """Compare values pairwise with the given operator."""
    if any(arg is None for arg in args):
        return False
    if op == "=":
        return all(a == args[0] for a in args[1:])
    if op in ("!=", "not="):
        return not all(a == args[0] for a in args[1:])
    try:
        pairs = zip(args, args[1:])
        if op == "<":
            return all(a < b for a, b in pairs)
        elif op == "<=":
            return all(a <= b for a, b in pairs)
        elif op == ">":
            return all(a > b for a, b in pairs)
        elif op == ">=":
            return all(a >= b for a, b in pairs)
    except TypeError:
        return False
    return False


def _subtract(*args: Any) -> Any:
    if len(args) == 1:
        return -args[0]
    result = args[0]
    for arg in args[1:]:
        result -= arg
    return result


def _divide(*args: Any) -> Any:
    if len(args) == 1:
        return 1 / args[0]
    result = args[0]
    for arg in args[1:]:
        if isinstance(result, int) and isinstance(arg, int) and result % arg == 0:
            result //= arg
        else:
            result /= arg
    return result


def _multiply(*args: Any) -> Any:
    result = 1
    for arg in args:
        result *= arg
    return result


def _subs(s: str, start: int, end: int | None = None) -> str:
    if not isinstance(s, str):
        raise TypeError(f"subs expects a string, got {type(s).__name__}")
    if start < 0 or start > len(s) or (end is not None and not start <= end <= len(s)):
        raise IndexError(f"subs range out of bounds for {s!r}")
    return str(s[start:end])


def _string_only(fn: Callable[[str], str]) -> Callable[[Any], str]:
    def apply(s: Any) -> str:
        if not isinstance(s, str):
            raise TypeError(f"expected a string, got {type(s).__name__}")
        return fn(str(s))

    return apply


_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "str": lambda *args: "".join("" if a is None else str(a) for a in args),
    "+": lambda *args: sum(args),
    "-": _subtract,
    "*": _multiply,
    "/": _divide,
    "count": lambda coll: len(coll),
    "subs": _subs,
    "lower-case": _string_only(str.lower),
    "upper-case": _string_only(str.upper),
}


def _hashable_input(spec: Input, value: Any) -> Any:
    """Reject input values that cannot key a binding row."""
    try:
        hash(value)
    except TypeError as e:
        raise QueryError(
            f"Input {spec} must be a scalar value, got {type(value).__name__} {value!r}"
        ) from e
    return value


def _aggregate(fn: str, values: list[Any]) -> Any:
    try:
        if fn == "count":
            return len(values)
        if fn == "count-distinct":
            return len(set(values))
        if fn == "distinct":
            return frozenset(values)
        if fn == "sum":
            return sum(values)
        if fn == "min":
            return min(values)
        if fn == "max":
            return max(values)
        if fn == "avg":
            return sum(values) / len(values)
    except TypeError as e:
        raise QueryError(f"Cannot aggregate {fn} over {values!r}: {e}") from e
    raise QueryError(f"Unknown aggregate {fn!r}")


class QueryExecutor:
    """Evaluates parsed queries against a schema and a fact index.

    The executor builds an operator chain from the where clauses, drives
    it to completion and shapes the result according to the find spec.
    """

    def __init__(
        self,
        schema: SchemaRegistry,
        index: FactIndex,
        max_bindings: int = 1_000_000,
    ) -> None:
        self._schema = schema
        self._index = index
        self._projector = PullProjector(schema, index)
        self._max_bindings = max_bindings

    def execute(self, query: Query, inputs: Sequence[Any] = ()) -> Any:
        """Execute a query.

        Args:
            query: Parsed query
            inputs: Values for the non-database ``:in`` bindings, in order

        Returns:
            A set of tuples for relation finds without pull, a list of tuples
            for relation finds with pull, a list for collection finds, and a
            tuple or single value (or None) for tuple and scalar finds.

        Raises:
            UnknownAttribute: If a pattern or pull references an undeclared attribute.
            QueryError: If the inputs do not match ``:in`` or evaluation fails.
        """
        self._validate(query)
        operator = self._build_operator_tree(query, self._input_bindings(query, inputs))
        rows = list(operator)
        return self._project(query, rows)

    def _validate(self, query: Query) -> None:
        for clause in query.where:
            if isinstance(clause, DataPattern) and isinstance(clause.a, Constant):
                self._schema.require(str(clause.a.value), UnknownAttribute)
        for element in query.find.elements:
            if isinstance(element, FindPull):
                self._projector.validate(element.pattern)

    def _input_bindings(self, query: Query, inputs: Sequence[Any]) -> list[Binding]:
        declared = query.bound_inputs
        if len(inputs) != len(declared):
            raise QueryError(
                f"Query expects {len(declared)} input(s) besides the database, "
                f"got {len(inputs)}"
            )

        choices: list[list[tuple[Variable, Any]]] = []
        for spec, value in zip(declared, inputs):
            if spec.kind is InputKind.COLLECTION:
                if isinstance(value, (str, bytes)) or not isinstance(
                    value, (list, tuple, set, frozenset)
                ):
                    raise QueryError(f"Input {spec} expects a collection, got {value!r}")
                choices.append([(spec.var, _hashable_input(spec, v)) for v in value])
            else:
                choices.append([(spec.var, _hashable_input(spec, value))])

        return [dict(combo) for combo in itertools.product(*choices)]

    def _build_operator_tree(self, query: Query, bindings: list[Binding]) -> Operator:
        """Build a left-deep operator chain from the where clauses."""
        operator: Operator = InputOperator(bindings)
        for clause in query.where:
            if isinstance(clause, DataPattern):
                operator = PatternJoinOperator(
                    operator, clause, self._index, self._schema, self._max_bindings
                )
            elif isinstance(clause, PredicateClause):
                operator = PredicateFilterOperator(operator, clause)
            elif isinstance(clause, FunctionClause):
                operator = FunctionBindOperator(operator, clause)
            else:
                raise QueryError(f"Unsupported clause: {type(clause).__name__}")
        return operator

    # Projection

    def _project(self, query: Query, rows: list[Binding]) -> Any:
        find = query.find
        if find.has_aggregates:
            tuples = self._aggregate(query, rows)
        else:
            tuples = self._distinct_tuples(query, rows)

        if find.kind is FindKind.COLLECTION:
            return [t[0] for t in tuples]
        if find.kind is FindKind.TUPLE:
            return tuples[0] if tuples else None
        if find.kind is FindKind.SCALAR:
            return tuples[0][0] if tuples else None
        if find.has_pull:
            return tuples
        return set(tuples)

    def _distinct_tuples(self, query: Query, rows: list[Binding]) -> list[tuple[Any, ...]]:
        elements = query.find.elements
        seen: dict[tuple[Any, ...], None] = {}
        for row in rows:
            key = tuple(row[e.var] for e in elements)
            seen.setdefault(key, None)
        return [self._render(elements, key) for key in seen]

    def _render(self, elements: Sequence[Any], key: tuple[Any, ...]) -> tuple[Any, ...]:
        values = []
        for element, value in zip(elements, key):
            if isinstance(element, FindPull):
                values.append(self._projector.pull(element.pattern, EntityId(value)))
            else:
                values.append(value)
        return tuple(values)

    def _aggregate(self, query: Query, rows: list[Binding]) -> list[tuple[Any, ...]]:
        elements = query.find.elements
        keep = list(dict.fromkeys([e.var for e in elements] + query.with_vars))

        # Rows are a set over the find and :with variables before aggregating
        distinct: dict[tuple[Any, ...], Binding] = {}
        for row in rows:
            distinct.setdefault(tuple(row[v] for v in keep), row)

        group_elements = [e for e in elements if not isinstance(e, FindAggregate)]
        groups: dict[tuple[Any, ...], list[Binding]] = {}
        for row in distinct.values():
            groups.setdefault(tuple(row[e.var] for e in group_elements), []).append(row)

        results = []
        for group_key, members in groups.items():
            rendered = iter(self._render(group_elements, group_key))
            values = []
            for element in elements:
                if isinstance(element, FindAggregate):
                    values.append(_aggregate(element.fn, [m[element.var] for m in members]))
                else:
                    values.append(next(rendered))
            results.append(tuple(values))
        return results
