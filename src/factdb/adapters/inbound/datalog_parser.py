"""Datalog query parser.

Converts a query, given as EDN text or as already-read data, into a query
plan that the executor evaluates clause by clause.

Supported forms:
    - vector form   [:find ?e :in $ ?min :where [?e :user/age ?a] [(>= ?a ?min)]]
    - map form      {:find [?e] :in [$ ?min] :where [[?e :user/age ?a] ...]}

Find specs:
    - relation      :find ?a ?b
    - collection    :find [?a ...]
    - tuple         :find [?a ?b]
    - scalar        :find ?a .

Find elements are variables, ``(pull ?e pattern)`` or aggregates such as
``(count ?e)``.

When the query is passed as data rather than text, plain strings beginning
with ``?`` are read as variables and ``_`` as the wildcard, so queries can
be written without importing ``Symbol``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from factdb.adapters.inbound.edn_reader import read_string
from factdb.domain.services.pull import PullPattern, parse_pull_pattern
from factdb.domain.value_objects import Keyword, Symbol, is_lookup_ref, normalize_ident
from factdb.ports.inbound.fact_store import QueryError


PREDICATES = frozenset({"=", "!=", "not=", "<", "<=", ">", ">="})
FUNCTIONS = frozenset(
    {"str", "+", "-", "*", "/", "count", "subs", "lower-case", "upper-case"}
)
AGGREGATES = frozenset({"count", "count-distinct", "sum", "min", "max", "avg", "distinct"})

_SECTIONS = ("find", "with", "in", "where")


class FindKind(Enum):
    """Shape of a query result."""

    RELATION = "relation"
    COLLECTION = "collection"
    TUPLE = "tuple"
    SCALAR = "scalar"


# Terms


@dataclass(frozen=True)
class Term(ABC):
    """A slot of a clause."""

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class Variable(Term):
    """A logic variable such as ``?e``."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Constant(Term):
    """A literal value."""

    value: Any

    def __str__(self) -> str:
        if isinstance(self.value, str) and not isinstance(self.value, Keyword):
            return f'"{self.value}"'
        return repr(self.value)


@dataclass(frozen=True)
class Wildcard(Term):
    """The ``_`` placeholder: matches anything, binds nothing."""

    def __str__(self) -> str:
        return "_"


WILDCARD = Wildcard()


# Clauses


@dataclass
class Clause(ABC):
    """Base class for where clauses."""

    @property
    @abstractmethod
    def variables(self) -> list[Variable]:
        """Variables referenced by the clause."""

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass
class DataPattern(Clause):
    """A pattern ``[e a v tx]`` matched against the datoms."""

    e: Term = WILDCARD
    a: Term = WILDCARD
    v: Term = WILDCARD
    tx: Term = WILDCARD

    @property
    def terms(self) -> tuple[Term, Term, Term, Term]:
        return (self.e, self.a, self.v, self.tx)

    @property
    def variables(self) -> list[Variable]:
        return [t for t in self.terms if isinstance(t, Variable)]

    def __str__(self) -> str:
        terms = list(self.terms)
        while len(terms) > 1 and terms[-1] is WILDCARD:
            terms.pop()
        return f"[{' '.join(str(t) for t in terms)}]"


@dataclass
class PredicateClause(Clause):
    """A filter ``[(op ?x arg)]`` over bound variables."""

    op: str
    args: list[Term] = field(default_factory=list)

    @property
    def variables(self) -> list[Variable]:
        return [t for t in self.args if isinstance(t, Variable)]

    def __str__(self) -> str:
        return f"[({self.op} {' '.join(str(a) for a in self.args)})]"


@dataclass
class FunctionClause(Clause):
    """A binding ``[(fn args...) ?out]``."""

    fn: str
    args: list[Term]
    output: Term

    @property
    def variables(self) -> list[Variable]:
        return [t for t in self.args if isinstance(t, Variable)]

    def __str__(self) -> str:
        return f"[({self.fn} {' '.join(str(a) for a in self.args)}) {self.output}]"


# Find elements


@dataclass
class FindElement(ABC):
    """Base class for elements of the find spec."""

    var: Variable

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass
class FindVariable(FindElement):
    def __str__(self) -> str:
        return str(self.var)


@dataclass
class FindPull(FindElement):
    pattern: PullPattern = field(default_factory=PullPattern)

    def __str__(self) -> str:
        return f"(pull {self.var} {self.pattern})"


@dataclass
class FindAggregate(FindElement):
    fn: str = "count"

    def __str__(self) -> str:
        return f"({self.fn} {self.var})"


@dataclass
class FindSpec:
    """The ``:find`` part of a query."""

    kind: FindKind
    elements: list[FindElement]

    @property
    def has_aggregates(self) -> bool:
        return any(isinstance(e, FindAggregate) for e in self.elements)

    @property
    def has_pull(self) -> bool:
        return any(isinstance(e, FindPull) for e in self.elements)

    def __str__(self) -> str:
        inner = " ".join(str(e) for e in self.elements)
        if self.kind is FindKind.COLLECTION:
            return f"[{inner} ...]"
        if self.kind is FindKind.TUPLE:
            return f"[{inner}]"
        if self.kind is FindKind.SCALAR:
            return f"{inner} ."
        return inner


# Inputs


class InputKind(Enum):
    SOURCE = "source"
    SCALAR = "scalar"
    COLLECTION = "collection"


@dataclass
class Input:
    """One ``:in`` binding."""

    kind: InputKind
    var: Variable | None = None

    def __str__(self) -> str:
        if self.kind is InputKind.SOURCE:
            return "$"
        if self.kind is InputKind.COLLECTION:
            return f"[{self.var} ...]"
        return str(self.var)


@dataclass
class Query:
    """A parsed datalog query."""

    find: FindSpec
    where: list[Clause] = field(default_factory=list)
    inputs: list[Input] = field(default_factory=lambda: [Input(InputKind.SOURCE)])
    with_vars: list[Variable] = field(default_factory=list)

    @property
    def bound_inputs(self) -> list[Input]:
        """Inputs other than the database, in argument order."""
        return [i for i in self.inputs if i.kind is not InputKind.SOURCE]

    def __str__(self) -> str:
        parts = [f":find {self.find}"]
        if self.with_vars:
            parts.append(f":with {' '.join(str(v) for v in self.with_vars)}")
        parts.append(f":in {' '.join(str(i) for i in self.inputs)}")
        parts.append(f":where {' '.join(str(c) for c in self.where)}")
        return f"[{' '.join(parts)}]"


class DatalogParser:
    """Datalog parser producing ``Query`` plans.

    Example:
        >>> parser = DatalogParser()
        >>> query = parser.parse("[:find ?e :where [?e :user/age ?a] [(>= ?a 21)]]")
        >>> print(query)
        [:find ?e :in $ :where [?e :user/age ?a] [(>= ?a 21)]]
    """

    def parse(self, query: str | Sequence[Any] | Mapping[Any, Any]) -> Query:
        """Parse a query.

        Args:
            query: EDN text, a query vector or a query map

        Raises:
            ParseError: If query text cannot be read
            QueryError: If the query is malformed
        """
        strict = isinstance(query, str)
        if strict:
            query = read_string(query)

        if isinstance(query, Mapping):
            sections = self._sections_from_map(query)
        elif isinstance(query, (list, tuple)):
            sections = self._sections_from_vector(query)
        else:
            raise QueryError(f"Query must be a vector or a map, got {type(query).__name__}")

        return _QueryBuilder(strict).build(sections)

    def _sections_from_map(self, query: Mapping[Any, Any]) -> dict[str, list[Any]]:
        sections: dict[str, list[Any]] = {}
        for key, value in query.items():
            name = self._section_name(key)
            if name is None and isinstance(key, str) and key in _SECTIONS:
                # JSON maps spell sections without the colon
                name = key
            if name is None:
                raise QueryError(f"Unknown query section {key!r}")
            if not isinstance(value, (list, tuple)):
                raise QueryError(f":{name} must be followed by a vector")
            sections[name] = list(value)
        return sections

    def _sections_from_vector(self, query: Sequence[Any]) -> dict[str, list[Any]]:
        sections: dict[str, list[Any]] = {}
        current: str | None = None
        for item in query:
            name = self._section_name(item)
            if name is not None:
                if name in sections:
                    raise QueryError(f"Section :{name} appears twice")
                sections[name] = []
                current = name
            elif current is None:
                raise QueryError(f"Query must start with :find, got {item!r}")
            else:
                sections[current].append(item)
        return sections

    @staticmethod
    def _section_name(item: Any) -> str | None:
        if isinstance(item, Keyword) or (isinstance(item, str) and item.startswith(":")):
            name = normalize_ident(item)
            if name in _SECTIONS:
                return name
            raise QueryError(f"Unknown query section :{name}")
        return None


class _QueryBuilder:
    """Builds one query plan from its sections."""

    def __init__(self, strict: bool) -> None:
        self._strict = strict

    def build(self, sections: dict[str, list[Any]]) -> Query:
        if not sections.get("find"):
            raise QueryError("Query must have a non-empty :find")
        if "where" in sections and not sections["where"]:
            raise QueryError(":where must contain at least one clause")

        find = self._parse_find(sections["find"])
        inputs = self._parse_inputs(sections.get("in", ["$"]))
        where = [self._parse_clause(c) for c in sections.get("where", [])]
        with_vars = [self._require_variable(v, ":with") for v in sections.get("with", [])]

        query = Query(find=find, where=where, inputs=inputs, with_vars=with_vars)
        self._check_bindings(query)
        return query

    # Terms

    def _term(self, raw: Any) -> Term:
        if isinstance(raw, Symbol) or (not self._strict and _is_plain_str(raw)):
            text = str(raw)
            if text == "_":
                return WILDCARD
            if text.startswith("?") and len(text) > 1:
                return Variable(text)
            if isinstance(raw, Symbol):
                raise QueryError(f"Unexpected symbol {text!r} in clause")
            if text.startswith(":") and len(text) > 1:
                return Constant(Keyword(text))
        if isinstance(raw, list) and is_lookup_ref(raw):
            return Constant((normalize_ident(raw[0]), raw[1]))
        if isinstance(raw, (list, dict, set)):
            raise QueryError(f"Unexpected collection {raw!r} in clause")
        return Constant(raw)

    def _require_variable(self, raw: Any, where: str) -> Variable:
        term = self._term(raw)
        if not isinstance(term, Variable):
            raise QueryError(f"Expected a variable in {where}, got {raw!r}")
        return term

    # Find

    def _parse_find(self, items: list[Any]) -> FindSpec:
        if len(items) == 1 and isinstance(items[0], list) and not _is_call(items[0]):
            inner = list(items[0])
            if inner and _symbol_text(inner[-1]) == "...":
                if len(inner) != 2:
                    raise QueryError("Collection find spec takes exactly one element")
                return FindSpec(FindKind.COLLECTION, [self._find_element(inner[0])])
            if not inner:
                raise QueryError("Tuple find spec must not be empty")
            return FindSpec(FindKind.TUPLE, [self._find_element(i) for i in inner])

        if len(items) == 2 and _symbol_text(items[1]) == ".":
            return FindSpec(FindKind.SCALAR, [self._find_element(items[0])])

        return FindSpec(FindKind.RELATION, [self._find_element(i) for i in items])

    def _find_element(self, raw: Any) -> FindElement:
        if _is_call(raw):
            name = _symbol_text(raw[0])
            args = list(raw[1:])
            if name == "pull":
                if len(args) != 2:
                    raise QueryError("pull takes a variable and a pattern")
                var = self._require_variable(args[0], "pull")
                return FindPull(var, parse_pull_pattern(args[1]))
            if name in AGGREGATES:
                if len(args) != 1:
                    raise QueryError(f"Aggregate {name} takes exactly one variable")
                return FindAggregate(self._require_variable(args[0], name), name)
            raise QueryError(f"Unknown find expression {name!r}")
        return FindVariable(self._require_variable(raw, ":find"))

    # Inputs

    def _parse_inputs(self, items: list[Any]) -> list[Input]:
        inputs: list[Input] = []
        for raw in items:
            if _symbol_text(raw) == "$":
                inputs.append(Input(InputKind.SOURCE))
            elif isinstance(raw, list):
                if len(raw) != 2 or _symbol_text(raw[1]) != "...":
                    raise QueryError(f"Unsupported :in binding {raw!r}, expected [?x ...]")
                inputs.append(Input(InputKind.COLLECTION, self._require_variable(raw[0], ":in")))
            else:
                inputs.append(Input(InputKind.SCALAR, self._require_variable(raw, ":in")))
        if sum(1 for i in inputs if i.kind is InputKind.SOURCE) > 1:
            raise QueryError("Only one database source is supported")
        return inputs

    # Where

    def _parse_clause(self, raw: Any) -> Clause:
        if not isinstance(raw, (list, tuple)) or not raw:
            raise QueryError(f"Invalid where clause {raw!r}")
        items = list(raw)

        if isinstance(items[0], tuple) or (not self._strict and _is_expression(items[0])):
            return self._parse_expression_clause(items)

        if _symbol_text(items[0]) == "$":
            items = items[1:]
        if not 1 <= len(items) <= 4:
            raise QueryError(f"Data pattern {raw!r} must have one to four elements")

        terms = [self._term(i) for i in items]
        terms += [WILDCARD] * (4 - len(terms))
        pattern = DataPattern(*terms)
        if isinstance(pattern.a, Constant):
            try:
                pattern.a = Constant(Keyword(normalize_ident(pattern.a.value)))
            except ValueError as e:
                raise QueryError(f"Invalid attribute in {raw!r}: {e}") from e
        return pattern

    def _parse_expression_clause(self, items: list[Any]) -> Clause:
        call = items[0]
        if not call:
            raise QueryError("Empty expression clause")
        name = _symbol_text(call[0])
        args = [self._term(a) for a in call[1:]]

        if len(items) == 1:
            if name not in PREDICATES:
                raise QueryError(f"Unknown predicate {name!r}")
            if len(args) < 2:
                raise QueryError(f"Predicate {name} takes at least two arguments")
            return PredicateClause(name, args)

        if len(items) == 2:
            if name not in FUNCTIONS:
                raise QueryError(f"Unknown function {name!r}")
            output = self._term(items[1])
            if isinstance(output, Constant):
                raise QueryError(f"Function {name} must bind a variable, got {items[1]!r}")
            return FunctionClause(name, args, output)

        raise QueryError(f"Invalid expression clause {items!r}")

    # Validation

    def _check_bindings(self, query: Query) -> None:
        bound: set[Variable] = {i.var for i in query.bound_inputs if i.var is not None}

        for clause in query.where:
            if isinstance(clause, DataPattern):
                bound.update(clause.variables)
                continue
            unbound = [v for v in clause.variables if v not in bound]
            if unbound:
                names = ", ".join(str(v) for v in unbound)
                raise QueryError(f"Insufficient bindings: {names} not bound in {clause}")
            if isinstance(clause, FunctionClause) and isinstance(clause.output, Variable):
                bound.add(clause.output)

        for element in query.find.elements:
            if element.var not in bound:
                raise QueryError(f"Find variable {element.var} is not bound by the query")
        for var in query.with_vars:
            if var not in bound:
                raise QueryError(f":with variable {var} is not bound by the query")


def _is_plain_str(value: Any) -> bool:
    return isinstance(value, str) and not isinstance(value, Keyword)


def _symbol_text(value: Any) -> str | None:
    if isinstance(value, Symbol) or _is_plain_str(value):
        return str(value)
    return None


def _is_expression(value: Any) -> bool:
    # Data queries spell predicate and function calls as lists: [">=", "?a", 21]
    if isinstance(value, list) and value:
        name = _symbol_text(value[0])
        return name is not None and (name in PREDICATES or name in FUNCTIONS)
    return False


def _is_call(value: Any) -> bool:
    if isinstance(value, tuple):
        return bool(value)
    # Data queries may spell calls as lists: ["pull", "?e", [...]]
    if isinstance(value, list) and value:
        name = _symbol_text(value[0])
        return name is not None and (name == "pull" or name in AGGREGATES)
    return False
