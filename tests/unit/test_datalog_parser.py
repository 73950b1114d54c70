"""Unit tests for the datalog parser."""

from __future__ import annotations

import pytest

from factdb.adapters.inbound.datalog_parser import (
    WILDCARD,
    Constant,
    DataPattern,
    DatalogParser,
    FindAggregate,
    FindKind,
    FindPull,
    FindVariable,
    FunctionClause,
    Input,
    InputKind,
    PredicateClause,
    Variable,
)
from factdb.domain.value_objects import Keyword
from factdb.ports import ParseError, QueryError


@pytest.fixture
def parser() -> DatalogParser:
    return DatalogParser()


@pytest.mark.unit
class TestFindSpecs:
    """Tests for the four find spec shapes and find elements."""

    def test_relation(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find ?e ?a :where [?e :user/age ?a]]")

        assert query.find.kind is FindKind.RELATION
        assert query.find.elements == [FindVariable(Variable("?e")), FindVariable(Variable("?a"))]

    def test_collection(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find [?e ...] :where [?e :user/age]]")

        assert query.find.kind is FindKind.COLLECTION

    def test_tuple(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find [?e ?a] :where [?e :user/age ?a]]")

        assert query.find.kind is FindKind.TUPLE
        assert len(query.find.elements) == 2

    def test_scalar(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find ?e . :where [?e :user/age]]")

        assert query.find.kind is FindKind.SCALAR

    def test_pull(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find (pull ?e [:user/email :user/age]) :where [?e :user/age]]")

        element = query.find.elements[0]
        assert isinstance(element, FindPull)
        assert [a.name for a in element.pattern.attrs] == ["user/email", "user/age"]
        assert query.find.has_pull

    def test_aggregate(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find ?n (count ?e) :where [?e :user/name ?n]]")

        assert query.find.elements[1] == FindAggregate(Variable("?e"), "count")
        assert query.find.has_aggregates

    def test_unknown_find_expression(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="Unknown find expression"):
            parser.parse("[:find (median ?a) :where [?e :user/age ?a]]")

    def test_collection_takes_one_element(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="exactly one"):
            parser.parse("[:find [?e ?a ...] :where [?e :user/age ?a]]")

    def test_find_variable_must_be_bound(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="not bound"):
            parser.parse("[:find ?x :where [?e :user/age ?a]]")


@pytest.mark.unit
class TestWhereClauses:
    """Tests for data patterns and expression clauses."""

    def test_data_pattern_terms(self, parser: DatalogParser) -> None:
        query = parser.parse('[:find ?e :where [?e :user/email "sally@x.com"]]')

        assert query.where == [
            DataPattern(
                Variable("?e"), Constant(Keyword("user/email")), Constant("sally@x.com"), WILDCARD
            )
        ]

    def test_short_pattern_is_padded(self, parser: DatalogParser) -> None:
        pattern = parser.parse("[:find ?e :where [?e]]").where[0]

        assert pattern.terms == (Variable("?e"), WILDCARD, WILDCARD, WILDCARD)

    def test_wildcard_and_tx(self, parser: DatalogParser) -> None:
        pattern = parser.parse("[:find ?tx :where [_ :user/age _ ?tx]]").where[0]

        assert pattern.e is WILDCARD
        assert pattern.tx == Variable("?tx")

    def test_source_prefix_is_stripped(self, parser: DatalogParser) -> None:
        pattern = parser.parse("[:find ?e :where [$ ?e :user/age]]").where[0]

        assert pattern.e == Variable("?e")

    def test_too_many_pattern_elements(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="one to four"):
            parser.parse("[:find ?e :where [?e :user/age 1 2 3]]")

    def test_lookup_ref_constant(self, parser: DatalogParser) -> None:
        pattern = parser.parse(
            '[:find ?f :where [[:user/email "sally@x.com"] :user/friends ?f]]'
        ).where[0]

        assert pattern.e == Constant(("user/email", "sally@x.com"))

    def test_predicate(self, parser: DatalogParser) -> None:
        clause = parser.parse("[:find ?e :where [?e :user/age ?a] [(>= ?a 21)]]").where[1]

        assert clause == PredicateClause(">=", [Variable("?a"), Constant(21)])

    def test_function(self, parser: DatalogParser) -> None:
        clause = parser.parse(
            "[:find ?n :where [?e :user/age ?a] [(+ ?a 1) ?n]]"
        ).where[1]

        assert clause == FunctionClause("+", [Variable("?a"), Constant(1)], Variable("?n"))

    def test_unknown_predicate(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="Unknown predicate"):
            parser.parse("[:find ?e :where [?e :user/age ?a] [(between? ?a 1)]]")

    def test_unknown_function(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="Unknown function"):
            parser.parse("[:find ?x :where [?e :user/age ?a] [(sqrt ?a) ?x]]")

    def test_function_output_must_be_variable(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="must bind a variable"):
            parser.parse("[:find ?e :where [?e :user/age ?a] [(+ ?a 1) 5]]")

    def test_predicate_over_unbound_variable(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="Insufficient bindings"):
            parser.parse("[:find ?e :where [(>= ?a 21)] [?e :user/age ?a]]")

    def test_unexpected_symbol(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="Unexpected symbol"):
            parser.parse("[:find ?e :where [?e :user/age foo]]")

    def test_empty_where(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="at least one clause"):
            parser.parse("[:find ?e :where]")


@pytest.mark.unit
class TestSections:
    """Tests for :in, :with and section handling."""

    def test_default_input_is_the_database(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find ?e :where [?e :user/age]]")

        assert query.inputs == [Input(InputKind.SOURCE)]
        assert query.bound_inputs == []

    def test_scalar_and_collection_inputs(self, parser: DatalogParser) -> None:
        query = parser.parse(
            "[:find ?e :in $ ?min [?email ...] :where [?e :user/email ?email] "
            "[?e :user/age ?a] [(>= ?a ?min)]]"
        )

        assert query.bound_inputs == [
            Input(InputKind.SCALAR, Variable("?min")),
            Input(InputKind.COLLECTION, Variable("?email")),
        ]

    def test_input_binds_for_predicates(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find ?e :in $ ?min :where [(> ?min 0)] [?e :user/age ?min]]")

        assert isinstance(query.where[0], PredicateClause)

    def test_two_sources_rejected(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="one database source"):
            parser.parse("[:find ?e :in $ $ :where [?e :user/age]]")

    def test_with(self, parser: DatalogParser) -> None:
        query = parser.parse("[:find (sum ?a) :with ?e :where [?e :user/age ?a]]")

        assert query.with_vars == [Variable("?e")]

    def test_map_form(self, parser: DatalogParser) -> None:
        query = parser.parse("{:find [?e] :in [$ ?min] :where [[?e :user/age ?a] [(> ?a ?min)]]}")

        assert query.find.kind is FindKind.RELATION
        assert len(query.where) == 2

    def test_duplicate_section(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="twice"):
            parser.parse("[:find ?e :where [?e :user/age] :where [?e :user/name]]")

    def test_unknown_section(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match="Unknown query section"):
            parser.parse("[:find ?e :rules [] :where [?e :user/age]]")

    def test_missing_find(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError, match=":find"):
            parser.parse("[:where [?e :user/age]]")

    def test_not_a_query(self, parser: DatalogParser) -> None:
        with pytest.raises(QueryError):
            parser.parse("42")

    def test_unreadable_text(self, parser: DatalogParser) -> None:
        with pytest.raises(ParseError):
            parser.parse("[:find ?e :where [?e")

    def test_str_round_trips_to_edn(self, parser: DatalogParser) -> None:
        text = "[:find ?e :in $ :where [?e :user/age ?a] [(>= ?a 21)]]"

        assert str(parser.parse(text)) == text


@pytest.mark.unit
class TestDataQueries:
    """Tests for queries given as Python data rather than text."""

    def test_plain_strings_are_variables(self, parser: DatalogParser) -> None:
        query = parser.parse(
            [":find", "?e", ":where", ["?e", "user/email", "_"], [(">", "?e", 0)]]
        )

        assert query.where[0] == DataPattern(Variable("?e"), Constant(Keyword("user/email")))
        assert query.where[1] == PredicateClause(">", [Variable("?e"), Constant(0)])

    def test_pull_spelled_as_list(self, parser: DatalogParser) -> None:
        query = parser.parse(
            {
                ":find": [["pull", "?e", ["user/email"]]],
                ":where": [["?e", "user/age", "?a"]],
            }
        )

        assert query.find.kind is FindKind.RELATION
        assert isinstance(query.find.elements[0], FindPull)

    def test_strings_in_text_are_constants(self, parser: DatalogParser) -> None:
        pattern = parser.parse('[:find ?e :where [?e :user/name "?e"]]').where[0]

        assert pattern.v == Constant("?e")

    def test_predicate_spelled_as_list(self, parser: DatalogParser) -> None:
        query = parser.parse(
            [":find", "?e", ":where", ["?e", "user/age", "?a"], [[">=", "?a", 21]]]
        )

        assert query.where[1] == PredicateClause(">=", [Variable("?a"), Constant(21)])

    def test_function_spelled_as_list(self, parser: DatalogParser) -> None:
        query = parser.parse(
            [":find", "?s", ":where", ["?e", "user/age", "?a"], [["str", "?a", "y"], "?s"]]
        )

        assert query.where[1] == FunctionClause(
            "str", [Variable("?a"), Constant("y")], Variable("?s")
        )

    def test_lookup_ref_entity_is_not_a_call(self, parser: DatalogParser) -> None:
        pattern = parser.parse(
            [":find", "?a", ":where", [["user/email", "sally@x.com"], "user/age", "?a"]]
        ).where[0]

        assert pattern.e == Constant(("user/email", "sally@x.com"))

    def test_map_sections_without_colon(self, parser: DatalogParser) -> None:
        query = parser.parse(
            {
                "find": ["?e"],
                "in": ["$", "?min"],
                "where": [["?e", "user/age", "?a"], [[">", "?a", "?min"]]],
            }
        )

        assert query.bound_inputs == [Input(InputKind.SCALAR, Variable("?min"))]
        assert isinstance(query.where[1], PredicateClause)

    def test_colon_string_is_a_keyword_constant(self, parser: DatalogParser) -> None:
        pattern = parser.parse(
            [":find", "?a", ":where", ["?a", "db/valueType", ":db.type/ref"]]
        ).where[0]

        assert pattern.v == Constant(Keyword("db.type/ref"))
        assert isinstance(pattern.v.value, Keyword)
