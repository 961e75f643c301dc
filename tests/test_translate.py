"""Tests for the predicate translator."""

import pytest
import sqlalchemy as sa
from ninja_records.exceptions import InvalidQuery, UnsupportedOperator
from ninja_records.options import SQLOptions
from ninja_records.query import NormalizedFilter, Predicate, SortSpec, parse_predicates
from ninja_records.translate import OPERATORS, EngineQuery, translate, translate_where


def _sql(clause) -> str:
    return str(clause.compile(compile_kwargs={"literal_binds": True}))


def test_no_predicates_means_no_where(people_table: sa.Table):
    assert translate_where((), people_table) is None


def test_single_equality(people_table: sa.Table):
    where = translate_where(parse_predicates({"status": "active"}), people_table)
    assert _sql(where) == "people.status = 'active'"


def test_fields_are_anded(people_table: sa.Table):
    where = translate_where(parse_predicates({"status": "active", "age": {"$gte": 18, "$lt": 65}}), people_table)
    assert _sql(where) == "people.status = 'active' AND people.age >= 18 AND people.age < 65"


@pytest.mark.parametrize(
    ("operator", "value", "expected"),
    [
        ("$ne", 3, "people.age != 3"),
        ("$gt", 3, "people.age > 3"),
        ("$gte", 3, "people.age >= 3"),
        ("$lt", 3, "people.age < 3"),
        ("$lte", 3, "people.age <= 3"),
        ("$in", [1, 2], "people.age IN (1, 2)"),
        ("$nin", [1, 2], "people.age NOT IN (1, 2)"),
        ("$notIn", [1, 2], "people.age NOT IN (1, 2)"),
        ("$between", [1, 9], "people.age BETWEEN 1 AND 9"),
        ("$notBetween", [1, 9], "people.age NOT BETWEEN 1 AND 9"),
    ],
)
def test_comparison_operators(people_table: sa.Table, operator, value, expected):
    where = translate_where((Predicate("age", operator, value),), people_table)
    assert expected in _sql(where)


def test_like_operators(people_table: sa.Table):
    assert _sql(translate_where((Predicate("name", "$like", "A%"),), people_table)) == "people.name LIKE 'A%'"
    assert _sql(translate_where((Predicate("name", "$notLike", "A%"),), people_table)) == "people.name NOT LIKE 'A%'"
    assert "lower(people.name) LIKE lower('a%')" in _sql(
        translate_where((Predicate("name", "$iLike", "a%"),), people_table)
    )


def test_null_equality_renders_is_null(people_table: sa.Table):
    assert _sql(translate_where((Predicate("age", "$eq", None),), people_table)) == "people.age IS NULL"
    assert _sql(translate_where((Predicate("age", "$ne", None),), people_table)) == "people.age IS NOT NULL"


def test_or_group(people_table: sa.Table):
    where = translate_where(parse_predicates({"$or": [{"status": "active"}, {"age": {"$gt": 40}}]}), people_table)
    assert _sql(where) == "people.status = 'active' OR people.age > 40"


def test_empty_or_matches_nothing(people_table: sa.Table):
    where = translate_where(parse_predicates({"$or": []}), people_table)
    assert _sql(where) == "false"


def test_unknown_operator_raises(people_table: sa.Table):
    with pytest.raises(UnsupportedOperator, match=r"\$near"):
        translate_where((Predicate("age", "$near", 1),), people_table)


def test_unknown_field_raises(people_table: sa.Table):
    with pytest.raises(InvalidQuery, match="Unknown field 'nickname'"):
        translate_where((Predicate("nickname", "$eq", "x"),), people_table)


@pytest.mark.parametrize("operator", ["$in", "$nin", "$notIn"])
def test_set_operators_require_a_list(people_table: sa.Table, operator):
    with pytest.raises(InvalidQuery, match="expects a list"):
        translate_where((Predicate("age", operator, 3),), people_table)


def test_between_requires_a_pair(people_table: sa.Table):
    with pytest.raises(InvalidQuery, match=r"expects a \[low, high\] pair"):
        translate_where((Predicate("age", "$between", [1, 2, 3]),), people_table)


def test_operator_vocabulary():
    assert {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin", "$like"} <= OPERATORS


def test_translate_sort_order_and_direction(people_table: sa.Table):
    query = translate(NormalizedFilter(sort=(SortSpec("age", -1), SortSpec("name", 1))), people_table)
    assert [str(clause) for clause in query.order] == ["people.age DESC", "people.name ASC"]


def test_translate_pagination_and_select(people_table: sa.Table):
    query = translate(NormalizedFilter(limit=5, skip=10, select=("name", "id")), people_table)
    assert query.limit == 5
    assert query.offset == 10
    assert query.attributes == ("name", "id")
    assert query.where is None


def test_translate_rejects_unknown_select_field(people_table: sa.Table):
    with pytest.raises(InvalidQuery, match="Unknown field 'nickname'"):
        translate(NormalizedFilter(select=("nickname", "id")), people_table)


def test_translate_rejects_unknown_sort_field(people_table: sa.Table):
    with pytest.raises(InvalidQuery, match="Unknown field 'rank'"):
        translate(NormalizedFilter(sort=(SortSpec("rank", 1),)), people_table)


# ---------------------------------------------------------------------------
# Passthrough precedence
# ---------------------------------------------------------------------------


def test_sql_options_override_paging_but_not_where(people_table: sa.Table):
    base = translate(NormalizedFilter(predicates=(Predicate("age", "$eq", 30),), limit=5, skip=1), people_table)
    merged = SQLOptions(limit=1, offset=0, attributes=["name"]).apply(base)
    assert merged.limit == 1
    assert merged.offset == 0
    assert merged.attributes == ("name",)
    assert merged.where is base.where


def test_sql_options_without_overrides_return_same_query():
    query = EngineQuery(limit=3)
    assert SQLOptions().apply(query) is query
