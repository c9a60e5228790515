"""
Unit tests -- fallback aggregation when query generation fails.
"""
import pytest

from src.copilot.fallback import fallback_aggregation, pick_numeric_column, relevance
from src.copilot.metadata import analyze_dataset

ROWS = [
    {"region": "east", "sales": 10, "units": 1},
    {"region": "west", "sales": 20, "units": 2},
    {"region": "east", "sales": 30, "units": None},
]


@pytest.fixture(scope="module")
def meta():
    return analyze_dataset(ROWS)


def test_relevance():
    assert relevance("unit_price", frozenset({"unit", "price"})) == 2
    assert relevance("sales", frozenset({"sale"})) == 0
    assert relevance("sales", frozenset({"sales"})) == 1
    assert relevance("units", frozenset({"total", "revenue"})) == 0


def test_pick_numeric_column(meta):
    assert pick_numeric_column(frozenset({"average", "units"}), meta) == "units"
    assert pick_numeric_column(frozenset({"weather"}), meta) is None


def test_pick_only_numeric_column():
    meta = analyze_dataset([{"name": "a", "price": 5}, {"name": "b", "price": 7}])
    assert pick_numeric_column(frozenset({"anything"}), meta) == "price"


@pytest.mark.parametrize("question, expected", [
    ("total sales", [{"total_sales": 60}]),
    ("how many sales", [{"count_sales": 3}]),
    ("average units by region", [
        {"region": "east", "average_units": 1.0},
        {"region": "west", "average_units": 2.0},
    ]),
    ("highest sales per region", [
        {"region": "east", "max_sales": 30},
        {"region": "west", "max_sales": 20},
    ]),
    ("lowest units", [{"min_units": 1}]),
])
def test_fallback_aggregation(meta, question, expected):
    assert fallback_aggregation(question, ROWS, meta) == expected


def test_aggregation_question_defaults_to_sum():
    rows = [{"name": "a", "price": 5}, {"name": "b", "price": 7}]
    meta = analyze_dataset(rows)
    assert fallback_aggregation("median price", rows, meta) == [{"total_price": 12}]


def test_no_matching_column(meta):
    assert fallback_aggregation("what is the weather", ROWS, meta) is None


def test_no_operation(meta):
    assert fallback_aggregation("list the sales", ROWS, meta) is None


def test_no_numeric_columns():
    rows = [{"name": "a"}, {"name": "b"}]
    assert fallback_aggregation("total name", rows, analyze_dataset(rows)) is None
