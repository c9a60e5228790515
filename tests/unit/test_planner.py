"""
Unit tests -- planner: mock-mode keyword drafting.
"""
import pytest

from src.copilot.metadata import analyze_dataset
from src.copilot.planner import NO_ANSWER, draft_query, make_drafter, quote_ident, quote_literal
from src.engine.parser import parse_query

ROWS = [
    {"region": "east", "product": "widget", "sales": 10, "units": 1},
    {"region": "west", "product": "gadget", "sales": 20, "units": 2},
    {"region": "east", "product": "gizmo", "sales": 30, "units": 3},
]


@pytest.fixture(scope="module")
def meta():
    return analyze_dataset(ROWS)


@pytest.mark.parametrize("question, expected", [
    (
        "total sales by region",
        "SELECT region, SUM(sales) AS total_sales FROM data GROUP BY region",
    ),
    (
        "top 1 region by sales",
        "SELECT region, SUM(sales) AS total_sales FROM data GROUP BY region "
        "ORDER BY total_sales DESC LIMIT 1",
    ),
    (
        "How many rows are there?",
        "SELECT COUNT(*) AS row_count FROM data",
    ),
    (
        "average units",
        "SELECT AVG(units) AS average_units FROM data",
    ),
    (
        "top 3 by sales",
        "SELECT * FROM data ORDER BY sales DESC LIMIT 3",
    ),
    (
        "show rows where region is east",
        "SELECT * FROM data WHERE region = 'east' LIMIT 100",
    ),
    (
        "widget sales total",
        "SELECT SUM(sales) AS total_sales FROM data WHERE product = 'widget'",
    ),
])
def test_draft_query(meta, question, expected):
    assert draft_query(question, meta) == expected


def test_drafted_queries_parse(meta):
    for question in ("total sales by region", "top 1 region by sales", "average units"):
        parse_query(draft_query(question, meta))


def test_plural_column_mention(meta):
    assert draft_query("total sales by regions", meta).startswith("SELECT region,")


def test_unanswerable_question(meta):
    assert draft_query("tell me a joke", meta) == NO_ANSWER


def test_make_drafter_ignores_prompt(meta):
    complete = make_drafter("total sales by region", meta)
    assert complete("any prompt at all") == draft_query("total sales by region", meta)


# ── Quoting ──────────────────────────────────────────────


def test_quote_ident():
    assert quote_ident("sales") == "sales"
    assert quote_ident("unit price") == '"unit price"'
    assert quote_ident("order") == '"order"'


def test_quote_literal():
    assert quote_literal("O'Brien") == "'O''Brien'"
    assert quote_literal(3) == "3"
    assert quote_literal(True) == "TRUE"
