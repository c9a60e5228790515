"""
Unit tests -- metadata analyzer: type inference, statistics, descriptions.
"""
import copy
from datetime import date

import pytest

from src.copilot.metadata import (
    analyze_dataset,
    common_patterns,
    infer_type,
    numeric_series,
    numeric_stats,
    parse_temporal,
    temporal_series,
)

ROWS = [
    {"id": 1, "revenue": "100.5", "active": "yes", "signup_date": "2024-01-05", "city": "Paris"},
    {"id": 2, "revenue": 200, "active": "no", "signup_date": "2024-02-10", "city": "paris"},
    {"id": 3, "revenue": None, "active": True, "signup_date": "2024-03-15", "city": "Rome"},
    {"id": 4, "revenue": 300, "active": False, "signup_date": "", "city": "Oslo"},
]


@pytest.fixture(scope="module")
def meta():
    return analyze_dataset(ROWS)


# ── Type inference ──────────────────────────────────────


@pytest.mark.parametrize("values, expected", [
    ([1, 2.5, "3", "4e2"], "numeric"),
    ([1, 2, 3, 4, "x"], "numeric"),
    ([1, 2, "x", "y", "z"], "text"),
    ([True, False, "yes", "No"], "boolean"),
    (["2024-01-01", "01/02/2024", "Mar 3, 2024", date(2024, 1, 1)], "temporal"),
    ([20240101, 20240102], "numeric"),
    (["a", "b"], "text"),
    ([], "text"),
])
def test_infer_type(values, expected):
    assert infer_type(values, threshold=0.8) == expected


def test_booleans_are_never_numeric():
    assert infer_type([True, False, True], threshold=0.8) == "boolean"
    assert numeric_stats([True, False]) is None


def test_parse_temporal():
    assert parse_temporal("2024-05-06").year == 2024
    assert parse_temporal("2024-05-06T10:00:00Z") is not None
    assert parse_temporal("2024") is None
    assert parse_temporal("hello") is None
    assert parse_temporal(12) is None


def test_numeric_series_coercion():
    nums = numeric_series([" 12 ", "4e2", True, "inf", None, date(2024, 1, 1), 3.5])
    assert nums.isna().tolist() == [False, False, True, True, True, True, False]
    assert nums.dropna().tolist() == [12.0, 400.0, 3.5]


def test_temporal_series_is_utc():
    parsed = temporal_series(["2024-01-05", "2024-01-05T10:00:00+02:00", "20240105", "soon"])
    assert parsed.notna().tolist() == [True, True, False, False]
    assert parsed.iloc[1].hour == 8


# ── Statistics ──────────────────────────────────────────


def test_numeric_stats_population_stddev():
    stats = numeric_stats([2, 4, 4, 4, 5, 5, 7, 9])
    assert stats["mean"] == 5
    assert stats["stddev"] == pytest.approx(2.0)
    assert stats["min"] == 2
    assert stats["max"] == 9


def test_quartiles_interpolate():
    stats = numeric_stats([1, 2, 3, 4])
    assert stats["q1"] == pytest.approx(1.75)
    assert stats["median"] == pytest.approx(2.5)
    assert stats["q3"] == pytest.approx(3.25)


def test_numeric_stats_skips_non_numeric():
    stats = numeric_stats(["10", "n/a", 20])
    assert stats["mean"] == 15


# ── analyze_dataset ─────────────────────────────────────


def test_dataset_shape(meta):
    assert meta.row_count == 4
    assert meta.column_names == ["id", "revenue", "active", "signup_date", "city"]
    assert meta.numeric_columns() == ["id", "revenue"]
    assert meta.temporal_columns() == ["signup_date"]


def test_column_types(meta):
    types = {name: col.inferred_type for name, col in meta.columns.items()}
    assert types == {
        "id": "numeric",
        "revenue": "numeric",
        "active": "boolean",
        "signup_date": "temporal",
        "city": "text",
    }


def test_null_and_unique_counts(meta):
    assert meta.columns["revenue"].null_count == 1
    assert meta.columns["signup_date"].null_count == 1
    assert meta.columns["city"].unique_count == 3


def test_numeric_column_stats(meta):
    revenue = meta.columns["revenue"]
    assert revenue.min == 100.5
    assert revenue.max == 300
    assert revenue.median == 200
    assert revenue.min <= revenue.q1 <= revenue.median <= revenue.q3 <= revenue.max
    assert revenue.stddev >= 0


def test_text_columns_have_top_values(meta):
    city = meta.columns["city"]
    assert city.top_values[0] == ("Paris", 2)
    assert city.min is None


def test_descriptions(meta):
    assert meta.columns["revenue"].description == (
        "numeric value representing revenue, ranging from 100.5 to 300"
    )
    assert meta.columns["signup_date"].description == "Timestamp or date column for signup_date"
    assert meta.columns["id"].description == "Unique identifier for id"


def test_common_patterns():
    assert "total revenue" in common_patterns("revenue", "numeric")
    assert "count by city" in common_patterns("city", "text")
    assert "trends over created_at" in common_patterns("created_at", "temporal")


def test_to_dict_includes_numeric_fields_only_for_numeric(meta):
    data = meta.to_dict()
    by_name = {c["name"]: c for c in data["columns"]}
    assert data["column_count"] == 5
    assert "mean" in by_name["revenue"]
    assert "mean" not in by_name["city"]
    assert by_name["city"]["top_values"][0] == {"value": "Paris", "count": 2}


def test_explicit_column_list():
    meta = analyze_dataset(ROWS, columns=["city", "missing"])
    assert meta.column_names == ["city", "missing"]
    assert meta.columns["missing"].null_count == 4
    assert meta.columns["missing"].inferred_type == "text"


def test_empty_dataset():
    meta = analyze_dataset([])
    assert meta.row_count == 0
    assert meta.column_count == 0


def test_analysis_is_pure():
    before = copy.deepcopy(ROWS)
    assert analyze_dataset(ROWS) == analyze_dataset(ROWS)
    assert ROWS == before
