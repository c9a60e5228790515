"""
Unit tests -- value coercion helpers and log formatting.
"""
import math

import pytest

from src.core.logging import fields
from src.core.utils import is_null, normalize_key, sort_key, timer, to_bool, to_number


@pytest.mark.parametrize("value, expected", [
    (None, True),
    ("", True),
    ("   ", True),
    (math.nan, True),
    (0, False),
    (False, False),
    ("x", False),
])
def test_is_null(value, expected):
    assert is_null(value) is expected


@pytest.mark.parametrize("value, expected", [
    (3, 3),
    (2.5, 2.5),
    ("42", 42),
    (" 1.5 ", 1.5),
    ("1e3", 1000.0),
    (True, None),
    ("1_000", None),
    ("12abc", None),
    ("inf", None),
    (math.inf, None),
    (None, None),
])
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_to_bool():
    assert to_bool(" TRUE ") is True
    assert to_bool("false") is False
    assert to_bool("yes") is None


@pytest.mark.parametrize("value, expected", [
    (10, "10"),
    (10.0, "10"),
    ("10", "10"),
    ("10.50", "10.5"),
    (" East ", "east"),
    (True, "true"),
    ("", None),
])
def test_normalize_key(value, expected):
    assert normalize_key(value) == expected


def test_sort_key_numbers_before_text():
    assert sorted(["b", 10, "A", 2], key=sort_key) == [2, 10, "A", "b"]


def test_timer_records_elapsed():
    with timer() as t:
        pass
    assert t["elapsed_ms"] >= 0


def test_fields():
    assert fields(success=True, confidence=0.9, rows=3) == "success=True | confidence=0.90 | rows=3"
    assert fields(question="x" * 500).endswith("...")
