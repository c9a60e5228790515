"""
Unit tests -- z-score anomaly detection.
"""
import pytest

from src.copilot.classifier import classify_question
from src.copilot.metadata import analyze_dataset
from src.copilot.statistics import answer_statistical, detect_anomalies


def _rows(values, column="amount"):
    return [{"id": i, column: v} for i, v in enumerate(values)]


def test_single_high_outlier():
    rows = _rows([10] * 19 + [100])
    answer = detect_anomalies(rows, "amount")
    assert answer.mean == pytest.approx(14.5)
    assert len(answer.anomalies) == 1
    anomaly = answer.anomalies[0]
    assert anomaly.index == 19
    assert anomaly.value == 100
    assert anomaly.severity == "high"
    assert anomaly.row == rows[19]


@pytest.mark.parametrize("n, severity", [
    (20, "high"),     # z = sqrt(19)
    (11, "medium"),   # z = sqrt(10)
    (6, "low"),       # z = sqrt(5)
])
def test_severity_bands(n, severity):
    # n-1 zeros and one 1: the outlier's z-score is sqrt(n-1)
    answer = detect_anomalies(_rows([0] * (n - 1) + [1]), "amount")
    assert [a.severity for a in answer.anomalies] == [severity]


def test_constant_column_has_no_anomalies():
    answer = detect_anomalies(_rows([5] * 10), "amount")
    assert answer.stddev == 0
    assert answer.anomalies == []
    assert "No anomalies found" in answer.summary()


def test_non_numeric_values_are_skipped():
    rows = _rows([10] * 19 + [100]) + [{"id": 99, "amount": "n/a"}, {"id": 100}]
    answer = detect_anomalies(rows, "amount")
    assert [a.index for a in answer.anomalies] == [19]


def test_no_numeric_values():
    answer = detect_anomalies(_rows(["a", "b"]), "amount")
    assert answer.mean is None
    assert answer.summary() == "No numeric values found in **amount**."


def test_anomalies_sorted_by_z_descending():
    answer = detect_anomalies(_rows([0] * 30 + [10, -20, 15]), "amount", threshold=1.0)
    z = [a.z_score for a in answer.anomalies]
    assert z == sorted(z, reverse=True)
    assert answer.anomalies[0].value == -20


def test_to_rows_adds_score_and_severity():
    rows = _rows([10] * 19 + [100])
    out = detect_anomalies(rows, "amount").to_rows()
    assert out[0]["id"] == 19
    assert out[0]["severity"] == "high"
    assert out[0]["z_score"] == round(out[0]["z_score"], 2)
    assert "z_score" not in rows[19]


def test_answer_statistical_picks_named_column():
    rows = [{"amount": v, "qty": 1} for v in [10] * 19 + [100]]
    meta = analyze_dataset(rows)
    answer = answer_statistical(rows, meta, classify_question("outliers in amount"))
    assert answer.column == "amount"
    assert len(answer.anomalies) == 1


def test_answer_statistical_defaults_to_first_numeric_column():
    rows = [{"amount": v, "qty": 1} for v in [10] * 19 + [100]]
    meta = analyze_dataset(rows)
    answer = answer_statistical(rows, meta, classify_question("anything unusual?"))
    assert answer.column == "amount"


def test_answer_statistical_without_numeric_columns():
    rows = [{"name": "a"}]
    assert answer_statistical(rows, analyze_dataset(rows), classify_question("outliers")) is None
