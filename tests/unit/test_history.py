"""
Unit tests -- few-shot example selection from query history.
"""
from src.copilot.history import HistoryEntry, jaccard, select_examples

HISTORY = [
    HistoryEntry("total sales by region", "SELECT 1", True, 0.9),
    HistoryEntry("total sales by region", "SELECT 2", False, 0.9),
    HistoryEntry("total sales by region", "SELECT 3", True, 0.7),
    HistoryEntry("average rating by product", "SELECT 4", True, 0.95),
    HistoryEntry("total sales", "SELECT 5", True, 0.8),
    HistoryEntry("total sales by region", "", True, 0.99),
]


def test_jaccard():
    assert jaccard({"a", "b"}, {"b", "c"}) == 1 / 3
    assert jaccard(set(), set()) == 0.0
    assert jaccard({"a"}, {"a"}) == 1.0


def test_select_examples_filters_and_ranks():
    examples = select_examples("total sales by region", HISTORY, min_similarity=0.5)
    assert [e.query for e in examples] == ["SELECT 1", "SELECT 5"]


def test_select_examples_respects_threshold():
    examples = select_examples("total sales by region", HISTORY, min_similarity=0.9)
    assert [e.query for e in examples] == ["SELECT 1"]


def test_select_examples_limit():
    history = [HistoryEntry("total sales", f"SELECT {i}", True, 0.9) for i in range(5)]
    examples = select_examples("total sales", history, min_similarity=0.5, limit=3)
    assert [e.query for e in examples] == ["SELECT 0", "SELECT 1", "SELECT 2"]


def test_select_examples_empty_history():
    assert select_examples("anything", None) == []
    assert select_examples("anything", []) == []


def test_from_mapping_accepts_sql_key():
    entry = HistoryEntry.from_mapping(
        {"question": "q", "sql": "SELECT a FROM data", "success": True, "confidence": 0.9}
    )
    assert entry.query == "SELECT a FROM data"
    assert entry.success is True


def test_from_mapping_defaults():
    entry = HistoryEntry.from_mapping({"question": "q"})
    assert entry.query == ""
    assert entry.success is False
    assert entry.confidence == 0.0
