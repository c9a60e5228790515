"""
Unit tests -- question classifier + keyword extraction.
"""
import pytest

from src.copilot.classifier import classify_question, extract_keywords


@pytest.mark.parametrize("question, expected", [
    ("Find anomalies in sales", "statistical"),
    ("Are there any outliers in price?", "statistical"),
    ("What is the total revenue?", "aggregation"),
    ("How many orders were placed?", "aggregation"),
    ("average rating per product", "aggregation"),
    ("Compare sales in east versus west", "comparison"),
    ("Show the sales trend over time", "trend"),
    ("Is price related to rating?", "correlation"),
    ("Show me orders where status is shipped", "filter"),
    ("hello there", "simple"),
])
def test_classify_question(question, expected):
    assert classify_question(question).type == expected


def test_first_matching_rule_wins():
    # "outliers" and "total" both match; statistical is checked first
    assert classify_question("outliers in total sales").type == "statistical"


def test_intent_text():
    assert classify_question("total sales").intent == "Calculate aggregate values"
    assert classify_question("hi").intent == "General question"


def test_extract_keywords_drops_stop_words_and_short_tokens():
    assert extract_keywords("Show me the total sales by region!") == {"total", "sales", "region"}


def test_extract_keywords_lowercases_and_splits_punctuation():
    assert extract_keywords("Revenue,per-COUNTRY") == {"revenue", "per", "country"}


def test_classification_carries_keywords():
    result = classify_question("total sales by region")
    assert result.keywords == frozenset({"total", "sales", "region"})
