"""
Question classifier and keyword extraction.

Rules are tried in order and the first match wins:
  1. statistical  -- anomalies, outliers, z-scores
  2. aggregation  -- totals, counts, averages, extremes
  3. comparison   -- compare, versus, more/less than
  4. trend        -- change over time
  5. correlation  -- relationships between variables
  6. filter       -- retrieve matching rows
  7. simple       -- anything else
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from src.core.logging import get_logger

logger = get_logger(__name__)

STOP_WORDS = frozenset({
    "the", "is", "are", "was", "were", "a", "an", "and", "or", "but",
    "in", "on", "at", "to", "for", "of", "with", "by", "show", "me",
    "my", "what", "how", "which",
})

_RULES: list[tuple[str, re.Pattern, str]] = [
    (
        "statistical",
        re.compile(r"anomal|outlier|unusual|strange|weird|abnormal|z-score|statistical", re.I),
        "Detect statistical anomalies or outliers",
    ),
    (
        "aggregation",
        re.compile(r"how many|total|sum|count|average|mean|median|maximum|minimum|\bmax\b|\bmin\b", re.I),
        "Calculate aggregate values",
    ),
    (
        "comparison",
        re.compile(r"compare|versus|\bvs\b|difference between|higher|lower|more than|less than", re.I),
        "Compare values or groups",
    ),
    (
        "trend",
        re.compile(r"trend|over time|growth|decline|change|increase|decrease", re.I),
        "Analyze trends over time",
    ),
    (
        "correlation",
        re.compile(r"correlation|relationship|related|affect|impact|influence", re.I),
        "Find relationships between variables",
    ),
    (
        "filter",
        re.compile(r"where|filter|show me|find|which|what are", re.I),
        "Filter and retrieve specific data",
    ),
]


@dataclass(frozen=True)
class ClassifiedQuestion:
    type: str           # aggregation | filter | comparison | trend | correlation | statistical | simple
    keywords: frozenset[str]
    intent: str


def extract_keywords(text: str) -> frozenset[str]:
    """Lowercase, drop punctuation, keep tokens longer than 2 chars that are not stop words."""
    cleaned = re.sub(r"[^\w\s]", " ", text.lower())
    return frozenset(
        word for word in cleaned.split()
        if len(word) > 2 and word not in STOP_WORDS
    )


def classify_question(question: str) -> ClassifiedQuestion:
    keywords = extract_keywords(question)
    for qtype, pattern, intent in _RULES:
        if pattern.search(question):
            logger.debug("Classified question as %s", qtype)
            return ClassifiedQuestion(type=qtype, keywords=keywords, intent=intent)
    return ClassifiedQuestion(type="simple", keywords=keywords, intent="General question")
