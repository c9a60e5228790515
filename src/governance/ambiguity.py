"""
Ambiguity detection -- runs before any LLM call.

A question is flagged for clarification when:
  1. It uses a superlative (best/top/worst/bottom/highest/lowest), the
     dataset has more than one numeric column, and none of them is named.
  2. It refers to relative time but the dataset has no temporal column, or it
     uses a relative period (this/last month, recently, ...) without an
     explicit window such as "last 30 days", "since ...", a year or a date.
  3. It asks for a comparison without naming the two things to compare.

Flagged questions never reach the generator.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from src.copilot.classifier import extract_keywords
from src.copilot.metadata import DatasetMetadata
from src.core.logging import get_logger

logger = get_logger(__name__)

# ── Compiled patterns ────────────────────────────────────

_SUPERLATIVE = re.compile(r"\b(best|top|worst|bottom|highest|lowest)\b", re.I)

_RELATIVE_TIME = re.compile(
    r"\b(recent|recently|latest|lately|newest|current"
    r"|this (?:week|month|quarter|year)|last (?:week|month|quarter|year))\b",
    re.I,
)

_WINDOW_TERMS = re.compile(
    r"\b(recently|lately|this (?:week|month|quarter|year)|last (?:week|month|quarter|year))\b"
    r"|(?<!most )\brecent\b",
    re.I,
)

_EXPLICIT_WINDOW = re.compile(
    r"\b(?:last|past|previous) \d+ (?:days?|weeks?|months?|quarters?|years?)\b"
    r"|\bsince\b|\bbetween\b"
    r"|\b(?:19|20)\d\d\b"
    r"|\b\d{4}-\d{2}-\d{2}\b",
    re.I,
)

_COMPARISON = re.compile(r"\b(compare|comparison|versus|vs\.?|difference)\b", re.I)

_COMPARISON_SIDES = (
    re.compile(r"\bcompar\w*\s+(?:of\s+)?(\w.*?)\s+(?:and|with|to|vs\.?|versus|by|across|between|per)\s+(\w.*)", re.I),
    re.compile(r"(\w[\w ]*?)\s+(?:vs\.?|versus)\s+(\w.*)", re.I),
    re.compile(r"\bdifference\s+(?:between|in|of)\s+(\w.*?)\s+(?:and|by|across|between|per)\s+(\w.*)", re.I),
)


@dataclass(frozen=True)
class Clarification:
    needs_clarification: bool
    questions: list[str] = field(default_factory=list)


def _names_column(column: str, question: str, keywords: frozenset[str]) -> bool:
    name = column.lower().replace("_", " ")
    return name in question.lower() or name in keywords


def _has_two_sides(question: str) -> bool:
    return any(p.search(question) for p in _COMPARISON_SIDES)


def detect_ambiguity(question: str, metadata: DatasetMetadata) -> Clarification:
    """Return the clarification questions for *question*, if any.

    Parameters
    ----------
    question : str
        The user's natural-language question.
    metadata : DatasetMetadata
        Output of :func:`src.copilot.metadata.analyze_dataset`.
    """
    questions: list[str] = []
    keywords = extract_keywords(question)

    # ── 1. Unnamed metric for a superlative ──────────
    if _SUPERLATIVE.search(question):
        numeric = metadata.numeric_columns()
        if len(numeric) > 1 and not any(_names_column(c, question, keywords) for c in numeric):
            questions.append(f"Which metric should I use? Available: {', '.join(numeric)}")

    # ── 2. Relative time ─────────────────────────────
    if _RELATIVE_TIME.search(question):
        temporal = metadata.temporal_columns()
        if not temporal:
            questions.append(
                "I don't see any date columns. Did you mean to filter by a specific value instead?"
            )
        elif _WINDOW_TERMS.search(question) and not _EXPLICIT_WINDOW.search(question):
            questions.append(
                f"What exact time period? (e.g., \"last 30 days\", \"since 2024-01-01\"). "
                f"Date columns: {', '.join(temporal)}"
            )

    # ── 3. Comparison without two sides ──────────────
    if _COMPARISON.search(question) and not _has_two_sides(question):
        questions.append(
            "What exactly should I compare? (e.g., \"compare sales by region\", \"compare Q1 vs Q2\")"
        )

    if questions:
        logger.info("Question needs clarification: %s", questions)
    return Clarification(needs_clarification=bool(questions), questions=questions)
