"""
Fallback aggregation -- best-effort numeric answer without the generator.

Used when query generation or validation fails.  Picks:
  1. The numeric column with the strongest keyword overlap (or the only one)
  2. The operation from the wording (total/sum, average/mean, count/how many,
     max/highest, min/lowest); aggregation questions default to sum
  3. An optional ``by <column>`` grouping

The aggregate itself is evaluated by the query executor so fallback answers
follow exactly the same null and numeric rules as generated queries.
"""
from __future__ import annotations

import re
from typing import Sequence

from src.copilot.classifier import ClassifiedQuestion, classify_question
from src.copilot.metadata import DatasetMetadata
from src.core.errors import QueryError
from src.core.logging import get_logger
from src.engine.ast import Aggregate, Column, Query, SelectItem
from src.engine.executor import execute

logger = get_logger(__name__)

# (function, output label, pattern); first match wins
_OPERATIONS: list[tuple[str, str, re.Pattern]] = [
    ("SUM", "total", re.compile(r"\b(total|sum)\b", re.I)),
    ("AVG", "average", re.compile(r"\b(average|mean|avg)\b", re.I)),
    ("COUNT", "count", re.compile(r"\b(count|how many)\b", re.I)),
    ("MAX", "max", re.compile(r"\b(max|maximum|highest)\b", re.I)),
    ("MIN", "min", re.compile(r"\b(min|minimum|lowest)\b", re.I)),
]

_GROUP_BY = re.compile(r"\b(?:by|per|for each)\s+([\w ]+)", re.I)


def _column_tokens(name: str) -> set[str]:
    return {t for t in re.split(r"[\W_]+", name.lower()) if t}


def relevance(column: str, keywords: frozenset[str]) -> int:
    """How many question keywords point at *column*."""
    lower = column.lower()
    tokens = _column_tokens(column)
    score = 0
    for kw in keywords:
        if kw in tokens or kw == lower or kw.rstrip("s") in tokens or (len(lower) > 2 and lower in kw):
            score += 1
    return score


def pick_numeric_column(keywords: frozenset[str], metadata: DatasetMetadata) -> str | None:
    """Most keyword-relevant numeric column; the only one if nothing matches."""
    numeric = metadata.numeric_columns()
    if not numeric:
        return None
    scored = [(relevance(c, keywords), i, c) for i, c in enumerate(numeric)]
    best = max(scored, key=lambda t: (t[0], -t[1]))
    if best[0] > 0:
        return best[2]
    return numeric[0] if len(numeric) == 1 else None


def _group_column(question: str, metadata: DatasetMetadata, exclude: str) -> str | None:
    m = _GROUP_BY.search(question)
    if m is None:
        return None
    words = m.group(1).lower().split()
    # try the longest leading phrase first: "product line" before "product"
    for n in range(len(words), 0, -1):
        phrase = " ".join(words[:n])
        for name in metadata.column_names:
            if name == exclude:
                continue
            lower = name.lower().replace("_", " ")
            if phrase in (lower, lower + "s", lower + "es"):
                return name
    return None


def _operation(question: str, classification: ClassifiedQuestion) -> tuple[str, str] | None:
    for func, label, pattern in _OPERATIONS:
        if pattern.search(question):
            return func, label
    if classification.type == "aggregation":
        return "SUM", "total"
    return None


def fallback_aggregation(
    question: str,
    rows: Sequence[dict],
    metadata: DatasetMetadata,
    classification: ClassifiedQuestion | None = None,
) -> list[dict] | None:
    """Aggregate the most relevant numeric column, or return None.

    Parameters
    ----------
    question : str
        The user's question.
    rows : sequence of dict
        The full dataset.
    metadata : DatasetMetadata
        Profile of *rows*.
    classification : ClassifiedQuestion, optional
        Computed from *question* when omitted.
    """
    classification = classification or classify_question(question)
    column = pick_numeric_column(classification.keywords, metadata)
    if column is None:
        logger.info("Fallback: no numeric column matches the question")
        return None
    operation = _operation(question, classification)
    if operation is None:
        logger.info("Fallback: no aggregate operation in the question")
        return None

    func, label = operation
    group = _group_column(question, metadata, exclude=column)
    select = [SelectItem(Aggregate(func, column), f"{label}_{column}")]
    if group is not None:
        select.insert(0, SelectItem(Column(group)))
    query = Query(
        select=tuple(select),
        table="data",
        group_by=(group,) if group else (),
    )

    try:
        result = execute(query, rows, columns=metadata.column_names or None)
    except QueryError as exc:
        logger.warning("Fallback aggregation failed: %s", exc)
        return None

    logger.info("Fallback %s(%s) group_by=%s -> %d rows", func, column, group, len(result.rows))
    return result.rows
