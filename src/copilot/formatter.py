"""
Answer formatter -- renders a query result as text.

Every answer opens with the number of rows analyzed and the confidence.
Then, by result shape:
  - no rows          -> guidance on broadening the question
  - one value        -> the scalar
  - <=10 rows x 1    -> a numbered list
  - anything else    -> an LLM summary of up to 20 sample rows (<=150 words)

Works in both offline mode (no completion function: template rendering of
the first 5 rows as JSON) and LLM mode, which falls back to the same
rendering when the call fails.
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Sequence

from src.core.logging import get_logger

logger = get_logger(__name__)

MAX_WORDS = 150
SUMMARY_SAMPLE_ROWS = 20
FALLBACK_ROWS = 5
LIST_MAX_ROWS = 10

_WORD = re.compile(r"\S+")


def format_value(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        if value.is_integer():
            return f"{int(value):,}"
        return f"{value:,.2f}"
    return str(value)


def header_line(row_count: int, confidence: float) -> str:
    return (
        f"📊 Analyzed **{row_count:,} total rows** from your complete dataset "
        f"(confidence: {confidence * 100:.0f}%)"
    )


def cap_words(text: str, limit: int = MAX_WORDS) -> str:
    """Truncate *text* after *limit* words, keeping its line breaks."""
    for i, m in enumerate(_WORD.finditer(text), 1):
        if i == limit:
            rest = text[m.end():]
            if _WORD.search(rest):
                return text[: m.end()].rstrip() + " …"
            break
    return text.strip()


def render_rows(rows: Sequence[dict], total: int | None = None) -> str:
    total = len(rows) if total is None else total
    sample = json.dumps(list(rows[:FALLBACK_ROWS]), indent=2, default=str)
    return f"Found {total:,} results:\n\n{sample}"


def _summary_prompt(question: str, rows: Sequence[dict], row_count: int, total: int) -> str:
    sample = json.dumps(list(rows[:SUMMARY_SAMPLE_ROWS]), indent=2, default=str)
    return (
        f'Question: "{question}"\n\n'
        f"Dataset: {row_count:,} total rows analyzed\n"
        f"Results: {total:,} rows returned\n"
        f"Data (first {min(len(rows), SUMMARY_SAMPLE_ROWS)} rows):\n{sample}\n\n"
        "Write a clear, professional answer that:\n"
        f"1. States that the complete {row_count:,}-row dataset was analyzed\n"
        "2. Directly answers the question\n"
        "3. Uses only numbers that appear in the data above; never invent figures\n\n"
        f"Keep it under {MAX_WORDS} words."
    )


def format_answer(
    question: str,
    rows: Sequence[dict],
    row_count: int,
    confidence: float,
    complete: Callable[[str], str] | None = None,
    total_results: int | None = None,
) -> str:
    """Render *rows* as the user-facing answer.

    Parameters
    ----------
    question : str
        The original question.
    rows : sequence of dict
        Result rows (already limited).
    row_count : int
        Number of rows in the analyzed dataset.
    confidence : float
        0..1 confidence shown in the header.
    complete : callable, optional
        ``complete(prompt) -> str`` used to summarize larger results.  When
        None, larger results are rendered as JSON.
    total_results : int, optional
        Result size before any limit; defaults to ``len(rows)``.
    """
    header = header_line(row_count, confidence)
    total = len(rows) if total_results is None else total_results

    if not rows:
        return (
            f"{header}\n\nNo results found. Try:\n"
            "- Checking column names\n"
            "- Broadening your search criteria\n"
            "- Asking about different data points"
        )

    width = len(rows[0])
    if len(rows) == 1 and width == 1:
        value = next(iter(rows[0].values()))
        return f"{header}\n\n**Answer:** {format_value(value)}"

    if len(rows) <= LIST_MAX_ROWS and width == 1:
        key = next(iter(rows[0]))
        items = "\n".join(f"{i}. {format_value(r.get(key))}" for i, r in enumerate(rows, 1))
        return f"{header}\n\n**Results:**\n{items}"

    if complete is None:
        return f"{header}\n\n{render_rows(rows, total)}"

    try:
        summary = complete(_summary_prompt(question, rows, row_count, total))
    except Exception as exc:
        logger.warning("LLM summary failed, falling back to JSON rendering: %s", exc)
        return f"{header}\n\n{render_rows(rows, total)}"
    if not summary or not summary.strip():
        return f"{header}\n\n{render_rows(rows, total)}"
    return f"{header}\n\n{cap_words(summary)}"
