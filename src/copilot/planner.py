"""
Planner -- deterministic keyword drafter that writes a dialect query from a
question and the dataset metadata.

Used as the completion function when ``llm_provider = "mock"`` (no API key
needed, great for tests).  Its output goes through the same voting,
dry-run validation and execution as real LLM completions.

Drafting steps:
  1. Metric      -- the numeric column named in the question (or the only one)
  2. Operation   -- total/sum, average/mean, count/how many, max, min
  3. Grouping    -- a non-numeric column named in the question
  4. Filter      -- ``where <col> is <value>`` or a known category value
  5. Ranking     -- top/bottom N becomes ORDER BY ... LIMIT N
"""
from __future__ import annotations

import re
from typing import Callable

from src.copilot.metadata import DatasetMetadata
from src.core.logging import get_logger
from src.core.utils import to_number
from src.engine.parser import KEYWORDS

logger = get_logger(__name__)

NO_ANSWER = "NO_ANSWER"
TABLE_NAME = "data"
DEFAULT_TOP_N = 10
ROW_LIMIT = 100

# ── Keyword maps ─────────────────────────────────────────

# (function, alias label, trigger pattern); first match wins
_OPERATIONS: list[tuple[str, str, re.Pattern]] = [
    ("AVG", "average", re.compile(r"\b(average|avg|mean)\b")),
    ("COUNT", "count", re.compile(r"\b(how many|count|number of)\b")),
    ("MAX", "max", re.compile(r"\b(max|maximum|largest value|highest value)\b")),
    ("MIN", "min", re.compile(r"\b(min|minimum|smallest value|lowest value)\b")),
    ("SUM", "total", re.compile(r"\b(total|sum|overall)\b")),
]

_RANK_DESC = re.compile(r"\b(top|best|highest|largest|most)\b(?:\s+(\d+))?")
_RANK_ASC = re.compile(r"\b(bottom|worst|lowest|smallest|least)\b(?:\s+(\d+))?")

_WHERE_RE = re.compile(
    r"\bwhere\s+(\w+)\s*(?:=|is|equals)\s*['\"]?([\w.\-]+)['\"]?",
    re.IGNORECASE,
)

_SIMPLE_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ── Helpers ──────────────────────────────────────────────


def quote_ident(name: str) -> str:
    """Render *name* as an identifier, double-quoting when needed."""
    if _SIMPLE_IDENT.match(name) and name.upper() not in KEYWORDS:
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: object) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


def _mention_pos(column: str, q: str) -> int:
    """Position of the first mention of *column* in lowercased *q*, or -1."""
    phrase = re.escape(column.lower().replace("_", " "))
    m = re.search(rf"\b{phrase}(?:s|es)?\b", q)
    if m is None and "_" in column:
        m = re.search(rf"\b{re.escape(column.lower())}\b", q)
    return m.start() if m else -1


def _first_mentioned(columns: list[str], q: str) -> str | None:
    found = [(pos, c) for c in columns if (pos := _mention_pos(c, q)) >= 0]
    return min(found)[1] if found else None


def _operation(q: str) -> tuple[str, str] | None:
    for func, label, pattern in _OPERATIONS:
        if pattern.search(q):
            return func, label
    return None


def _ranking(q: str) -> tuple[bool, int] | None:
    """(descending, n) for top/bottom phrasing."""
    for pattern, descending in ((_RANK_DESC, True), (_RANK_ASC, False)):
        m = pattern.search(q)
        if m:
            return descending, int(m.group(2)) if m.group(2) else DEFAULT_TOP_N
    return None


def _filter(question: str, metadata: DatasetMetadata, skip: set[str]) -> tuple[str, object] | None:
    m = _WHERE_RE.search(question)
    if m:
        wanted = m.group(1).lower()
        for name in metadata.column_names:
            if name.lower() == wanted:
                raw = m.group(2)
                num = to_number(raw)
                return name, num if num is not None else raw

    q = question.lower()
    for col in metadata.columns.values():
        if col.name in skip or col.inferred_type != "text":
            continue
        for value in col.sample_values:
            text = str(value).strip().lower()
            if len(text) > 2 and re.search(rf"\b{re.escape(text)}\b", q):
                return col.name, value
    return None


# ── Drafting ─────────────────────────────────────────────


def draft_query(question: str, metadata: DatasetMetadata) -> str:
    """Write a single dialect query for *question*, or ``NO_ANSWER``."""
    q = question.lower().strip()
    numeric = metadata.numeric_columns()
    others = [c for c in metadata.column_names if c not in numeric]

    metric = _first_mentioned(numeric, q)
    if metric is None and len(numeric) == 1:
        metric = numeric[0]
    group = _first_mentioned(others, q)
    operation = _operation(q)
    ranking = _ranking(q)

    where = _filter(question, metadata, skip={group} if group else set())
    where_sql = f" WHERE {quote_ident(where[0])} = {quote_literal(where[1])}" if where else ""
    table = TABLE_NAME

    # ── Aggregate query ──────────────────────────────
    if operation is not None or (group is not None and metric is not None):
        func, label = operation or ("SUM", "total")
        if func == "COUNT" and (metric is None or _mention_pos(metric, q) < 0):
            agg, alias = "COUNT(*)", "row_count"
        elif metric is None:
            return NO_ANSWER
        else:
            agg, alias = f"{func}({quote_ident(metric)})", f"{label}_{metric}"
        alias_sql = quote_ident(alias)

        if group is not None:
            sql = (
                f"SELECT {quote_ident(group)}, {agg} AS {alias_sql} FROM {table}{where_sql} "
                f"GROUP BY {quote_ident(group)}"
            )
            if ranking is not None:
                descending, n = ranking
                sql += f" ORDER BY {alias_sql} {'DESC' if descending else 'ASC'} LIMIT {n}"
            return sql
        return f"SELECT {agg} AS {alias_sql} FROM {table}{where_sql}"

    # ── Ranked rows ──────────────────────────────────
    if ranking is not None and metric is not None:
        descending, n = ranking
        return (
            f"SELECT * FROM {table}{where_sql} ORDER BY {quote_ident(metric)} "
            f"{'DESC' if descending else 'ASC'} LIMIT {n}"
        )

    # ── Filtered rows ────────────────────────────────
    if where is not None:
        return f"SELECT * FROM {table}{where_sql} LIMIT {ROW_LIMIT}"

    return NO_ANSWER


def make_drafter(question: str, metadata: DatasetMetadata) -> Callable[[str], str]:
    """Completion function that ignores the prompt and drafts from keywords."""

    def complete(prompt: str) -> str:
        sql = draft_query(question, metadata)
        logger.info("Planner[mock] -> %s", sql)
        return sql

    return complete
