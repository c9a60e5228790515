"""
Dry-run validation of a generated query against a bounded row sample.

Checks performed:
  1. Safety gate (read-only, single statement, no comments)
  2. Query parses under the supported grammar
  3. Every referenced column exists in the full column list
  4. Query executes on the first ``sample_size`` rows

A query that passes but returns nothing on the sample is still valid (the
full dataset may match), but it carries a warning.  Nothing unsafe or
malformed ever reaches the full dataset.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from src.core.config import get_settings
from src.core.errors import QueryError, QuerySyntaxError, UnknownColumnError
from src.core.logging import get_logger
from src.engine.ast import Query
from src.engine.executor import dataset_columns, execute
from src.engine.parser import parse_query

logger = get_logger(__name__)

EMPTY_SAMPLE_WARNING = "Query returned no results on sample data"


@dataclass
class ValidationResult:
    valid: bool
    query: Query | None = None
    error_kind: str | None = None
    error: str | None = None
    suggestion: str | None = None
    warnings: list[str] = field(default_factory=list)
    sample_row_count: int = 0


def _suggestion(exc: QueryError, columns: list[str]) -> str:
    if isinstance(exc, UnknownColumnError):
        return f"Available columns: {', '.join(columns)}"
    if isinstance(exc, QuerySyntaxError):
        return (
            "Check query structure (SELECT ... FROM ... WHERE ...). "
            f"Available columns: {', '.join(columns)}"
        )
    return f"Try rephrasing your question. Available columns: {', '.join(columns)}"


def dry_run(
    query_text: str,
    rows: Sequence[dict],
    columns: Sequence[str] | None = None,
    sample_size: int | None = None,
) -> ValidationResult:
    """Validate *query_text* by running it over ``rows[:sample_size]``.

    Parameters
    ----------
    query_text : str
        Candidate query from the generator.
    rows : sequence of dict
        The full dataset; only the leading sample is executed.
    columns : sequence of str, optional
        Full column list.  Defaults to the union of keys across *rows*.
    sample_size : int, optional
        Defaults to ``dry_run_sample_size`` (100).
    """
    if sample_size is None:
        sample_size = get_settings().dry_run_sample_size
    all_columns = list(columns) if columns is not None else dataset_columns(rows)
    sample = list(rows[:sample_size])

    try:
        query = parse_query(query_text)
        result = execute(query, sample, columns=all_columns or None)
    except QueryError as exc:
        logger.warning("Dry run failed kind=%s: %s", exc.kind, exc)
        return ValidationResult(
            valid=False,
            error_kind=exc.kind,
            error=str(exc),
            suggestion=_suggestion(exc, all_columns),
        )

    warnings: list[str] = []
    if result.is_empty and rows:
        warnings.append(EMPTY_SAMPLE_WARNING)
        logger.info("Dry run returned no rows on a %d-row sample", len(sample))

    return ValidationResult(
        valid=True,
        query=query,
        warnings=warnings,
        sample_row_count=len(result.rows),
    )
