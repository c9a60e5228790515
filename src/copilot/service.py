"""
Copilot service -- orchestrates analyze -> clarify -> generate -> dry-run -> execute -> format.

Every path ends in an :class:`AskResult`; no exception crosses :func:`ask`.

Routing:
  - ambiguous question             -> clarification questions, LLM never called
  - statistical question            -> z-score anomaly scan, no LLM call
  - no usable query / LLM failure /
    failed dry run / query error     -> fallback aggregation
  - fallback finds nothing           -> "couldn't understand" with the real columns
"""
from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from src.copilot.classifier import ClassifiedQuestion, classify_question
from src.copilot.fallback import fallback_aggregation
from src.copilot.formatter import format_answer, header_line
from src.copilot.generator import QueryGenerator
from src.copilot.history import HistoryEntry
from src.copilot.llm_client import completion_for
from src.copilot.metadata import DatasetMetadata, analyze_dataset
from src.copilot.models import AskResult
from src.copilot.planner import make_drafter
from src.copilot.statistics import answer_statistical
from src.core.config import get_settings
from src.core.errors import LLMUnavailable, NoUsableQuery, QueryError
from src.core.logging import fields, get_logger
from src.core.utils import timer
from src.engine.executor import execute
from src.engine.indexer import DatasetIndexer
from src.governance.ambiguity import detect_ambiguity
from src.governance.validator import dry_run

logger = get_logger(__name__)

CLARIFICATION_CONFIDENCE = 0.3
FALLBACK_CONFIDENCE = 0.6
STATISTICAL_CONFIDENCE = 0.85
EMPTY_SAMPLE_CONFIDENCE_CAP = 0.6


def _history(query_history: Sequence[Any] | None) -> list[HistoryEntry]:
    entries: list[HistoryEntry] = []
    for item in query_history or []:
        if isinstance(item, HistoryEntry):
            entries.append(item)
        elif isinstance(item, Mapping):
            entries.append(HistoryEntry.from_mapping(item))
        else:
            entries.append(HistoryEntry.from_mapping(item.model_dump()))
    return entries


def _not_understood(metadata: DatasetMetadata, reason: str) -> AskResult:
    names = metadata.column_names
    answer = "I couldn't understand your question."
    if names:
        numeric = metadata.numeric_columns()
        metric = numeric[0] if numeric else names[0]
        other = names[1] if len(names) > 1 else names[0]
        answer += (
            f"\n\n**Available columns:** {', '.join(names)}\n\n"
            "Try asking about specific columns, like:\n"
            f'- "What is the total {metric}?"\n'
            f'- "Show me top 10 by {other}"'
        )
    else:
        answer += "\n\nThe dataset has no columns to query."
    return AskResult(
        success=False,
        answer=answer,
        confidence=0.0,
        method="aggregation",
        explanation=reason,
        row_count=metadata.row_count,
    )


def _fallback(
    question: str,
    rows: Sequence[dict],
    metadata: DatasetMetadata,
    classification: ClassifiedQuestion,
    reason: str,
) -> AskResult:
    logger.info("Routing to fallback aggregation: %s", reason)
    data = fallback_aggregation(question, rows, metadata, classification)
    if not data:
        return _not_understood(metadata, reason)

    limit = get_settings().response_row_limit
    return AskResult(
        success=True,
        answer=format_answer(question, data[:limit], len(rows), FALLBACK_CONFIDENCE),
        data=data[:limit],
        confidence=FALLBACK_CONFIDENCE,
        method="aggregation",
        explanation=f"Answered by direct aggregation after query generation failed ({reason})",
        warnings=[reason],
        row_count=len(rows),
    )


def _pick_completions(
    question: str,
    metadata: DatasetMetadata,
    complete: Callable[[str], str] | None,
    provider: str | None,
) -> tuple[Callable[[str], str], Callable[[str], str] | None]:
    """Return (generation, summary) completion functions."""
    if complete is not None:
        return complete, complete
    provider = (provider or get_settings().llm_provider).lower()
    if provider == "mock":
        return make_drafter(question, metadata), None
    llm = completion_for(provider)
    return llm, llm


def _ask(
    question: str,
    rows: Sequence[dict],
    columns: Sequence[str] | None,
    query_history: Sequence[Any] | None,
    dataset_id: str | None,
    complete: Callable[[str], str] | None,
    indexer: DatasetIndexer | None,
    provider: str | None,
) -> AskResult:
    settings = get_settings()

    # 1. Profile the dataset
    metadata = analyze_dataset(rows, columns)
    column_list = list(columns) if columns is not None else metadata.column_names

    # 2. Classify + clarify (before any LLM call)
    classification = classify_question(question)
    clarification = detect_ambiguity(question, metadata)
    if clarification.needs_clarification:
        return AskResult(
            success=False,
            answer="I need some clarification to answer accurately.",
            confidence=CLARIFICATION_CONFIDENCE,
            method="generated",
            explanation="Question is ambiguous",
            needs_clarification=True,
            clarification_questions=clarification.questions,
            row_count=len(rows),
        )

    # 3. Statistical questions are answered directly
    if classification.type == "statistical" and metadata.numeric_columns():
        stats = answer_statistical(rows, metadata, classification)
        if stats is not None:
            data = stats.to_rows()[: settings.response_row_limit]
            return AskResult(
                success=True,
                answer=f"{header_line(len(rows), STATISTICAL_CONFIDENCE)}\n\n{stats.summary()}",
                data=data,
                confidence=STATISTICAL_CONFIDENCE,
                method="statistical",
                explanation=f"Z-score anomaly detection on {stats.column}",
                row_count=len(rows),
            )

    # 4. Index for fast lookups
    index = None
    if indexer is not None and dataset_id:
        index = indexer.get_or_build_index(dataset_id, rows)

    # 5. Generate the consensus query
    generate_fn, summary_fn = _pick_completions(question, metadata, complete, provider)
    generator = QueryGenerator(generate_fn)
    try:
        consensus = generator.generate(question, metadata, classification, _history(query_history))
    except (NoUsableQuery, LLMUnavailable) as exc:
        return _fallback(question, rows, metadata, classification, f"{exc.kind}: {exc}")

    # 6. Dry run on a sample
    validation = dry_run(consensus.query_text, rows, column_list, settings.dry_run_sample_size)
    if not validation.valid:
        reason = f"{validation.error_kind}: {validation.error}"
        return _fallback(question, rows, metadata, classification, reason)

    if consensus.winner is not None:
        consensus.winner.validated_by_sample = True
    confidence = consensus.confidence
    warnings = list(validation.warnings)
    if warnings:
        confidence = min(confidence, EMPTY_SAMPLE_CONFIDENCE_CAP)

    # 7. Execute on the full dataset
    try:
        result = execute(validation.query, rows, columns=column_list or None, index=index)
    except QueryError as exc:
        return _fallback(question, rows, metadata, classification, f"{exc.kind}: {exc}")

    # 8. Format
    data = result.rows[: settings.response_row_limit]
    answer = format_answer(
        question, data, len(rows), confidence,
        complete=summary_fn, total_results=len(result.rows),
    )
    return AskResult(
        success=True,
        answer=answer,
        data=data,
        query=consensus.query_text,
        validated_by_sample=consensus.winner is not None and consensus.winner.validated_by_sample,
        confidence=confidence,
        method="generated",
        explanation=consensus.explanation,
        warnings=warnings,
        row_count=len(rows),
    )


def ask(
    question: str,
    rows: Sequence[dict],
    columns: Sequence[str] | None = None,
    query_history: Sequence[Any] | None = None,
    dataset_id: str | None = None,
    complete: Callable[[str], str] | None = None,
    indexer: DatasetIndexer | None = None,
    provider: str | None = None,
) -> AskResult:
    """End-to-end: question + rows -> structured answer.

    Parameters
    ----------
    question : str
        Natural-language question about the dataset.
    rows : sequence of dict
        The dataset, already loaded in memory.  Never mutated.
    columns : sequence of str, optional
        Explicit column list; defaults to the keys seen in the rows.
    query_history : sequence, optional
        Prior ``{question, query, success, confidence}`` entries.
    dataset_id : str, optional
        Identity used to cache the dataset index.
    complete : callable, optional
        ``complete(prompt) -> str``.  Overrides the configured provider.
    indexer : DatasetIndexer, optional
        Index cache shared across requests.
    provider : str, optional
        LLM provider override: mock, openai or anthropic.
    """
    logger.info("Copilot.ask | %s", fields(question=question, rows=len(rows), dataset=dataset_id))
    with timer() as t:
        try:
            result = _ask(question, rows, columns, query_history, dataset_id, complete, indexer, provider)
        except Exception as exc:
            logger.exception("Copilot.ask failed")
            result = AskResult(
                success=False,
                answer="An error occurred while processing your question. Please try rephrasing it.",
                confidence=0.0,
                explanation=str(exc),
                row_count=len(rows),
            )
    result.latency_ms = t["elapsed_ms"]
    logger.info(
        "Copilot.ask done | %s",
        fields(
            success=result.success,
            method=result.method,
            confidence=result.confidence,
            latency_ms=result.latency_ms,
        ),
    )
    return result
