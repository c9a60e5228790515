"""
Query generator -- self-consistency over repeated LLM completions.

One schema-enriched prompt is sent N times (default 3) on a bounded thread
pool that shares a single deadline.  Responses are cleaned, normalized
(collapse whitespace + upper-case) and voted on; the most frequent form wins,
ties going to the first completion seen.

    confidence = min(0.5 + 0.2*parsed_ok + 0.2*consensus_ratio + 0.1*historical_match, 0.99)
"""
from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Sequence

from src.copilot.classifier import ClassifiedQuestion, classify_question
from src.copilot.history import HistoryEntry, select_examples
from src.copilot.metadata import DatasetMetadata
from src.copilot.planner import NO_ANSWER, TABLE_NAME
from src.core.config import get_settings
from src.core.errors import LLMUnavailable, NoUsableQuery, QueryError
from src.core.logging import get_logger
from src.engine.parser import parse_query

logger = get_logger(__name__)

MAX_CONFIDENCE = 0.99

_FENCE = re.compile(r"```(?:sql)?", re.IGNORECASE)
_SELECT = re.compile(r"\bSELECT\b", re.IGNORECASE)
_SENTINEL = re.compile(r"NO_ANSWER|cannot answer", re.IGNORECASE)


@dataclass
class GeneratedQueryCandidate:
    query_text: str
    parsed_ok: bool
    validated_by_sample: bool = False

    @property
    def normalized(self) -> str:
        return normalize_query(self.query_text)


@dataclass
class ConsensusQuery:
    query_text: str
    consensus_ratio: float
    confidence: float
    candidates: list[GeneratedQueryCandidate] = field(default_factory=list)
    winner: GeneratedQueryCandidate | None = None
    historical_match: bool = False
    explanation: str = ""


# ── Text helpers ────────────────────────────────────────


def clean_response(text: str) -> str:
    """Strip code fences, leading prose and trailing semicolons from a completion."""
    text = _FENCE.sub("", text or "").strip()
    m = _SELECT.search(text)
    if m is None:
        return NO_ANSWER if _SENTINEL.search(text) else text
    text = text[m.start():]
    text = text.split("\n\n", 1)[0]
    return text.strip().rstrip(";").strip()


def normalize_query(text: str) -> str:
    return " ".join(text.split()).upper()


def compute_confidence(parsed_ok: bool, consensus_ratio: float, historical_match: bool) -> float:
    score = 0.5
    if parsed_ok:
        score += 0.2
    score += 0.2 * consensus_ratio
    if historical_match:
        score += 0.1
    return min(score, MAX_CONFIDENCE)


def _parses(text: str) -> bool:
    try:
        parse_query(text)
    except QueryError:
        return False
    return True


# ── Prompt ──────────────────────────────────────────────


def _column_block(col) -> str:
    lines = [f"- {col.name} ({col.inferred_type})"]
    if col.description:
        lines.append(f"  Description: {col.description}")
    if col.sample_values:
        lines.append(f"  Sample values: {', '.join(str(v) for v in col.sample_values[:5])}")
    if col.min is not None:
        lines.append(
            f"  Range: {col.min} to {col.max} (avg: {col.mean:.2f}, std: {col.stddev:.2f})"
        )
    if col.common_patterns:
        lines.append(f"  Common queries: {', '.join(col.common_patterns)}")
    return "\n".join(lines)


def build_prompt(
    question: str,
    metadata: DatasetMetadata,
    classification: ClassifiedQuestion,
    examples: Sequence[HistoryEntry] = (),
) -> str:
    schema = "\n".join(_column_block(c) for c in metadata.columns.values())
    parts = [
        "You translate questions about one table into a single SQL query.",
        "",
        f"DATASET: {metadata.row_count} rows across {metadata.column_count} columns. "
        f"The table is named {TABLE_NAME}.",
    ]
    if examples:
        parts += ["", "SUCCESSFUL EXAMPLES FROM SIMILAR QUESTIONS:"]
        for ex in examples:
            parts += [f'Q: "{ex.question}"', f"SQL: {ex.query}"]
    parts += [
        "",
        "SCHEMA:",
        schema,
        "",
        f'QUESTION: "{question}"',
        f"QUERY TYPE: {classification.type}",
        f"INTENT: {classification.intent}",
        "",
        "RULES:",
        "1. Use ONLY columns from the schema above; double-quote names containing spaces.",
        "2. Supported: SELECT, FROM, WHERE (=, !=, <, >, <=, >=, LIKE, IS [NOT] NULL, AND, OR, NOT), "
        "GROUP BY, ORDER BY ... ASC|DESC, LIMIT.",
        "3. Aggregates: COUNT(*), COUNT(col), SUM(col), AVG(col), MIN(col), MAX(col).",
        "4. No joins, subqueries, window functions or other functions.",
        "5. Every non-aggregated selected column must appear in GROUP BY.",
        "6. For top/best/worst questions use ORDER BY with LIMIT.",
        "7. Use meaningful aliases (e.g. total_revenue).",
        f"8. If the question cannot be answered from this table, reply exactly {NO_ANSWER}.",
        "",
        "OUTPUT: Return ONLY the SQL query. No explanation, no markdown.",
    ]
    return "\n".join(parts)


# ── Generator ───────────────────────────────────────────


class QueryGenerator:
    """Self-consistency query generator.

    Parameters
    ----------
    complete : callable
        ``complete(prompt) -> str``.  Any exception it raises counts as a
        failed call.
    candidates : int, optional
        Number of completions to request (``consensus_candidates``).
    max_workers : int, optional
        Thread-pool size (``consensus_max_workers``).
    timeout : float, optional
        Overall deadline in seconds for all completions together.
    """

    def __init__(
        self,
        complete: Callable[[str], str],
        candidates: int | None = None,
        max_workers: int | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._complete = complete
        self.candidates = candidates if candidates is not None else settings.consensus_candidates
        self.max_workers = max_workers if max_workers is not None else settings.consensus_max_workers
        self.timeout = timeout if timeout is not None else settings.consensus_timeout_seconds

    def _collect(self, prompt: str) -> list[str]:
        """Run the completions; return responses in submission order."""
        executor = ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, self.candidates)))
        try:
            futures = [executor.submit(self._complete, prompt) for _ in range(self.candidates)]
            done, pending = wait(futures, timeout=self.timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if pending:
            logger.warning("%d of %d completions missed the deadline", len(pending), len(futures))

        responses: list[str] = []
        errors: list[str] = []
        for future in futures:
            if future not in done:
                continue
            try:
                responses.append(future.result() or "")
            except Exception as exc:
                logger.warning("Completion failed: %s", exc)
                errors.append(str(exc))

        if not responses:
            detail = errors[0] if errors else "no completion before the deadline"
            raise LLMUnavailable(f"Language model unavailable: {detail}")
        return responses

    def generate(
        self,
        question: str,
        metadata: DatasetMetadata,
        classification: ClassifiedQuestion | None = None,
        history: Sequence[HistoryEntry] | None = None,
    ) -> ConsensusQuery:
        """Produce the consensus query for *question*.

        Raises
        ------
        LLMUnavailable
            If every call failed or none finished before the deadline.
        NoUsableQuery
            If nothing usable came back or the consensus is the no-answer sentinel.
        """
        classification = classification or classify_question(question)
        examples = select_examples(question, history)
        prompt = build_prompt(question, metadata, classification, examples)

        cleaned = [clean_response(r) for r in self._collect(prompt)]
        cleaned = [c for c in cleaned if c]
        if not cleaned:
            raise NoUsableQuery("The language model returned no query.")

        candidates = [
            GeneratedQueryCandidate(query_text=c, parsed_ok=c != NO_ANSWER and _parses(c))
            for c in cleaned
        ]

        counts: dict[str, int] = {}
        first: dict[str, GeneratedQueryCandidate] = {}
        for cand in candidates:
            key = cand.normalized
            counts[key] = counts.get(key, 0) + 1
            first.setdefault(key, cand)
        winner_key = max(counts, key=lambda k: counts[k])  # dict order keeps first-seen on ties
        winner = first[winner_key]
        ratio = counts[winner_key] / len(candidates)

        logger.info(
            "Consensus %.2f (%d/%d) query=%s",
            ratio, counts[winner_key], len(candidates), winner.query_text,
        )

        if winner.query_text == NO_ANSWER:
            raise NoUsableQuery("Cannot answer this question with the available data.")
        if not any(c.parsed_ok for c in candidates):
            raise NoUsableQuery("None of the generated queries could be parsed.")

        historical_match = bool(examples)
        return ConsensusQuery(
            query_text=winner.query_text,
            consensus_ratio=ratio,
            confidence=compute_confidence(winner.parsed_ok, ratio, historical_match),
            candidates=candidates,
            winner=winner,
            historical_match=historical_match,
            explanation=f"Generated query to {classification.intent.lower()}",
        )
