"""
Historical example retrieval for few-shot prompting.

A past question is a usable example when it succeeded, scored a confidence
above 0.7, and its keyword set overlaps the new question's with a Jaccard
similarity of at least ``history_min_similarity`` (default 0.5).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from src.copilot.classifier import extract_keywords
from src.core.config import get_settings

MIN_CONFIDENCE = 0.7
MAX_EXAMPLES = 3


@dataclass(frozen=True)
class HistoryEntry:
    question: str
    query: str
    success: bool
    confidence: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "HistoryEntry":
        return cls(
            question=str(data.get("question", "")),
            query=str(data.get("query") or data.get("sql") or ""),
            success=bool(data.get("success", False)),
            confidence=float(data.get("confidence", 0.0)),
        )


def jaccard(a: frozenset[str] | set[str], b: frozenset[str] | set[str]) -> float:
    """Jaccard similarity between two keyword sets."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def select_examples(
    question: str,
    history: Iterable[HistoryEntry] | None,
    min_similarity: float | None = None,
    limit: int = MAX_EXAMPLES,
) -> list[HistoryEntry]:
    """Return up to *limit* similar successful entries, most similar first."""
    if not history:
        return []
    if min_similarity is None:
        min_similarity = get_settings().history_min_similarity

    keywords = extract_keywords(question)
    scored: list[tuple[float, int, HistoryEntry]] = []
    for pos, entry in enumerate(history):
        if not entry.success or entry.confidence <= MIN_CONFIDENCE or not entry.query:
            continue
        sim = jaccard(keywords, extract_keywords(entry.question))
        if sim >= min_similarity:
            scored.append((sim, pos, entry))

    scored.sort(key=lambda t: (-t[0], t[1]))
    return [entry for _, _, entry in scored[:limit]]
