"""
AskResult -- the structured answer returned for every question.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class HistoryItem(BaseModel):
    """A previously answered question, used for few-shot examples."""

    question: str
    query: str = Field(..., description="The dialect query that answered it")
    success: bool = True
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class AskResult(BaseModel):
    """Answer to one natural-language question."""

    success: bool
    answer: str
    data: list[dict[str, Any]] = Field(default_factory=list, description="Result rows (at most 100)")
    query: str | None = Field(None, description="The executed dialect query, if any")
    validated_by_sample: bool = Field(False, description="The query passed a dry run on a row sample")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    method: Literal["generated", "aggregation", "statistical"] = "generated"
    explanation: str = ""
    needs_clarification: bool = False
    clarification_questions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    latency_ms: int = 0
    row_count: int = Field(0, description="Rows in the analyzed dataset")
