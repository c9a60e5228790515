"""
POST /metadata -- dataset profiling endpoint.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.copilot.metadata import analyze_dataset

router = APIRouter()


class MetadataRequest(BaseModel):
    rows: list[dict[str, Any]] = Field(default_factory=list)
    columns: list[str] | None = None


class ColumnItem(BaseModel):
    name: str
    inferred_type: str
    null_count: int
    unique_count: int
    sample_values: list[Any]
    description: str
    common_patterns: list[str]
    min: float | None = None
    max: float | None = None
    mean: float | None = None
    median: float | None = None
    stddev: float | None = None
    q1: float | None = None
    q3: float | None = None
    top_values: list[dict[str, Any]] | None = None


class MetadataResponse(BaseModel):
    row_count: int
    column_count: int
    columns: list[ColumnItem]


@router.post("", response_model=MetadataResponse)
def profile_dataset(req: MetadataRequest) -> MetadataResponse:
    """Infer column types and summary statistics for the posted rows."""
    meta = analyze_dataset(req.rows, req.columns)
    return MetadataResponse(**meta.to_dict())
