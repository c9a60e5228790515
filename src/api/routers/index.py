"""
GET /index/stats, DELETE /index/{dataset_id}, DELETE /index -- index cache management.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

router = APIRouter()


class IndexStatsItem(BaseModel):
    dataset_id: str
    age_seconds: int
    rows: int
    columns: int


class IndexStatsResponse(BaseModel):
    count: int
    datasets: list[IndexStatsItem]
    cache: dict[str, Any] | None = None


@router.get("/stats", response_model=IndexStatsResponse)
def index_stats(request: Request) -> IndexStatsResponse:
    """Return one entry per live dataset index."""
    indexer = request.app.state.indexer
    stats = indexer.stats()
    return IndexStatsResponse(
        count=len(stats),
        datasets=[IndexStatsItem(**s) for s in stats],
        cache=indexer.cache_stats(),
    )


@router.delete("/{dataset_id}")
def invalidate_index(dataset_id: str, request: Request) -> dict:
    """Drop the cached index for one dataset."""
    if not request.app.state.indexer.invalidate(dataset_id):
        raise HTTPException(status_code=404, detail=f"No index for dataset '{dataset_id}'")
    return {"invalidated": dataset_id}


@router.delete("")
def invalidate_all(request: Request) -> dict:
    """Drop every cached index."""
    return {"invalidated": request.app.state.indexer.invalidate_all()}
