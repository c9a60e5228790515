"""POST /ask -- main copilot endpoint."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException, Request

from src.copilot.models import AskResult, HistoryItem
from src.copilot.service import ask as copilot_ask
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class AskRequest(BaseModel):
    question: str = Field(..., min_length=3, max_length=500, description="Natural-language question")
    rows: list[dict[str, Any]] = Field(default_factory=list, description="The dataset, one dict per row")
    columns: list[str] | None = Field(None, description="Explicit column list (defaults to row keys)")
    query_history: list[HistoryItem] | None = Field(None, description="Prior answered questions")
    dataset_id: str | None = Field(None, description="Identity used to cache the dataset index")
    provider: str | None = Field(None, description="mock | openai | anthropic")


@router.post("", response_model=AskResult)
def ask_endpoint(req: AskRequest, request: Request):
    """Full pipeline: question -> clarify -> generate -> dry run -> execute -> answer."""
    try:
        return copilot_ask(
            req.question,
            req.rows,
            columns=req.columns,
            query_history=req.query_history,
            dataset_id=req.dataset_id,
            indexer=request.app.state.indexer,
            provider=req.provider,
        )
    except Exception as exc:
        logger.exception("Copilot.ask failed")
        raise HTTPException(status_code=500, detail=str(exc))
