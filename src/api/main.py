"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import ask, index, metadata
from src.core.config import get_settings
from src.engine.indexer import DatasetIndexer

app = FastAPI(
    title="Dataset Query Copilot",
    version="0.1.0",
    description="Natural-language questions answered over in-memory tabular datasets",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# One index cache per process, shared by every request
app.state.indexer = DatasetIndexer()

app.include_router(ask.router, prefix="/ask", tags=["Copilot"])
app.include_router(metadata.router, prefix="/metadata", tags=["Metadata"])
app.include_router(index.router, prefix="/index", tags=["Index"])


@app.get("/health")
def health():
    return {"status": "ok"}


def serve() -> None:
    """Run the API with uvicorn on ``api_port``."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.api_port, log_level=settings.log_level.lower())
