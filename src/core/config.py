"""
Centralised application settings loaded from environment / .env file.

Every tunable of the question pipeline lives here: the LLM provider, the
self-consistency vote, dry-run and response sizes, type-inference threshold
and the dataset index lifetime.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # ── Self-consistency ─────────────────────────────────
    consensus_candidates: int = Field(3, ge=1)
    consensus_max_workers: int = Field(3, ge=1)
    consensus_timeout_seconds: float = Field(30.0, gt=0)
    history_min_similarity: float = Field(0.5, ge=0.0, le=1.0)

    # ── Query engine ─────────────────────────────────────
    dry_run_sample_size: int = Field(100, ge=1)
    response_row_limit: int = Field(100, ge=1)
    numeric_threshold: float = Field(0.8, gt=0.0, le=1.0)
    index_ttl_seconds: float = Field(3600.0, gt=0)

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    @field_validator("llm_provider", "log_level")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
