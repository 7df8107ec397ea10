"""Runtime configuration read from environment variables.

Every component receives its settings explicitly at construction; only
``Settings.from_env()`` touches ``os.environ``.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

# SQLite default path (local development)
DEFAULT_SQLITE_PATH = Path(__file__).parent / "outreach.db"

DISPATCH_MODES = ("thread", "http", "inline")


class Settings(BaseModel):
    """Application settings."""

    # Database URL: postgres://... for Postgres, or empty for SQLite
    database_url: str = ""
    sqlite_path: Path = DEFAULT_SQLITE_PATH
    pool_min_connections: int = 1
    pool_max_connections: int = 5

    dispatch_mode: str = Field(default="thread", description="thread, http or inline")
    dispatch_workers: int = 4
    base_url: str = "http://localhost:8001"

    anthropic_api_key: Optional[str] = None
    llm_model: str = "claude-haiku-4-5-20251001"
    llm_fallback_model: str = "claude-sonnet-4-5-20250929"

    semantic_scholar_url: str = "https://api.semanticscholar.org/graph/v1"
    semantic_scholar_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        mode = env.get("OUTREACH_DISPATCH_MODE", "thread").lower()
        if mode not in DISPATCH_MODES:
            raise ValueError(
                f"Unknown OUTREACH_DISPATCH_MODE '{mode}'. "
                f"Expected one of: {', '.join(DISPATCH_MODES)}"
            )
        return cls(
            database_url=env.get("OUTREACH_DATABASE_URL", ""),
            sqlite_path=Path(env.get("OUTREACH_SQLITE_PATH", str(DEFAULT_SQLITE_PATH))),
            pool_min_connections=int(env.get("OUTREACH_POOL_MIN", "1")),
            pool_max_connections=int(env.get("OUTREACH_POOL_MAX", "5")),
            dispatch_mode=mode,
            dispatch_workers=int(env.get("OUTREACH_DISPATCH_WORKERS", "4")),
            base_url=env.get("OUTREACH_BASE_URL", "http://localhost:8001"),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            llm_model=env.get("OUTREACH_LLM_MODEL", "claude-haiku-4-5-20251001"),
            llm_fallback_model=env.get(
                "OUTREACH_LLM_FALLBACK_MODEL", "claude-sonnet-4-5-20250929"
            ),
            semantic_scholar_url=env.get(
                "SEMANTIC_SCHOLAR_URL", "https://api.semanticscholar.org/graph/v1"
            ),
            semantic_scholar_api_key=env.get("SEMANTIC_SCHOLAR_API_KEY") or None,
        )
