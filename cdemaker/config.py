# cdemaker/config.py
from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# OS env wins; .env only fills gaps
ENV_PATH = Path.cwd() / ".env"


def _env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment variable among keys."""
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


@dataclass(frozen=True)
class AppConfig:
    db_url: str = "sqlite+aiosqlite:///./cde_maker.db"

    # Generative model
    gemini_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_timeout: float = 120.0

    # Stack Auth; auth is enabled only when a project id is present
    stack_project_id: Optional[str] = None
    stack_secret_server_key: Optional[str] = None
    stack_api_url: str = "https://api.stack-auth.com/api/v1"

    # Batch comparison
    max_retries: int = 3
    initial_retry_delay_ms: int = 1000
    rows_per_batch: int = 10
    pages_per_batch: int = 5
    single_pages_per_batch: int = 30

    log_level: str = "INFO"

    # uvicorn bind address for `cde-maker` / `python -m cdemaker`
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def auth_enabled(self) -> bool:
        return bool(self.stack_project_id)


def load_config(env_file: Optional[Path] = ENV_PATH) -> AppConfig:
    if env_file is not None and env_file.exists():
        load_dotenv(dotenv_path=env_file, override=False)
    return AppConfig(
        db_url=_env("CDE_DB_URL", default=AppConfig.db_url),
        gemini_key=_env("GEMINI_KEY", "GEMINI_API_KEY"),
        gemini_model=_env("GEMINI_MODEL", default=AppConfig.gemini_model),
        gemini_base_url=_env("GEMINI_BASE_URL", default=AppConfig.gemini_base_url),
        gemini_timeout=float(_env("GEMINI_TIMEOUT", default="120")),
        stack_project_id=_env("STACK_PROJECT_ID", "NEXT_PUBLIC_STACK_PROJECT_ID"),
        stack_secret_server_key=_env("STACK_SECRET_SERVER_KEY"),
        stack_api_url=_env("STACK_API_URL", default=AppConfig.stack_api_url),
        max_retries=int(_env("CDE_MAX_RETRIES", default="3")),
        initial_retry_delay_ms=int(_env("CDE_INITIAL_RETRY_DELAY_MS", default="1000")),
        rows_per_batch=int(_env("CDE_ROWS_PER_BATCH", default="10")),
        pages_per_batch=int(_env("CDE_PAGES_PER_BATCH", default="5")),
        single_pages_per_batch=int(_env("CDE_SINGLE_PAGES_PER_BATCH", default="30")),
        log_level=(_env("CDE_LOG_LEVEL", default="INFO") or "INFO").upper(),
        host=_env("CDE_HOST", default=AppConfig.host),
        port=int(_env("CDE_PORT", default="8000")),
    )
