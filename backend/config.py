# Runtime configuration - environment variables with .env support
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def is_demo_mode() -> bool:
    """True only when DEMO_MODE env var is explicitly 'true' (case-insensitive)."""
    return os.environ.get("DEMO_MODE", "").lower() == "true"


@dataclass
class Settings:
    """Client-side sync settings"""
    api_base_url: str = "http://localhost:8000"
    stage_update_timeout: float = 25.0  # seconds before falling back to local computation
    poll_interval: float = 30.0
    retry_attempts: int = 3
    retry_base_delay: float = 2.0
    default_language: str = "en"
    cache_file: Optional[str] = None  # None keeps the cache in memory
    demo_mode: bool = False
    frontend_url: Optional[str] = None


def load_settings() -> Settings:
    """Read settings from the environment (re-read on every call so tests can monkeypatch)."""
    return Settings(
        api_base_url=os.environ.get("API_BASE_URL", "http://localhost:8000").rstrip("/"),
        stage_update_timeout=_env_float("STAGE_UPDATE_TIMEOUT", 25.0),
        poll_interval=_env_float("POLL_INTERVAL", 30.0),
        retry_attempts=_env_int("RETRY_ATTEMPTS", 3),
        retry_base_delay=_env_float("RETRY_BASE_DELAY", 2.0),
        default_language=os.environ.get("DEFAULT_LANGUAGE", "en") or "en",
        cache_file=os.environ.get("CACHE_FILE") or None,
        demo_mode=is_demo_mode(),
        frontend_url=os.environ.get("FRONTEND_URL") or None,
    )


def allowed_origins() -> list[str]:
    """CORS origins: local dev plus the deployed frontend from FRONTEND_URL."""
    origins = [
        "http://localhost:5173",
        "http://localhost:5174",
    ]
    frontend_url = os.environ.get("FRONTEND_URL", "")
    if frontend_url:
        origins.append(frontend_url)
    return origins
