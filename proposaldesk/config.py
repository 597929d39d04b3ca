"""Settings loaded from PROPOSALDESK_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "PROPOSALDESK"

DEFAULT_BASE_URL = "http://localhost:8080/rest"
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_SESSION_PATH = Path.home() / ".proposaldesk" / "session.json"
DEFAULT_MAX_CONCURRENT_FETCHES = 10
DEFAULT_LOG_LEVEL = "WARNING"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the client."""

    base_url: str
    timeout: float
    session_path: Path
    max_concurrent_fetches: int
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            base_url=_env(_k("BASE_URL"), DEFAULT_BASE_URL).rstrip("/"),
            timeout=_env_float(_k("TIMEOUT"), DEFAULT_TIMEOUT),
            session_path=_env_path(_k("SESSION_PATH"), DEFAULT_SESSION_PATH),
            max_concurrent_fetches=max(
                0, _env_int(_k("MAX_CONCURRENT_FETCHES"), DEFAULT_MAX_CONCURRENT_FETCHES)
            ),
            log_level=_env(_k("LOG_LEVEL"), DEFAULT_LOG_LEVEL).upper(),
        )


def get_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings.from_env()
