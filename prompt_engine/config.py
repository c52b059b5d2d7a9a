"""Environment-driven settings.

Every knob is read from the environment once, on first use of
get_settings(). Tests build Settings directly instead.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "anthropic/claude-sonnet-4"
DEFAULT_TEMPLATES_DIR = Path(__file__).parent / "templates" / "definitions"
DEFAULT_SQLITE_PATH = Path(__file__).parent / "executor" / "executor.db"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


class Settings(BaseModel):
    """Runtime configuration for providers, storage and the template catalog."""

    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    fal_api_key: Optional[str] = None
    fal_queue_url: str = "https://queue.fal.run"
    anthropic_api_key: Optional[str] = None

    mock_mode: bool = False
    execution_timeout_ms: int = Field(default=30_000, gt=0)
    fal_poll_interval_ms: int = Field(default=1_000, ge=0)
    fal_max_polls: int = Field(default=60, gt=0)
    default_model: str = DEFAULT_TEXT_MODEL
    site_url: str = "http://localhost:3010"

    database_url: str = ""
    sqlite_path: Path = DEFAULT_SQLITE_PATH
    templates_dir: Path = DEFAULT_TEMPLATES_DIR
    log_level: str = "INFO"

    @property
    def execution_timeout_s(self) -> float:
        return self.execution_timeout_ms / 1000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openrouter_api_key=os.environ.get("OPENROUTER_API_KEY") or None,
            openrouter_base_url=os.environ.get(
                "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
            ),
            # Both spellings are in use across deployments
            fal_api_key=os.environ.get("FAL_KEY") or os.environ.get("FAL_API_KEY") or None,
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY") or None,
            mock_mode=_env_bool("MOCK_MODE"),
            execution_timeout_ms=_env_int("EXECUTION_TIMEOUT", 30_000),
            fal_poll_interval_ms=_env_int("FAL_POLL_INTERVAL", 1_000),
            fal_max_polls=_env_int("FAL_MAX_POLLS", 60),
            default_model=os.environ.get("DEFAULT_MODEL", DEFAULT_TEXT_MODEL),
            site_url=os.environ.get("SITE_URL", "http://localhost:3010"),
            database_url=os.environ.get("EXECUTOR_DATABASE_URL", ""),
            sqlite_path=Path(os.environ.get("EXECUTOR_SQLITE_PATH", str(DEFAULT_SQLITE_PATH))),
            templates_dir=Path(os.environ.get("TEMPLATES_DIR", str(DEFAULT_TEMPLATES_DIR))),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, reading the environment on first call."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
