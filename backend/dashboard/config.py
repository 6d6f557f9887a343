"""Configuration management for the review desk."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_PIPELINE_STEPS = [
    "seo_keywords",
    "marketing_brief",
    "article_generation",
    "seo_optimization",
    "suggested_links",
    "content_formatting",
]


def load_env_file(env_path: Optional[str] = None) -> Path | None:
    """Load environment file from specified path or search common locations.

    Priority:
    1. Explicitly provided path (CLI flag or REVIEW_ENV_FILE)
    2. .env.local in current directory
    3. .env in current directory
    """
    explicit_path = env_path or os.getenv("REVIEW_ENV_FILE")
    if explicit_path:
        path = Path(explicit_path).expanduser().resolve()
        if path.exists():
            load_dotenv(path)
            return path
        print(f"Warning: Specified env file not found: {path}")

    cwd = Path.cwd()
    for path in (cwd / ".env.local", cwd / ".env"):
        if path.exists():
            load_dotenv(path)
            return path

    load_dotenv()
    return None


_loaded_env_path = load_env_file()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_steps() -> list[str]:
    raw = os.getenv("REVIEW_PIPELINE_STEPS")
    if not raw:
        return list(DEFAULT_PIPELINE_STEPS)
    return [s.strip() for s in raw.split(",") if s.strip()]


class AppConfig(BaseModel):
    """Main application configuration."""

    # Review API
    api_base_url: str = Field(
        default_factory=lambda: os.getenv("REVIEW_API_BASE_URL", "http://localhost:8000/api")
    )
    # Pipeline operations can take minutes on the backend
    timeout: float = Field(default_factory=lambda: float(os.getenv("REVIEW_API_TIMEOUT", "180")))

    # Job polling
    poll_interval: float = Field(default_factory=lambda: float(os.getenv("REVIEW_POLL_INTERVAL", "2.0")))
    max_poll_failures: int = Field(default_factory=lambda: int(os.getenv("REVIEW_MAX_POLL_FAILURES", "5")))

    # Review behaviour
    reviewer: str = Field(default_factory=lambda: os.getenv("REVIEW_REVIEWER", "current_user"))
    keyword_step: str = Field(default_factory=lambda: os.getenv("REVIEW_KEYWORD_STEP", "seo_keywords"))
    pipeline_steps: list[str] = Field(default_factory=_env_steps)
    recheck_before_submit: bool = Field(default_factory=lambda: _env_flag("REVIEW_RECHECK_BEFORE_SUBMIT", "true"))

    debug: bool = Field(default_factory=lambda: _env_flag("DEBUG", "false"))
    env_file: Optional[str] = Field(default_factory=lambda: str(_loaded_env_path) if _loaded_env_path else None)


def get_config() -> AppConfig:
    """Get the application configuration."""
    return AppConfig()


def reload_config(env_path: Optional[str] = None) -> AppConfig:
    """Reload configuration with a new env file path."""
    global _loaded_env_path
    _loaded_env_path = load_env_file(env_path)
    return get_config()
