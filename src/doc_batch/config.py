"""
Batch configuration: path constants, API settings, quota defaults, and the
environment-backed ``Settings`` object.

All constants used across the batch modules are centralized here so that
config is separated from logic.  Secrets (API keys) are read from the
environment, with a project-level ``.env`` file loaded via python-dotenv.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Relative paths resolve against the working directory of the run, which is
# the repository being documented.
LOGS_DIR = Path("logs")
DOCS_DIR = Path("docs")

PROGRESS_FILE = Path("progress.json")
STRUCTURE_FILE = Path("structure.json")
FILES_LIST_FILE = Path("files.json")
FAILED_ITEMS_LOG = LOGS_DIR / "failed_items.jsonl"
ATTEMPT_LOG = LOGS_DIR / "attempt_log.csv"

# ---------------------------------------------------------------------------
# Source discovery
# ---------------------------------------------------------------------------

DEFAULT_SOURCE_ROOT = Path("apps")
DEFAULT_PATTERNS: tuple[str, ...] = ("**/*.ts",)
DEFAULT_IGNORE: tuple[str, ...] = ("node_modules/**", "**/node_modules/**")

# ---------------------------------------------------------------------------
# Generation API
# ---------------------------------------------------------------------------

API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"
REQUEST_TIMEOUT_SECONDS: int = 60

# Sent as generationConfig; empty means provider defaults.
GENERATION_CONFIG: dict[str, int | float] = {
    "temperature": 0.2,
}

# Environment variable names
API_KEYS_ENV = "GOOGLE_API_KEYS"
DAILY_LIMIT_ENV = "DAILY_LIMIT"
MODEL_ENV = "GEMINI_MODEL"
MAX_ITEM_FAILURES_ENV = "MAX_ITEM_FAILURES"

# ---------------------------------------------------------------------------
# Quota parameters
# ---------------------------------------------------------------------------

DEFAULT_DAILY_LIMIT: int = 200   # API attempts per calendar day (UTC)
DEFAULT_MAX_ITEM_FAILURES: int = 3  # 0 → retry failed items forever


class ConfigurationError(ValueError):
    """Startup configuration is unusable; the run cannot begin."""


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings for one batch run."""

    api_keys: tuple[str, ...]
    daily_limit: int = DEFAULT_DAILY_LIMIT
    model: str = DEFAULT_MODEL
    max_item_failures: int = DEFAULT_MAX_ITEM_FAILURES
    source_root: Path = DEFAULT_SOURCE_ROOT
    patterns: tuple[str, ...] = DEFAULT_PATTERNS
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    docs_dir: Path = DOCS_DIR
    progress_file: Path = PROGRESS_FILE
    structure_file: Path = STRUCTURE_FILE
    failed_items_log: Path = FAILED_ITEMS_LOG
    attempt_log: Path = ATTEMPT_LOG
    request_timeout: int = REQUEST_TIMEOUT_SECONDS
    generation_config: dict = field(default_factory=lambda: dict(GENERATION_CONFIG))


def parse_api_keys(raw: str | None) -> tuple[str, ...]:
    """
    Split a comma-separated key string, dropping blanks and duplicates.

    Order is preserved: the first key listed is the first key used.
    """
    if not raw:
        return ()
    keys: list[str] = []
    for part in raw.split(","):
        key = part.strip()
        if key and key not in keys:
            keys.append(key)
    return tuple(keys)


def int_from_env(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(
            f"Environment variable '{name}' must be an integer, got {raw!r}."
        ) from exc
    if value < minimum:
        raise ConfigurationError(
            f"Environment variable '{name}' must be >= {minimum}, got {value}."
        )
    return value


def load_settings(env_file: Path | None = None, **overrides) -> Settings:
    """
    Build :class:`Settings` from the environment and explicit overrides.

    A ``.env`` file is loaded first (without overriding variables that are
    already set).  Keyword overrides whose value is ``None`` are ignored so
    that CLI options left at their defaults fall through to the environment.

    Args:
        env_file: Optional explicit ``.env`` path; otherwise the nearest
                  ``.env`` at or above the working directory.
        **overrides: Any :class:`Settings` field.

    Returns:
        A frozen :class:`Settings` instance.

    Raises:
        ConfigurationError: No API keys configured, or a numeric setting is
                            malformed.
    """
    load_dotenv(env_file if env_file is not None else find_dotenv(usecwd=True))

    values: dict = {
        "api_keys": parse_api_keys(os.getenv(API_KEYS_ENV)),
        "daily_limit": int_from_env(DAILY_LIMIT_ENV, DEFAULT_DAILY_LIMIT, 0),
        "model": os.getenv(MODEL_ENV) or DEFAULT_MODEL,
        "max_item_failures": int_from_env(
            MAX_ITEM_FAILURES_ENV, DEFAULT_MAX_ITEM_FAILURES, 0
        ),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})

    if isinstance(values["api_keys"], str):
        values["api_keys"] = parse_api_keys(values["api_keys"])
    else:
        values["api_keys"] = tuple(values["api_keys"])

    if not values["api_keys"]:
        raise ConfigurationError(
            f"No API keys found. Set '{API_KEYS_ENV}' (comma-separated) in the "
            "environment or a .env file."
        )

    return Settings(**values)
