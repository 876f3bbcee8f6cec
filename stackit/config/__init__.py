"""Centralised configuration helper.

This module keeps ``os.getenv`` calls in one place by exposing a
process-wide :class:`Settings` instance (retrieved via :func:`get_settings`).
Values come from the environment, optionally seeded from a ``.env`` file at
the repository root (``.env.test`` when ``NODE_ENV=test``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# ``_REPO_ROOT`` points to the top-level repository directory.  This file is
# located at ``stackit/config/__init__.py``.

_REPO_ROOT = Path(__file__).resolve().parents[2]


def _truthy(value: str | None) -> bool:  # noqa: D401 – small helper
    """Return *True* when *value* looks like an affirmative string."""

    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:  # noqa: D401 – simple data container
    """Lightweight settings container populated from environment variables."""

    # Runtime flags -----------------------------------------------------
    testing: bool

    # Database ---------------------------------------------------------
    database_url: str

    # Misc
    log_level: str
    environment: Any

    # Aggregate commits ------------------------------------------------
    max_commit_attempts: int
    retry_base_delay: float

    # Participation policy ---------------------------------------------
    guest_can_participate: bool

    # Event delivery ---------------------------------------------------
    event_drain_timeout: float

    @property
    def resolved_database_url(self) -> str:
        """Return the configured URL or the default for the current mode."""

        if self.database_url:
            return self.database_url
        return "sqlite:///:memory:" if self.testing else "sqlite:///./stackit.db"

    # Helper for tests to override values at runtime -------------------
    def override(self, **kwargs: Any) -> None:  # pragma: no cover – test util
        for key, value in kwargs.items():
            if not hasattr(self, key):  # pragma: no cover – safety
                raise AttributeError(f"Settings has no attribute '{key}'")
            setattr(self, key, value)


# ---------------------------------------------------------------------------
# Singleton accessor – values loaded only once per interpreter
# ---------------------------------------------------------------------------


def _load_settings() -> Settings:  # noqa: D401 – helper
    """Populate :class:`Settings` from environment variables."""

    node_env = os.getenv("NODE_ENV", "development")

    if node_env == "test":
        env_path = _REPO_ROOT / ".env.test"
        if not env_path.exists():
            env_path = _REPO_ROOT / ".env"  # Fallback to main .env
    else:
        env_path = _REPO_ROOT / ".env"

    if env_path.exists():
        # Explicit process environment wins over the file.
        load_dotenv(env_path, override=False)

    return Settings(
        testing=_truthy(os.getenv("TESTING")),
        database_url=os.getenv("DATABASE_URL", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        environment=os.getenv("ENVIRONMENT"),
        max_commit_attempts=int(os.getenv("STACKIT_MAX_COMMIT_ATTEMPTS", "3")),
        retry_base_delay=float(os.getenv("STACKIT_RETRY_BASE_DELAY", "0.02")),
        guest_can_participate=_truthy(os.getenv("STACKIT_GUEST_CAN_PARTICIPATE")),
        event_drain_timeout=float(os.getenv("STACKIT_EVENT_DRAIN_TIMEOUT", "10")),
    )


def _validate(settings: Settings) -> None:  # noqa: D401 – helper
    """Abort early when numeric settings are out of range."""

    problems = []
    if settings.max_commit_attempts < 1:
        problems.append("STACKIT_MAX_COMMIT_ATTEMPTS must be >= 1")
    if settings.retry_base_delay < 0:
        problems.append("STACKIT_RETRY_BASE_DELAY must be >= 0")
    if settings.event_drain_timeout <= 0:
        problems.append("STACKIT_EVENT_DRAIN_TIMEOUT must be > 0")

    if problems:
        raise RuntimeError(f"Invalid configuration: {', '.join(problems)}")


_settings: Settings | None = None


def get_settings() -> Settings:  # noqa: D401 – public accessor
    """Return :class:`Settings` instance loaded from environment."""

    global _settings
    if _settings is None:
        settings = _load_settings()
        _validate(settings)
        _settings = settings
    return _settings


def reset_settings() -> None:
    """Drop the cached instance so the next access re-reads the environment."""

    global _settings
    _settings = None


def configure_logging(settings: Settings | None = None) -> None:
    """Apply ``LOG_LEVEL`` to the ``stackit`` logger hierarchy."""

    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logger = logging.getLogger("stackit")
    if not logger.handlers and not logging.getLogger().handlers:
        # BasicConfig is a no-op if already configured – run only once.
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    logger.setLevel(level)


__all__ = [
    "Settings",
    "configure_logging",
    "get_settings",
    "reset_settings",
]
