"""Pydantic-based settings loaded from YAML with env-var overrides."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings

from spscjobs.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

ENV_PREFIX = "SPSCJOBS_"


class RuntimeMode(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class AppSettings(BaseSettings):
    """Application configuration with YAML + env var support.

    Env vars are prefixed with ``SPSCJOBS_``.
    Example: ``SPSCJOBS_MODE=production``
    """

    model_config = {"env_prefix": ENV_PREFIX}

    # --- runtime ---
    mode: RuntimeMode = RuntimeMode.DEVELOPMENT
    json_logs: bool = False

    # --- source site ---
    base_url: str = "https://spsc.sikkim.gov.in"
    notifications_path: str = "/Notifications.html"
    headless: bool = True
    navigation_timeout_ms: int = 30_000
    politeness_delay: float = 2.0  # seconds between job records

    # --- safety ---
    lock_ttl_minutes: int = 30
    max_run_minutes: int = 30  # runs older than this and still "running" are stuck

    # --- persistence ---
    state_dir: str = ".state"
    store_path: str = ""  # defaults to <state_dir>/spscjobs.db outside production
    refresh_incomplete: bool = False

    # --- documents ---
    pdf_timeout: float = 30.0
    pdf_min_bytes: int = 5_000
    pdf_max_bytes: int = 20 * 1024 * 1024
    pdf_min_text_chars: int = 200
    default_department: str = "SPSC"

    # --- alerting ---
    alert_email: str = ""
    alert_sender: str = "spscjobs@localhost"
    smtp_host: str = ""
    smtp_port: int = 25

    @field_validator("mode", mode="before")
    @classmethod
    def _normalise_mode(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if v == "prod":
                return RuntimeMode.PRODUCTION
            if v in ("dev", ""):
                return RuntimeMode.DEVELOPMENT
        return v

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ---- derived ----

    @property
    def is_production(self) -> bool:
        return self.mode is RuntimeMode.PRODUCTION

    @property
    def alerts_enabled(self) -> bool:
        """Outbound alerts are only ever sent in production."""
        return self.is_production

    @property
    def notifications_url(self) -> str:
        return f"{self.base_url}{self.notifications_path}"

    def resolved_store_path(self) -> Path:
        if self.store_path:
            return Path(self.store_path)
        return Path(self.state_dir) / "spscjobs.db"

    # ---- factory ----

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "AppSettings":
        """Load settings from a YAML file, then overlay env vars.

        Env vars (``SPSCJOBS_*``) take priority over YAML values.
        """
        import os

        if path is None:
            path = _PROJECT_ROOT / "settings.yaml"
        path = Path(path)
        raw: dict[str, Any] = {}
        if path.exists():
            with open(path) as fh:
                raw = yaml.safe_load(fh) or {}

        for key in list(raw.keys()):
            env_key = f"{ENV_PREFIX}{key.upper()}"
            if env_key in os.environ:
                del raw[key]

        return cls(**raw)


_PRODUCTION_REQUIRED = ("store_path", "alert_email", "smtp_host")


def validate_runtime(settings: AppSettings) -> None:
    """Refuse to start a production run with missing configuration.

    Development and staging only log their mode; alerts stay disabled there.
    """
    logger.info("Runtime mode: %s", settings.mode.value)
    logger.info("Alerts enabled: %s", settings.alerts_enabled)

    if not settings.is_production:
        logger.warning(
            "Running in %s mode — alerts disabled.", settings.mode.value.upper()
        )
        return

    missing = [
        f"{ENV_PREFIX}{name.upper()}"
        for name in _PRODUCTION_REQUIRED
        if not getattr(settings, name)
    ]
    if missing:
        logger.error(
            "FATAL: missing required configuration in production: %s",
            ", ".join(missing),
        )
        raise ConfigurationError(
            "Production mode requires: " + ", ".join(missing)
            + f". Set {ENV_PREFIX}MODE=development for local runs."
        )
    logger.info("Production configuration validated.")
