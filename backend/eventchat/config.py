"""Eventchat application configuration.

Loads settings from two YAML files:
  * eventchat.settings.yaml: non-secret configuration
  * eventchat.secrets.yaml: secrets (never committed)

The ``JWT_SECRET`` environment variable, when set, overrides
``secrets.jwt.secret_key`` so deployments can keep the signing key out of
files entirely.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("eventchat.settings.yaml")
SECRETS_FILE  = Path("eventchat.secrets.yaml")

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class InternalSecrets(BaseModel):
    """Shared key for the internal notification hooks (None disables them)."""
    api_key: Optional[str] = None


class Secrets(BaseModel):
    jwt:      JWTSecrets      = Field(default_factory=JWTSecrets)
    internal: InternalSecrets = Field(default_factory=InternalSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.lower().strip()
        if value not in LOG_LEVELS:
            raise ValueError(f"logging.level must be one of {', '.join(LOG_LEVELS)}")
        return value


class StorageSettings(BaseModel):
    db_path: str = "eventchat.duckdb"


class ChatSettings(BaseModel):
    """Realtime chat tuning knobs."""
    history_limit:              int   = 50
    http_history_limit:         int   = 100
    max_message_length:         int   = 1000
    dependency_timeout_seconds: float = 5.0
    send_timeout_seconds:       float = 10.0

    @field_validator(
        "history_limit",
        "http_history_limit",
        "max_message_length",
        "dependency_timeout_seconds",
        "send_timeout_seconds",
    )
    @classmethod
    def _positive(cls, value):
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    secrets: Secrets         = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _apply_env_overrides(settings: AppSettings) -> None:
    jwt_secret = os.environ.get("JWT_SECRET")
    if jwt_secret:
        settings.secrets.jwt.secret_key = jwt_secret
        logger.info("JWT secret taken from JWT_SECRET environment variable.")


def load_settings(
    settings_path: Path = SETTINGS_FILE,
    secrets_path: Path = SECRETS_FILE,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    _apply_env_overrides(app_settings)
    logger.info(
        "Settings loaded (server=%s:%s, db_path=%s, history_limit=%d)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.storage.db_path,
        app_settings.chat.history_limit,
    )
    return app_settings


@lru_cache(maxsize=1)
def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    return load_settings()
