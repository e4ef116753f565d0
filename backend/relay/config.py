"""Relay application configuration.

Loads settings from a single YAML file:
  * relay.settings.yaml (non-secret configuration)

The path can be overridden with the ``RELAY_SETTINGS`` environment variable
or by passing ``settings_path`` to :func:`load_config`.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("relay.settings.yaml")

DEFAULT_NAMESPACES = ["chat", "refund", "cancellation", "order"]


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost"])


class LoggingSettings(BaseModel):
    level: str = "info"


class RealtimeSettings(BaseModel):
    """Transport tuning for the WebSocket namespaces."""
    send_timeout_seconds: float     = 5.0
    outbox_size:          int       = Field(default=256, ge=1)
    namespaces:           List[str] = Field(default_factory=lambda: list(DEFAULT_NAMESPACES))

    @field_validator("namespaces")
    @classmethod
    def _known_namespaces(cls, value: List[str]) -> List[str]:
        unknown = [name for name in value if name not in DEFAULT_NAMESPACES]
        if unknown:
            raise ValueError(f"Unknown namespaces: {', '.join(unknown)}")
        return value


class PresenceSettings(BaseModel):
    """Presence registry behaviour."""
    evict_superseded_connections: bool = True
    read_ledger_size:             int  = Field(default=10000, ge=1)
    read_ledger_messages:         int  = Field(default=500, ge=1)


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    presence: PresenceSettings = Field(default_factory=PresenceSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


_config: Optional[AppConfig] = None


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings into a single *AppConfig* object."""
    if settings_path is None:
        settings_path = Path(os.environ.get("RELAY_SETTINGS", SETTINGS_FILE))
    settings_data = _load_yaml(Path(settings_path))

    config = AppConfig(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, namespaces=%s, evict_superseded=%s)",
        config.server.host,
        config.server.port,
        ",".join(config.realtime.namespaces),
        config.presence.evict_superseded_connections,
    )
    return config


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config. Used by tests."""
    global _config
    _config = None
