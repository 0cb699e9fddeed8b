"""
Configuration constants and Pydantic models for chatbridge.

Settings are owned by the host application (a key-value store, a UI, the
environment). The core only ever reads them through a SettingsSource
callable, at call time, so a change made by the host is picked up by the
next request without rebuilding any adapter.
"""

import os
from datetime import datetime
from typing import Callable, Literal, Optional

from pydantic import BaseModel


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_OLLAMA_SERVER: str = "http://localhost:11434"
DEFAULT_OPENAI_SERVER: str = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS: int = 300  # 5 minutes, long generations are normal
DEFAULT_RECENT_LIMIT: int = 5


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

ServerStatus = Literal["connected", "disconnected"]


class Settings(BaseModel):
    """Endpoints, credentials and last-known connectivity per backend."""
    ollama_server: Optional[str] = DEFAULT_OLLAMA_SERVER
    ollama_server_status: ServerStatus = "disconnected"
    openai_server: Optional[str] = DEFAULT_OPENAI_SERVER
    openai_api_key: Optional[str] = None
    openai_server_status: ServerStatus = "disconnected"


class SessionRecord(BaseModel):
    """One entry of the host's chat history. Only the model and time matter here."""
    model: str
    updated_at: datetime


# Zero-arg callable returning the current settings (or None if the host has none yet)
SettingsSource = Callable[[], Optional[Settings]]


def static_settings(settings: Settings) -> SettingsSource:
    """Wrap a fixed Settings object as a SettingsSource."""
    return lambda: settings


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def _status_from_env(key: str) -> ServerStatus:
    value = os.environ.get(key, "").strip().lower()
    return "connected" if value == "connected" else "disconnected"


def load_settings_from_env() -> Settings:
    """
    Build Settings from environment variables.

    Reads OLLAMA_SERVER, OLLAMA_SERVER_STATUS, OPENAI_SERVER, OPENAI_API_KEY
    and OPENAI_SERVER_STATUS. Unset endpoints fall back to the defaults.
    """
    return Settings(
        ollama_server=os.environ.get("OLLAMA_SERVER", "").strip() or DEFAULT_OLLAMA_SERVER,
        ollama_server_status=_status_from_env("OLLAMA_SERVER_STATUS"),
        openai_server=os.environ.get("OPENAI_SERVER", "").strip() or DEFAULT_OPENAI_SERVER,
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        openai_server_status=_status_from_env("OPENAI_SERVER_STATUS"),
    )


def get_timeout_seconds() -> int:
    """
    Get request timeout from environment or default.

    Set CHATBRIDGE_TIMEOUT_SECONDS in .env (default: 300).
    """
    try:
        return int(os.environ.get("CHATBRIDGE_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS
