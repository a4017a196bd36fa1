"""
Supermom Assistant — Centralized configuration.

Loads all settings from .env and validates them into a single Settings object.
Only the Telegram token is mandatory: every other missing value degrades to a
friendly "please configure" reply instead of stopping the bot.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

# Load .env from project root (one level up from supermom/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM, provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""        # empty → classifier answers with a config hint

    # Local store (SQLite key-value blobs)
    DATABASE_PATH: str = "data/supermom.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Wall-clock timezone for dates the classifier returns without an offset
    TIMEZONE: str = "Europe/Budapest"

    # Google client id: "prompt" (user sends /clientid) | "fixed" (GOOGLE_CLIENT_ID)
    GOOGLE_CLIENT_ID_MODE: str = "prompt"
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost"
    GOOGLE_CLIENT_ID_TTL_HOURS: int = 24

    # Export
    EXPORT_INCOMPLETE_ONLY: bool = True

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("GOOGLE_CLIENT_ID_TTL_HOURS", mode="before")
    @classmethod
    def parse_ttl(cls, v: str | int) -> int:
        return int(v)

    @field_validator("EXPORT_INCOMPLETE_ONLY", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() not in ("0", "false", "no", "off")


def _is_placeholder(value: str) -> bool:
    """True for unset values and the 'your-...' stubs of a copied .env.example."""
    return not value or value.startswith("your-")


def _load_settings() -> Settings:
    """Collect every Settings field present in the environment and validate.

    A missing Telegram token stops the process. A missing LLM key only
    warns; the classifier then answers with a configuration hint.
    """
    env = {
        name: os.environ[name]
        for name in Settings.model_fields
        if name in os.environ
    }

    if _is_placeholder(env.get("TELEGRAM_BOT_TOKEN", "")):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if _is_placeholder(env.get("LLM_API_KEY", "")):
        logger.warning("LLM_API_KEY is not set; messages will get a configuration hint")
        env["LLM_API_KEY"] = ""

    return Settings(**env)


# Singleton, imported by all other modules as:
#   from supermom.config import settings
settings = _load_settings()
