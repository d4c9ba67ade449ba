"""
UFree — Centralized configuration.

Loads all settings from .env and validates required keys.
Every adapter reads its backend coordinates from here.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from ufree/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram (the bot is the user interface)
    TELEGRAM_BOT_TOKEN: str

    # Firebase project (Firestore REST and Auth REST)
    FIREBASE_PROJECT_ID: str
    FIREBASE_API_KEY: str
    FIREBASE_TOKEN_PATH: str = "data/firebase_token.json"
    FIRESTORE_DATABASE: str = "(default)"

    # SQLite (Local Store)
    DATABASE_PATH: str = "data/ufree.db"

    # Own profile
    DISPLAY_NAME: str = "Me"
    PHONE_NUMBER: str = ""

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Calendar-day boundaries are computed in this zone
    TIMEZONE: str = "UTC"

    # Firestore `in` queries accept a limited number of values
    REMOTE_BATCH_SIZE: int = 10
    REMOTE_TIMEOUT_SECONDS: int = 10

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("REMOTE_BATCH_SIZE", "REMOTE_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_positive_int(cls, v: str | int) -> int:
        value = int(v)
        if value < 1:
            raise ValueError("must be a positive integer")
        return value


def _require(name: str) -> str:
    value = os.getenv(name, "")
    if not value or value.startswith("your-"):
        print(f"ERROR: {name} is missing or not set in .env", file=sys.stderr)
        sys.exit(1)
    return value


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    return Settings(
        TELEGRAM_BOT_TOKEN=_require("TELEGRAM_BOT_TOKEN"),
        FIREBASE_PROJECT_ID=_require("FIREBASE_PROJECT_ID"),
        FIREBASE_API_KEY=_require("FIREBASE_API_KEY"),
        FIREBASE_TOKEN_PATH=os.getenv("FIREBASE_TOKEN_PATH", "data/firebase_token.json"),
        FIRESTORE_DATABASE=os.getenv("FIRESTORE_DATABASE", "(default)"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/ufree.db"),
        DISPLAY_NAME=os.getenv("DISPLAY_NAME", "Me"),
        PHONE_NUMBER=os.getenv("PHONE_NUMBER", ""),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        REMOTE_BATCH_SIZE=os.getenv("REMOTE_BATCH_SIZE", "10"),
        REMOTE_TIMEOUT_SECONDS=os.getenv("REMOTE_TIMEOUT_SECONDS", "10"),
    )


# Singleton — imported by all other modules as:
#   from ufree.config import settings
settings = _load_settings()
