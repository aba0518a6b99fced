from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(os.getenv(name, str(default))))
    except ValueError:
        return default


COMLINK_URL = os.getenv("COMLINK_URL", "http://localhost:3200").strip().rstrip("/")
COMLINK_ACCESS_KEY = os.getenv("COMLINK_ACCESS_KEY", "").strip()
LOCALIZATION_LOCALE = os.getenv("LOCALIZATION_LOCALE", "ENG_US").strip().upper() or "ENG_US"
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o").strip() or "gpt-4o"
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip().rstrip("/")
OPENAI_TIMEOUT_MS = _int_env("OPENAI_TIMEOUT_MS", 60000, 3000)
OPENAI_MAX_TOKENS = _int_env("OPENAI_MAX_TOKENS", 2000, 1)
ALLOWED_ORIGINS = [token.strip() for token in os.getenv("ALLOWED_ORIGINS", "").split(",") if token.strip()]
RATE_LIMIT_WINDOW_MS = _int_env("RATE_LIMIT_WINDOW_MS", 60000, 1000)
RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 20, 1)
CACHE_REFRESH_SECONDS = _int_env("CACHE_REFRESH_SECONDS", 24 * 60 * 60, 60)
STAT_PERCENT_SCALE = _int_env("STAT_PERCENT_SCALE", 1_000_000, 1)
STAT_FLAT_SCALE = _int_env("STAT_FLAT_SCALE", 10_000, 1)
MAX_IMAGE_BYTES = _int_env("MAX_IMAGE_BYTES", 5 * 1024 * 1024, 1024)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

PLAYER_TIMEOUT_SECONDS = 15.0
METADATA_TIMEOUT_SECONDS = 15.0
BUNDLE_TIMEOUT_SECONDS = 60.0
