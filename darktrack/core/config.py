from __future__ import annotations

import os

ENV_DEVELOPMENT = "development"

DEFAULT_DATABASE_URL = "sqlite:///./darktrack.db"
DEFAULT_HIBP_USER_AGENT = "DarkTrack-OSINT-Dashboard"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

MANUAL_LOOKUP_WINDOW_HOURS = 24


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_environment() -> str:
    return (os.getenv("ENVIRONMENT") or ENV_DEVELOPMENT).strip().lower()


def is_development() -> bool:
    return get_environment() == ENV_DEVELOPMENT


def get_database_url() -> str:
    return os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def get_hibp_api_key() -> str | None:
    return os.getenv("HIBP_API_KEY") or None


def get_hibp_user_agent() -> str:
    return os.getenv("HIBP_USER_AGENT") or DEFAULT_HIBP_USER_AGENT


def get_hibp_timeout() -> float:
    return _float_env("HIBP_TIMEOUT_SECONDS", 8.0)


def get_openai_api_key() -> str | None:
    return os.getenv("OPENAI_API_KEY") or None


def get_openai_model() -> str:
    return os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL


def get_openai_timeout() -> float:
    return _float_env("OPENAI_TIMEOUT_SECONDS", 20.0)


def get_redis_url() -> str | None:
    return os.getenv("REDIS_URL") or None


def get_breach_cache_ttl() -> int:
    return _int_env("BREACH_CACHE_TTL_SECONDS", 3600)


def get_cors_origins() -> list[str]:
    configured = os.getenv("CORS_ORIGINS", "").strip()
    if configured:
        return [origin.strip() for origin in configured.split(",") if origin.strip()]
    return [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
