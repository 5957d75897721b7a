from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from redis import Redis

from darktrack.core.config import get_redis_url

logger = logging.getLogger(__name__)

KEY_PREFIX = "darktrack"

_redis_client: Redis | None = None


def get_redis() -> Redis:
    global _redis_client
    if _redis_client is None:
        redis_url = get_redis_url()
        if not redis_url:
            raise RuntimeError("REDIS_URL not set")
        _redis_client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
    return _redis_client


def email_key(namespace: str, email: str) -> str:
    """
    Addresses are normalized and hashed so plaintext emails never
    appear in Redis key names.
    """
    normalized = email.strip().lower()
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}:{namespace}:{digest}"


def read_cached(namespace: str, email: str) -> dict[str, Any] | None:
    raw = get_redis().get(email_key(namespace, email))
    if not raw:
        return None

    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Discarding unreadable cache entry namespace=%s", namespace)
        return None

    if not isinstance(value, dict):
        logger.warning("Discarding malformed cache entry namespace=%s", namespace)
        return None
    return value


def write_cached(namespace: str, email: str, data: dict[str, Any], ttl_seconds: int) -> None:
    get_redis().set(email_key(namespace, email), json.dumps(data), ex=ttl_seconds)
