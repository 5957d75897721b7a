import logging
from typing import List, Optional

from redis.exceptions import RedisError

from darktrack.core.config import get_breach_cache_ttl, get_redis_url
from darktrack.schemas.scan import BreachRecord
from darktrack.services.breach.base import BreachProvider
from darktrack.services.breach.hibp_provider import HIBPProvider
from darktrack.services.redis_store import read_cached, write_cached

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "cache:breach"


def records_from_cache(entry: dict) -> Optional[List[BreachRecord]]:
    """
    Rebuilds records from a cache entry; None when the entry does not
    hold a list of valid records, so the caller treats it as a miss.
    """
    items = entry.get("breaches")
    if not isinstance(items, list):
        return None

    try:
        return [BreachRecord.model_validate(item) for item in items]
    except ValueError:
        return None


class CachedBreachProvider(BreachProvider):
    """
    Read-through Redis cache in front of another provider.
    Only answers the provider actually gave are cached; a degraded
    lookup raises through fetch_breaches and is never stored.
    """

    def __init__(self, provider: BreachProvider, ttl_seconds: int):
        self.provider = provider
        self.ttl_seconds = ttl_seconds

    def fetch_breaches(self, email: str) -> List[BreachRecord]:
        try:
            cached = read_cached(CACHE_NAMESPACE, email)
        except RedisError:
            logger.warning("Breach cache read failed, falling through to provider")
            cached = None

        if cached is not None:
            records = records_from_cache(cached)
            if records is not None:
                return records
            logger.warning("Ignoring invalid breach cache entry")

        records = self.provider.fetch_breaches(email)

        try:
            write_cached(
                CACHE_NAMESPACE,
                email,
                {"breaches": [record.model_dump() for record in records]},
                self.ttl_seconds,
            )
        except RedisError:
            logger.warning("Breach cache write failed")

        return records


def get_breach_provider() -> BreachProvider:
    """
    Returns a new provider instance per request, cached when Redis is configured.
    """
    provider = HIBPProvider.from_env()
    if get_redis_url():
        return CachedBreachProvider(provider, ttl_seconds=get_breach_cache_ttl())
    return provider
