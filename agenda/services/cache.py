"""Redis helpers backing workspace persistence."""

from functools import lru_cache
from typing import Any, Optional

import redis
from redis.lock import Lock

from agenda.utils.config import get_settings


@lru_cache()
def get_redis_client() -> redis.Redis:
    """Return the shared client; connections are opened on first command."""

    return redis.Redis.from_url(get_settings().redis_url, decode_responses=True)


def cache_set(key: str, value: Any, ex: Optional[int] = None) -> bool:
    """Store ``value`` under ``key``, expiring after ``ex`` seconds."""

    return bool(get_redis_client().set(name=key, value=value, ex=ex))


def cache_get(key: str) -> Optional[str]:
    return get_redis_client().get(name=key)


def cache_delete(key: str) -> bool:
    """Remove ``key``; returns False when it did not exist."""

    return bool(get_redis_client().delete(key))


def cache_lock(key: str, timeout: float, blocking_timeout: float) -> Lock:
    """Return a lock on ``key``; its token is not thread-local.

    FastAPI may enter and exit a dependency on different worker threads.
    """

    return get_redis_client().lock(
        key,
        timeout=timeout,
        blocking_timeout=blocking_timeout,
        thread_local=False,
    )
