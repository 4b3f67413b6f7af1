"""Behavior storage backends with graceful degradation."""

from typing import Protocol

import redis
import structlog

from smart_search.config import Settings, get_settings

logger = structlog.get_logger()


class StorageBackend(Protocol):
    """Byte-oriented key/value storage used by the behavior store."""

    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage, one dict per instance."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisStorage:
    """Redis-backed storage. No-ops if Redis is unavailable."""

    def __init__(self, client: redis.Redis | None):
        self.client = client

    def get(self, key: str) -> bytes | None:
        if not self.client:
            return None
        try:
            data = self.client.get(key)
            if isinstance(data, str):
                return data.encode("utf-8")
            return data
        except redis.RedisError as e:
            logger.warning("Storage get failed", key=key, error=str(e))
        return None

    def set(self, key: str, value: bytes) -> None:
        if not self.client:
            return
        try:
            self.client.set(key, value)
        except redis.RedisError as e:
            logger.warning("Storage set failed", key=key, error=str(e))

    def delete(self, key: str) -> None:
        if not self.client:
            return
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.warning("Storage delete failed", key=key, error=str(e))

    def health_check(self) -> bool:
        if not self.client:
            return False
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


def get_redis_client(settings: Settings | None = None) -> redis.Redis | None:
    """Connect to Redis, returning None when the server cannot be reached."""
    settings = settings or get_settings()
    try:
        client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=False,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
        )
        client.ping()
        logger.info("Redis connection established")
        return client
    except redis.RedisError as e:
        logger.warning("Redis unavailable, behavior persistence disabled", error=str(e))
        return None


def create_storage(settings: Settings | None = None) -> StorageBackend | None:
    """Build the storage backend selected by settings."""
    settings = settings or get_settings()
    if settings.storage_backend == "memory":
        return MemoryStorage()
    if settings.storage_backend == "redis":
        return RedisStorage(get_redis_client(settings))
    logger.info("Behavior storage disabled")
    return None


__all__ = [
    "MemoryStorage",
    "RedisStorage",
    "StorageBackend",
    "create_storage",
    "get_redis_client",
]
