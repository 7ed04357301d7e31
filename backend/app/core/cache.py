import redis
import json
import logging
from typing import Any, Optional
from app.core.config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """Redis access shared by the session lock and short-lived lookups"""

    def __init__(self, redis_url: Optional[str] = None, default_ttl: Optional[int] = None):
        self.redis_url = redis_url if redis_url is not None else settings.redis_url
        self.default_ttl = default_ttl or settings.cache_default_ttl
        self._sync_client = None

    @property
    def is_configured(self) -> bool:
        return bool(self.redis_url)

    @property
    def sync_client(self) -> Optional[redis.Redis]:
        """Get synchronous Redis client, or None when Redis is not configured"""
        if not self.is_configured:
            return None
        if self._sync_client is None:
            self._sync_client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                max_connections=settings.redis_max_connections,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True
            )
        return self._sync_client

    def _serialize_value(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def _deserialize_value(self, value: Optional[str]) -> Any:
        if value is None:
            return None
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Cache deserialization error: {e}")
            return None

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache; misses and cache faults both return None"""
        client = self.sync_client
        if client is None:
            return None
        try:
            return self._deserialize_value(client.get(key))
        except redis.RedisError as e:
            logger.warning(f"Cache get error for key '{key}': {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        client = self.sync_client
        if client is None:
            return False
        try:
            return bool(client.setex(key, ttl or self.default_ttl, self._serialize_value(value)))
        except redis.RedisError as e:
            logger.warning(f"Cache set error for key '{key}': {e}")
            return False

    def health_check(self) -> Optional[bool]:
        """Ping Redis; None means Redis is not configured"""
        client = self.sync_client
        if client is None:
            return None
        try:
            return bool(client.ping())
        except redis.RedisError:
            return False

    def close(self):
        if self._sync_client is not None:
            self._sync_client.close()
            self._sync_client = None


cache = CacheManager()
