# src/services/cache_service.py
"""
Redis caching service for directory data, with an in-process fallback.
"""
import hashlib
import json
import logging
import os
import pickle
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_PREFIX = "linktherapy"


class CacheService:
    """Redis caching service with fallback to memory cache."""

    def __init__(self):
        """Initialize Redis connection."""
        self.redis_client = None
        self.memory_cache: Dict[str, tuple] = {}  # key -> (expires_at, value)
        self.connected = False

        if os.getenv("REDIS_ENABLED", "true").lower() != "true":
            logger.info("⏭️ Redis disabled via REDIS_ENABLED, using memory cache")
            return

        redis_url = os.getenv("REDIS_URL")
        try:
            if redis_url:
                self.redis_client = redis.from_url(
                    redis_url,
                    decode_responses=False,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
            else:
                self.redis_client = redis.Redis(
                    host=os.getenv("REDIS_HOST", "localhost"),
                    port=int(os.getenv("REDIS_PORT", 6379)),
                    password=os.getenv("REDIS_PASSWORD") or None,
                    ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                    decode_responses=False,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )

            self.redis_client.ping()
            self.connected = True
            logger.info("✅ Connected to Redis")

        except (RedisError, OSError) as e:
            logger.warning(
                f"Redis connection failed: {str(e)}. Using memory cache fallback."
            )
            self.connected = False

    def _generate_key(self, prefix: str, params: Dict[str, Any]) -> str:
        """Generate a cache key from prefix and parameters."""
        sorted_params = json.dumps(params, sort_keys=True, default=str)
        param_hash = hashlib.md5(sorted_params.encode()).hexdigest()[:8]
        return f"{KEY_PREFIX}:{prefix}:{param_hash}"

    def get(self, key: str) -> Optional[Any]:
        if self.connected and self.redis_client:
            try:
                value = self.redis_client.get(key)
                if value:
                    return pickle.loads(value)
            except RedisError as e:
                logger.error(f"Redis get error: {str(e)}")

        entry = self.memory_cache.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at < time.time():
            self.memory_cache.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: int = 300) -> bool:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time to live in seconds (default 5 minutes)
        """
        if self.connected and self.redis_client:
            try:
                self.redis_client.setex(
                    key, timedelta(seconds=ttl_seconds), pickle.dumps(value)
                )
                return True
            except RedisError as e:
                logger.error(f"Redis set error: {str(e)}")

        self.memory_cache[key] = (time.time() + ttl_seconds, value)
        return True

    def clear_pattern(self, pattern: str) -> int:
        """Clear all keys matching a pattern such as ``linktherapy:directory:*``."""
        count = 0

        if self.connected and self.redis_client:
            try:
                cursor = 0
                while True:
                    cursor, keys = self.redis_client.scan(
                        cursor, match=pattern, count=100
                    )
                    if keys:
                        count += self.redis_client.delete(*keys)
                    if cursor == 0:
                        break
            except RedisError as e:
                logger.error(f"Redis clear pattern error: {str(e)}")

        prefix = pattern.replace("*", "")
        for key in [k for k in self.memory_cache if k.startswith(prefix)]:
            del self.memory_cache[key]
            count += 1

        return count

    # Directory helpers

    def get_active_therapists(self) -> Optional[List[Dict[str, Any]]]:
        return self.get(f"{KEY_PREFIX}:directory:active")

    def set_active_therapists(
        self, therapists: List[Dict[str, Any]], ttl_seconds: int = 300
    ) -> bool:
        return self.set(f"{KEY_PREFIX}:directory:active", therapists, ttl_seconds)

    def get_content(self, key: str) -> Optional[Dict[str, Any]]:
        return self.get(self._generate_key("content", {"key": key}))

    def set_content(self, key: str, content: Dict[str, Any], ttl_seconds: int = 600) -> bool:
        return self.set(self._generate_key("content", {"key": key}), content, ttl_seconds)

    def invalidate_directory_cache(self) -> int:
        count = self.clear_pattern(f"{KEY_PREFIX}:directory:*")
        if count:
            logger.debug(f"🗑️ Invalidated {count} directory cache keys")
        return count

    def invalidate_content_cache(self) -> int:
        return self.clear_pattern(f"{KEY_PREFIX}:content:*")


cache_service = CacheService()
