# src/utils/rate_limit.py
"""
Fixed-window rate limiting for public write endpoints.

Counters live in Redis (shared by every worker) when the cache service is
connected. If Redis is disabled or a call fails, a lock-guarded in-process
store takes over for that hit.
"""
import logging
import time
from functools import wraps
from threading import Lock
from typing import Dict, Optional, Tuple

from flask import jsonify, request
from redis.exceptions import RedisError

from src.services.cache_service import KEY_PREFIX, cache_service

logger = logging.getLogger(__name__)

# name -> (window seconds, max requests)
RATE_LIMITS: Dict[str, Tuple[int, int]] = {
    "contact_request": (60 * 60, 5),
    "auth_action": (15 * 60, 10),
    "public_api": (60, 100),
}

_stores: Dict[str, Dict[str, dict]] = {}
_lock = Lock()


def get_client_ip() -> str:
    """Best-effort client IP behind proxies."""
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.remote_addr or "unknown"


def _redis_key(identifier: str, limit: str) -> str:
    return f"{KEY_PREFIX}:ratelimit:{limit}:{identifier}"


def _check_redis(identifier: str, limit: str, now: float) -> dict:
    window, max_requests = RATE_LIMITS[limit]
    client = cache_service.redis_client
    key = _redis_key(identifier, limit)

    count = int(client.incr(key))
    if count == 1:
        client.expire(key, window)
        ttl = window
    else:
        ttl = int(client.ttl(key))
        if ttl < 0:
            # key lost its expiry; start a fresh window
            client.expire(key, window)
            ttl = window

    reset_at = now + ttl
    if count > max_requests:
        return {"allowed": False, "remaining": 0, "reset_at": reset_at}
    return {"allowed": True, "remaining": max_requests - count, "reset_at": reset_at}


def _check_memory(identifier: str, limit: str, now: float) -> dict:
    window, max_requests = RATE_LIMITS[limit]

    with _lock:
        store = _stores.setdefault(limit, {})

        for key in [k for k, v in store.items() if v["reset_at"] <= now]:
            del store[key]

        record = store.get(identifier)
        if record is None:
            store[identifier] = {"count": 1, "reset_at": now + window}
            return {"allowed": True, "remaining": max_requests - 1, "reset_at": now + window}

        if record["count"] >= max_requests:
            return {"allowed": False, "remaining": 0, "reset_at": record["reset_at"]}

        record["count"] += 1
        return {
            "allowed": True,
            "remaining": max_requests - record["count"],
            "reset_at": record["reset_at"],
        }


def check_rate_limit(identifier: str, limit: str, now: Optional[float] = None) -> dict:
    """Count one hit for ``identifier`` under ``limit``.

    Returns ``{"allowed": bool, "remaining": int, "reset_at": epoch seconds}``.
    """
    now = time.time() if now is None else now

    if cache_service.connected and cache_service.redis_client:
        try:
            return _check_redis(identifier, limit, now)
        except RedisError as e:
            logger.warning(f"⚠️ Redis rate limit check failed, using memory store: {str(e)}")

    return _check_memory(identifier, limit, now)


def reset_rate_limits() -> None:
    with _lock:
        _stores.clear()


def rate_limited(limit: str):
    """Route decorator returning 429 once the caller's IP exceeds ``limit``."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            ip = get_client_ip()
            result = check_rate_limit(ip, limit)
            if not result["allowed"]:
                logger.warning(f"🚫 Rate limit '{limit}' exceeded for {ip}")
                reset_at = time.strftime(
                    "%Y-%m-%dT%H:%M:%SZ", time.gmtime(result["reset_at"])
                )
                return (
                    jsonify({"error": "Too many requests", "reset_at": reset_at}),
                    429,
                )
            return fn(*args, **kwargs)

        return wrapper

    return decorator
