"""
Redis: read cache for the dish and table listings plus rate limiting.

Every method degrades gracefully: when Redis is disabled or unreachable
caching is skipped and requests are let through.
"""
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import redis
from fastapi import HTTPException, Request, status

import config

logger = logging.getLogger(__name__)

DISHES_KEY = "dishes:all"
TABLES_KEY = "tables:all"


class RedisClient:
    """Thin wrapper around a redis connection"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client
        if client is not None or not config.REDIS_ENABLED:
            return

        try:
            self.client = redis.Redis(
                host=config.REDIS_HOST,
                port=config.REDIS_PORT,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            self.client.ping()
        except redis.RedisError as e:
            logger.warning(f"Could not connect to Redis at {config.REDIS_HOST}:{config.REDIS_PORT}: {e}")
            self.client = None

    def is_available(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False

    # ========== Generic JSON cache ==========

    def _cache_list(self, key: str, items: List[Dict], ttl: int) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.setex(key, ttl, json.dumps(items, default=str))
            return True
        except redis.RedisError as e:
            logger.warning(f"Could not cache {key}: {e}")
            return False

    def _get_list(self, key: str) -> Optional[List[Dict]]:
        if not self.is_available():
            return None
        try:
            cached = self.client.get(key)
            if cached:
                return json.loads(cached)
        except redis.RedisError as e:
            logger.warning(f"Could not read {key} from cache: {e}")
        return None

    def _invalidate(self, *keys: str) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.delete(*keys)
            return True
        except redis.RedisError as e:
            logger.warning(f"Could not invalidate {', '.join(keys)}: {e}")
            return False

    # ========== Dishes ==========

    def cache_dishes(self, dishes: List[Dict], ttl: int = 300) -> bool:
        return self._cache_list(DISHES_KEY, dishes, ttl)

    def get_cached_dishes(self) -> Optional[List[Dict]]:
        return self._get_list(DISHES_KEY)

    def invalidate_dishes_cache(self) -> bool:
        return self._invalidate(DISHES_KEY)

    # ========== Tables ==========

    def cache_tables(self, tables: List[Dict], ttl: int = 60) -> bool:
        """Table status flips with every order, so keep the TTL short"""
        return self._cache_list(TABLES_KEY, tables, ttl)

    def get_cached_tables(self) -> Optional[List[Dict]]:
        return self._get_list(TABLES_KEY)

    def invalidate_tables_cache(self) -> bool:
        return self._invalidate(TABLES_KEY)

    # ========== Rate limiting ==========

    def check_rate_limit(self, key: str, max_requests: int = 10, window: int = 60) -> Tuple[bool, int]:
        """
        Fixed-window counter.
        Returns (allowed, remaining requests in the window).
        """
        if not self.is_available():
            return True, max_requests

        try:
            current = self.client.incr(key)
            if current == 1:
                self.client.expire(key, window)

            remaining = max(0, max_requests - current)
            return current <= max_requests, remaining
        except redis.RedisError as e:
            logger.warning(f"Rate limit check failed for {key}: {e}")
            return True, max_requests

    # ========== Info ==========

    def get_cache_info(self) -> Dict[str, Any]:
        if not self.is_available():
            return {"status": "unavailable"}

        try:
            return {
                "status": "available",
                "dishes_cached": bool(self.client.exists(DISHES_KEY)),
                "tables_cached": bool(self.client.exists(TABLES_KEY)),
            }
        except redis.RedisError as e:
            return {"status": "error", "error": str(e)}


redis_client = RedisClient()


class RateLimiter:
    """
    FastAPI dependency limiting calls per client address.

        @app.post("/login", dependencies=[Depends(RateLimiter(5, 60, "login"))])
    """

    def __init__(self, max_requests: int = 10, window: int = 60, key_prefix: str = "rate_limit"):
        self.max_requests = max_requests
        self.window = window
        self.key_prefix = key_prefix

    def __call__(self, request: Request):
        client_host = request.client.host if request.client else "unknown"
        rate_key = f"{self.key_prefix}:{client_host}"

        allowed, remaining = redis_client.check_rate_limit(rate_key, self.max_requests, self.window)
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Try again in {self.window} seconds.",
                headers={
                    "X-RateLimit-Limit": str(self.max_requests),
                    "X-RateLimit-Remaining": str(remaining),
                    "X-RateLimit-Reset": str(int(time.time()) + self.window),
                },
            )
