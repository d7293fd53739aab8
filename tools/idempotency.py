import time
import redis
import os
from typing import Callable, Dict
from loguru import logger


class Idem:
    """Redis-backed guard against processing the same CRM deal twice."""

    def __init__(self, namespace: str = "onboarding", ttl: int = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize Redis connection, falling back to process memory."""
        self.namespace = namespace
        self.ttl = ttl or int(os.getenv("IDEMPOTENCY_TTL_SECONDS", "86400"))
        self._clock = clock
        # key -> expiry on self._clock
        self._memory_keys: Dict[str, float] = {}
        try:
            redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
            self.r = redis.from_url(redis_url, socket_connect_timeout=2)
            self.r.ping()
            logger.info("Redis connection established successfully")
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable ({e}), using in-memory idempotency keys")
            self.r = None

    def _key(self, key: str) -> str:
        return f"idem:{self.namespace}:{key}"

    def _prune(self, now: float) -> None:
        expired = [k for k, expires_at in self._memory_keys.items() if expires_at <= now]
        for k in expired:
            del self._memory_keys[k]

    def claim(self, key: str) -> bool:
        """
        Claim a key for processing.

        Returns:
            True if this caller owns the key, False if it was already claimed
        """
        if not key:
            logger.warning("Empty key provided to idempotency check")
            return False

        if self.r:
            try:
                return self.r.set(self._key(key), int(time.time()), ex=self.ttl, nx=True) is True
            except redis.RedisError as e:
                # Fail open - allow the onboarding to continue
                logger.error(f"Idempotency check failed: {e}")
                return True

        now = self._clock()
        self._prune(now)
        if key in self._memory_keys:
            return False
        self._memory_keys[key] = now + self.ttl
        return True

    def release(self, key: str) -> None:
        """Drop a claim so a failed onboarding can be re-triggered."""
        if self.r:
            try:
                self.r.delete(self._key(key))
            except redis.RedisError as e:
                logger.error(f"Failed to release idempotency key {key}: {e}")
        else:
            self._memory_keys.pop(key, None)
