import logging

import redis

from photoset.core.config import settings

logger = logging.getLogger(__name__)


class IdempotencyStore:
    """Duplicate-submission guard keyed by the client's Idempotency-Key."""

    def __init__(self, client: redis.Redis | None = None) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.default_ttl = settings.idempotency_ttl

    def check_and_set(self, key: str, ttl_seconds: int | None = None) -> bool:
        """Atomic operation: setnx + expire in one call. Redis outage fails open (returns True)."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            created = self.client.set(f"idempotency:{key}", "1", nx=True, ex=ttl)
        except redis.RedisError as e:
            logger.warning("idempotency_store_unavailable", extra={"error": str(e)})
            return True
        return bool(created)

    def release(self, key: str) -> None:
        """Drop the key so a rejected request can be retried with the same key."""
        try:
            self.client.delete(f"idempotency:{key}")
        except redis.RedisError as e:
            logger.warning("idempotency_release_failed", extra={"error": str(e)})
