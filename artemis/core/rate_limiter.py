"""In-memory token-bucket limiter for orchestration turns."""

import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from fastapi import HTTPException

from artemis.core.config import get_settings
from artemis.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class _Bucket:
    tokens: float
    updated_at: float
    turns: int = 0


class RateLimiter:
    """
    Token bucket per key: the session id, or the client host before a session exists.

    State is held in process memory, so each worker enforces its own limit.
    Once ``max_keys`` keys are tracked, buckets that have refilled completely
    are dropped before a new key is added; a full bucket and a missing one
    behave the same.
    """

    def __init__(self, requests_per_minute: int = 20, burst_size: int = 30, max_keys: int = 10_000):
        """
        Args:
            requests_per_minute: Sustained turn rate
            burst_size: Turns allowed back to back from a full bucket
            max_keys: Tracked keys before idle buckets are pruned
        """
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.max_keys = max_keys
        self.refill_rate = requests_per_minute / 60.0
        self._buckets: dict[str, _Bucket] = {}

    def _bucket(self, key: str) -> _Bucket:
        now = time.monotonic()
        bucket = self._buckets.get(key)
        if bucket is None:
            if len(self._buckets) >= self.max_keys:
                self._prune_idle(now)
            bucket = self._buckets[key] = _Bucket(tokens=float(self.burst_size), updated_at=now)
            return bucket

        bucket.tokens = min(float(self.burst_size), bucket.tokens + (now - bucket.updated_at) * self.refill_rate)
        bucket.updated_at = now
        return bucket

    def _prune_idle(self, now: float) -> None:
        idle = [
            key
            for key, bucket in self._buckets.items()
            if bucket.tokens + (now - bucket.updated_at) * self.refill_rate >= self.burst_size
        ]
        for key in idle:
            del self._buckets[key]
        if idle:
            logger.debug(f"Pruned {len(idle)} idle rate-limit buckets")

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Take ``cost`` tokens from the key's bucket.

        Returns:
            True when the turn may proceed

        Raises:
            HTTPException: 429 with Retry-After when the bucket is empty
        """
        bucket = self._bucket(key)

        if bucket.tokens >= cost:
            bucket.tokens -= cost
            bucket.turns += 1
            return True

        retry_after = int((cost - bucket.tokens) / self.refill_rate) + 1
        logger.warning(f"Turn rate limit hit for {key} ({bucket.tokens:.2f} tokens left), retry in {retry_after}s")

        raise HTTPException(
            status_code=429,
            detail=f"Too many turns. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )

    def get_stats(self, key: str) -> dict[str, Any]:
        bucket = self._bucket(key)
        return {
            "tokens_remaining": int(bucket.tokens),
            "burst_size": self.burst_size,
            "requests_per_minute": self.requests_per_minute,
            "total_requests": bucket.turns,
        }

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or all of them."""
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)


@lru_cache(maxsize=1)
def get_chat_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        requests_per_minute=settings.CHAT_REQUESTS_PER_MINUTE,
        burst_size=settings.CHAT_BURST_SIZE,
    )


def check_chat_rate_limit(session_id: str | None, client_host: str | None) -> None:
    """
    Gate an orchestration turn before its stream opens.

    Raises:
        HTTPException: 429 if rate limited
    """
    key = f"chat:session:{session_id}" if session_id else f"chat:host:{client_host or 'unknown'}"
    get_chat_rate_limiter().check_limit(key)
