"""
Request de-duplication keyed by correlation id.

The upstream chat server may redeliver a webhook; we answer a redelivery within the TTL window with
an empty message instead of running the agent twice.  Both implementations fail open: if the
cache is unavailable, the request is processed.
"""

import logging
import threading
import time
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "dedup:doradobet:"


class DedupCache(ABC):
    """``check_and_mark`` returns *True* when the id was already seen within the TTL."""

    @abstractmethod
    async def check_and_mark(self, correlation_id: str) -> bool: ...

    async def close(self) -> None:
        return None


class InMemoryDedupCache(DedupCache):
    """
    Process-local cache of correlation ids.

    - TTL measured with a monotonic clock.
    - Expired keys are swept lazily on each check.
    """

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._seen: Dict[str, float] = {}

    async def check_and_mark(self, correlation_id: str) -> bool:
        now = self._clock()
        with self._lock:
            expired = [key for key, until in self._seen.items() if until <= now]
            for key in expired:
                del self._seen[key]

            if correlation_id in self._seen:
                return True
            self._seen[correlation_id] = now + self._ttl
            return False


class RedisDedupCache(DedupCache):
    """Redis-backed cache using an atomic ``SET key 1 NX EX ttl``."""

    def __init__(self, client: Any, ttl_seconds: int = 300) -> None:
        self._client = client
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 300) -> "RedisDedupCache":
        import redis.asyncio as aioredis  # pylint: disable=import-outside-toplevel

        return cls(aioredis.from_url(url), ttl_seconds=ttl_seconds)

    async def check_and_mark(self, correlation_id: str) -> bool:
        try:
            created = await self._client.set(KEY_PREFIX + correlation_id, "1", ex=self._ttl, nx=True)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Dedup check failed, allowing request: %s", exc)
            return False
        return not created

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Error closing Redis client: %s", exc)
