"""Redis mirror for probability reports and the cross-process compute lock."""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass

import redis.asyncio as redis
from redis.exceptions import RedisError

from reward_engine.config import settings
from reward_engine.errors import ComputationInProgress
from reward_engine.logic.models import ProbabilityReport, ReportMethod


logger = logging.getLogger(__name__)


@dataclass
class LockMetrics:
    """Metrics from lock acquisition for telemetry."""

    acquire_ms: float
    wait_retries: int


class RedisService:
    """Redis client mirroring cached reports so restarts can skip recomputation."""

    # Key prefixes
    REPORT_PREFIX = "report:"
    SCHEME_INDEX_PREFIX = "report-index:scheme:"
    WEIGHT_INDEX_PREFIX = "report-index:weight:"
    LOCK_PREFIX = "lock:report:"

    # TTLs in seconds; reports themselves never expire
    LOCK_TTL = settings.compute_lock_ttl_seconds

    # Lua script for token-safe lock release (compare-and-delete)
    # Only deletes if current value matches token; prevents releasing another's lock
    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis_url: str | None = None):
        self._url = redis_url or settings.redis_url
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected")
        return self._client

    @property
    def connected(self) -> bool:
        return self._client is not None

    def report_key(
        self, weight_config_id: int, scheme_id: int, method: ReportMethod
    ) -> str:
        return (
            f"{self.REPORT_PREFIX}{weight_config_id}:{scheme_id}:"
            f"{ReportMethod(method).value}"
        )

    async def save_report(self, report: ProbabilityReport) -> None:
        """Store a report (no TTL) and index it by scheme and weight config."""
        key = self.report_key(*report.cache_key)
        await self.client.set(key, report.model_dump_json())
        await self.client.sadd(f"{self.SCHEME_INDEX_PREFIX}{report.scheme_id}", key)
        await self.client.sadd(
            f"{self.WEIGHT_INDEX_PREFIX}{report.weight_config_id}", key
        )

    async def load_report(
        self, weight_config_id: int, scheme_id: int, method: ReportMethod
    ) -> ProbabilityReport | None:
        """
        Load a mirrored report.

        Returns None if no report was stored for the key.
        """
        cached = await self.client.get(
            self.report_key(weight_config_id, scheme_id, method)
        )
        if cached is None:
            return None
        return ProbabilityReport.model_validate_json(cached)

    async def delete_reports(
        self, weight_config_id: int | None = None, scheme_id: int | None = None
    ) -> int:
        """Delete mirrored reports for a weight config and/or scheme."""
        index_keys = []
        if scheme_id is not None:
            index_keys.append(f"{self.SCHEME_INDEX_PREFIX}{scheme_id}")
        if weight_config_id is not None:
            index_keys.append(f"{self.WEIGHT_INDEX_PREFIX}{weight_config_id}")

        member_sets = [set(await self.client.smembers(k)) for k in index_keys]
        if not member_sets:
            return 0
        # Both ids given: only reports indexed under both
        keys = set.intersection(*member_sets)

        deleted = 0
        for key in keys:
            deleted += await self.client.delete(key)
            _, w, s, _ = key.split(":")
            await self.client.srem(f"{self.SCHEME_INDEX_PREFIX}{s}", key)
            await self.client.srem(f"{self.WEIGHT_INDEX_PREFIX}{w}", key)
        return deleted

    async def acquire_compute_lock(self, key: str) -> str | None:
        """
        Attempt to acquire the compute lock for a report key with unique token.

        Returns token string if lock acquired, None if already locked.
        """
        lock_key = f"{self.LOCK_PREFIX}{key}"
        token = str(uuid.uuid4())
        # SET NX EX returns True if key was set (lock acquired)
        acquired = await self.client.set(lock_key, token, nx=True, ex=self.LOCK_TTL)
        return token if acquired is True else None

    async def release_compute_lock(self, key: str, token: str) -> bool:
        """
        Release the compute lock only if token matches (token-safe).

        Uses Lua script for atomic compare-and-delete.
        """
        lock_key = f"{self.LOCK_PREFIX}{key}"
        result = await self.client.eval(self.RELEASE_LOCK_SCRIPT, 1, lock_key, token)
        return result == 1

    @asynccontextmanager
    async def compute_lock(self, key: str):
        """
        Context manager for the per-report compute lock.

        Raises COMPUTATION_IN_PROGRESS if another process holds the lock.
        Automatically releases lock on exit (token-safe).
        Yields LockMetrics for telemetry.
        """
        t0 = time.monotonic()
        token = await self.acquire_compute_lock(key)
        if token is None:
            raise ComputationInProgress(
                f"Report {key} is being computed by another process."
            )
        metrics = LockMetrics(acquire_ms=(time.monotonic() - t0) * 1000, wait_retries=0)
        try:
            yield metrics
        finally:
            try:
                await self.release_compute_lock(key, token)
            except RedisError as e:
                # Lock expires on its own after LOCK_TTL
                logger.warning("Failed to release compute lock %s: %s", key, e)


# Global instance
redis_service = RedisService()
