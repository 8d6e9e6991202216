"""Pytest fixtures for backend tests."""
from __future__ import annotations

from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from reward_engine import main
from reward_engine.config import settings
from reward_engine.logic.models import (
    Consecutiveness,
    CountRule,
    PatternRule,
    Punishment,
    RuleSet,
    WeightTable,
)
from reward_engine.logic.monte_carlo import MonteCarloProbabilityEngine
from reward_engine.redis_service import RedisService
from reward_engine.repository import ConfigRepository
from reward_engine.service import RewardEngineService
from reward_engine.telemetry import TelemetryService


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (large Monte Carlo runs)"
    )


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}
        self._last_set_ex: int | None = None  # Track last SET EX value for TTL tests

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(
        self, key: str, value: str, nx: bool = False, ex: int | None = None
    ) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        self._last_set_ex = ex
        return True

    async def delete(self, key: str) -> int:
        if key in self._store:
            del self._store[key]
            return 1
        return 0

    async def sadd(self, key: str, *members: str) -> int:
        current = self._sets.setdefault(key, set())
        added = len(set(members) - current)
        current.update(members)
        return added

    async def smembers(self, key: str) -> set[str]:
        return set(self._sets.get(key, set()))

    async def srem(self, key: str, *members: str) -> int:
        current = self._sets.get(key, set())
        removed = len(current & set(members))
        current.difference_update(members)
        return removed

    async def eval(self, script: str, numkeys: int, *args) -> int:
        """
        Execute Lua script (simplified mock for compare-and-delete).

        Supports the RELEASE_LOCK_SCRIPT pattern:
        - KEYS[1] = args[0] (key)
        - ARGV[1] = args[1] (expected value)
        Returns 1 if deleted, 0 if value didn't match.
        """
        key = args[0]
        expected_value = args[1]
        if self._store.get(key) == expected_value:
            del self._store[key]
            return 1
        return 0

    async def close(self) -> None:
        pass

    def clear(self) -> None:
        self._store.clear()
        self._sets.clear()
        self._last_set_ex = None


class UnreachableRedis(MockRedis):
    """Mock Redis whose every command fails as if the server were down."""

    async def get(self, key: str) -> str | None:
        raise RedisConnectionError("Connection refused")

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None):
        raise RedisConnectionError("Connection refused")

    async def sadd(self, key: str, *members: str) -> int:
        raise RedisConnectionError("Connection refused")

    async def smembers(self, key: str) -> set[str]:
        raise RedisConnectionError("Connection refused")


class RecordingTelemetrySink:
    """Telemetry sink that keeps every emitted event."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        self.events.append((event_name, data))

    def named(self, event_name: str) -> list[dict[str, Any]]:
        return [data for name, data in self.events if name == event_name]


# === Scenario configuration ===
# Alphabet {A, B, C, D} weighted 100/100/100/525 (total 825), four reels.


SCENARIO_WEIGHT_ID = 10
SCENARIO_SCHEME_ID = 20


def make_scenario_weights(config_id: int = SCENARIO_WEIGHT_ID, version: int = 1) -> WeightTable:
    return WeightTable(
        config_id=config_id,
        version=version,
        name="scenario",
        weights={"A": 100, "B": 100, "C": 100, "D": 525},
    )


def make_scenario_rules(scheme_id: int = SCENARIO_SCHEME_ID, version: int = 1) -> RuleSet:
    return RuleSet(
        scheme_id=scheme_id,
        version=version,
        name="scenario",
        citation_symbol="D",
        rules=(
            PatternRule(
                id=1,
                name="AAAA",
                rule_type="quad",
                priority=100,
                pattern="AAAA",
                bind={"A": "A"},
                consecutiveness=Consecutiveness.STRICT,
                multiplier=256,
            ),
            CountRule(
                id=2,
                name="three A",
                rule_type="triple",
                priority=50,
                symbol="A",
                match_count=3,
                multiplier=8,
            ),
        ),
        punishments=(
            Punishment(citation_count=4, deduct_multiplier=2.5, ban_hours=48),
        ),
    )


def make_scenario_repository() -> ConfigRepository:
    repository = ConfigRepository()
    repository.put_weight_table(make_scenario_weights())
    repository.put_rule_set(make_scenario_rules())
    return repository


@pytest.fixture
def scenario_weights() -> WeightTable:
    return make_scenario_weights()


@pytest.fixture
def scenario_rules() -> RuleSet:
    return make_scenario_rules()


@pytest.fixture
def mock_redis() -> MockRedis:
    """Create a fresh mock Redis for each test."""
    return MockRedis()


@pytest.fixture
def redis_service_with_mock(mock_redis: MockRedis) -> Generator[RedisService, None, None]:
    """Create RedisService with mock client."""
    service = RedisService()
    service._client = mock_redis
    yield service
    mock_redis.clear()


@pytest.fixture
def telemetry_sink() -> RecordingTelemetrySink:
    return RecordingTelemetrySink()


@pytest.fixture
def engine_service(telemetry_sink: RecordingTelemetrySink) -> RewardEngineService:
    """Service over the scenario configuration, no Redis mirror."""
    return RewardEngineService(
        make_scenario_repository(),
        telemetry=TelemetryService(telemetry_sink),
        monte_carlo_engine=MonteCarloProbabilityEngine(seed=1234, workers=2),
    )


@pytest.fixture
def mirrored_service(
    telemetry_sink: RecordingTelemetrySink, redis_service_with_mock: RedisService
) -> RewardEngineService:
    """Service over the scenario configuration with a mocked Redis mirror."""
    return RewardEngineService(
        make_scenario_repository(),
        redis=redis_service_with_mock,
        telemetry=TelemetryService(telemetry_sink),
        monte_carlo_engine=MonteCarloProbabilityEngine(seed=1234, workers=2),
    )


@pytest.fixture
def client_with_mock_redis(
    mock_redis: MockRedis,
    telemetry_sink: RecordingTelemetrySink,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """Create TestClient with mocked Redis and a fresh default-seeded engine."""
    from reward_engine.redis_service import redis_service

    # Patch the global redis_service client
    original_client = redis_service._client
    redis_service._client = mock_redis

    monkeypatch.setattr(settings, "warm_up_on_startup", False)
    monkeypatch.setattr(settings, "admin_token", None)
    monkeypatch.setattr(
        main,
        "service",
        RewardEngineService(
            ConfigRepository.with_defaults(),
            redis=redis_service,
            telemetry=TelemetryService(telemetry_sink),
            monte_carlo_engine=MonteCarloProbabilityEngine(seed=99, workers=2),
        ),
    )

    with TestClient(main.app) as client:
        yield client

    # Restore the real client
    redis_service._client = original_client
    mock_redis.clear()
