"""Redis report mirror and compute lock tests."""
import pytest

from reward_engine.errors import ComputationInProgress
from reward_engine.logic.exact import ExactProbabilityEngine
from reward_engine.logic.models import ReportMethod
from reward_engine.redis_service import RedisService

from conftest import make_scenario_rules, make_scenario_weights


@pytest.fixture
def report():
    return ExactProbabilityEngine().compute(make_scenario_weights(), make_scenario_rules())


class TestReportMirror:
    def test_report_key_format(self):
        assert RedisService().report_key(1, 2, ReportMethod.MONTE_CARLO) == "report:1:2:monte-carlo"

    def test_client_requires_connection(self):
        with pytest.raises(RuntimeError):
            RedisService().client

    @pytest.mark.asyncio
    async def test_save_and_load_round_trip(self, redis_service_with_mock, report):
        await redis_service_with_mock.save_report(report)
        loaded = await redis_service_with_mock.load_report(10, 20, ReportMethod.FAST)
        assert loaded == report

    @pytest.mark.asyncio
    async def test_reports_never_expire(self, redis_service_with_mock, mock_redis, report):
        await redis_service_with_mock.save_report(report)
        assert mock_redis._last_set_ex is None

    @pytest.mark.asyncio
    async def test_load_missing(self, redis_service_with_mock):
        assert await redis_service_with_mock.load_report(1, 1, ReportMethod.FAST) is None

    @pytest.mark.asyncio
    async def test_delete_by_scheme_uses_index(
        self, redis_service_with_mock, mock_redis, report
    ):
        await redis_service_with_mock.save_report(report)
        other = report.model_copy(update={"scheme_id": 21})
        await redis_service_with_mock.save_report(other)

        deleted = await redis_service_with_mock.delete_reports(scheme_id=20)

        assert deleted == 1
        assert await redis_service_with_mock.load_report(10, 20, ReportMethod.FAST) is None
        assert await redis_service_with_mock.load_report(10, 21, ReportMethod.FAST) is not None
        assert await mock_redis.smembers("report-index:weight:10") == {"report:10:21:fast"}

    @pytest.mark.asyncio
    async def test_delete_by_both_ids(self, redis_service_with_mock, report):
        await redis_service_with_mock.save_report(report)
        await redis_service_with_mock.save_report(report.model_copy(update={"scheme_id": 21}))
        deleted = await redis_service_with_mock.delete_reports(weight_config_id=10, scheme_id=21)
        assert deleted == 1
        assert await redis_service_with_mock.load_report(10, 20, ReportMethod.FAST) is not None

    @pytest.mark.asyncio
    async def test_delete_without_ids_is_noop(self, redis_service_with_mock, report):
        await redis_service_with_mock.save_report(report)
        assert await redis_service_with_mock.delete_reports() == 0


class TestComputeLock:
    @pytest.mark.asyncio
    async def test_lock_acquired_with_ttl_and_released(
        self, redis_service_with_mock, mock_redis
    ):
        key = "report:1:1:fast"
        async with redis_service_with_mock.compute_lock(key) as metrics:
            assert await mock_redis.get(f"lock:report:{key}") is not None
            assert mock_redis._last_set_ex == RedisService.LOCK_TTL
            assert metrics.wait_retries == 0
        assert await mock_redis.get(f"lock:report:{key}") is None

    @pytest.mark.asyncio
    async def test_second_holder_rejected(self, redis_service_with_mock):
        key = "report:1:1:fast"
        async with redis_service_with_mock.compute_lock(key):
            with pytest.raises(ComputationInProgress):
                async with redis_service_with_mock.compute_lock(key):
                    pass

    @pytest.mark.asyncio
    async def test_release_is_token_safe(self, redis_service_with_mock, mock_redis):
        """A stale token never releases another holder's lock."""
        key = "report:1:1:fast"
        token = await redis_service_with_mock.acquire_compute_lock(key)
        assert token is not None
        assert await redis_service_with_mock.release_compute_lock(key, "wrong") is False
        assert await mock_redis.get(f"lock:report:{key}") == token
        assert await redis_service_with_mock.release_compute_lock(key, token) is True
