"""
Reward engine facade used by the HTTP layer and the admin layer.

Reads of probability reports never compute. Reports are computed only on
admin request, after a configuration change (recalculate) and at startup
warm-up, with at most one computation per cache key at a time.
"""
import asyncio
import logging
import time

from redis.exceptions import RedisError

from reward_engine.cache import CacheKey, ProbabilityCache
from reward_engine.config import settings
from reward_engine.config_hash import get_config_hash
from reward_engine.errors import (
    ComputationInProgress,
    ConfigurationNotFound,
    GameError,
    ProbabilityInvariantViolation,
)
from reward_engine.logic.classifier import classify
from reward_engine.logic.drawer import Drawer
from reward_engine.logic.exact import ExactProbabilityEngine
from reward_engine.logic.models import (
    ClassificationResult,
    Consecutiveness,
    GameMode,
    ModeAssignment,
    ProbabilityReport,
    ReportMethod,
    RuleSet,
    WeightTable,
)
from reward_engine.logic.monte_carlo import MonteCarloProbabilityEngine
from reward_engine.redis_service import RedisService
from reward_engine.repository import ConfigRepository
from reward_engine.telemetry import (
    ReportComputedEvent,
    ReportFailedEvent,
    ReportInvalidatedEvent,
    SpinEvaluatedEvent,
    TelemetryService,
    telemetry_service,
)


logger = logging.getLogger(__name__)


class RewardEngineService:
    """Spin evaluation and cached probability reports over a ConfigRepository."""

    def __init__(
        self,
        repository: ConfigRepository,
        cache: ProbabilityCache | None = None,
        redis: RedisService | None = None,
        telemetry: TelemetryService | None = None,
        drawer: Drawer | None = None,
        exact_engine: ExactProbabilityEngine | None = None,
        monte_carlo_engine: MonteCarloProbabilityEngine | None = None,
    ):
        self.repository = repository
        self.cache = cache or ProbabilityCache()
        self.redis = redis
        self.telemetry = telemetry or telemetry_service
        self.drawer = drawer or Drawer()
        self.exact_engine = exact_engine or ExactProbabilityEngine()
        self.monte_carlo_engine = monte_carlo_engine or MonteCarloProbabilityEngine()

        self._key_locks: dict[CacheKey, asyncio.Lock] = {}
        self._computed_at: dict[CacheKey, float] = {}
        self._warm_up_task: asyncio.Task | None = None

    # === Spins ===

    def evaluate_spin(
        self,
        weight_config_id: int,
        scheme_id: int,
        consecutiveness: Consecutiveness | None = None,
    ) -> ClassificationResult:
        """Draw one outcome and classify it. Never touches balances or sessions."""
        weights = self.repository.weight_table(weight_config_id)
        rules = self.repository.rule_set(scheme_id)
        outcome = self.drawer.draw(weights)
        return classify(outcome, rules, consecutiveness)

    def evaluate_mode_spin(
        self, mode: GameMode, player_id: str | None = None
    ) -> ClassificationResult:
        """Evaluate a spin for a hall using its current assignment."""
        assignment = self.repository.assignment(mode)
        result = self.evaluate_spin(
            assignment.weight_config_id,
            assignment.scheme_id,
            assignment.consecutiveness,
        )
        self.telemetry.emit_spin_evaluated(
            SpinEvaluatedEvent(
                player_id=player_id,
                game_mode=GameMode(mode).value,
                weight_config_id=assignment.weight_config_id,
                scheme_id=assignment.scheme_id,
                symbols=list(result.outcome),
                win_type=result.win_type,
                matched_rule_id=result.matched_rule_id,
                multiplier=result.multiplier,
                config_hash=get_config_hash(
                    self.repository.weight_table(assignment.weight_config_id),
                    self.repository.rule_set(assignment.scheme_id),
                ),
            )
        )
        return result

    # === Reports ===

    def get_probability_report(
        self, weight_config_id: int, scheme_id: int, method: ReportMethod
    ) -> ProbabilityReport | None:
        """Cached report, or None when not yet computed. Never computes."""
        return self.cache.get(weight_config_id, scheme_id, ReportMethod(method))

    def _compute_sync(
        self,
        weights: WeightTable,
        rules: RuleSet,
        method: ReportMethod,
        sample_count: int | None,
    ) -> ProbabilityReport:
        if method == ReportMethod.FAST:
            return self.exact_engine.compute(weights, rules)
        return self.monte_carlo_engine.compute(weights, rules, sample_count)

    async def _wait_for_remote_report(
        self, key: CacheKey, config_hash: str
    ) -> ProbabilityReport | None:
        """
        Poll the mirror while another process holds the compute lock.

        Returns None if the mirror became unreachable while waiting.
        """
        deadline = time.monotonic() + settings.compute_lock_ttl_seconds
        while time.monotonic() < deadline:
            await asyncio.sleep(settings.compute_lock_poll_seconds)
            try:
                report = await self.redis.load_report(*key)
            except RedisError as e:
                logger.warning("Report mirror unavailable while waiting: %s", e)
                return None
            if report is not None and report.config_hash == config_hash:
                return report
        raise ComputationInProgress(
            f"Timed out waiting for report {key} computed by another process."
        )

    async def _run_computation(
        self,
        key: CacheKey,
        weights: WeightTable,
        rules: RuleSet,
        sample_count: int | None,
    ) -> tuple[ProbabilityReport, float | None]:
        """Compute a report; also returns the compute-lock wait when Redis held one."""
        method = key[2]
        if self.redis is not None and self.redis.connected:
            try:
                lock_key = self.redis.report_key(*key)
                async with self.redis.compute_lock(lock_key) as lock_metrics:
                    report = await asyncio.to_thread(
                        self._compute_sync, weights, rules, method, sample_count
                    )
                return report, lock_metrics.acquire_ms
            except ComputationInProgress:
                logger.info("Report %s is being computed elsewhere, waiting", key)
                report = await self._wait_for_remote_report(
                    key, get_config_hash(weights, rules)
                )
                if report is not None:
                    return report, None
            except RedisError as e:
                logger.warning("Compute lock unavailable for %s: %s", key, e)

        report = await asyncio.to_thread(
            self._compute_sync, weights, rules, method, sample_count
        )
        return report, None

    async def _store(self, report: ProbabilityReport) -> None:
        self.cache.put(report)
        self._computed_at[report.cache_key] = time.monotonic()
        if self.redis is not None and self.redis.connected:
            try:
                await self.redis.save_report(report)
            except RedisError as e:
                logger.warning("Failed to mirror report %s: %s", report.cache_key, e)

    async def compute_report(
        self,
        weight_config_id: int,
        scheme_id: int,
        method: ReportMethod,
        sample_count: int | None = None,
        refresh: bool = True,
        trigger: str = "admin",
    ) -> ProbabilityReport:
        """
        Compute, cache and return a report.

        At most one computation per key runs at a time; callers that waited
        for an in-flight computation get its result instead of recomputing.
        With refresh=False an existing cached report is returned as is.

        Raises:
            ConfigurationNotFound: unknown weight config or scheme
            InvalidArgument / InvalidConfiguration: bad inputs
            ProbabilityInvariantViolation: self-check failed; nothing cached
        """
        method = ReportMethod(method)
        key: CacheKey = (weight_config_id, scheme_id, method)
        requested_at = time.monotonic()
        lock = self._key_locks.setdefault(key, asyncio.Lock())

        async with lock:
            cached = self.cache.get(*key)
            if cached is not None and (
                not refresh or self._computed_at.get(key, 0.0) >= requested_at
            ):
                return cached

            weights = self.repository.weight_table(weight_config_id)
            rules = self.repository.rule_set(scheme_id)
            try:
                report, lock_acquire_ms = await self._run_computation(
                    key, weights, rules, sample_count
                )
            except ProbabilityInvariantViolation as e:
                logger.error(
                    "Probability invariant violated for weights=%s scheme=%s "
                    "method=%s: %s",
                    weight_config_id,
                    scheme_id,
                    method.value,
                    e.message,
                )
                self.telemetry.emit_report_failed(
                    ReportFailedEvent(
                        weight_config_id=weight_config_id,
                        scheme_id=scheme_id,
                        method=method.value,
                        error_code=e.code.value,
                        message=e.message,
                    )
                )
                raise

            # Configuration replaced mid-computation: return but do not cache
            if self.repository.is_current(weights, rules):
                await self._store(report)
            else:
                logger.warning(
                    "Configuration changed while computing %s; result not cached", key
                )

        self.telemetry.emit_report_computed(
            ReportComputedEvent(
                weight_config_id=weight_config_id,
                scheme_id=scheme_id,
                method=method.value,
                sample_count=report.sample_count,
                rtp_percent=report.rtp_percent,
                calculation_ms=report.calculation_ms,
                config_hash=report.config_hash,
                trigger=trigger,
                lock_acquire_ms=lock_acquire_ms,
            )
        )
        return report

    # === Invalidation and recalculation ===

    async def invalidate(
        self, weight_config_id: int | None = None, scheme_id: int | None = None
    ) -> list[CacheKey]:
        """Drop cached (and mirrored) reports for a weight config and/or scheme."""
        removed = self.cache.invalidate(
            weight_config_id=weight_config_id, scheme_id=scheme_id
        )
        for key in removed:
            self._computed_at.pop(key, None)
        if self.redis is not None and self.redis.connected:
            try:
                await self.redis.delete_reports(
                    weight_config_id=weight_config_id, scheme_id=scheme_id
                )
            except RedisError as e:
                logger.warning("Failed to delete mirrored reports: %s", e)
        self.telemetry.emit_report_invalidated(
            ReportInvalidatedEvent(
                weight_config_id=weight_config_id,
                scheme_id=scheme_id,
                removed=len(removed),
            )
        )
        return removed

    async def _recompute(
        self, keys: set[CacheKey], trigger: str
    ) -> list[ProbabilityReport]:
        reports = []
        for weight_config_id, scheme_id, method in sorted(
            keys, key=lambda k: (k[0], k[1], k[2].value)
        ):
            try:
                reports.append(
                    await self.compute_report(
                        weight_config_id, scheme_id, method, trigger=trigger
                    )
                )
            except ConfigurationNotFound as e:
                logger.warning("Skipping recompute of %s: %s", (weight_config_id, scheme_id), e.message)
            except ProbabilityInvariantViolation:
                # Already logged; other pairs still recompute
                continue
        return reports

    async def recalculate_for_scheme(self, scheme_id: int) -> list[ProbabilityReport]:
        """
        Invalidate and eagerly recompute every report of a scheme.

        Recomputes the Monte Carlo report of every pairing assigned to the
        scheme in any hall, plus every key that was cached before.
        """
        previous = {key for key in self.cache.keys() if key[1] == scheme_id}
        await self.invalidate(scheme_id=scheme_id)
        keys = previous | {
            (w, s, ReportMethod.MONTE_CARLO)
            for w, s in self.repository.assigned_pairs(scheme_id=scheme_id)
        }
        logger.info("Recalculating %d report(s) for scheme %s", len(keys), scheme_id)
        return await self._recompute(keys, trigger="recalculate")

    async def recalculate_for_weight_config(
        self, weight_config_id: int
    ) -> list[ProbabilityReport]:
        """Same as recalculate_for_scheme, keyed by weight configuration."""
        previous = {key for key in self.cache.keys() if key[0] == weight_config_id}
        await self.invalidate(weight_config_id=weight_config_id)
        keys = previous | {
            (w, s, ReportMethod.MONTE_CARLO)
            for w, s in self.repository.assigned_pairs(weight_config_id=weight_config_id)
        }
        logger.info(
            "Recalculating %d report(s) for weight config %s",
            len(keys),
            weight_config_id,
        )
        return await self._recompute(keys, trigger="recalculate")

    # === Configuration changes from the admin layer ===

    async def replace_weight_table(self, table: WeightTable) -> None:
        self.repository.put_weight_table(table)
        await self.invalidate(weight_config_id=table.config_id)

    async def replace_rule_set(self, rule_set: RuleSet) -> None:
        self.repository.put_rule_set(rule_set)
        await self.invalidate(scheme_id=rule_set.scheme_id)

    async def assign_game_mode(
        self,
        mode: GameMode,
        weight_config_id: int,
        scheme_id: int,
        consecutiveness: Consecutiveness | None = None,
    ) -> ProbabilityReport:
        """Reassign a hall and make sure its pairing has a fresh cached report."""
        # Both must exist before the hall points at them
        self.repository.weight_table(weight_config_id)
        self.repository.rule_set(scheme_id)
        assignment = ModeAssignment(
            mode=mode,
            weight_config_id=weight_config_id,
            scheme_id=scheme_id,
            consecutiveness=consecutiveness,
        )
        self.repository.assign(assignment)
        await self.invalidate(
            weight_config_id=assignment.weight_config_id,
            scheme_id=assignment.scheme_id,
        )
        return await self.compute_report(
            assignment.weight_config_id,
            assignment.scheme_id,
            ReportMethod.MONTE_CARLO,
            trigger="recalculate",
        )

    # === Warm-up ===

    async def _hydrate(self, weight_config_id: int, scheme_id: int) -> bool:
        """Load a mirrored report if it was computed from the live configuration."""
        if self.redis is None or not self.redis.connected:
            return False
        try:
            report = await self.redis.load_report(
                weight_config_id, scheme_id, ReportMethod.MONTE_CARLO
            )
        except RedisError as e:
            logger.warning("Report mirror unavailable during warm-up: %s", e)
            return False
        if report is None:
            return False

        weights = self.repository.weight_table(weight_config_id)
        rules = self.repository.rule_set(scheme_id)
        if report.config_hash != get_config_hash(weights, rules):
            return False
        self.cache.put(report)
        return True

    async def warm_up(self, sample_count: int | None = None) -> int:
        """
        Make sure every hall's pairing has a cached Monte Carlo report.

        Returns the number of pairs that are ready. A failing pair is logged
        and skipped.
        """
        ready = 0
        pairs = sorted(self.repository.assigned_pairs())
        logger.info("Warming probability cache for %d pairing(s)", len(pairs))
        for weight_config_id, scheme_id in pairs:
            try:
                if self.cache.get(weight_config_id, scheme_id, ReportMethod.MONTE_CARLO):
                    ready += 1
                    continue
                if await self._hydrate(weight_config_id, scheme_id):
                    ready += 1
                    continue
                await self.compute_report(
                    weight_config_id,
                    scheme_id,
                    ReportMethod.MONTE_CARLO,
                    sample_count=sample_count,
                    refresh=False,
                    trigger="warm_up",
                )
                ready += 1
            except GameError as e:
                logger.error(
                    "Warm-up failed for weights=%s scheme=%s: %s",
                    weight_config_id,
                    scheme_id,
                    e.message,
                )
        logger.info("Warm-up finished: %d/%d pairing(s) ready", ready, len(pairs))
        return ready

    def start_warm_up(self) -> asyncio.Task:
        """Run warm-up as a background task that does not block serving."""
        self._warm_up_task = asyncio.create_task(self.warm_up())
        return self._warm_up_task

    async def stop_warm_up(self) -> None:
        task = self._warm_up_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._warm_up_task = None
