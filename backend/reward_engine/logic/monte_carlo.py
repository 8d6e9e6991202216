"""Monte Carlo probability engine."""
import logging
import secrets
import threading
import time
from collections import Counter
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from reward_engine.config import settings
from reward_engine.errors import InvalidArgument
from reward_engine.logic.classifier import Classifier
from reward_engine.logic.drawer import Drawer
from reward_engine.logic.models import (
    Consecutiveness,
    Outcome,
    ProbabilityReport,
    ReportMethod,
    RuleSet,
    WeightTable,
)
from reward_engine.logic.report import assemble_report, category_of
from reward_engine.logic.rng import SeededRNG, seed_to_int


logger = logging.getLogger(__name__)

# Outcomes drawn per batch inside a shard (bounds memory of one draw)
BATCH_SIZE = 250_000

# (samples drawn so far, total samples, percentage)
ProgressCallback = Callable[[int, int, float], None]


def split_samples(sample_count: int, shards: int) -> list[int]:
    """Split a sample count into at most ``shards`` non-empty parts."""
    shards = max(1, min(shards, sample_count))
    base, extra = divmod(sample_count, shards)
    return [base + (1 if i < extra else 0) for i in range(shards)]


def shard_seed(base_seed: int, index: int) -> int:
    """Derive an independent, reproducible seed for one shard."""
    return seed_to_int(f"{base_seed}:{index}")


class ProgressTracker:
    """Running count of drawn samples shared by every shard of one run."""

    def __init__(self, total: int, callback: ProgressCallback):
        self.total = total
        self.callback = callback
        self.done = 0
        self._lock = threading.Lock()

    def advance(self, count: int) -> None:
        # Callback runs under the lock so reported counts never go backwards
        with self._lock:
            self.done += count
            self.callback(self.done, self.total, self.done / self.total * 100)


class MonteCarloProbabilityEngine:
    """
    Estimated rule probabilities from simulated draws.

    The sample count is sharded across worker threads, each with its own
    SeededRNG derived from the base seed, so a seeded run with the same
    worker count is reproducible. Shards tally raw outcomes; each distinct
    outcome is then classified once and its tally credited to its category.
    """

    def __init__(
        self,
        seed: int | None = None,
        workers: int | None = None,
        max_samples: int | None = None,
        epsilon: float | None = None,
    ):
        self.seed = seed
        self.workers = workers or settings.monte_carlo_workers
        self.max_samples = max_samples or settings.monte_carlo_max_samples
        self.epsilon = epsilon

    def _run_shard(
        self,
        weights: WeightTable,
        samples: int,
        reel_count: int,
        seed: int,
        progress: ProgressTracker | None = None,
    ) -> Counter[Outcome]:
        drawer = Drawer(SeededRNG(seed=seed))
        tally: Counter[Outcome] = Counter()
        remaining = samples
        while remaining > 0:
            batch = min(BATCH_SIZE, remaining)
            tally.update(drawer.draw_many(weights, batch, reel_count))
            remaining -= batch
            if progress is not None:
                progress.advance(batch)
        return tally

    def simulate(
        self,
        weights: WeightTable,
        sample_count: int,
        reel_count: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Counter[Outcome]:
        """
        Draw ``sample_count`` outcomes and return their tallies.

        ``on_progress`` is called from worker threads after every batch.
        """
        k = reel_count or settings.reel_count
        base_seed = self.seed if self.seed is not None else secrets.randbits(31)
        shards = split_samples(sample_count, self.workers)
        progress = (
            ProgressTracker(sample_count, on_progress) if on_progress is not None else None
        )

        outcomes: Counter[Outcome] = Counter()
        with ThreadPoolExecutor(max_workers=len(shards)) as pool:
            futures = [
                pool.submit(
                    self._run_shard,
                    weights,
                    samples,
                    k,
                    shard_seed(base_seed, i),
                    progress,
                )
                for i, samples in enumerate(shards)
            ]
            for future in futures:
                outcomes.update(future.result())
        return outcomes

    def compute(
        self,
        weights: WeightTable,
        rules: RuleSet,
        sample_count: int | None = None,
        reel_count: int | None = None,
        consecutiveness: Consecutiveness | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProbabilityReport:
        """
        Compute a Monte Carlo report for a (weights, rules) pair.

        ``on_progress(done, total, percentage)`` reports drawing progress for
        long admin runs; the last call has ``done == total``.

        Raises:
            InvalidArgument: sample_count <= 0 or above max_samples
            InvalidConfiguration: non-positive total weight
            ProbabilityInvariantViolation: tallies do not sum to the sample count
        """
        samples = settings.monte_carlo_samples if sample_count is None else sample_count
        if samples <= 0:
            raise InvalidArgument(f"sample_count must be positive, got {samples}.")
        if samples > self.max_samples:
            raise InvalidArgument(
                f"sample_count {samples} exceeds limit {self.max_samples}."
            )

        started = time.monotonic()
        k = reel_count or settings.reel_count
        outcomes = self.simulate(weights, samples, k, on_progress)

        classifier = Classifier(rules, consecutiveness)
        hits: Counter[tuple[str, int]] = Counter()
        for outcome, count in outcomes.items():
            hits[category_of(classifier.classify(outcome))] += count

        masses = {key: count / samples for key, count in hits.items()}
        calculation_ms = (time.monotonic() - started) * 1000
        report = assemble_report(
            weights,
            rules,
            ReportMethod.MONTE_CARLO,
            masses,
            reel_count=k,
            sample_count=samples,
            hits=hits,
            calculation_ms=calculation_ms,
            epsilon=self.epsilon,
        )
        logger.info(
            "Monte Carlo report weights=%s scheme=%s samples=%d distinct=%d "
            "rtp=%.4f%% in %.1fms",
            weights.config_id,
            rules.scheme_id,
            samples,
            len(outcomes),
            report.rtp_percent,
            calculation_ms,
        )
        return report
