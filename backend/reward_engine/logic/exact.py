"""Exact probability engine ("fast" method)."""
import logging
import time
from collections import defaultdict
from itertools import product

from reward_engine.config import settings
from reward_engine.errors import InvalidArgument
from reward_engine.logic.classifier import Classifier
from reward_engine.logic.drawer import cumulative_distribution
from reward_engine.logic.models import (
    Consecutiveness,
    ProbabilityReport,
    ReportMethod,
    RuleSet,
    WeightTable,
)
from reward_engine.logic.report import assemble_report, category_of


logger = logging.getLogger(__name__)


class ExactProbabilityEngine:
    """
    Exact rule probabilities by enumerating every possible outcome.

    Positions are drawn i.i.d., so an outcome's probability is the product
    of its per-position symbol probabilities. All |alphabet|^K outcomes are
    enumerated, classified with the same Classifier used for live spins,
    and their mass accumulated per category in enumeration order.
    """

    def __init__(
        self,
        max_sequences: int | None = None,
        epsilon: float | None = None,
    ):
        self.max_sequences = max_sequences or settings.exact_max_sequences
        self.epsilon = epsilon

    def compute(
        self,
        weights: WeightTable,
        rules: RuleSet,
        reel_count: int | None = None,
        consecutiveness: Consecutiveness | None = None,
    ) -> ProbabilityReport:
        """
        Compute the exact report for a (weights, rules) pair.

        Raises:
            InvalidConfiguration: non-positive total weight
            InvalidArgument: enumeration larger than max_sequences
            ProbabilityInvariantViolation: total mass differs from 1
        """
        started = time.monotonic()
        k = reel_count or settings.reel_count
        symbols, _ = cumulative_distribution(weights)

        sequence_count = len(symbols) ** k
        if sequence_count > self.max_sequences:
            raise InvalidArgument(
                f"Exact enumeration of {sequence_count} outcomes exceeds "
                f"limit {self.max_sequences}; use the monte-carlo method."
            )

        probabilities = weights.probabilities()
        classifier = Classifier(rules, consecutiveness)
        masses: dict[tuple[str, int], float] = defaultdict(float)

        for outcome in product(symbols, repeat=k):
            mass = 1.0
            for symbol in outcome:
                mass *= probabilities[symbol]
            masses[category_of(classifier.classify(outcome))] += mass

        calculation_ms = (time.monotonic() - started) * 1000
        report = assemble_report(
            weights,
            rules,
            ReportMethod.FAST,
            masses,
            reel_count=k,
            calculation_ms=calculation_ms,
            epsilon=self.epsilon,
        )
        logger.debug(
            "Exact report weights=%s scheme=%s outcomes=%d rtp=%.6f in %.1fms",
            weights.config_id,
            rules.scheme_id,
            sequence_count,
            report.rtp,
            calculation_ms,
        )
        return report
