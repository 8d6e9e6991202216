"""Probability report assembly shared by the exact and Monte Carlo engines."""
import math
from collections.abc import Mapping
from datetime import datetime, timezone

from reward_engine.config import settings
from reward_engine.config_hash import get_config_hash
from reward_engine.errors import ProbabilityInvariantViolation
from reward_engine.logic.models import (
    ClassificationResult,
    ProbabilityReport,
    ReportLine,
    ReportMethod,
    RuleSet,
    WeightTable,
)

# Category keys used by both engines when tallying classified outcomes
NO_WIN = ("none", 0)


def category_of(result: ClassificationResult) -> tuple[str, int]:
    """Tally key for a classification result."""
    if result.matched_rule_id is not None:
        return ("rule", result.matched_rule_id)
    if result.punishment_applied is not None:
        return ("punishment", result.punishment_applied)
    return NO_WIN


def check_probability_mass(
    total: float, epsilon: float | None = None, context: str = ""
) -> None:
    """Raise ProbabilityInvariantViolation if total mass is not 1 within epsilon."""
    eps = settings.probability_epsilon if epsilon is None else epsilon
    if not math.isfinite(total) or abs(total - 1.0) > eps:
        raise ProbabilityInvariantViolation(
            f"Probability mass {total!r} deviates from 1 by more than {eps} {context}".strip()
        )


def get_timestamp_iso() -> str:
    """Get ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def assemble_report(
    weights: WeightTable,
    rules: RuleSet,
    method: ReportMethod,
    masses: Mapping[tuple[str, int], float],
    reel_count: int,
    sample_count: int | None = None,
    hits: Mapping[tuple[str, int], int] | None = None,
    calculation_ms: float = 0.0,
    epsilon: float | None = None,
) -> ProbabilityReport:
    """
    Build a ProbabilityReport from per-category probability masses.

    Every active rule and punishment gets an entry, including those that
    never fired. Checks that the masses sum to 1 before returning.
    """
    lines: list[ReportLine] = []
    per_rule: dict[int, float] = {}
    per_punishment: dict[int, float] = {}
    expected: list[float] = []

    for rule in rules.active_rules:
        key = ("rule", rule.id)
        probability = masses.get(key, 0.0)
        per_rule[rule.id] = probability
        expected.append(probability * rule.multiplier)
        lines.append(
            ReportLine(
                name=rule.display_name,
                rule_id=rule.id,
                multiplier=rule.multiplier,
                probability=probability,
                expected_value=probability * rule.multiplier,
                hits=hits.get(key, 0) if hits is not None else None,
            )
        )

    for punishment in rules.active_punishments:
        key = ("punishment", punishment.citation_count)
        probability = masses.get(key, 0.0)
        signed = -punishment.deduct_multiplier
        per_punishment[punishment.citation_count] = probability
        expected.append(probability * signed)
        lines.append(
            ReportLine(
                name=f"{rules.citation_symbol}x{punishment.citation_count}",
                citation_count=punishment.citation_count,
                multiplier=signed,
                probability=probability,
                expected_value=probability * signed,
                hits=hits.get(key, 0) if hits is not None else None,
            )
        )

    no_win = masses.get(NO_WIN, 0.0)
    total = math.fsum([*per_rule.values(), *per_punishment.values(), no_win])
    check_probability_mass(
        total,
        epsilon,
        context=(
            f"(weights={weights.config_id}, scheme={rules.scheme_id}, "
            f"method={method.value})"
        ),
    )

    rtp = math.fsum(expected)
    if not math.isfinite(rtp):
        raise ProbabilityInvariantViolation(f"Non-finite RTP {rtp!r}")

    return ProbabilityReport(
        weight_config_id=weights.config_id,
        weight_version=weights.version,
        scheme_id=rules.scheme_id,
        scheme_version=rules.version,
        method=method,
        reel_count=reel_count,
        per_rule=per_rule,
        per_punishment=per_punishment,
        no_win_probability=no_win,
        rtp=rtp,
        rtp_percent=rtp * 100,
        house_edge_percent=(1 - rtp) * 100,
        sample_count=sample_count,
        lines=lines,
        calculation_ms=calculation_ms,
        computed_at=get_timestamp_iso(),
        config_hash=get_config_hash(weights, rules),
    )
