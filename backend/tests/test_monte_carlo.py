"""Monte Carlo probability engine tests."""
import math

import pytest

from reward_engine.errors import InvalidArgument
from reward_engine.logic.defaults import default_rule_set, default_weight_tables
from reward_engine.logic.exact import ExactProbabilityEngine
from reward_engine.logic.models import (
    Consecutiveness,
    CountRule,
    PatternRule,
    Punishment,
    ReportMethod,
    RuleSet,
    SymbolSetRule,
    WeightTable,
)
from reward_engine.logic import monte_carlo
from reward_engine.logic.monte_carlo import (
    MonteCarloProbabilityEngine,
    shard_seed,
    split_samples,
)

P_D = 525 / 825


class TestSampleSplitting:
    def test_split_is_even_and_complete(self):
        assert split_samples(10, 4) == [3, 3, 2, 2]
        assert sum(split_samples(1_000_001, 4)) == 1_000_001

    def test_never_more_shards_than_samples(self):
        assert split_samples(2, 4) == [1, 1]

    def test_shard_seeds_differ(self):
        assert shard_seed(7, 0) != shard_seed(7, 1)
        assert shard_seed(7, 0) == shard_seed(7, 0)


class TestArguments:
    @pytest.mark.parametrize("samples", [0, -10])
    def test_non_positive_sample_count(self, scenario_weights, scenario_rules, samples):
        with pytest.raises(InvalidArgument):
            MonteCarloProbabilityEngine(seed=1).compute(
                scenario_weights, scenario_rules, samples
            )

    def test_sample_count_above_limit(self, scenario_weights, scenario_rules):
        engine = MonteCarloProbabilityEngine(seed=1, max_samples=1000)
        with pytest.raises(InvalidArgument):
            engine.compute(scenario_weights, scenario_rules, 1001)


class TestEstimates:
    def test_seeded_runs_are_reproducible(self, scenario_weights, scenario_rules):
        """Same seed and worker count, same tallies."""
        first = MonteCarloProbabilityEngine(seed=5, workers=3).compute(
            scenario_weights, scenario_rules, 30_000
        )
        second = MonteCarloProbabilityEngine(seed=5, workers=3).compute(
            scenario_weights, scenario_rules, 30_000
        )
        assert first.per_rule == second.per_rule
        assert first.per_punishment == second.per_punishment
        assert [line.hits for line in first.lines] == [line.hits for line in second.lines]

    def test_hits_account_for_every_sample(self, scenario_weights, scenario_rules):
        report = MonteCarloProbabilityEngine(seed=8, workers=2).compute(
            scenario_weights, scenario_rules, 20_000
        )
        assert report.method == ReportMethod.MONTE_CARLO
        assert report.sample_count == 20_000
        no_win_hits = round(report.no_win_probability * 20_000)
        assert sum(line.hits for line in report.lines) + no_win_hits == 20_000
        assert abs(report.total_probability - 1.0) <= 1e-9

    def test_punishment_estimate_near_exact(self, scenario_weights, scenario_rules):
        report = MonteCarloProbabilityEngine(seed=11, workers=2).compute(
            scenario_weights, scenario_rules, 50_000
        )
        assert report.per_punishment[4] == pytest.approx(P_D**4, abs=0.01)

    def test_simulate_counts(self, scenario_weights):
        outcomes = MonteCarloProbabilityEngine(seed=3, workers=4).simulate(
            scenario_weights, 1000
        )
        assert sum(outcomes.values()) == 1000
        assert all(len(outcome) == 4 for outcome in outcomes)


class TestProgress:
    def test_progress_reported_per_batch(self, scenario_weights, scenario_rules, monkeypatch):
        monkeypatch.setattr(monte_carlo, "BATCH_SIZE", 1000)
        calls = []
        MonteCarloProbabilityEngine(seed=4, workers=2).compute(
            scenario_weights,
            scenario_rules,
            10_000,
            on_progress=lambda done, total, pct: calls.append((done, total, pct)),
        )
        assert len(calls) == 10
        done = [c[0] for c in calls]
        assert done == sorted(done)
        assert calls[-1] == (10_000, 10_000, 100.0)
        assert all(total == 10_000 for _, total, _ in calls)

    def test_progress_does_not_change_estimate(self, scenario_weights, scenario_rules):
        quiet = MonteCarloProbabilityEngine(seed=9, workers=2).compute(
            scenario_weights, scenario_rules, 5_000
        )
        noisy = MonteCarloProbabilityEngine(seed=9, workers=2).compute(
            scenario_weights, scenario_rules, 5_000, on_progress=lambda *_: None
        )
        assert quiet.per_rule == noisy.per_rule
        assert quiet.per_punishment == noisy.per_punishment


@pytest.mark.slow
def test_scenario_rtp_within_half_a_point(scenario_weights, scenario_rules):
    """Two million samples put the scenario RTP within 0.5 percentage points of exact."""
    exact = ExactProbabilityEngine().compute(scenario_weights, scenario_rules)
    estimate = MonteCarloProbabilityEngine(seed=2024, workers=4).compute(
        scenario_weights, scenario_rules, 2_000_000
    )
    assert abs(estimate.rtp_percent - exact.rtp_percent) < 0.5

def _cross_validation_cases():
    tables = default_weight_tables()
    cases = [
        (table, default_rule_set(), None, f"portal-{table.name}")
        for table in tables
    ]
    cases.append(
        (tables[0], default_rule_set(), Consecutiveness.STRICT, "portal-default-strict")
    )
    cases.append(
        (
            WeightTable(config_id=50, weights={"A": 100, "B": 100, "C": 100, "D": 525}),
            RuleSet(
                scheme_id=50,
                citation_symbol="D",
                rules=(
                    PatternRule(
                        id=1, pattern="AAAA", bind={"A": "A"}, priority=100,
                        consecutiveness=Consecutiveness.STRICT, multiplier=256,
                    ),
                    CountRule(id=2, symbol="A", match_count=3, priority=50, multiplier=8),
                ),
                punishments=(Punishment(citation_count=4, deduct_multiplier=2.5, ban_hours=48),),
            ),
            None,
            "scenario",
        )
    )
    cases.append(
        (
            WeightTable(config_id=51, weights={"x": 5, "y": 3, "z": 2, "w": 1, "v": 1}),
            RuleSet(
                scheme_id=51,
                citation_symbol="v",
                rules=(
                    PatternRule(id=1, pattern="ABBA", priority=40,
                                consecutiveness=Consecutiveness.STRICT, multiplier=6),
                    PatternRule(id=2, pattern="AABB", priority=30, multiplier=3),
                    SymbolSetRule(id=3, required_symbols=("x", "y", "z"), priority=20,
                                  consecutiveness=Consecutiveness.STRICT, multiplier=2),
                    CountRule(id=4, match_count=2, priority=10, multiplier=0.5),
                ),
                punishments=(
                    Punishment(citation_count=1, deduct_multiplier=0.5),
                    Punishment(citation_count=2, deduct_multiplier=1.5, ban_hours=12),
                ),
            ),
            None,
            "mixed-shapes",
        )
    )
    return cases


@pytest.mark.slow
@pytest.mark.parametrize(
    "weights,rules,override",
    [case[:3] for case in _cross_validation_cases()],
    ids=[case[3] for case in _cross_validation_cases()],
)
def test_monte_carlo_agrees_with_exact(weights, rules, override):
    """
    With 2,000,000 samples every per-rule estimate is within 0.5 percentage
    points of the exact value, and RTP within five standard errors.
    """
    samples = 2_000_000
    exact = ExactProbabilityEngine().compute(weights, rules, consecutiveness=override)
    estimate = MonteCarloProbabilityEngine(seed=2024, workers=4).compute(
        weights, rules, samples, consecutiveness=override
    )

    for rule_id, probability in exact.per_rule.items():
        assert estimate.per_rule[rule_id] == pytest.approx(probability, abs=0.005)
    for count, probability in exact.per_punishment.items():
        assert estimate.per_punishment[count] == pytest.approx(probability, abs=0.005)

    second_moment = sum(line.probability * line.multiplier**2 for line in exact.lines)
    std_error = math.sqrt(max(second_moment - exact.rtp**2, 0.0) / samples)
    assert abs(estimate.rtp - exact.rtp) <= 5 * std_error + 1e-12
