#!/usr/bin/env python3
"""
Probability/RTP report for a (weight config, reward scheme) pair.

Runs against the default portal configuration, or against a JSON file of
admin rows (--rows).

Usage:
    python -m scripts.probability_report --weights 1 --scheme 1 --method fast
    python -m scripts.probability_report --mode advanced --method monte-carlo --samples 2000000 --seed AUDIT
    python -m scripts.probability_report --weights 2 --scheme 1 --out out/report_2_1.json
    python -m scripts.probability_report --rows rows.json --weights 1 --scheme 1 --method both
"""
import argparse
import json
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reward_engine.errors import GameError
from reward_engine.logic.exact import ExactProbabilityEngine
from reward_engine.logic.loader import rule_set_from_rows, weight_table_from_row
from reward_engine.logic.models import GameMode, ProbabilityReport, ReportMethod
from reward_engine.logic.monte_carlo import MonteCarloProbabilityEngine
from reward_engine.logic.rng import seed_to_int
from reward_engine.repository import ConfigRepository


def format_report(report: ProbabilityReport) -> str:
    """Human-readable summary table."""
    out = [
        f"Weights: {report.weight_config_id} (v{report.weight_version})  "
        f"Scheme: {report.scheme_id} (v{report.scheme_version})  "
        f"Method: {report.method.value}",
        f"Config hash: {report.config_hash}",
    ]
    if report.sample_count is not None:
        out.append(f"Samples: {report.sample_count}")
    out.append("")
    out.append(f"  {'Line':<24} {'Mult':>8} {'Probability':>14} {'EV':>12}")
    for line in report.lines:
        out.append(
            f"  {line.name:<24} {line.multiplier:>8.2f} "
            f"{line.probability * 100:>13.6f}% {line.expected_value:>12.6f}"
        )
    out.append(f"  {'no win':<24} {'':>8} {report.no_win_probability * 100:>13.6f}%")
    out.append("")
    out.append(f"  RTP: {report.rtp_percent:.4f}%")
    out.append(f"  House edge: {report.house_edge_percent:.4f}%")
    out.append(f"  Calculation: {report.calculation_ms:.1f} ms")
    return "\n".join(out)


def load_repository(rows_path: str | None) -> ConfigRepository:
    """
    Default portal configuration, or one built from a JSON file of rows.

    The file holds {"weights": [...], "scheme_id": N, "rules": [...],
    "punishments": [...], "citation_symbol": "..."} in admin row shape.
    """
    if rows_path is None:
        return ConfigRepository.with_defaults()

    data = json.loads(Path(rows_path).read_text())
    repository = ConfigRepository()
    for row in data.get("weights", []):
        repository.put_weight_table(weight_table_from_row(row))
    repository.put_rule_set(
        rule_set_from_rows(
            int(data.get("scheme_id", 1)),
            data.get("rules", []),
            data.get("punishments", []),
            name=data.get("scheme_name", ""),
            citation_symbol=data.get("citation_symbol"),
        )
    )
    return repository


def print_progress(done: int, total: int, percentage: float) -> None:
    print(f"  simulated {done:,}/{total:,} ({percentage:.1f}%)", file=sys.stderr)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Probability/RTP report")
    parser.add_argument("--weights", type=int, help="Weight config id")
    parser.add_argument("--scheme", type=int, help="Reward scheme id")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in GameMode],
        help="Use the pairing assigned to this game mode",
    )
    parser.add_argument(
        "--method",
        choices=[m.value for m in ReportMethod] + ["both"],
        default=ReportMethod.FAST.value,
        help="fast (exact), monte-carlo, or both with the RTP delta",
    )
    parser.add_argument("--samples", type=int, default=None, help="Monte Carlo samples")
    parser.add_argument("--seed", type=str, default=None, help="Monte Carlo seed")
    parser.add_argument("--workers", type=int, default=None, help="Monte Carlo shards")
    parser.add_argument("--rows", type=str, default=None, help="JSON file of config rows")
    parser.add_argument("--out", type=str, default=None, help="Write report JSON here")
    parser.add_argument(
        "--progress", action="store_true", help="Print Monte Carlo progress to stderr"
    )

    args = parser.parse_args()

    try:
        repository = load_repository(args.rows)
        if args.mode:
            assignment = repository.assignment(GameMode(args.mode))
            weight_config_id, scheme_id = assignment.weight_config_id, assignment.scheme_id
        elif args.weights is not None and args.scheme is not None:
            weight_config_id, scheme_id = args.weights, args.scheme
        else:
            parser.error("either --mode or both --weights and --scheme are required")

        weights = repository.weight_table(weight_config_id)
        rules = repository.rule_set(scheme_id)

        reports: list[ProbabilityReport] = []
        if args.method in (ReportMethod.FAST.value, "both"):
            reports.append(ExactProbabilityEngine().compute(weights, rules))
        if args.method in (ReportMethod.MONTE_CARLO.value, "both"):
            seed = seed_to_int(args.seed) if args.seed else None
            engine = MonteCarloProbabilityEngine(seed=seed, workers=args.workers)
            on_progress = print_progress if args.progress else None
            reports.append(
                engine.compute(weights, rules, args.samples, on_progress=on_progress)
            )
    except GameError as e:
        print(f"{e.code.value}: {e.message}", file=sys.stderr)
        return 1

    for report in reports:
        print(format_report(report))
        print()

    if len(reports) == 2:
        exact, estimate = reports
        print(
            f"RTP delta (monte-carlo - fast): "
            f"{estimate.rtp_percent - exact.rtp_percent:+.4f} pp"
        )

    if args.out:
        output_path = Path(args.out)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps([r.model_dump(mode="json") for r in reports], indent=2)
        )
        print(f"\nReport written to: {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
