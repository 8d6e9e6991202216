"""Config hash identifying the exact inputs behind a probability report.

Used by:
- ProbabilityReport.config_hash (cache mirror, admin display)
- telemetry.py (report_computed / spin_evaluated events)

The hash MUST be computed identically in both locations.
"""
import hashlib
import json

from reward_engine.config import settings
from reward_engine.logic.models import RuleSet, WeightTable


def get_config_hash(weights: WeightTable, rules: RuleSet) -> str:
    """
    Generate hash of a (weight table, rule set) snapshot.

    Returns 16-char hex hash; identical inputs always hash identically.
    """
    config_snapshot = {
        "reel_count": settings.reel_count,
        "weights": weights.model_dump(mode="json"),
        "rules": rules.model_dump(mode="json"),
    }
    canonical = json.dumps(config_snapshot, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]
