"""In-memory view of admin-owned configuration consumed by the engine."""
import threading

from reward_engine.errors import ConfigurationNotFound
from reward_engine.logic.defaults import (
    default_assignments,
    default_rule_set,
    default_weight_tables,
)
from reward_engine.logic.models import GameMode, ModeAssignment, RuleSet, WeightTable


class ConfigRepository:
    """
    Current weight tables, rule sets and hall assignments.

    The admin layer replaces whole snapshots on every edit; the engine only
    reads them.
    """

    def __init__(self):
        self._weights: dict[int, WeightTable] = {}
        self._schemes: dict[int, RuleSet] = {}
        self._assignments: dict[GameMode, ModeAssignment] = {}
        self._lock = threading.RLock()

    @classmethod
    def with_defaults(cls) -> "ConfigRepository":
        """Repository seeded with the portal's default configuration."""
        repository = cls()
        for table in default_weight_tables():
            repository.put_weight_table(table)
        repository.put_rule_set(default_rule_set())
        for assignment in default_assignments():
            repository.assign(assignment)
        return repository

    def weight_table(self, weight_config_id: int) -> WeightTable:
        with self._lock:
            table = self._weights.get(weight_config_id)
        if table is None:
            raise ConfigurationNotFound(f"Weight config {weight_config_id} not found.")
        return table

    def rule_set(self, scheme_id: int) -> RuleSet:
        with self._lock:
            rule_set = self._schemes.get(scheme_id)
        if rule_set is None:
            raise ConfigurationNotFound(f"Reward scheme {scheme_id} not found.")
        return rule_set

    def assignment(self, mode: GameMode) -> ModeAssignment:
        with self._lock:
            assignment = self._assignments.get(GameMode(mode))
        if assignment is None:
            raise ConfigurationNotFound(f"Game mode {mode} has no assignment.")
        return assignment

    def assignments(self) -> list[ModeAssignment]:
        with self._lock:
            return list(self._assignments.values())

    def put_weight_table(self, table: WeightTable) -> None:
        with self._lock:
            self._weights[table.config_id] = table

    def put_rule_set(self, rule_set: RuleSet) -> None:
        with self._lock:
            self._schemes[rule_set.scheme_id] = rule_set

    def remove_weight_table(self, weight_config_id: int) -> None:
        with self._lock:
            self._weights.pop(weight_config_id, None)

    def remove_rule_set(self, scheme_id: int) -> None:
        with self._lock:
            self._schemes.pop(scheme_id, None)

    def assign(self, assignment: ModeAssignment) -> None:
        with self._lock:
            self._assignments[assignment.mode] = assignment

    def assigned_pairs(
        self, weight_config_id: int | None = None, scheme_id: int | None = None
    ) -> set[tuple[int, int]]:
        """Distinct (weight config id, scheme id) pairs assigned to any hall."""
        return {
            (a.weight_config_id, a.scheme_id)
            for a in self.assignments()
            if (weight_config_id is None or a.weight_config_id == weight_config_id)
            and (scheme_id is None or a.scheme_id == scheme_id)
        }

    def is_current(self, weights: WeightTable, rules: RuleSet) -> bool:
        """True if both snapshots are still the live versions."""
        with self._lock:
            live_weights = self._weights.get(weights.config_id)
            live_rules = self._schemes.get(rules.scheme_id)
        return (
            live_weights is not None
            and live_rules is not None
            and live_weights == weights
            and live_rules == rules
        )
