"""
Outcome classification against a prioritized rule set.

Win rules are evaluated in priority order (highest first, ties by lower
rule id) and the first match is authoritative. Only when no win rule
matches is the citation symbol counted; an active punishment for that
exact count applies. An outcome therefore resolves to one rule, one
punishment, or no win.
"""
from collections import Counter
from collections.abc import Iterable

from reward_engine.logic.models import (
    ClassificationResult,
    Consecutiveness,
    CountRule,
    Outcome,
    PatternRule,
    Punishment,
    RuleBase,
    RuleSet,
    SymbolSetRule,
)


def effective_consecutiveness(
    rule: RuleBase, override: Consecutiveness | None = None
) -> Consecutiveness:
    """
    Consecutiveness a rule is evaluated with.

    A STRICT game-mode override turns N-of-a-kind count rules into
    adjacent-run rules. Pattern and symbol-set rules always keep their
    declared mode, so an advanced hall still pays two pairs in any order.
    """
    if override == Consecutiveness.STRICT and isinstance(rule, CountRule):
        return Consecutiveness.STRICT
    return rule.consecutiveness


def longest_run(outcome: Outcome, symbol: str | None = None) -> int:
    """Longest run of adjacent equal symbols (of ``symbol`` only, if given)."""
    best = 0
    current = 0
    previous = None
    for s in outcome:
        if symbol is not None and s != symbol:
            current = 0
        elif current and s == previous:
            current += 1
        else:
            current = 1
        previous = s
        best = max(best, current)
    return best


def _window_fits_shape(
    window: Outcome, pattern: str, bind: dict[str, str]
) -> bool:
    """Check one window position-by-position against the placeholder shape."""
    assigned = dict(bind)
    for placeholder, symbol in zip(pattern, window):
        current = assigned.get(placeholder)
        if current is None:
            # Distinct placeholders must take distinct symbols
            if symbol in assigned.values():
                return False
            assigned[placeholder] = symbol
        elif current != symbol:
            return False
    return True


def _assign_classes(sizes: list[int], available: dict[str, int]) -> bool:
    """Give every placeholder class its own symbol with enough copies."""
    if not sizes:
        return True
    size, rest = sizes[0], sizes[1:]
    for symbol, count in available.items():
        if count >= size:
            remaining = {s: c for s, c in available.items() if s != symbol}
            if _assign_classes(rest, remaining):
                return True
    return False


def match_pattern(outcome: Outcome, rule: PatternRule, mode: Consecutiveness) -> bool:
    width = rule.width
    if width > len(outcome):
        return False

    if mode == Consecutiveness.STRICT:
        return any(
            _window_fits_shape(outcome[i:i + width], rule.pattern, rule.bind)
            for i in range(len(outcome) - width + 1)
        )

    # Lenient: any positions in any order, so only class sizes matter
    counts = Counter(outcome)
    class_sizes = Counter(rule.pattern)
    for placeholder, symbol in rule.bind.items():
        if counts[symbol] < class_sizes.pop(placeholder):
            return False
        del counts[symbol]
    return _assign_classes(sorted(class_sizes.values(), reverse=True), dict(counts))


def match_count(outcome: Outcome, rule: CountRule, mode: Consecutiveness) -> bool:
    if mode == Consecutiveness.STRICT:
        return longest_run(outcome, rule.symbol) >= rule.match_count
    if rule.symbol is not None:
        return outcome.count(rule.symbol) >= rule.match_count
    return max(Counter(outcome).values(), default=0) >= rule.match_count


def match_symbol_set(
    outcome: Outcome, rule: SymbolSetRule, mode: Consecutiveness
) -> bool:
    required = Counter(rule.required_symbols)
    width = len(rule.required_symbols)
    if width > len(outcome):
        return False

    if mode == Consecutiveness.STRICT:
        return any(
            Counter(outcome[i:i + width]) == required
            for i in range(len(outcome) - width + 1)
        )
    return not required - Counter(outcome)


def matches(
    outcome: Outcome, rule: RuleBase, override: Consecutiveness | None = None
) -> bool:
    """Test one rule against an outcome."""
    mode = effective_consecutiveness(rule, override)
    if isinstance(rule, PatternRule):
        return match_pattern(outcome, rule, mode)
    if isinstance(rule, CountRule):
        return match_count(outcome, rule, mode)
    if isinstance(rule, SymbolSetRule):
        return match_symbol_set(outcome, rule, mode)
    raise TypeError(f"Unsupported rule type: {type(rule).__name__}")


class Classifier:
    """
    Classifier bound to one rule set and game-mode consecutiveness.

    Pure: the same outcome always yields the same result.
    """

    def __init__(
        self, rules: RuleSet, consecutiveness: Consecutiveness | None = None
    ):
        self.rules = rules
        self.consecutiveness = consecutiveness
        self._active_rules = rules.active_rules
        self._punishments: dict[int, Punishment] = {
            p.citation_count: p for p in rules.active_punishments
        }

    def classify(self, outcome: Iterable[str]) -> ClassificationResult:
        outcome = tuple(outcome)

        # 1) Win rules, first match wins
        for rule in self._active_rules:
            if matches(outcome, rule, self.consecutiveness):
                return ClassificationResult(
                    outcome=outcome,
                    matched_rule_id=rule.id,
                    matched_rule_name=rule.display_name,
                    multiplier=rule.multiplier,
                    free_spin_granted=rule.grants_free_spin,
                    win_type=rule.rule_type,
                )

        # 2) Punishment for the exact citation count
        citations = outcome.count(self.rules.citation_symbol)
        punishment = self._punishments.get(citations) if citations else None
        if punishment is not None:
            return ClassificationResult(
                outcome=outcome,
                punishment_applied=citations,
                multiplier=-punishment.deduct_multiplier,
                ban_hours=punishment.ban_hours,
                win_type="punishment",
            )

        # 3) No win
        return ClassificationResult(outcome=outcome)


def classify(
    outcome: Iterable[str],
    rules: RuleSet,
    consecutiveness: Consecutiveness | None = None,
) -> ClassificationResult:
    """Classify one outcome against a rule set."""
    return Classifier(rules, consecutiveness).classify(outcome)
