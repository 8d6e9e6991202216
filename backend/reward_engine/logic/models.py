"""Weight, rule and report models for the reward engine."""
import math
from enum import Enum
from itertools import accumulate
from typing import Annotated, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from reward_engine.config import settings
from reward_engine.errors import InvalidConfiguration, InvalidRule


# A symbol is an opaque reel icon id; an outcome is one drawn row of K symbols.
Symbol = str
Outcome = tuple[str, ...]


class Consecutiveness(str, Enum):
    """How matching positions of a rule may be spread over the outcome."""

    STRICT = "strict"  # matching positions must be contiguous
    LENIENT = "lenient"  # any positions


class ReportMethod(str, Enum):
    """Probability computation method."""

    FAST = "fast"  # exact enumeration
    MONTE_CARLO = "monte-carlo"


class GameMode(str, Enum):
    """Slot halls that share the engine."""

    NORMAL = "normal"
    ADVANCED = "advanced"
    SUPREME = "supreme"


class WeightTable(BaseModel):
    """
    Immutable symbol -> weight snapshot for one weight configuration version.

    Each symbol is drawn with probability weight / total_weight.
    """

    model_config = ConfigDict(frozen=True)

    config_id: int
    version: int = 0
    name: str = ""
    weights: dict[str, int]

    @model_validator(mode="after")
    def _check_weights(self) -> "WeightTable":
        if not self.weights:
            raise InvalidConfiguration(
                f"Weight config {self.config_id} has no symbols."
            )
        for symbol, weight in self.weights.items():
            if weight <= 0:
                raise InvalidConfiguration(
                    f"Weight config {self.config_id}: weight of {symbol!r} "
                    f"must be positive, got {weight}."
                )
        return self

    @property
    def identity(self) -> tuple[int, int]:
        return (self.config_id, self.version)

    @property
    def symbols(self) -> tuple[str, ...]:
        return tuple(self.weights)

    @property
    def total_weight(self) -> int:
        return sum(self.weights.values())

    def probability(self, symbol: str) -> float:
        """Per-position draw probability of a symbol (0 for unknown symbols)."""
        return self.weights.get(symbol, 0) / self.total_weight

    def probabilities(self) -> dict[str, float]:
        total = self.total_weight
        return {symbol: weight / total for symbol, weight in self.weights.items()}

    def cumulative_weights(self) -> list[int]:
        """Running weight totals in symbol order, for weighted sampling."""
        return list(accumulate(self.weights.values()))


class RuleBase(BaseModel):
    """Fields shared by every win rule kind."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    rule_type: str = "custom"
    priority: int = 0
    consecutiveness: Consecutiveness = Consecutiveness.LENIENT
    multiplier: float
    grants_free_spin: bool = False
    active: bool = True

    @field_validator("multiplier")
    @classmethod
    def _check_multiplier(cls, value: float) -> float:
        if not math.isfinite(value) or value < 0:
            raise InvalidRule(f"Rule multiplier must be finite and >= 0, got {value}.")
        return value

    @property
    def display_name(self) -> str:
        return self.name or f"rule#{self.id}"


class PatternRule(RuleBase):
    """
    Equality-shape rule, e.g. "AAAA", "ABBA" or "AABB".

    Equal letters are equal symbols and distinct letters are distinct
    symbols. ``bind`` pins placeholders to literal symbols, so
    ``pattern="ABCD", bind={"A": "j", "B": "n", "C": "t", "D": "m"}``
    is the ordered j-n-t-m jackpot.
    """

    kind: Literal["pattern"] = "pattern"
    pattern: str
    bind: dict[str, str] = Field(default_factory=dict)

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        if not value:
            raise InvalidRule("Pattern rule has an empty pattern.")
        if not (value.isalpha() and value.isascii() and value.isupper()):
            raise InvalidRule(
                f"Pattern {value!r} must use uppercase placeholder letters only."
            )
        return value

    @model_validator(mode="after")
    def _check_bind(self) -> "PatternRule":
        unknown = set(self.bind) - set(self.pattern)
        if unknown:
            raise InvalidRule(
                f"Rule {self.id}: bound placeholders {sorted(unknown)} "
                f"are not in pattern {self.pattern!r}."
            )
        if any(not symbol for symbol in self.bind.values()):
            raise InvalidRule(f"Rule {self.id}: bound symbols must be non-empty.")
        if len(set(self.bind.values())) != len(self.bind):
            raise InvalidRule(
                f"Rule {self.id}: distinct placeholders cannot bind the same symbol."
            )
        return self

    @property
    def width(self) -> int:
        return len(self.pattern)


class CountRule(RuleBase):
    """At least ``match_count`` copies of ``symbol`` (any one symbol if None)."""

    kind: Literal["count"] = "count"
    match_count: int
    symbol: str | None = None

    @field_validator("match_count")
    @classmethod
    def _check_match_count(cls, value: int) -> int:
        if value < 1:
            raise InvalidRule(f"Count rule match_count must be >= 1, got {value}.")
        return value


class SymbolSetRule(RuleBase):
    """Outcome must contain the ``required_symbols`` multiset."""

    kind: Literal["symbol-set"] = "symbol-set"
    required_symbols: tuple[str, ...]

    @field_validator("required_symbols")
    @classmethod
    def _check_required(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise InvalidRule("Symbol-set rule has no required symbols.")
        if any(not symbol for symbol in value):
            raise InvalidRule("Symbol-set rule has an empty required symbol.")
        return value


Rule = Annotated[
    Union[PatternRule, CountRule, SymbolSetRule],
    Field(discriminator="kind"),
]


class Punishment(BaseModel):
    """Negative payout keyed to the exact count of the citation symbol."""

    model_config = ConfigDict(frozen=True)

    citation_count: int
    deduct_multiplier: float
    ban_hours: int = 0
    active: bool = True

    @model_validator(mode="after")
    def _check_values(self) -> "Punishment":
        if not 1 <= self.citation_count <= settings.reel_count:
            raise InvalidRule(
                f"Punishment citation_count must be in 1..{settings.reel_count}, "
                f"got {self.citation_count}."
            )
        if not math.isfinite(self.deduct_multiplier) or self.deduct_multiplier < 0:
            raise InvalidRule(
                f"Punishment deduct_multiplier must be finite and >= 0, "
                f"got {self.deduct_multiplier}."
            )
        if self.ban_hours < 0:
            raise InvalidRule(f"Punishment ban_hours must be >= 0, got {self.ban_hours}.")
        return self


class RuleSet(BaseModel):
    """
    Immutable scheme version: win rules plus citation punishments.

    Rules are kept in evaluation order (priority descending, then id
    ascending). Every rule is validated once, here; any malformed payload
    raises InvalidRule.
    """

    model_config = ConfigDict(frozen=True)

    scheme_id: int
    version: int = 0
    name: str = ""
    citation_symbol: str = Field(default_factory=lambda: settings.citation_symbol)
    rules: tuple[Rule, ...] = ()
    punishments: tuple[Punishment, ...] = ()

    def __init__(self, **data):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise InvalidRule(
                f"Scheme {data.get('scheme_id')}: invalid rule payload: {e}"
            ) from e

    @field_validator("rules")
    @classmethod
    def _order_rules(cls, rules: tuple[RuleBase, ...]) -> tuple[RuleBase, ...]:
        ids = [rule.id for rule in rules]
        if len(ids) != len(set(ids)):
            raise InvalidRule(f"Duplicate rule ids in scheme: {sorted(ids)}")
        return tuple(sorted(rules, key=lambda rule: (-rule.priority, rule.id)))

    @field_validator("punishments")
    @classmethod
    def _check_punishments(
        cls, punishments: tuple[Punishment, ...]
    ) -> tuple[Punishment, ...]:
        counts = [p.citation_count for p in punishments]
        if len(counts) != len(set(counts)):
            raise InvalidRule(f"Duplicate punishment citation counts: {sorted(counts)}")
        return tuple(sorted(punishments, key=lambda p: p.citation_count))

    @property
    def identity(self) -> tuple[int, int]:
        return (self.scheme_id, self.version)

    @property
    def active_rules(self) -> tuple[RuleBase, ...]:
        return tuple(rule for rule in self.rules if rule.active)

    @property
    def active_punishments(self) -> tuple[Punishment, ...]:
        return tuple(p for p in self.punishments if p.active)

    def punishment_for(self, citation_count: int) -> Punishment | None:
        """Active punishment for exactly this many citation symbols."""
        for punishment in self.punishments:
            if punishment.active and punishment.citation_count == citation_count:
                return punishment
        return None


class ClassificationResult(BaseModel):
    """Result of classifying one outcome against a rule set."""

    outcome: Outcome = ()
    matched_rule_id: int | None = None
    matched_rule_name: str | None = None
    punishment_applied: int | None = None  # citation count of the punishment
    multiplier: float = 0.0  # negative for punishments
    free_spin_granted: bool = False
    ban_hours: int = 0
    win_type: str = "none"

    @property
    def is_win(self) -> bool:
        return self.matched_rule_id is not None


class ReportLine(BaseModel):
    """One display line of a probability report."""

    name: str
    rule_id: int | None = None
    citation_count: int | None = None
    multiplier: float
    probability: float
    expected_value: float
    hits: int | None = None  # Monte Carlo only


class ProbabilityReport(BaseModel):
    """Per-rule probabilities and RTP for one (weight config, scheme) pair."""

    weight_config_id: int
    weight_version: int = 0
    scheme_id: int
    scheme_version: int = 0
    method: ReportMethod
    reel_count: int
    per_rule: dict[int, float] = Field(default_factory=dict)
    per_punishment: dict[int, float] = Field(default_factory=dict)
    no_win_probability: float
    rtp: float  # expected multiplier per unit wagered
    rtp_percent: float
    house_edge_percent: float
    sample_count: int | None = None
    lines: list[ReportLine] = Field(default_factory=list)
    calculation_ms: float = 0.0
    computed_at: str = ""
    config_hash: str = ""

    @property
    def cache_key(self) -> tuple[int, int, ReportMethod]:
        return (self.weight_config_id, self.scheme_id, self.method)

    @property
    def total_probability(self) -> float:
        return math.fsum(
            [
                *self.per_rule.values(),
                *self.per_punishment.values(),
                self.no_win_probability,
            ]
        )


class ModeAssignment(BaseModel):
    """Weight config and scheme currently assigned to a game mode."""

    mode: GameMode
    weight_config_id: int
    scheme_id: int
    consecutiveness: Consecutiveness | None = None
