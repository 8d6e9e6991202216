"""Request/response models for the HTTP surface."""
from typing import Any, Literal

from pydantic import BaseModel, Field

from reward_engine.config import settings
from reward_engine.logic.models import (
    ClassificationResult,
    CountRule,
    GameMode,
    PatternRule,
    ProbabilityReport,
    Punishment,
    ReportMethod,
    RuleBase,
    SymbolSetRule,
)


# === Request Models ===


class SpinRequest(BaseModel):
    """POST /spin request body."""

    mode: GameMode = Field(default=GameMode.NORMAL)


class ProbabilityRequest(BaseModel):
    """POST /admin/probability request body."""

    weightConfigId: int
    schemeId: int
    method: ReportMethod = Field(default=ReportMethod.FAST)
    sampleCount: int | None = Field(default=None, description="Monte Carlo only")


# === Response Models ===


class SpinResponse(BaseModel):
    """POST /spin response."""

    protocolVersion: str = settings.protocol_version
    roundId: str
    gameMode: GameMode
    symbols: list[str]
    winType: str
    matchedRuleId: int | None = None
    matchedRuleName: str | None = None
    multiplier: float = 0.0
    freeSpinGranted: bool = False
    punishmentApplied: int | None = None
    banHours: int = 0

    @classmethod
    def from_result(
        cls, round_id: str, mode: GameMode, result: ClassificationResult
    ) -> "SpinResponse":
        return cls(
            roundId=round_id,
            gameMode=mode,
            symbols=list(result.outcome),
            winType=result.win_type,
            matchedRuleId=result.matched_rule_id,
            matchedRuleName=result.matched_rule_name,
            multiplier=result.multiplier,
            freeSpinGranted=result.free_spin_granted,
            punishmentApplied=result.punishment_applied,
            banHours=result.ban_hours,
        )


class RuleInfo(BaseModel):
    """One active rule as shown to players."""

    id: int
    name: str
    ruleType: str
    kind: str
    consecutiveness: str
    priority: int
    multiplier: float
    grantsFreeSpin: bool
    pattern: str | None = None
    symbols: list[str] = Field(default_factory=list)
    matchCount: int | None = None

    @classmethod
    def from_rule(cls, rule: RuleBase) -> "RuleInfo":
        info = cls(
            id=rule.id,
            name=rule.display_name,
            ruleType=rule.rule_type,
            kind=rule.kind,
            consecutiveness=rule.consecutiveness.value,
            priority=rule.priority,
            multiplier=rule.multiplier,
            grantsFreeSpin=rule.grants_free_spin,
        )
        if isinstance(rule, PatternRule):
            info.pattern = rule.pattern
            info.symbols = [rule.bind[p] for p in rule.pattern if p in rule.bind]
        elif isinstance(rule, CountRule):
            info.matchCount = rule.match_count
            info.symbols = [rule.symbol] if rule.symbol else []
        elif isinstance(rule, SymbolSetRule):
            info.symbols = list(rule.required_symbols)
        return info


class PunishmentInfo(BaseModel):
    """One active citation punishment."""

    citationCount: int
    deductMultiplier: float
    banHours: int

    @classmethod
    def from_punishment(cls, punishment: Punishment) -> "PunishmentInfo":
        return cls(
            citationCount=punishment.citation_count,
            deductMultiplier=punishment.deduct_multiplier,
            banHours=punishment.ban_hours,
        )


class RulesResponse(BaseModel):
    """GET /rules/{mode} response. Never triggers a computation."""

    protocolVersion: str = settings.protocol_version
    gameMode: GameMode
    weightConfigId: int
    schemeId: int
    citationSymbol: str
    rules: list[RuleInfo] = Field(default_factory=list)
    punishments: list[PunishmentInfo] = Field(default_factory=list)
    report: dict[str, Any] | None = None
    reportStatus: Literal["ready", "not_ready"] = "not_ready"


class ReportResponse(BaseModel):
    """POST /admin/probability response."""

    protocolVersion: str = settings.protocol_version
    report: dict[str, Any]

    @classmethod
    def from_report(cls, report: ProbabilityReport) -> "ReportResponse":
        return cls(report=report.model_dump(mode="json"))


class RecalculateResponse(BaseModel):
    """POST /admin/.../recalculate response."""

    protocolVersion: str = settings.protocol_version
    recalculated: int
    reports: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_reports(cls, reports: list[ProbabilityReport]) -> "RecalculateResponse":
        return cls(
            recalculated=len(reports),
            reports=[report.model_dump(mode="json") for report in reports],
        )
