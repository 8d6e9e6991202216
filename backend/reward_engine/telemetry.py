"""Engine telemetry events."""
import logging
from dataclasses import dataclass
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Protocol for telemetry sinks."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Emit a telemetry event."""
        ...


class LoggingTelemetrySink:
    """Default sink that logs telemetry events."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Log telemetry event."""
        logger.info("TELEMETRY %s: %s", event_name, data)


@dataclass
class SpinEvaluatedEvent:
    """spin_evaluated telemetry event."""

    player_id: str | None
    game_mode: str
    weight_config_id: int
    scheme_id: int
    symbols: list[str]
    win_type: str  # rule_type | "punishment" | "none"
    matched_rule_id: int | None
    multiplier: float
    config_hash: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "player_id": self.player_id,
            "game_mode": self.game_mode,
            "weight_config_id": self.weight_config_id,
            "scheme_id": self.scheme_id,
            "symbols": self.symbols,
            "win_type": self.win_type,
            "matched_rule_id": self.matched_rule_id,
            "multiplier": self.multiplier,
            "config_hash": self.config_hash,
        }


@dataclass
class ReportComputedEvent:
    """report_computed telemetry event."""

    weight_config_id: int
    scheme_id: int
    method: str  # "fast" | "monte-carlo"
    sample_count: int | None
    rtp_percent: float
    calculation_ms: float
    config_hash: str
    trigger: str  # "admin" | "recalculate" | "warm_up"
    lock_acquire_ms: float | None = None  # None when no Redis compute lock was taken

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "weight_config_id": self.weight_config_id,
            "scheme_id": self.scheme_id,
            "method": self.method,
            "sample_count": self.sample_count,
            "rtp_percent": self.rtp_percent,
            "calculation_ms": self.calculation_ms,
            "config_hash": self.config_hash,
            "trigger": self.trigger,
            "lock_acquire_ms": self.lock_acquire_ms,
        }


@dataclass
class ReportInvalidatedEvent:
    """report_invalidated telemetry event."""

    weight_config_id: int | None
    scheme_id: int | None
    removed: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "weight_config_id": self.weight_config_id,
            "scheme_id": self.scheme_id,
            "removed": self.removed,
        }


@dataclass
class ReportFailedEvent:
    """report_failed telemetry event (computation aborted, nothing cached)."""

    weight_config_id: int
    scheme_id: int
    method: str
    error_code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "weight_config_id": self.weight_config_id,
            "scheme_id": self.scheme_id,
            "method": self.method,
            "error_code": self.error_code,
            "message": self.message,
        }


class TelemetryService:
    """Service for emitting engine telemetry events."""

    def __init__(self, sink: TelemetrySink | None = None):
        self._sink = sink or LoggingTelemetrySink()
        self._sink_errors = 0  # Counter for sink failures

    def set_sink(self, sink: TelemetrySink) -> None:
        """Set the telemetry sink (useful for testing)."""
        self._sink = sink

    def _safe_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """
        Emit event with exception safety.

        Sink failures MUST NOT break spins or report computations.
        """
        try:
            self._sink.emit(event_name, data)
        except Exception as e:
            self._sink_errors += 1
            logger.warning(
                "Telemetry sink error (count=%d): %s - %s",
                self._sink_errors,
                event_name,
                str(e),
            )

    def emit_spin_evaluated(self, event: SpinEvaluatedEvent) -> None:
        self._safe_emit("spin_evaluated", event.to_dict())

    def emit_report_computed(self, event: ReportComputedEvent) -> None:
        self._safe_emit("report_computed", event.to_dict())

    def emit_report_invalidated(self, event: ReportInvalidatedEvent) -> None:
        self._safe_emit("report_invalidated", event.to_dict())

    def emit_report_failed(self, event: ReportFailedEvent) -> None:
        self._safe_emit("report_failed", event.to_dict())


# Global instance
telemetry_service = TelemetryService()
