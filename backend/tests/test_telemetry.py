"""Telemetry service tests."""
from reward_engine.telemetry import (
    ReportInvalidatedEvent,
    SpinEvaluatedEvent,
    TelemetryService,
)


class ExplodingSink:
    def emit(self, event_name, data):
        raise RuntimeError("sink down")


def test_events_reach_sink(telemetry_sink):
    """Events are emitted under their snake_case names."""
    telemetry = TelemetryService(telemetry_sink)
    telemetry.emit_report_invalidated(
        ReportInvalidatedEvent(weight_config_id=None, scheme_id=3, removed=2)
    )
    assert telemetry_sink.events == [
        ("report_invalidated", {"weight_config_id": None, "scheme_id": 3, "removed": 2})
    ]


def test_sink_failure_does_not_propagate():
    """Sink failures MUST NOT break spins."""
    telemetry = TelemetryService(ExplodingSink())
    telemetry.emit_spin_evaluated(
        SpinEvaluatedEvent(
            player_id="p",
            game_mode="normal",
            weight_config_id=1,
            scheme_id=1,
            symbols=["m", "t", "n", "j"],
            win_type="special_combo",
            matched_rule_id=2,
            multiplier=16,
            config_hash="abc",
        )
    )
    assert telemetry._sink_errors == 1


def test_set_sink(telemetry_sink):
    telemetry = TelemetryService(ExplodingSink())
    telemetry.set_sink(telemetry_sink)
    telemetry.emit_report_invalidated(
        ReportInvalidatedEvent(weight_config_id=1, scheme_id=None, removed=0)
    )
    assert len(telemetry_sink.events) == 1
