import json

from session.telemetry import SessionTelemetry


def test_session_telemetry_counters_start_at_zero():
    snapshot = SessionTelemetry().snapshot()
    assert snapshot["turns"] == 0
    assert snapshot["directives.token_limit"] == 0
    assert snapshot["directives.remove_tool_result"] == 0
    assert snapshot["directives.remove_tool_call_params"] == 0


def test_session_telemetry_incr_and_set():
    telemetry = SessionTelemetry()
    telemetry.incr("turns")
    telemetry.incr("turns", 2)
    telemetry.incr("custom")
    telemetry.set("tool_calls", 7)

    snapshot = telemetry.snapshot()
    assert snapshot["turns"] == 3
    assert snapshot["custom"] == 1
    assert snapshot["tool_calls"] == 7


def test_record_directives_counts_decision_and_kinds():
    telemetry = SessionTelemetry()
    telemetry.record_directives(["remove_tool_result"])
    telemetry.record_directives(["token_limit"])

    snapshot = telemetry.snapshot()
    assert snapshot["compaction_decisions"] == 2
    assert snapshot["directives.remove_tool_result"] == 1
    assert snapshot["directives.token_limit"] == 1


def test_export_json_round_trips_counters():
    telemetry = SessionTelemetry()
    telemetry.incr("context_failures")
    data = json.loads(telemetry.export_json())
    assert data["counters"]["context_failures"] == 1
