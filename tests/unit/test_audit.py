"""Unit tests for the audit log and error metrics."""

import json

from prometheus_client import REGISTRY

from aznpm.core.audit import (
    AuditEventType,
    AuditLogger,
    configure_audit_logger,
)
from aznpm.core.metrics import ADD_IPTABLES_RULE_EXEC_TIME, send_error_log_and_metric, start_new_timer


def read_events(path):
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_log_success(self, tmp_path):
        path = tmp_path / "audit.log"
        audit = AuditLogger(log_path=path)
        audit.log_success(AuditEventType.CHAINS_INIT, "AZURE-NPM", parameters={"forward_link": "inserted"})

        (event,) = read_events(path)
        assert event["event_type"] == "chains.init"
        assert event["result"] == "success"
        assert event["target_chain"] == "AZURE-NPM"
        assert event["parameters"] == {"forward_link": "inserted"}
        assert event["session_id"] == audit.session_id

    def test_log_failure_and_partial(self, tmp_path):
        path = tmp_path / "audit.log"
        audit = AuditLogger(log_path=path)
        audit.log_failure(AuditEventType.FORWARD_LINK_RECONCILE, "FORWARD", "boom")
        audit.log_partial(AuditEventType.CHAINS_UNINIT, "AZURE-NPM", "flush failed",
                          parameters={"flush_failures": ["AZURE-NPM"]})

        failure, partial = read_events(path)
        assert failure["result"] == "failure"
        assert failure["error"] == "boom"
        assert partial["result"] == "partial"
        assert partial["parameters"]["flush_failures"] == ["AZURE-NPM"]

    def test_correlation(self, tmp_path):
        """Events inside a correlation block share its id."""
        path = tmp_path / "audit.log"
        audit = AuditLogger(log_path=path)
        with audit.correlation("init") as corr_id:
            audit.log_dry_run(AuditEventType.CHAINS_INIT, "AZURE-NPM")
        audit.log_dry_run(AuditEventType.CHAINS_INIT, "AZURE-NPM")

        inside, outside = read_events(path)
        assert corr_id.startswith("init_")
        assert inside["correlation_id"] == corr_id
        assert outside["correlation_id"] is None

    def test_disabled(self, tmp_path):
        path = tmp_path / "audit.log"
        AuditLogger(log_path=path, enabled=False).log_success(AuditEventType.CHAINS_INIT, "AZURE-NPM")
        assert not path.exists()

    def test_rotation(self, tmp_path):
        path = tmp_path / "audit.log"
        audit = AuditLogger(log_path=path, max_size_mb=0)
        audit.log_success(AuditEventType.CHAINS_INIT, "AZURE-NPM")
        assert path.with_suffix(".1").exists()
        assert path.read_text() == ""

    def test_configure_from_settings(self, tmp_path):
        audit = configure_audit_logger(log_path=tmp_path / "a.log", enabled=False)
        assert audit.log_path == tmp_path / "a.log"
        assert audit.enabled is False


class TestMetrics:
    """Tests for metric helpers."""

    def test_send_error_log_and_metric(self):
        before = REGISTRY.get_sample_value("npm_errors_total", {"subsystem": "test"}) or 0.0
        message = send_error_log_and_metric("test", "failed to flush %s with %d", "AZURE-NPM", 4)
        assert message == "failed to flush AZURE-NPM with 4"
        assert REGISTRY.get_sample_value("npm_errors_total", {"subsystem": "test"}) == before + 1

    def test_message_without_args(self):
        """A lone % in a message without args should be left alone."""
        assert send_error_log_and_metric("test", "100% failed") == "100% failed"

    def test_timer_records(self):
        before = REGISTRY.get_sample_value("npm_add_iptables_rule_exec_time_seconds_count") or 0.0
        seconds = start_new_timer().stop_and_record(ADD_IPTABLES_RULE_EXEC_TIME)
        assert seconds >= 0
        assert REGISTRY.get_sample_value("npm_add_iptables_rule_exec_time_seconds_count") == before + 1
