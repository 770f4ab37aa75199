"""Tests for steward.orchestrator.audit_logger"""

import json
import logging

from steward.orchestrator.audit_logger import AuditLogger, MemoryAuditSink


class TestAuditLogger:

    def test_entries_are_json_on_the_audit_logger(self, caplog):
        audit = AuditLogger()
        with caplog.at_level(logging.INFO, logger="steward.audit"):
            audit.log_operator_alert("collect_rent_stripe", "own_1", "not configured", "permanent_system")

        [record] = [r for r in caplog.records if r.name == "steward.audit"]
        entry = json.loads(record.getMessage())
        assert entry["event_type"] == "operator_alert"
        assert entry["owner_id"] == "own_1"
        assert entry["tool_name"] == "collect_rent_stripe"
        assert entry["error_category"] == "permanent_system"
        assert "timestamp" in entry

    def test_workflow_transition_fields(self):
        sink = MemoryAuditSink()
        AuditLogger(sink).log_workflow_transition(
            "own_1", "wf_1", "workflow_find_tenant", "running", "paused", step_index=3,
        )
        [record] = sink.query(event_type="workflow_transition")
        assert record.fields == {
            "workflow_id": "wf_1",
            "workflow_name": "workflow_find_tenant",
            "from_status": "running",
            "to_status": "paused",
            "step_index": 3,
        }

    def test_background_task_omits_empty_error(self):
        sink = MemoryAuditSink()
        AuditLogger(sink).log_background_task("own_1", "rent_due_detection", success=True, duration_ms=12)
        [record] = sink.query()
        assert "error" not in record.fields
        assert record.to_dict()["task_name"] == "rent_due_detection"


class TestMemoryAuditSink:

    def _fill(self, sink):
        audit = AuditLogger(sink)
        audit.log_approval_decision("own_1", "pa_1", "send_rent_reminder", "approve")
        audit.log_approval_decision("own_2", "pa_2", "send_rent_reminder", "reject")
        audit.log_approval_decision("own_1", "pa_3", "create_listing", "approve")

    def test_query_filters(self):
        sink = MemoryAuditSink()
        self._fill(sink)
        assert len(sink.query(owner_id="own_1")) == 2
        assert len(sink.query(tool_name="send_rent_reminder")) == 2
        assert sink.query(event_type="tool_execution") == []

    def test_limit_keeps_most_recent(self):
        sink = MemoryAuditSink()
        self._fill(sink)
        [record] = sink.query(limit=1)
        assert record.fields["tool_name"] == "create_listing"

    def test_bounded(self):
        sink = MemoryAuditSink(max_records=2)
        self._fill(sink)
        assert len(sink) == 2
        assert [r.owner_id for r in sink.query()] == ["own_2", "own_1"]
