"""Tests for steward.workflow.loader and the built-in workflow definitions"""

import pytest

from steward.tools.catalog import ToolCatalog
from steward.workflow import (
    BUILTIN_WORKFLOWS,
    GateType,
    ParamMode,
    WorkflowDefinition,
    WorkflowLoader,
    WorkflowLoadError,
    WorkflowStep,
    WorkflowValidationError,
)


@pytest.fixture
def loader():
    return WorkflowLoader(catalog=ToolCatalog.builtin())


RENT_CHASE_YAML = """
workflows:
  workflow_rent_chase:
    description: Remind, then escalate
    resume_window_ms: 604800000
    available_from_level: 3
    steps:
      - tool: send_rent_reminder
        params: from_context
        static_params: {tone: friendly}
      - tool: send_rent_reminder
        params: from_context
        gate: schedule_wait
        gate_delay_ms: 86400000
        static_params: {tone: formal}
      - tool: create_work_order
        gate: owner_approval
        optional: true
        compensation:
          tool: update_maintenance_status
          params: {status: cancelled}
"""


class TestLoadFromYaml:

    def test_load_from_file(self, loader, tmp_path):
        path = tmp_path / "rent.yaml"
        path.write_text(RENT_CHASE_YAML)

        loaded = loader.load_from_file(path)

        assert [w.name for w in loaded] == ["workflow_rent_chase"]
        workflow = loader.get("workflow_rent_chase")
        assert workflow.resume_window_ms == 604_800_000
        assert workflow.available_from_level == 3
        assert len(workflow.steps) == 3

        first, second, third = workflow.steps
        assert first.param_mode == ParamMode.FROM_CONTEXT
        assert first.static_params == {"tone": "friendly"}
        assert second.gate == GateType.SCHEDULE_WAIT
        assert second.gate_delay_ms == 86_400_000
        assert third.param_mode == ParamMode.FROM_PREVIOUS
        assert third.optional is True
        assert third.compensation_tool == "update_maintenance_status"
        assert third.compensation_params == {"status": "cancelled"}

    def test_load_from_directory(self, loader, tmp_path):
        (tmp_path / "a.yaml").write_text(RENT_CHASE_YAML)
        (tmp_path / "b.yml").write_text(
            "workflows:\n  wf_lookup:\n    steps:\n      - tool: get_property\n"
        )
        (tmp_path / "notes.txt").write_text("ignored")

        loaded = loader.load_from_directory(tmp_path)

        assert sorted(w.name for w in loaded) == ["wf_lookup", "workflow_rent_chase"]
        assert len(loader) == 2

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(WorkflowLoadError, match="not found"):
            loader.load_from_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, loader, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("workflows: [unclosed")
        with pytest.raises(WorkflowLoadError, match="Invalid YAML"):
            loader.load_from_file(path)

    def test_empty_file(self, loader, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert loader.load_from_file(path) == []

    def test_directory_must_be_a_directory(self, loader, tmp_path):
        path = tmp_path / "file.yaml"
        path.write_text(RENT_CHASE_YAML)
        with pytest.raises(WorkflowLoadError, match="Not a directory"):
            loader.load_from_directory(path)


class TestValidation:

    def test_step_without_tool(self, loader):
        with pytest.raises(WorkflowValidationError, match="must name a tool"):
            loader.load_from_dict({"workflows": {"wf": {"steps": [{"params": "static"}]}}})

    def test_invalid_param_mode(self, loader):
        with pytest.raises(WorkflowValidationError, match="Invalid param mode"):
            loader.load_from_dict({"workflows": {"wf": {"steps": [{"tool": "get_property", "params": "magic"}]}}})

    def test_invalid_gate(self, loader):
        with pytest.raises(WorkflowValidationError, match="Invalid gate"):
            loader.load_from_dict({"workflows": {"wf": {"steps": [{"tool": "get_property", "gate": "vibes"}]}}})

    def test_unknown_tool_against_catalog(self, loader):
        with pytest.raises(WorkflowValidationError, match="unknown tool launch_rocket"):
            loader.load_from_dict({"workflows": {"wf": {"steps": [{"tool": "launch_rocket"}]}}})

    def test_unknown_tool_allowed_without_catalog(self):
        loader = WorkflowLoader()
        loader.load_from_dict({"workflows": {"wf": {"steps": [{"tool": "launch_rocket"}]}}})
        assert "wf" in loader

    def test_workflow_needs_steps(self, loader):
        with pytest.raises(WorkflowValidationError, match="at least one step"):
            loader.load_from_dict({"workflows": {"wf_empty": {"description": "nothing"}}})

    def test_workflows_must_be_a_mapping(self, loader):
        with pytest.raises(WorkflowLoadError, match="mapping"):
            loader.load_from_dict({"workflows": [{"name": "wf"}]})

    def test_step_indices_must_be_in_order(self):
        workflow = WorkflowDefinition(
            name="wf",
            steps=[WorkflowStep(index=1, tool_name="get_property")],
        )
        assert any("indices must be 0..n-1" in e for e in workflow.validate())

    def test_compensation_params_need_a_tool(self):
        workflow = WorkflowDefinition(
            name="wf",
            steps=[WorkflowStep(index=0, tool_name="get_property", compensation_params={"x": 1})],
        )
        assert any("no compensation_tool" in e for e in workflow.validate())


class TestBuiltinWorkflows:

    def test_all_builtins_validate_against_catalog(self, loader):
        loader.register_all(BUILTIN_WORKFLOWS)
        assert len(loader) == 5

    def test_available_for_maturity_level(self, loader):
        loader.register_all(BUILTIN_WORKFLOWS)
        assert [w.name for w in loader.available_for(4)] == ["workflow_find_tenant"]
        assert len(loader.available_for(9)) == 5

    def test_arrears_escalation_shape(self):
        workflow = next(w for w in BUILTIN_WORKFLOWS if w.name == "workflow_arrears_escalation")
        gates = [s.gate for s in workflow.steps]
        assert gates[1] == GateType.SCHEDULE_WAIT
        assert workflow.steps[1].gate_delay_ms == 3 * 24 * 60 * 60 * 1000
        assert gates.count(GateType.OWNER_APPROVAL) == 2

    def test_definition_to_dict(self):
        workflow = next(w for w in BUILTIN_WORKFLOWS if w.name == "workflow_find_tenant")
        data = workflow.to_dict()
        assert data["available_from_level"] == 4
        assert data["steps"][3]["gate"] == "owner_approval"
        assert data["steps"][3]["compensation_tool"] == "pause_listing"
