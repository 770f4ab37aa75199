"""
Steward Workflow Loader - Load and validate workflow definitions from YAML

This module handles:
1. Loading workflow definitions from YAML files, directories or dicts
2. Parsing step syntax (tool, param mode, gate, compensation, flags)
3. Validating workflow structure, optionally against the tool catalog
4. Registering workflows for lookup by name

YAML format::

    workflows:
      workflow_rent_chase:
        description: Remind, then escalate
        resume_window_ms: 604800000
        steps:
          - tool: send_rent_reminder
            params: from_context
            static_params: {tone: friendly}
          - tool: escalate_arrears
            params: from_context
            gate: owner_approval
            compensation:
              tool: update_maintenance_status
              params: {status: cancelled}
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING, Union

import yaml

from .models import GateType, ParamMode, WorkflowDefinition, WorkflowStep

if TYPE_CHECKING:
    from ..tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


class WorkflowLoadError(Exception):
    """Raised when a workflow fails to load"""
    pass


class WorkflowValidationError(Exception):
    """Raised when a workflow fails validation"""
    pass


class WorkflowLoader:
    """
    Loads workflow definitions.

    Supports loading from:
    - Single YAML file
    - Directory of YAML files
    - Dictionary (for programmatic creation)
    - Already-built WorkflowDefinition objects (built-ins)

    Example usage:
        loader = WorkflowLoader(catalog=catalog)
        loader.register_all(BUILTIN_WORKFLOWS)
        loader.load_from_file("workflows.yaml")

        workflow = loader.get("workflow_find_tenant")
    """

    def __init__(self, catalog: Optional["ToolCatalog"] = None):
        self._catalog = catalog
        self._workflows: Dict[str, WorkflowDefinition] = {}

    def load_from_file(self, file_path: Union[str, Path]) -> List[WorkflowDefinition]:
        """
        Load workflows from a YAML file.

        Raises:
            WorkflowLoadError: If file cannot be read or parsed
            WorkflowValidationError: If workflow definition is invalid
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise WorkflowLoadError(f"Workflow file not found: {file_path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise WorkflowLoadError(f"Invalid YAML in {file_path}: {e}")

        if not data:
            return []

        return self.load_from_dict(data, source=str(file_path))

    def load_from_directory(self, dir_path: Union[str, Path]) -> List[WorkflowDefinition]:
        """Load all .yaml / .yml workflow files from a directory."""
        dir_path = Path(dir_path)

        if not dir_path.exists():
            raise WorkflowLoadError(f"Workflow directory not found: {dir_path}")

        if not dir_path.is_dir():
            raise WorkflowLoadError(f"Not a directory: {dir_path}")

        workflows = []
        for file_path in sorted(dir_path.glob("*.yaml")) + sorted(dir_path.glob("*.yml")):
            workflows.extend(self.load_from_file(file_path))

        return workflows

    def load_from_dict(
        self,
        data: Dict[str, Any],
        source: str = "<dict>"
    ) -> List[WorkflowDefinition]:
        """Load workflows from a dictionary with a 'workflows' key."""
        workflows_data = data.get("workflows", {})

        if not workflows_data:
            return []

        if not isinstance(workflows_data, dict):
            raise WorkflowLoadError(f"'workflows' in {source} must be a mapping of name -> definition")

        loaded = []
        for name, workflow_data in workflows_data.items():
            try:
                workflow = self.parse_workflow(name, workflow_data or {})
            except WorkflowValidationError:
                raise
            except (KeyError, TypeError, ValueError) as e:
                raise WorkflowValidationError(
                    f"Error loading workflow '{name}' from {source}: {e}"
                )
            self.register(workflow)
            loaded.append(workflow)

        logger.info(f"Loaded {len(loaded)} workflow(s) from {source}")
        return loaded

    def parse_workflow(self, name: str, data: Dict[str, Any]) -> WorkflowDefinition:
        """Parse a single workflow definition"""
        steps_data = data.get("steps") or []
        steps = [self._parse_step(i, s) for i, s in enumerate(steps_data)]

        defaults = WorkflowDefinition(name=name)
        workflow = WorkflowDefinition(
            name=name,
            description=data.get("description", ""),
            steps=steps,
            max_duration_ms=data.get("max_duration_ms", defaults.max_duration_ms),
            checkpoint_after_each_step=data.get("checkpoint_after_each_step", True),
            resumable=data.get("resumable", True),
            resume_window_ms=data.get("resume_window_ms", defaults.resume_window_ms),
            available_from_level=data.get("available_from_level", 0),
        )
        return workflow

    def _parse_step(self, index: int, data: Dict[str, Any]) -> WorkflowStep:
        tool_name = data.get("tool") or data.get("tool_name")
        if not tool_name:
            raise WorkflowValidationError(f"Step {index} must name a tool")

        mode = data.get("params", data.get("param_mode", ParamMode.FROM_PREVIOUS.value))
        try:
            param_mode = ParamMode(mode)
        except ValueError:
            raise WorkflowValidationError(
                f"Invalid param mode for step {index}: {mode}. "
                f"Must be one of: {[m.value for m in ParamMode]}"
            )

        gate = data.get("gate")
        if gate is not None:
            try:
                gate = GateType(gate)
            except ValueError:
                raise WorkflowValidationError(
                    f"Invalid gate for step {index}: {gate}. "
                    f"Must be one of: {[g.value for g in GateType]}"
                )

        compensation = data.get("compensation") or {}
        if isinstance(compensation, str):
            compensation = {"tool": compensation}

        return WorkflowStep(
            index=index,
            tool_name=tool_name,
            param_mode=param_mode,
            static_params=dict(data.get("static_params") or {}),
            gate=gate,
            gate_delay_ms=int(data.get("gate_delay_ms", 0)),
            compensation_tool=compensation.get("tool") or data.get("compensation_tool"),
            compensation_params=dict(
                compensation.get("params") or data.get("compensation_params") or {}
            ),
            optional=bool(data.get("optional", False)),
            per_item=bool(data.get("per_item", False)),
            description=data.get("description", ""),
        )

    def _check_tools(self, workflow: WorkflowDefinition) -> List[str]:
        if self._catalog is None:
            return []
        errors = []
        for step in workflow.steps:
            if not self._catalog.has(step.tool_name):
                errors.append(f"Step {step.index} uses unknown tool {step.tool_name}")
            if step.compensation_tool and not self._catalog.has(step.compensation_tool):
                errors.append(
                    f"Step {step.index} compensates with unknown tool {step.compensation_tool}"
                )
        return errors

    def register(self, workflow: WorkflowDefinition) -> None:
        """
        Validate and register a workflow.

        Raises:
            WorkflowValidationError: If the definition is invalid
        """
        errors = workflow.validate() + self._check_tools(workflow)
        if errors:
            raise WorkflowValidationError(
                f"Workflow '{workflow.name}' validation failed: {'; '.join(errors)}"
            )
        self._workflows[workflow.name] = workflow

    def register_all(self, workflows: Iterable[WorkflowDefinition]) -> None:
        for workflow in workflows:
            self.register(workflow)

    def get(self, name: str) -> Optional[WorkflowDefinition]:
        """Get a workflow by name"""
        return self._workflows.get(name)

    def get_all(self) -> List[WorkflowDefinition]:
        """Get all loaded workflows"""
        return list(self._workflows.values())

    def available_for(self, maturity_level: int) -> List[WorkflowDefinition]:
        """Workflows unlocked at the given program maturity level"""
        return [w for w in self._workflows.values() if w.available_from_level <= maturity_level]

    def __contains__(self, name: str) -> bool:
        return name in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)
