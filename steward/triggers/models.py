"""Background task data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ..tools.models import AutonomyLevel

if TYPE_CHECKING:
    from ..orchestrator.pipeline import CallOutcome


class TriggerType(str, Enum):
    CRON = "cron"
    EVENT = "event"


@dataclass(frozen=True)
class BackgroundTaskDefinition:
    """
    A task the scheduler runs for every eligible owner.

    ``default_autonomy`` caps the resolved autonomy of each call the task
    makes; it never raises it. ``available_from_level`` is the program
    maturity level an owner needs before the task runs for them.
    """
    name: str
    trigger_type: TriggerType
    tools_used: Tuple[str, ...]
    default_autonomy: AutonomyLevel
    available_from_level: int = 0
    cron_expression: Optional[str] = None
    event_name: Optional[str] = None
    description: str = ""

    def validate(self) -> List[str]:
        errors = []
        if self.trigger_type == TriggerType.CRON and not self.cron_expression:
            errors.append(f"Cron task {self.name} must have a cron_expression")
        if self.trigger_type == TriggerType.EVENT and not self.event_name:
            errors.append(f"Event task {self.name} must have an event_name")
        if not self.tools_used:
            errors.append(f"Task {self.name} must declare the tools it uses")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "trigger_type": self.trigger_type.value,
            "cron_expression": self.cron_expression,
            "event_name": self.event_name,
            "tools_used": list(self.tools_used),
            "default_autonomy": int(self.default_autonomy),
            "available_from_level": self.available_from_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackgroundTaskDefinition":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            trigger_type=TriggerType(data.get("trigger_type", "cron")),
            cron_expression=data.get("cron_expression"),
            event_name=data.get("event_name"),
            tools_used=tuple(data.get("tools_used") or ()),
            default_autonomy=AutonomyLevel.parse(data.get("default_autonomy", AutonomyLevel.DRAFT)),
            available_from_level=data.get("available_from_level", 0),
        )


@dataclass
class TaskCall:
    """One tool call a background task wants to make."""
    tool_name: str
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BackgroundTaskResult:
    """What one run of a task did for one owner."""
    task_name: str
    owner_id: str
    trigger: str
    started_at_ms: int
    duration_ms: int = 0
    skipped: bool = False
    skip_reason: Optional[str] = None
    executed: List[str] = field(default_factory=list)
    pending_actions: List[str] = field(default_factory=list)
    denied: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    outcomes: List["CallOutcome"] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.skipped and not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_name": self.task_name,
            "owner_id": self.owner_id,
            "trigger": self.trigger,
            "started_at_ms": self.started_at_ms,
            "duration_ms": self.duration_ms,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "executed": self.executed,
            "pending_actions": self.pending_actions,
            "denied": self.denied,
            "errors": self.errors,
        }
