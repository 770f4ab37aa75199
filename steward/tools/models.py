"""
Steward Tool Models - Catalog entries and the handler envelope

This module defines:
- ToolCategory / RiskLevel / AutonomyLevel: the closed enumerations the gate
  and executor match on
- ToolDefinition: an immutable catalog entry
- ToolResult: the {success, data, error} envelope a handler returns
- CallerContext: who is asking (interactive owner, background task, workflow)
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Union


class ToolCategory(str, Enum):
    """Category of a tool; subscription tiers grant access per category."""
    QUERY = "query"
    ACTION = "action"
    GENERATE = "generate"
    WORKFLOW = "workflow"
    MEMORY = "memory"
    PLANNING = "planning"
    INTEGRATION = "integration"
    EXTERNAL = "external"


class AutonomyLevel(IntEnum):
    """0-4 scale from "always ask" to "fully silent execution"."""
    INFORM = 0
    SUGGEST = 1
    DRAFT = 2
    EXECUTE = 3
    AUTONOMOUS = 4

    @classmethod
    def parse(cls, value: Union[int, str, "AutonomyLevel"]) -> "AutonomyLevel":
        """Parse ``3``, ``"3"``, ``"L3"`` or ``"execute"`` into a level."""
        if isinstance(value, AutonomyLevel):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid autonomy level: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text[:1] in ("L", "l") and text[1:].isdigit():
                return cls(int(text[1:]))
            if text.isdigit():
                return cls(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                pass
        raise ValueError(f"Invalid autonomy level: {value!r}")

    @property
    def label(self) -> str:
        return f"L{int(self)} ({self.name.title()})"


class RiskLevel(str, Enum):
    """Static classification of a tool's potential harm."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def autonomy_ceiling(self) -> AutonomyLevel:
        """Highest autonomy level this risk level permits."""
        return _RISK_CEILINGS[self]


_RISK_CEILINGS: Dict[RiskLevel, AutonomyLevel] = {
    RiskLevel.NONE: AutonomyLevel.AUTONOMOUS,
    RiskLevel.LOW: AutonomyLevel.EXECUTE,
    RiskLevel.MEDIUM: AutonomyLevel.DRAFT,
    RiskLevel.HIGH: AutonomyLevel.SUGGEST,
    RiskLevel.CRITICAL: AutonomyLevel.INFORM,
}


@dataclass(frozen=True)
class ToolDefinition:
    """
    Immutable catalog entry for one tool.

    Attributes:
        name: Tool identity
        category: Tool category (tier access, confidence source quality)
        risk_level: Declared risk; caps autonomy
        autonomy_ceiling: Declared ceiling, applied on top of the risk ceiling
        reversible: Whether the effect can be undone
        compensation_tool: Tool that undoes this one, if any
        resilience_policy: Name of the resilience policy to execute under
        service: External service tag for the circuit breaker, if any
        description: Human-readable description used in previews
    """
    name: str
    category: ToolCategory
    risk_level: RiskLevel = RiskLevel.NONE
    autonomy_ceiling: AutonomyLevel = AutonomyLevel.AUTONOMOUS
    reversible: bool = True
    compensation_tool: Optional[str] = None
    resilience_policy: str = "query"
    service: Optional[str] = None
    description: str = ""

    @property
    def effective_ceiling(self) -> AutonomyLevel:
        """Lower of the risk-derived ceiling and the declared ceiling."""
        return min(self.risk_level.autonomy_ceiling, self.autonomy_ceiling)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "risk_level": self.risk_level.value,
            "autonomy_ceiling": int(self.autonomy_ceiling),
            "reversible": self.reversible,
            "compensation_tool": self.compensation_tool,
            "resilience_policy": self.resilience_policy,
            "service": self.service,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolDefinition":
        ceiling = data.get("autonomy_ceiling")
        return cls(
            name=data["name"],
            category=ToolCategory(data["category"]),
            risk_level=RiskLevel(data.get("risk_level", "none")),
            autonomy_ceiling=(
                AutonomyLevel.parse(ceiling) if ceiling is not None
                else AutonomyLevel.AUTONOMOUS
            ),
            reversible=data.get("reversible", True),
            compensation_tool=data.get("compensation_tool"),
            resilience_policy=data.get("resilience_policy", "query"),
            service=data.get("service"),
            description=data.get("description", ""),
        )


@dataclass
class ToolResult:
    """
    Envelope returned by a tool handler.

    Attributes:
        success: Whether the handler succeeded
        data: Result payload
        error: Error message on failure
        error_category: Optional explicit ErrorCategory value set by the handler
    """
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_category: Optional[str] = None

    @classmethod
    def from_envelope(cls, envelope: Any) -> "ToolResult":
        """Normalize whatever a handler returned into a ToolResult."""
        if isinstance(envelope, ToolResult):
            return envelope
        if isinstance(envelope, dict) and isinstance(envelope.get("success"), bool):
            return cls(
                success=envelope["success"],
                data=envelope.get("data"),
                error=envelope.get("error"),
                error_category=envelope.get("error_category"),
            )
        return cls(
            success=False,
            error=f"Malformed handler envelope: {type(envelope).__name__}",
            error_category="permanent_system",
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        if self.error_category is not None:
            result["error_category"] = self.error_category
        return result


@dataclass
class CallerContext:
    """
    Who is asking for a tool call.

    Background tasks and workflows build a synthetic, non-interactive
    context; ``autonomy_cap`` lets them lower (never raise) the resolved
    autonomy level of every call they make.
    """
    owner_id: str
    tier: str = "starter"
    interactive: bool = True
    task_name: Optional[str] = None
    workflow_id: Optional[str] = None
    intent_hash: Optional[str] = None
    autonomy_cap: Optional[AutonomyLevel] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_background_task(
        cls,
        owner_id: str,
        tier: str,
        task_name: str,
        autonomy_cap: Optional[AutonomyLevel] = None,
    ) -> "CallerContext":
        return cls(
            owner_id=owner_id,
            tier=tier,
            interactive=False,
            task_name=task_name,
            autonomy_cap=autonomy_cap,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "tier": self.tier,
            "interactive": self.interactive,
            "task_name": self.task_name,
            "workflow_id": self.workflow_id,
            "intent_hash": self.intent_hash,
            "autonomy_cap": int(self.autonomy_cap) if self.autonomy_cap is not None else None,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallerContext":
        cap = data.get("autonomy_cap")
        return cls(
            owner_id=data["owner_id"],
            tier=data.get("tier", "starter"),
            interactive=data.get("interactive", True),
            task_name=data.get("task_name"),
            workflow_id=data.get("workflow_id"),
            intent_hash=data.get("intent_hash"),
            autonomy_cap=AutonomyLevel.parse(cap) if cap is not None else None,
            metadata=dict(data.get("metadata") or {}),
        )
