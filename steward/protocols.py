"""
Steward Protocols - Interfaces for the engine's external collaborators

The engine never looks inside tool handlers, owner stores, history stores
or approval channels. These protocols define the contracts that those
external implementations must fulfill.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .autonomy.models import FeedbackDecision, OwnerProfile
    from .confidence.models import OwnerRule, ToolStats
    from .orchestrator.approval import PendingAction
    from .tools.models import CallerContext


@runtime_checkable
class ToolHandlerProtocol(Protocol):
    """
    Executes concrete tools.

    Example:
        class MyHandler:
            async def execute(self, tool_name, input, context):
                if tool_name == "get_property":
                    return {"success": True, "data": await load(input["id"])}
                return {"success": False, "error": f"unknown tool {tool_name}"}
    """

    async def execute(
        self,
        tool_name: str,
        input: Dict[str, Any],
        context: "CallerContext",
    ) -> Any:
        """
        Run one tool.

        Returns:
            A ``{"success": bool, "data"?: Any, "error"?: str}`` envelope
            (or a ToolResult). Handlers may also raise; the executor
            classifies the exception.
        """
        ...


@runtime_checkable
class HistoryProviderProtocol(Protocol):
    """Historical aggregates the confidence calibrator queries, plus the write side."""

    async def get_tool_stats(self, owner_id: str, tool_name: str) -> Optional["ToolStats"]:
        ...

    async def get_recent_decisions(
        self, owner_id: str, tool_name: str, limit: int
    ) -> List["FeedbackDecision"]:
        ...

    async def get_active_rules(
        self, owner_id: str, category: str, limit: int
    ) -> List["OwnerRule"]:
        ...

    async def get_golden_tools(self, owner_id: str, intent_hash: str) -> List[str]:
        ...

    async def get_recent_outcomes(
        self, owner_id: str, tool_name: str, limit: int
    ) -> List[bool]:
        ...

    async def record_execution(
        self,
        owner_id: str,
        tool_name: str,
        success: bool,
        duration_ms: int,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    async def record_decision(
        self, owner_id: str, tool_name: str, decision: "FeedbackDecision"
    ) -> None:
        ...


@runtime_checkable
class ApprovalChannelProtocol(Protocol):
    """Outbound side of the approval channel (push, inbox, chat card...)."""

    async def notify(self, action: "PendingAction") -> None:
        ...


@runtime_checkable
class OwnerDirectoryProtocol(Protocol):
    """Supplies owner profiles to the background scheduler."""

    async def list_owners(self) -> List["OwnerProfile"]:
        ...

    async def get_owner(self, owner_id: str) -> Optional["OwnerProfile"]:
        ...
