"""
Approval System - pending actions awaiting an owner decision

Provides:
- PendingAction dataclass for structured approval presentation
- build_preview() to describe an action in plain language
- ApprovalQueue holding pending actions until approved, rejected,
  modified or expired
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..autonomy.models import FeedbackDecision
from ..clock import Clock, now_ms
from ..constants import PENDING_ACTION_TTL_MS
from ..tools.models import AutonomyLevel, ToolDefinition

logger = logging.getLogger(__name__)


class PendingActionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MODIFIED = "modified"
    EXPIRED = "expired"


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MODIFY = "modify"

    @property
    def feedback(self) -> FeedbackDecision:
        """How the decision counts toward graduation."""
        return _FEEDBACK[self]

    @property
    def status(self) -> PendingActionStatus:
        return _STATUS[self]


_FEEDBACK = {
    ApprovalDecision.APPROVE: FeedbackDecision.APPROVED,
    ApprovalDecision.REJECT: FeedbackDecision.REJECTED,
    ApprovalDecision.MODIFY: FeedbackDecision.CORRECTED,
}

_STATUS = {
    ApprovalDecision.APPROVE: PendingActionStatus.APPROVED,
    ApprovalDecision.REJECT: PendingActionStatus.REJECTED,
    ApprovalDecision.MODIFY: PendingActionStatus.MODIFIED,
}


class ApprovalError(Exception):
    """A decision could not be applied to a pending action."""
    pass


@dataclass
class PendingAction:
    """An action the engine wants to take, shown to the owner for approval."""
    id: str
    owner_id: str
    tool_name: str
    params: Dict[str, Any]
    title: str
    preview: str
    reason: str
    autonomy_level: int
    created_at_ms: int
    expires_at_ms: int
    confidence: Optional[float] = None
    workflow_id: Optional[str] = None
    task_name: Optional[str] = None
    status: PendingActionStatus = PendingActionStatus.PENDING
    resolved_at_ms: Optional[int] = None
    modified_params: Optional[Dict[str, Any]] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, at_ms: int) -> bool:
        return at_ms >= self.expires_at_ms

    @property
    def effective_params(self) -> Dict[str, Any]:
        """Params to execute with: the owner's edits overlay the originals."""
        if self.modified_params is None:
            return dict(self.params)
        return {**self.params, **self.modified_params}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "tool_name": self.tool_name,
            "params": self.params,
            "title": self.title,
            "preview": self.preview,
            "reason": self.reason,
            "autonomy_level": self.autonomy_level,
            "confidence": self.confidence,
            "workflow_id": self.workflow_id,
            "task_name": self.task_name,
            "created_at_ms": self.created_at_ms,
            "expires_at_ms": self.expires_at_ms,
            "status": self.status.value,
            "resolved_at_ms": self.resolved_at_ms,
            "modified_params": self.modified_params,
        }


def _humanize(name: str) -> str:
    return name.replace("_", " ").strip().capitalize()


def build_preview(tool: ToolDefinition, params: Dict[str, Any]) -> str:
    """Describe an action in plain language for the approval card."""
    summary = tool.description or _humanize(tool.name)
    lines = [summary.rstrip(".") + "."]
    for key in sorted(params):
        value = params[key]
        if isinstance(value, (dict, list)):
            value = f"{len(value)} item(s)"
        lines.append(f"- {_humanize(key)}: {value}")
    if not tool.reversible:
        lines.append("This cannot be undone.")
    return "\n".join(lines)


class ApprovalQueue:
    """In-memory queue of pending actions, keyed by id."""

    def __init__(self, ttl_ms: int = PENDING_ACTION_TTL_MS, clock: Optional[Clock] = None):
        self.ttl_ms = ttl_ms
        self._clock = clock or now_ms
        self._actions: Dict[str, PendingAction] = {}

    def create(
        self,
        owner_id: str,
        tool: ToolDefinition,
        params: Dict[str, Any],
        level: AutonomyLevel,
        reason: str,
        confidence: Optional[float] = None,
        workflow_id: Optional[str] = None,
        task_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        expires_at_ms: Optional[int] = None,
    ) -> PendingAction:
        """Queue an action; ``expires_at_ms`` overrides the queue TTL (workflow gates wait longer)."""
        created = self._clock()
        action = PendingAction(
            id=f"pa_{uuid.uuid4().hex[:12]}",
            owner_id=owner_id,
            tool_name=tool.name,
            params=dict(params),
            title=_humanize(tool.name),
            preview=build_preview(tool, params),
            reason=reason,
            autonomy_level=int(level),
            created_at_ms=created,
            expires_at_ms=expires_at_ms if expires_at_ms is not None else created + self.ttl_ms,
            confidence=confidence,
            workflow_id=workflow_id,
            task_name=task_name,
            context=dict(context or {}),
        )
        self._actions[action.id] = action
        logger.info(f"Pending action {action.id} created: {tool.name} for {owner_id} ({reason})")
        return action

    def get(self, action_id: str) -> Optional[PendingAction]:
        return self._actions.get(action_id)

    def list_pending(self, owner_id: Optional[str] = None) -> List[PendingAction]:
        now = self._clock()
        return [
            a for a in self._actions.values()
            if a.status == PendingActionStatus.PENDING
            and not a.is_expired(now)
            and (owner_id is None or a.owner_id == owner_id)
        ]

    def check(
        self,
        action_id: str,
        decision: ApprovalDecision,
        modified_params: Optional[Dict[str, Any]] = None,
    ) -> PendingAction:
        """
        Return the action if ``decision`` could be applied to it now, without applying it.

        An overdue action is marked expired on the way.

        Raises:
            ApprovalError: If the action is unknown, already resolved or expired,
                or a modify decision carries no params
        """
        action = self._actions.get(action_id)
        if action is None:
            raise ApprovalError(f"Unknown pending action: {action_id}")
        if action.status != PendingActionStatus.PENDING:
            raise ApprovalError(f"Pending action {action_id} is already {action.status.value}")
        now = self._clock()
        if action.is_expired(now):
            action.status = PendingActionStatus.EXPIRED
            action.resolved_at_ms = now
            raise ApprovalError(f"Pending action {action_id} expired")

        if ApprovalDecision(decision) == ApprovalDecision.MODIFY and not modified_params:
            raise ApprovalError("A modify decision needs modified params")
        return action

    def resolve(
        self,
        action_id: str,
        decision: ApprovalDecision,
        modified_params: Optional[Dict[str, Any]] = None,
    ) -> PendingAction:
        """
        Apply an owner decision.

        Raises:
            ApprovalError: If the action is unknown, already resolved or expired
        """
        action = self.check(action_id, decision, modified_params)
        decision = ApprovalDecision(decision)
        if decision == ApprovalDecision.MODIFY:
            action.modified_params = dict(modified_params)
        action.status = decision.status
        action.resolved_at_ms = self._clock()
        return action

    def expire_stale(self) -> List[PendingAction]:
        """Mark overdue pending actions expired and return them."""
        now = self._clock()
        expired = []
        for action in self._actions.values():
            if action.status == PendingActionStatus.PENDING and action.is_expired(now):
                action.status = PendingActionStatus.EXPIRED
                action.resolved_at_ms = now
                expired.append(action)
        if expired:
            logger.info(f"Expired {len(expired)} pending action(s)")
        return expired

    def __len__(self) -> int:
        return len(self._actions)
