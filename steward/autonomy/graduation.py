"""Graduation tracking - earning one extra autonomy level through approvals."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..clock import Clock, now_ms
from ..constants import GRADUATION_THRESHOLD, MAX_GRADUATION_BACKOFF
from .models import FeedbackDecision, GraduationRecord

logger = logging.getLogger(__name__)


class GraduationTracker:
    """
    Keeps a GraduationRecord per (owner, tool).

    A tool graduates once its consecutive approvals reach
    ``threshold * backoff_multiplier`` with no correction in the streak.
    """

    def __init__(
        self,
        threshold: int = GRADUATION_THRESHOLD,
        max_backoff: int = MAX_GRADUATION_BACKOFF,
        clock: Optional[Clock] = None,
    ):
        self.threshold = threshold
        self.max_backoff = max_backoff
        self._clock = clock or now_ms
        self._records: Dict[Tuple[str, str], GraduationRecord] = {}

    def get(self, owner_id: str, tool_name: str) -> GraduationRecord:
        key = (owner_id, tool_name)
        if key not in self._records:
            self._records[key] = GraduationRecord(owner_id=owner_id, tool_name=tool_name)
        return self._records[key]

    def peek(self, owner_id: str, tool_name: str) -> Optional[GraduationRecord]:
        return self._records.get((owner_id, tool_name))

    def threshold_for(self, record: GraduationRecord) -> int:
        return self.threshold * record.backoff_multiplier

    def is_graduated(self, record: Optional[GraduationRecord]) -> bool:
        return (
            record is not None
            and record.graduated
            and record.consecutive_approvals >= self.threshold_for(record)
        )

    def record(self, owner_id: str, tool_name: str, decision: FeedbackDecision) -> GraduationRecord:
        record = self.get(owner_id, tool_name)
        record.last_decision_at_ms = self._clock()

        if decision == FeedbackDecision.APPROVED:
            record.consecutive_approvals += 1
            record.total_approvals += 1
            if not record.graduated and record.consecutive_approvals >= self.threshold_for(record):
                record.graduated = True
                record.graduated_at_ms = record.last_decision_at_ms
                logger.info(
                    f"{tool_name} graduated for owner {owner_id} after "
                    f"{record.consecutive_approvals} consecutive approvals"
                )
            return record

        if decision == FeedbackDecision.CORRECTED:
            record.total_corrections += 1
        elif decision == FeedbackDecision.REJECTED:
            record.total_rejections += 1
        else:
            raise ValueError(f"Unhandled feedback decision: {decision}")

        record.consecutive_approvals = 0
        if record.graduated:
            record.graduated = False
            record.graduated_at_ms = None
            record.backoff_multiplier = min(record.backoff_multiplier * 2, self.max_backoff)
            logger.warning(
                f"{tool_name} demoted for owner {owner_id} after {decision.value}; "
                f"next graduation needs {self.threshold_for(record)} approvals"
            )
        return record

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def snapshot(self) -> List[GraduationRecord]:
        return list(self._records.values())

    def load(self, records: Iterable[GraduationRecord]) -> None:
        for record in records:
            self._records[(record.owner_id, record.tool_name)] = record
