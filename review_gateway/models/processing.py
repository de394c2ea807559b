"""Per-event processing state models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .review_trigger import ReviewTrigger


class ProcessingPhase(str, Enum):
    """Phases a webhook event moves through. Never persisted."""

    RECEIVED = "received"
    DEDUP_CHECKED = "dedup_checked"
    MAPPED = "mapped"
    CONTEXT_RESOLVED = "context_resolved"
    ELIGIBILITY_DECIDED = "eligibility_decided"
    ENRICHED = "enriched"
    DISPATCHED = "dispatched"
    ABORTED = "aborted"


class ProcessingOutcome(BaseModel):
    """Terminal state of one event, returned for logging and tests."""

    phase: ProcessingPhase
    reason: Optional[str] = None
    trigger: Optional[ReviewTrigger] = None
    state_saved: bool = False
    issue_generation_requested: bool = False
    rule_sync_requested: bool = False
    configuration_notice_requested: bool = False

    @property
    def dispatched(self) -> bool:
        return self.phase == ProcessingPhase.DISPATCHED
