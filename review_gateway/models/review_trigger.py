"""Review trigger event handed to the automation collaborator."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .platform import Platform
from .pull_request import NormalizedPullRequest, NormalizedRepository


class TriggerAction(str, Enum):
    """What happened to the pull request."""

    OPENED = "opened"
    UPDATED = "updated"
    CLOSED = "closed"
    MERGED = "merged"
    COMMAND_INVOKED = "commandInvoked"


class TriggerOrigin(str, Enum):
    """Where the trigger came from."""

    WEBHOOK = "webhook"
    COMMAND = "command"


class OrganizationAndTeamData(BaseModel):
    """Organization/team owning an onboarded repository."""

    organization_id: str
    team_id: Optional[str] = None


class ReviewTrigger(BaseModel):
    """Normalized output event of the webhook pipeline."""

    organization_and_team_data: OrganizationAndTeamData
    repository: NormalizedRepository
    pull_request: NormalizedPullRequest
    action: TriggerAction
    origin: TriggerOrigin = TriggerOrigin.WEBHOOK
    platform: Platform
    event_name: str
