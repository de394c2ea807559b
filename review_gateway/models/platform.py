"""Platform and raw webhook event data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    """Source-control platform a webhook originates from."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    AZURE_REPOS = "azure_repos"


class WebhookEvent(BaseModel):
    """Raw inbound webhook delivery."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    event_name: str
    payload: Dict[str, Any]
    delivery_id: Optional[str] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
