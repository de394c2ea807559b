"""Webhook processing error taxonomy."""

from typing import Optional

from .review_trigger import OrganizationAndTeamData


class WebhookProcessingError(Exception):
    """Base class for errors that abort processing of a single event."""
    pass


class MappingFailure(WebhookProcessingError):
    """A required field is absent from the webhook payload."""
    pass


class ConfigurationNotFound(WebhookProcessingError):
    """The repository has no onboarded organization/team."""
    pass


class ReviewNotActive(ConfigurationNotFound):
    """The repository is onboarded, but no team has code review switched on."""

    def __init__(self, message: str, organization_and_team_data: Optional[OrganizationAndTeamData] = None):
        super().__init__(message)
        self.organization_and_team_data = organization_and_team_data


class EnrichmentFailure(WebhookProcessingError):
    """A follow-up code-management fetch failed or returned nothing."""
    pass
