"""
Webhook event routing.

Filters inbound deliveries against per-platform allow-lists and sends
comment events and pull request events to their processors.
"""

from typing import Any, Dict, Optional

from review_gateway.mappers.common import dig
from review_gateway.models.platform import Platform, WebhookEvent
from review_gateway.models.processing import ProcessingOutcome
from review_gateway.services.pr_event_processor import PullRequestEventProcessor
from review_gateway.utils.logging import get_logger, log_error_with_context, log_webhook_event
from review_gateway.utils.metrics import emit_metric

logger = get_logger(__name__)

GITHUB_PULL_REQUEST_ACTIONS = {"opened", "synchronize", "closed", "reopened", "ready_for_review"}

ALLOWED_EVENTS = {
    Platform.GITHUB: {"pull_request", "issue_comment", "pull_request_review_comment"},
    Platform.GITLAB: {"Merge Request Hook", "Note Hook"},
    Platform.BITBUCKET: {
        "pullrequest:created",
        "pullrequest:updated",
        "pullrequest:fulfilled",
        "pullrequest:rejected",
        "pullrequest:comment_created",
    },
    Platform.AZURE_REPOS: {
        "git.pullrequest.created",
        "git.pullrequest.updated",
        "git.pullrequest.merge.attempted",
        "ms.vss-code.git-pullrequest-comment-event",
    },
}

COMMENT_EVENTS = {
    Platform.GITHUB: {"issue_comment", "pull_request_review_comment"},
    Platform.GITLAB: {"Note Hook"},
    Platform.BITBUCKET: {"pullrequest:comment_created"},
    Platform.AZURE_REPOS: {"ms.vss-code.git-pullrequest-comment-event"},
}


class WebhookEventRouter:
    """Entry point for every webhook delivery."""

    def __init__(self, processor: Optional[PullRequestEventProcessor] = None):
        self._processor = processor

    @property
    def processor(self) -> PullRequestEventProcessor:
        if self._processor is None:
            self._processor = PullRequestEventProcessor()
        return self._processor

    def can_handle(self, platform: Platform, event_name: str, payload: Dict[str, Any]) -> bool:
        """
        Check a delivery against the platform's allow-list.

        Args:
            platform: Source platform
            event_name: Platform event name
            payload: Raw webhook payload

        Returns:
            True if the event should be processed
        """
        if event_name not in ALLOWED_EVENTS.get(platform, set()):
            return False

        if platform == Platform.GITHUB and event_name == "pull_request":
            return payload.get("action") in GITHUB_PULL_REQUEST_ACTIONS

        if platform == Platform.GITLAB and event_name == "Note Hook":
            # Older GitLab versions omit the action on new notes
            return (dig(payload, "object_attributes", "action") or "create") == "create"

        return True

    def is_comment_event(self, platform: Platform, event_name: str) -> bool:
        return event_name in COMMENT_EVENTS.get(platform, set())

    async def dispatch(self, event: WebhookEvent) -> ProcessingOutcome:
        """Send an event to the comment or pull request processor."""
        if self.is_comment_event(event.platform, event.event_name):
            return await self.processor.process_comment_event(event)
        return await self.processor.process_pull_request_event(event)

    async def handle_webhook(
        self,
        platform: Platform,
        event_name: str,
        payload: Dict[str, Any],
        delivery_id: Optional[str] = None
    ) -> Optional[ProcessingOutcome]:
        """
        Handle one webhook delivery. Never raises.

        Args:
            platform: Source platform
            event_name: Platform event name
            payload: Raw webhook payload
            delivery_id: Platform delivery identifier, when provided

        Returns:
            ProcessingOutcome, or None if the event was filtered out
        """
        log_webhook_event(logger, platform.value, event_name, delivery_id)

        if not self.can_handle(platform, event_name, payload):
            logger.debug(
                f"Ignoring {platform.value} event {event_name}",
                extra={"platform": platform.value, "event_name": event_name}
            )
            emit_metric("webhook.ignored", platform=platform.value, event_name=event_name)
            return None

        try:
            event = WebhookEvent(
                platform=platform,
                event_name=event_name,
                payload=payload,
                delivery_id=delivery_id,
            )
            return await self.dispatch(event)
        except Exception as e:
            log_error_with_context(
                logger,
                "Webhook dispatch failed",
                e,
                platform=platform.value,
                event_name=event_name,
            )
            return None


_webhook_router: Optional[WebhookEventRouter] = None


def get_webhook_router() -> WebhookEventRouter:
    """
    Get or create the global webhook router.

    Returns:
        WebhookEventRouter instance
    """
    global _webhook_router
    if _webhook_router is None:
        _webhook_router = WebhookEventRouter()
    return _webhook_router
