"""
Automation dispatch.

Hands review triggers, issue-generation requests, chat mentions and
configuration notices to the downstream workers through Redis job queues.
Review triggers are dispatched fire-and-forget: the task is tracked so its
failure is still logged.
"""

import asyncio
from typing import Any, Coroutine, Dict, Optional, Set

from review_gateway.models.platform import Platform
from review_gateway.models.pull_request import NormalizedComment, NormalizedRepository
from review_gateway.models.review_trigger import OrganizationAndTeamData, ReviewTrigger
from review_gateway.services.redis_client import RedisClient, get_redis_client
from review_gateway.utils.logging import get_logger, log_error_with_context
from review_gateway.utils.metrics import emit_metric

logger = get_logger(__name__)


class AutomationDispatcher:
    """Publishes automation jobs to Redis list queues."""

    REVIEW_QUEUE_KEY = "job_queue:review_triggers"
    ISSUE_GENERATION_QUEUE_KEY = "job_queue:issue_generation"
    CHAT_QUEUE_KEY = "job_queue:chat_mentions"
    NOTIFICATION_QUEUE_KEY = "job_queue:pr_notifications"

    def __init__(self, redis_client: Optional[RedisClient] = None):
        """
        Initialize the dispatcher.

        Args:
            redis_client: Redis client. If None, uses the global client.
        """
        self.redis_client = redis_client or get_redis_client()
        self._tasks: Set[asyncio.Task] = set()

    async def trigger_review_automation(self, trigger: ReviewTrigger) -> None:
        """
        Enqueue a review run for a pull request.

        Args:
            trigger: Normalized review trigger
        """
        await self.redis_client.push_job(self.REVIEW_QUEUE_KEY, trigger.model_dump(mode="json"))
        logger.info(
            f"Review automation queued for PR #{trigger.pull_request.number}",
            extra={
                "platform": trigger.platform.value,
                "event_name": trigger.event_name,
                "pr_number": trigger.pull_request.number,
                "repository_id": trigger.repository.id,
            }
        )
        emit_metric(
            "webhook.review_triggered",
            platform=trigger.platform.value,
            action=trigger.action.value,
            origin=trigger.origin.value,
        )

    async def trigger_issue_generation(self, trigger: ReviewTrigger) -> None:
        """Enqueue issue generation for a closed or merged pull request."""
        await self.redis_client.push_job(self.ISSUE_GENERATION_QUEUE_KEY, trigger.model_dump(mode="json"))
        logger.info(
            f"Issue generation queued for PR #{trigger.pull_request.number}",
            extra={"platform": trigger.platform.value, "pr_number": trigger.pull_request.number}
        )

    async def trigger_chat(
        self,
        platform: Platform,
        event_name: str,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        pull_request_number: Optional[int],
        comment: NormalizedComment
    ) -> None:
        """Enqueue a comment that mentions the bot for the chat worker."""
        job: Dict[str, Any] = {
            "platform": platform.value,
            "event_name": event_name,
            "organization_and_team_data": organization_and_team_data.model_dump(mode="json"),
            "repository": repository.model_dump(mode="json"),
            "pull_request_number": pull_request_number,
            "comment": comment.model_dump(mode="json"),
        }
        await self.redis_client.push_job(self.CHAT_QUEUE_KEY, job)
        logger.info(
            f"Chat mention queued for PR #{pull_request_number}",
            extra={"platform": platform.value, "pr_number": pull_request_number}
        )

    async def trigger_configuration_notice(
        self,
        platform: Platform,
        organization_and_team_data: Optional[OrganizationAndTeamData],
        repository: NormalizedRepository,
        pull_request_number: int,
        reason: str
    ) -> None:
        """
        Enqueue a comment explaining why a pull request will not be reviewed.

        The notification worker posts it on the pull request.

        Args:
            platform: Source platform
            organization_and_team_data: Team that onboarded the repository, if known
            repository: Repository of the pull request
            pull_request_number: Pull request to comment on
            reason: Why review cannot proceed
        """
        job: Dict[str, Any] = {
            "kind": "review_not_active",
            "platform": platform.value,
            "organization_and_team_data": (
                organization_and_team_data.model_dump(mode="json") if organization_and_team_data else None
            ),
            "repository": repository.model_dump(mode="json"),
            "pull_request_number": pull_request_number,
            "reason": reason,
        }
        await self.redis_client.push_job(self.NOTIFICATION_QUEUE_KEY, job)
        logger.info(
            f"Configuration notice queued for PR #{pull_request_number}",
            extra={"platform": platform.value, "pr_number": pull_request_number}
        )
        emit_metric("webhook.configuration_notice", platform=platform.value)

    def spawn(self, coro: Coroutine[Any, Any, None], description: str) -> asyncio.Task:
        """
        Run a coroutine without waiting for it.

        The task is kept referenced until it finishes, and a failure is
        logged from its done-callback.
        """
        task = asyncio.create_task(coro, name=description)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def dispatch_in_background(self, trigger: ReviewTrigger) -> asyncio.Task:
        """Fire-and-forget `trigger_review_automation`."""
        return self.spawn(
            self.trigger_review_automation(trigger),
            f"review-automation:{trigger.platform.value}:{trigger.repository.id}#{trigger.pull_request.number}",
        )

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            log_error_with_context(
                logger,
                f"Background task {task.get_name()} failed",
                error,
            )
            emit_metric("automation.dispatch_failed")

    @property
    def pending_tasks(self) -> int:
        """Number of background tasks still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all background tasks (application shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


_automation_dispatcher: Optional[AutomationDispatcher] = None


def get_automation_dispatcher() -> AutomationDispatcher:
    """
    Get or create the global automation dispatcher.

    Returns:
        AutomationDispatcher instance
    """
    global _automation_dispatcher
    if _automation_dispatcher is None:
        _automation_dispatcher = AutomationDispatcher()
    return _automation_dispatcher
