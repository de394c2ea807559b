"""
Pull request event processing.

Runs one webhook delivery through dedup, mapping, team lookup, the platform
trigger rules and branch eligibility, then hands the resulting review
trigger to the automation dispatcher. Comment events go through the command
detector first.

Nothing raised while processing an event leaves this module: platforms
redeliver webhooks that fail, and redeliveries are already deduplicated.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from review_gateway.mappers import PlatformEventMapper, get_mapped_platform, prepare_payload
from review_gateway.mappers.common import dig, normalize_ref
from review_gateway.models.code_management import StoredPullRequest, TeamRepositoryConfig
from review_gateway.models.command import CommandDecision
from review_gateway.models.error import (
    EnrichmentFailure,
    MappingFailure,
    ReviewNotActive,
    WebhookProcessingError,
)
from review_gateway.models.platform import Platform, WebhookEvent
from review_gateway.models.processing import ProcessingOutcome, ProcessingPhase
from review_gateway.models.pull_request import (
    MappedAction,
    NormalizedPullRequest,
    NormalizedRepository,
    PullRequestState,
)
from review_gateway.models.review_trigger import (
    OrganizationAndTeamData,
    ReviewTrigger,
    TriggerAction,
    TriggerOrigin,
)
from review_gateway.services import command_detector
from review_gateway.services.automation import AutomationDispatcher, get_automation_dispatcher
from review_gateway.services.branch_review import is_review_eligible, merge_base_branches
from review_gateway.services.code_management import CodeManagementService, get_code_management_service
from review_gateway.services.dedup import DuplicateRequestSuppressor, build_fingerprint
from review_gateway.services.redis_client import RedisClient, get_redis_client
from review_gateway.services.repository_config import (
    RepositoryConfigService,
    get_repository_config_service,
)
from review_gateway.services.rule_sync import RuleSyncService
from review_gateway.services.trigger_policy import (
    BITBUCKET_UPDATED_EVENT,
    TriggerDecision,
    decide_azure,
    decide_bitbucket,
    decide_github,
    decide_gitlab,
    raw_action,
    should_trigger_bitbucket,
    to_trigger_action,
)
from review_gateway.utils.logging import (
    ContextLoggerAdapter,
    get_logger,
    log_error_with_context,
    log_phase_transition,
)
from review_gateway.utils.metrics import emit_metric

logger = get_logger(__name__)

# Actions that ask for a review; only these get a notice when review is switched off
NOTICE_ACTIONS = {MappedAction.OPENED, MappedAction.READY_FOR_REVIEW}


class PullRequestEventProcessor:
    """
    Turns pull request and comment webhooks into review triggers.

    All collaborators are injected; any left out falls back to the
    application-wide instance.
    """

    def __init__(
        self,
        suppressor: Optional[DuplicateRequestSuppressor] = None,
        config_service: Optional[RepositoryConfigService] = None,
        code_management: Optional[CodeManagementService] = None,
        dispatcher: Optional[AutomationDispatcher] = None,
        state_store: Optional[RedisClient] = None,
        rule_sync: Optional[RuleSyncService] = None
    ):
        self.suppressor = suppressor or DuplicateRequestSuppressor()
        self.config_service = config_service or get_repository_config_service()
        self.code_management = code_management or get_code_management_service()
        self.dispatcher = dispatcher or get_automation_dispatcher()
        self.state_store = state_store or get_redis_client()
        self.rule_sync = rule_sync or RuleSyncService(self.code_management, self.state_store)

    async def process_pull_request_event(self, event: WebhookEvent) -> ProcessingOutcome:
        """
        Process a pull request webhook.

        Args:
            event: Raw webhook delivery

        Returns:
            ProcessingOutcome describing where the event stopped
        """
        log = logger.with_context(platform=event.platform.value, event_name=event.event_name)
        return await self._guarded(event, log, lambda: self._process_pull_request(event, log))

    async def process_comment_event(self, event: WebhookEvent) -> ProcessingOutcome:
        """
        Process a pull request comment webhook.

        A start-review command saves the PR state and dispatches a review
        regardless of branch rules; a mention of the bot goes to the chat
        worker. Only Azure Repos comment deliveries are deduplicated.

        Args:
            event: Raw webhook delivery

        Returns:
            ProcessingOutcome describing where the event stopped
        """
        log = logger.with_context(platform=event.platform.value, event_name=event.event_name)
        return await self._guarded(event, log, lambda: self._process_comment(event, log))

    async def _guarded(
        self,
        event: WebhookEvent,
        log: ContextLoggerAdapter,
        func: Callable[[], Awaitable[ProcessingOutcome]]
    ) -> ProcessingOutcome:
        log_phase_transition(log, ProcessingPhase.RECEIVED.value)
        try:
            outcome = await func()
        except WebhookProcessingError as e:
            outcome = self._abort(log, str(e), level=logging.WARNING)
        except Exception as e:
            log_error_with_context(
                log,
                "Unexpected error processing webhook event",
                e,
                delivery_id=event.delivery_id,
            )
            outcome = self._abort(log, f"error: {type(e).__name__}")

        emit_metric(
            "webhook.processed",
            platform=event.platform.value,
            event_name=event.event_name,
            phase=outcome.phase.value,
        )
        return outcome

    def _abort(
        self,
        log: ContextLoggerAdapter,
        reason: str,
        level: int = logging.INFO,
        **fields
    ) -> ProcessingOutcome:
        log_phase_transition(log, ProcessingPhase.ABORTED.value, reason, level=level)
        return ProcessingOutcome(phase=ProcessingPhase.ABORTED, reason=reason, **fields)

    def _mapper(self, platform: Platform) -> PlatformEventMapper:
        mapper = get_mapped_platform(platform)
        if mapper is None:
            raise MappingFailure(f"No mapper for platform {platform.value}")
        return mapper

    async def _process_pull_request(
        self, event: WebhookEvent, log: ContextLoggerAdapter
    ) -> ProcessingOutcome:
        platform = event.platform
        payload = prepare_payload(platform, event.payload)
        mapper = self._mapper(platform)

        repository = mapper.map_repository(payload)
        number = mapper.map_pull_request_number(payload)
        resource_id = f"{repository.id}:{number}" if repository and number else None

        fingerprint = build_fingerprint(platform, payload, event.delivery_id)
        if await self.suppressor.is_duplicate(platform, resource_id, event.event_name, fingerprint):
            return self._abort(log, "duplicate")
        log_phase_transition(log, ProcessingPhase.DEDUP_CHECKED.value)

        pull_request = mapper.map_pull_request(payload)
        if repository is None or pull_request is None:
            raise MappingFailure("Payload is missing the repository or pull request")
        action = mapper.map_action(payload, event.event_name)
        if action is None:
            raise MappingFailure("Payload is missing the action")

        log = log.with_context(repository_id=repository.id, pr_number=pull_request.number)
        log_phase_transition(log, ProcessingPhase.MAPPED.value)

        try:
            config = await self.config_service.find_team_with_active_review(repository.id, platform)
        except ReviewNotActive as e:
            notify = action in NOTICE_ACTIONS
            return await self._review_not_active(e, platform, repository, pull_request.number, notify, log)
        organization_and_team_data = config.organization_and_team_data
        log_phase_transition(log, ProcessingPhase.CONTEXT_RESOLVED.value)

        commit_shas, decision = await self._decide(event, payload, pull_request, repository, config, log)
        log.info(f"Trigger decision: {decision.reason}", extra={"run_automation": decision.run_automation})

        outcome = ProcessingOutcome(phase=ProcessingPhase.ELIGIBILITY_DECIDED)

        if decision.save_state:
            outcome.state_saved = await self._save_state(pull_request, repository, commit_shas, log)

        trigger = ReviewTrigger(
            organization_and_team_data=organization_and_team_data,
            repository=repository,
            pull_request=pull_request,
            action=to_trigger_action(action),
            platform=platform,
            event_name=event.event_name,
        )

        if decision.generate_issues:
            outcome.issue_generation_requested = await self._request_issue_generation(trigger, log)

        if decision.sync_rules:
            outcome.rule_sync_requested = await self._sync_rules_after_merge(
                platform, organization_and_team_data, repository, pull_request, log
            )

        if not decision.run_automation:
            return self._abort(
                log,
                f"no review automation ({decision.reason})",
                state_saved=outcome.state_saved,
                issue_generation_requested=outcome.issue_generation_requested,
                rule_sync_requested=outcome.rule_sync_requested,
            )

        if not await self._is_branch_eligible(platform, config, repository, pull_request, log):
            return self._abort(
                log,
                f"branch {pull_request.head_ref} -> {pull_request.base_ref} not eligible for review",
                state_saved=outcome.state_saved,
                issue_generation_requested=outcome.issue_generation_requested,
                rule_sync_requested=outcome.rule_sync_requested,
            )
        log_phase_transition(log, ProcessingPhase.ELIGIBILITY_DECIDED.value)

        dispatched = await self._dispatch_review(trigger, log)
        dispatched.state_saved = outcome.state_saved
        dispatched.issue_generation_requested = outcome.issue_generation_requested
        dispatched.rule_sync_requested = outcome.rule_sync_requested
        return dispatched

    async def _decide(
        self,
        event: WebhookEvent,
        payload: Dict[str, Any],
        pull_request: NormalizedPullRequest,
        repository: NormalizedRepository,
        config: TeamRepositoryConfig,
        log: ContextLoggerAdapter
    ) -> Tuple[List[str], TriggerDecision]:
        """Apply the platform's trigger table. Also returns the PR commits when fetched."""
        platform = event.platform
        action = raw_action(platform, event.event_name, payload)

        if platform == Platform.GITHUB:
            return [], decide_github(action, pull_request)

        if platform == Platform.GITLAB:
            return [], decide_gitlab(payload, pull_request)

        if platform == Platform.AZURE_REPOS:
            return [], decide_azure(action, pull_request)

        if event.event_name != BITBUCKET_UPDATED_EVENT:
            # Only updates compare commit history; other events save the head commit
            should_trigger = should_trigger_bitbucket(event.event_name, pull_request, None, None)
            return [], decide_bitbucket(event.event_name, pull_request, should_trigger)

        commits = await self.code_management.get_commits_for_pull_request(
            platform, config.organization_and_team_data, repository, pull_request.number
        )
        commit_shas = [commit.sha for commit in commits]

        stored: Optional[StoredPullRequest] = None
        history_unavailable = not commit_shas
        try:
            stored = await self.state_store.get_pull_request_state(repository.id, pull_request.number)
        except Exception as e:
            log.warning(f"Could not load stored state for PR #{pull_request.number}: {e}")
            history_unavailable = True

        should_trigger = should_trigger_bitbucket(
            event.event_name, pull_request, stored, commit_shas, history_unavailable
        )
        return commit_shas, decide_bitbucket(event.event_name, pull_request, should_trigger)

    async def _save_state(
        self,
        pull_request: NormalizedPullRequest,
        repository: NormalizedRepository,
        commit_shas: List[str],
        log: ContextLoggerAdapter
    ) -> bool:
        if not commit_shas and pull_request.head_sha:
            commit_shas = [pull_request.head_sha]

        state = StoredPullRequest(
            number=pull_request.number,
            repository_id=repository.id,
            state=pull_request.state.value,
            is_draft=pull_request.is_draft,
            head_sha=pull_request.head_sha,
            commits=commit_shas,
        )
        try:
            await self.state_store.save_pull_request_state(state)
        except Exception as e:
            log_error_with_context(log, "Failed to save pull request state", e)
            return False
        return True

    async def _review_not_active(
        self,
        error: ReviewNotActive,
        platform: Platform,
        repository: NormalizedRepository,
        pull_request_number: int,
        notify: bool,
        log: ContextLoggerAdapter
    ) -> ProcessingOutcome:
        """Abort, leaving a comment on the PR when the event asked for a review."""
        requested = False
        if notify:
            try:
                await self.dispatcher.trigger_configuration_notice(
                    platform,
                    error.organization_and_team_data,
                    repository,
                    pull_request_number,
                    str(error),
                )
                requested = True
            except Exception as e:
                log_error_with_context(log, "Failed to request configuration notice", e)

        return self._abort(log, str(error), level=logging.WARNING, configuration_notice_requested=requested)

    async def _request_issue_generation(self, trigger: ReviewTrigger, log: ContextLoggerAdapter) -> bool:
        try:
            await self.dispatcher.trigger_issue_generation(trigger)
        except Exception as e:
            log_error_with_context(log, "Failed to request issue generation", e)
            return False
        return True

    async def _sync_rules_after_merge(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        pull_request: NormalizedPullRequest,
        log: ContextLoggerAdapter
    ) -> bool:
        """
        Sync rule files touched by a PR merged into the default branch.

        Each step is isolated: a failure is logged and ends the sync without
        affecting the rest of the event.
        """
        default_branch = await self.code_management.get_default_branch(
            platform, organization_and_team_data, repository
        )
        if not default_branch:
            log.warning("Default branch unavailable, skipping rule sync")
            return False

        if normalize_ref(pull_request.base_ref) != normalize_ref(default_branch):
            log.debug(
                f"PR merged into {pull_request.base_ref}, not default branch {default_branch}; "
                f"skipping rule sync"
            )
            return False

        files = await self.code_management.get_files_by_pull_request_id(
            platform, organization_and_team_data, repository, pull_request.number
        )
        if not files:
            log.debug("No changed files for merged PR, skipping rule sync")
            return False

        try:
            await self.rule_sync.sync_from_changed_files(
                organization_and_team_data,
                repository,
                pull_request.number,
                files,
                platform,
            )
        except Exception as e:
            log_error_with_context(log, "Rule sync failed", e)
            return False
        return True

    async def _is_branch_eligible(
        self,
        platform: Platform,
        config: TeamRepositoryConfig,
        repository: NormalizedRepository,
        pull_request: NormalizedPullRequest,
        log: ContextLoggerAdapter
    ) -> bool:
        if not config.base_branches:
            return True

        default_branch = pull_request.default_branch or await self.code_management.get_default_branch(
            platform, config.organization_and_team_data, repository
        )
        patterns = merge_base_branches(config.base_branches, default_branch)
        eligible = is_review_eligible(pull_request.head_ref, pull_request.base_ref, patterns)
        log.debug(f"Branch eligibility with {patterns}: {eligible}")
        return eligible

    async def _dispatch_review(self, trigger: ReviewTrigger, log: ContextLoggerAdapter) -> ProcessingOutcome:
        repository = trigger.repository
        if trigger.platform != Platform.GITHUB and not repository.language:
            language = await self.code_management.get_repository_language(
                trigger.platform, trigger.organization_and_team_data, repository
            )
            trigger = trigger.model_copy(update={"repository": repository.model_copy(update={"language": language})})
        log_phase_transition(log, ProcessingPhase.ENRICHED.value)

        self.dispatcher.dispatch_in_background(trigger)
        log_phase_transition(log, ProcessingPhase.DISPATCHED.value, level=logging.INFO)
        return ProcessingOutcome(phase=ProcessingPhase.DISPATCHED, trigger=trigger)

    async def _process_comment(self, event: WebhookEvent, log: ContextLoggerAdapter) -> ProcessingOutcome:
        platform = event.platform
        payload = prepare_payload(platform, event.payload)
        mapper = self._mapper(platform)

        comment = mapper.map_comment(payload)
        if comment is None or comment.is_deleted_action or not comment.body.strip():
            return self._abort(log, "comment deleted or empty")

        if platform == Platform.GITLAB and (dig(payload, "object_attributes", "action") or "create") != "create":
            return self._abort(log, "gitlab note is not a new comment")

        if platform == Platform.GITHUB and event.event_name == "issue_comment" and not dig(payload, "issue", "pull_request"):
            return self._abort(log, "comment is on an issue, not a pull request")

        pull_request = mapper.map_pull_request(payload)
        if platform == Platform.AZURE_REPOS and (pull_request is None or pull_request.state != PullRequestState.OPEN):
            return self._abort(log, "azure pull request is not active")

        # Azure resends service hook notifications; commands re-issued elsewhere are new requests
        if platform == Platform.AZURE_REPOS:
            if await self._is_duplicate_comment(event, payload, mapper, pull_request, comment.id):
                return self._abort(log, "duplicate")
            log_phase_transition(log, ProcessingPhase.DEDUP_CHECKED.value)

        decision = command_detector.decide(command_detector.classify(comment.body, platform))
        if decision == CommandDecision.IGNORE:
            return self._abort(log, "comment is not addressed to the bot")

        repository = mapper.map_repository(payload)
        number = pull_request.number if pull_request else mapper.map_pull_request_number(payload)
        if repository is None or number is None:
            raise MappingFailure("Comment payload is missing the repository or pull request number")
        log = log.with_context(repository_id=repository.id, pr_number=number)
        log_phase_transition(log, ProcessingPhase.MAPPED.value)

        try:
            config = await self.config_service.find_team_with_active_review(repository.id, platform)
        except ReviewNotActive as e:
            notify = decision == CommandDecision.START_REVIEW
            return await self._review_not_active(e, platform, repository, number, notify, log)
        organization_and_team_data = config.organization_and_team_data
        log_phase_transition(log, ProcessingPhase.CONTEXT_RESOLVED.value)

        if decision == CommandDecision.CHAT:
            self.dispatcher.spawn(
                self.dispatcher.trigger_chat(
                    platform,
                    event.event_name,
                    organization_and_team_data,
                    repository,
                    number,
                    comment,
                ),
                f"chat:{platform.value}:{repository.id}#{number}",
            )
            log_phase_transition(log, ProcessingPhase.DISPATCHED.value, "chat mention", level=logging.INFO)
            return ProcessingOutcome(phase=ProcessingPhase.DISPATCHED, reason="chat mention")

        if pull_request is None:
            pull_request = await self.code_management.get_pull_request_by_number(
                platform, organization_and_team_data, repository, number
            )
            if pull_request is None:
                raise EnrichmentFailure(f"Could not fetch PR #{number} for start-review command")

        trigger = ReviewTrigger(
            organization_and_team_data=organization_and_team_data,
            repository=repository,
            pull_request=pull_request,
            action=TriggerAction.COMMAND_INVOKED,
            origin=TriggerOrigin.COMMAND,
            platform=platform,
            event_name=event.event_name,
        )
        log.info("Start-review command received")
        state_saved = await self._save_state(pull_request, repository, [], log)

        outcome = await self._dispatch_review(trigger, log)
        outcome.state_saved = state_saved
        return outcome

    async def _is_duplicate_comment(
        self,
        event: WebhookEvent,
        payload: Dict[str, Any],
        mapper: PlatformEventMapper,
        pull_request: NormalizedPullRequest,
        comment_id: Optional[str]
    ) -> bool:
        repository = mapper.map_repository(payload)
        resource_id = None
        if repository and comment_id:
            resource_id = f"{repository.id}:{pull_request.number}:comment:{comment_id}"

        fingerprint = build_fingerprint(event.platform, payload, event.delivery_id)
        return await self.suppressor.is_duplicate(event.platform, resource_id, event.event_name, fingerprint)
