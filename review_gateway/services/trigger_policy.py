"""
Per-platform trigger rules.

Decides, for one pull request event, whether to run review automation,
persist state only, request issue generation from a closed pull request,
and sync repository rules after a merge. Each platform names its actions
differently, so every table below uses the platform's literal action names.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from review_gateway.mappers.common import dig
from review_gateway.models.platform import Platform
from review_gateway.models.pull_request import (
    MappedAction,
    NormalizedPullRequest,
    PullRequestState,
)
from review_gateway.models.code_management import StoredPullRequest
from review_gateway.models.review_trigger import TriggerAction, TriggerOrigin


# Raw actions that may start a review when the event comes from a webhook
AUTOMATION_ACTIONS = {
    "opened",
    "synchronize",
    "ready_for_review",
    "open",
    "update",
    "git.pullrequest.updated",
    "git.pullrequest.created",
}

GITHUB_REVIEW_ACTIONS = {"opened", "synchronize", "ready_for_review"}
GITLAB_SAVE_ONLY_ACTIONS = {"close", "merge", "update"}
BITBUCKET_UPDATED_EVENT = "pullrequest:updated"
BITBUCKET_AUTOMATION_EVENTS = {"pullrequest:created", BITBUCKET_UPDATED_EVENT}
AZURE_REVIEW_EVENTS = {"git.pullrequest.created", "git.pullrequest.updated"}
AZURE_MERGE_ATTEMPTED = "git.pullrequest.merge.attempted"

_TRIGGER_ACTIONS = {
    MappedAction.OPENED: TriggerAction.OPENED,
    MappedAction.UPDATED: TriggerAction.UPDATED,
    MappedAction.READY_FOR_REVIEW: TriggerAction.UPDATED,
    MappedAction.REOPENED: TriggerAction.UPDATED,
    MappedAction.CLOSED: TriggerAction.CLOSED,
    MappedAction.MERGED: TriggerAction.MERGED,
}


class TriggerDecision(BaseModel):
    """Side effects one pull request event should produce."""

    save_state: bool = False
    run_automation: bool = False
    generate_issues: bool = False
    sync_rules: bool = False
    reason: Optional[str] = None


def to_trigger_action(action: MappedAction, origin: TriggerOrigin = TriggerOrigin.WEBHOOK) -> TriggerAction:
    """Translate a mapped webhook action into the trigger vocabulary."""
    if origin == TriggerOrigin.COMMAND:
        return TriggerAction.COMMAND_INVOKED
    return _TRIGGER_ACTIONS.get(action, TriggerAction.UPDATED)


def raw_action(platform: Platform, event_name: str, payload: Dict[str, Any]) -> Optional[str]:
    """The platform's literal action name for an event."""
    if platform == Platform.GITHUB:
        return payload.get("action")
    if platform == Platform.GITLAB:
        return dig(payload, "object_attributes", "action")
    if platform == Platform.AZURE_REPOS:
        return payload.get("eventType") or event_name
    return event_name


def should_run_automation(
    platform: Platform,
    action: Optional[str],
    pull_request: NormalizedPullRequest,
    origin: TriggerOrigin = TriggerOrigin.WEBHOOK
) -> bool:
    """
    Final gate in front of the review automation.

    Commands always pass. Bitbucket has already filtered its events through
    `should_trigger_bitbucket`. Otherwise merged PRs and non-review actions
    are rejected.

    Args:
        platform: Source platform
        action: Literal platform action (see `raw_action`)
        pull_request: Normalized pull request
        origin: Where the trigger came from

    Returns:
        True if the automation should run
    """
    if origin == TriggerOrigin.COMMAND:
        return True
    if platform == Platform.BITBUCKET:
        return True
    if pull_request.state == PullRequestState.MERGED:
        return False
    return action in AUTOMATION_ACTIONS


def decide_github(action: Optional[str], pull_request: NormalizedPullRequest) -> TriggerDecision:
    """
    GitHub `pull_request` events.

    Every handled action saves state. `closed` requests issue generation,
    and a merged close also syncs rules.
    """
    decision = TriggerDecision(
        save_state=True,
        run_automation=should_run_automation(Platform.GITHUB, action, pull_request),
        reason=f"github action {action}",
    )
    if action == "closed":
        decision.generate_issues = True
        decision.sync_rules = pull_request.state == PullRequestState.MERGED
    return decision


def should_trigger_gitlab(payload: Dict[str, Any]) -> bool:
    """
    Whether a GitLab merge request event is significant.

    Rules, first match wins:
    1. `open` action
    2. a new commit (`last_commit.id` differs from `oldrev`)
    3. merged (state or action)
    4. closed (state or action)
    5. `update` that only touches the description: not significant
    6. `update` that moves the MR out of draft
    """
    attributes = payload.get("object_attributes") or {}
    changes = payload.get("changes") or {}
    action = attributes.get("action")

    if action == "open":
        return True

    last_commit_id = dig(attributes, "last_commit", "id")
    old_rev = attributes.get("oldrev")
    if last_commit_id and old_rev and last_commit_id != old_rev:
        return True

    if attributes.get("state") == "merged" or action == "merge":
        return True

    if attributes.get("state") == "closed" or action == "close":
        return True

    if action == "update" and changes.get("description"):
        return False

    draft_change = changes.get("draft")
    if (
        action == "update"
        and isinstance(draft_change, dict)
        and draft_change.get("previous") is True
        and draft_change.get("current") is False
    ):
        return True

    return False


def decide_gitlab(payload: Dict[str, Any], pull_request: NormalizedPullRequest) -> TriggerDecision:
    """GitLab `Merge Request Hook` events."""
    action = dig(payload, "object_attributes", "action")
    merged = action == "merge"

    if should_trigger_gitlab(payload):
        return TriggerDecision(
            save_state=True,
            run_automation=should_run_automation(Platform.GITLAB, action, pull_request),
            generate_issues=merged,
            sync_rules=merged,
            reason=f"gitlab action {action} is significant",
        )

    if action in GITLAB_SAVE_ONLY_ACTIONS:
        return TriggerDecision(
            save_state=True,
            generate_issues=merged,
            reason=f"gitlab action {action} saves state only",
        )

    return TriggerDecision(reason=f"gitlab action {action} ignored")


def should_trigger_bitbucket(
    event_name: str,
    pull_request: NormalizedPullRequest,
    stored: Optional[StoredPullRequest],
    commit_shas: Optional[List[str]],
    history_unavailable: bool = False
) -> bool:
    """
    Whether a Bitbucket pull request event is significant.

    For `pullrequest:updated`, a PR leaving draft is significant and an
    update whose latest commit was already seen is not. When the commit
    history could not be fetched, any open PR is significant.

    Args:
        event_name: Bitbucket event key
        pull_request: Normalized pull request
        stored: Previously saved state of this PR
        commit_shas: Commits of the PR, oldest first
        history_unavailable: True when fetching commits or stored state failed

    Returns:
        True if the event should trigger a review
    """
    is_open = pull_request.state == PullRequestState.OPEN

    if event_name == BITBUCKET_UPDATED_EVENT:
        if history_unavailable:
            return is_open

        was_draft = stored.is_draft if stored else False
        if is_open and was_draft and not pull_request.is_draft:
            return True

        if stored and is_open and commit_shas:
            if commit_shas[-1] in stored.commits:
                return False

    return is_open


def decide_bitbucket(
    event_name: str,
    pull_request: NormalizedPullRequest,
    should_trigger: bool
) -> TriggerDecision:
    """Bitbucket `pullrequest:*` events."""
    if should_trigger:
        return TriggerDecision(
            save_state=True,
            run_automation=event_name in BITBUCKET_AUTOMATION_EVENTS,
            reason=f"bitbucket {event_name} is significant",
        )

    closed = pull_request.state in (PullRequestState.CLOSED, PullRequestState.MERGED)
    return TriggerDecision(
        save_state=True,
        generate_issues=closed,
        sync_rules=pull_request.state == PullRequestState.MERGED,
        reason=f"bitbucket {event_name} saves state only",
    )


def decide_azure(event_name: str, pull_request: NormalizedPullRequest) -> TriggerDecision:
    """Azure Repos `git.pullrequest.*` events."""
    if event_name in AZURE_REVIEW_EVENTS:
        completed = pull_request.state == PullRequestState.MERGED
        return TriggerDecision(
            save_state=True,
            run_automation=should_run_automation(Platform.AZURE_REPOS, event_name, pull_request),
            generate_issues=pull_request.state != PullRequestState.OPEN,
            sync_rules=completed,
            reason=f"azure {event_name}",
        )

    if event_name == AZURE_MERGE_ATTEMPTED:
        return TriggerDecision(save_state=True, reason="azure merge attempted saves state only")

    return TriggerDecision(reason=f"azure {event_name} ignored")
