"""Azure Repos service hook payload mapper (pull request and comment events)."""

from typing import Any, Dict, Optional

from review_gateway.mappers.common import as_str, dig, normalize_ref, safe_build, to_positive_int
from review_gateway.models.pull_request import (
    MappedAction,
    NormalizedComment,
    NormalizedPullRequest,
    NormalizedRepository,
    NormalizedUser,
    NormalizedUsers,
    PullRequestState,
)

COMMENT_EVENT = "ms.vss-code.git-pullrequest-comment-event"

_STATES = {
    "active": PullRequestState.OPEN,
    "completed": PullRequestState.MERGED,
    "abandoned": PullRequestState.CLOSED,
}


def _pull_request_resource(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Comment events nest the PR under `resource.pullRequest`."""
    resource = payload.get("resource")
    if not isinstance(resource, dict):
        return None
    pull_request = resource.get("pullRequest")
    return pull_request if isinstance(pull_request, dict) else resource


def _map_user(user: Any) -> Optional[NormalizedUser]:
    if not isinstance(user, dict):
        return None
    return safe_build(
        NormalizedUser,
        id=as_str(user.get("id")),
        username=as_str(user.get("uniqueName")),
        display_name=as_str(user.get("displayName")),
    )


class AzureReposEventMapper:
    """Maps `git.pullrequest.*` and pull request comment payloads."""

    def map_action(self, payload: Dict[str, Any], event_name: str) -> Optional[MappedAction]:
        event_type = payload.get("eventType") or event_name
        if not event_type:
            return None

        if event_type == COMMENT_EVENT:
            return MappedAction.COMMENT_CREATED
        if event_type == "git.pullrequest.created":
            return MappedAction.OPENED
        if event_type in ("git.pullrequest.updated", "git.pullrequest.merge.attempted"):
            status = (_pull_request_resource(payload) or {}).get("status")
            if status == "completed":
                return MappedAction.MERGED
            if status == "abandoned":
                return MappedAction.CLOSED
            return MappedAction.UPDATED
        return MappedAction.UNKNOWN

    def map_pull_request_number(self, payload: Dict[str, Any]) -> Optional[int]:
        return to_positive_int((_pull_request_resource(payload) or {}).get("pullRequestId"))

    def map_pull_request(self, payload: Dict[str, Any]) -> Optional[NormalizedPullRequest]:
        pull_request = _pull_request_resource(payload)
        if pull_request is None:
            return None

        number = to_positive_int(pull_request.get("pullRequestId"))
        if number is None:
            return None

        repository_name = dig(pull_request, "repository", "name")
        return safe_build(
            NormalizedPullRequest,
            number=number,
            title=pull_request.get("title") or "",
            body=pull_request.get("description") or "",
            state=_STATES.get(as_str(pull_request.get("status")), PullRequestState.OPEN),
            is_draft=bool(pull_request.get("isDraft", False)),
            head_ref=normalize_ref(pull_request.get("sourceRefName")) or "",
            base_ref=normalize_ref(pull_request.get("targetRefName")) or "",
            head_repo_full_name=repository_name,
            base_repo_full_name=repository_name,
            default_branch=normalize_ref(dig(pull_request, "repository", "defaultBranch")),
            head_sha=dig(pull_request, "lastMergeSourceCommit", "commitId"),
            author=_map_user(pull_request.get("createdBy")),
            url=dig(pull_request, "_links", "web", "href") or pull_request.get("url"),
        )

    def map_repository(self, payload: Dict[str, Any]) -> Optional[NormalizedRepository]:
        resource = payload.get("resource")
        if not isinstance(resource, dict):
            return None

        repository = dig(resource, "pullRequest", "repository") or resource.get("repository")
        if not isinstance(repository, dict):
            return None

        repository_id = as_str(repository.get("id"))
        if not repository_id:
            return None

        project = dig(repository, "project", "name")
        name = repository.get("name") or ""
        return safe_build(
            NormalizedRepository,
            id=repository_id,
            name=name,
            full_name=f"{project}/{name}" if project else name,
            language=None,
        )

    def map_users(self, payload: Dict[str, Any]) -> Optional[NormalizedUsers]:
        pull_request = _pull_request_resource(payload) or {}
        author = _map_user(pull_request.get("createdBy"))
        if author is None:
            return None
        actor = _map_user(dig(payload, "resource", "comment", "author")) or author
        return NormalizedUsers(author=author, actor=actor)

    def map_fingerprint(
        self, payload: Dict[str, Any], delivery_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Service hook notifications carry their own creation time and id."""
        return {"createdDate": payload.get("createdDate"), "id": payload.get("id")}

    def map_comment(self, payload: Dict[str, Any]) -> Optional[NormalizedComment]:
        comment = dig(payload, "resource", "comment")
        if not isinstance(comment, dict):
            return None

        return safe_build(
            NormalizedComment,
            id=as_str(comment.get("id")),
            body=as_str(comment.get("content")) or "",
            author_id=as_str(dig(comment, "author", "id")),
            is_deleted_action=payload.get("action") == "deleted" or bool(comment.get("isDeleted")),
        )
