"""GitHub webhook payload mapper."""

from typing import Any, Dict, Optional

from review_gateway.mappers.common import as_str, dig, safe_build, to_positive_int
from review_gateway.models.pull_request import (
    MappedAction,
    NormalizedComment,
    NormalizedPullRequest,
    NormalizedRepository,
    NormalizedUser,
    NormalizedUsers,
    PullRequestState,
)

_PULL_REQUEST_ACTIONS = {
    "opened": MappedAction.OPENED,
    "synchronize": MappedAction.UPDATED,
    "reopened": MappedAction.REOPENED,
    "ready_for_review": MappedAction.READY_FOR_REVIEW,
}


def _map_user(user: Optional[Dict[str, Any]]) -> Optional[NormalizedUser]:
    if not isinstance(user, dict):
        return None
    return safe_build(
        NormalizedUser,
        id=as_str(user.get("id")),
        username=as_str(user.get("login")),
        display_name=as_str(user.get("name") or user.get("login")),
    )


class GitHubEventMapper:
    """Maps `pull_request`, `issue_comment` and `pull_request_review_comment` payloads."""

    def map_action(self, payload: Dict[str, Any], event_name: str) -> Optional[MappedAction]:
        action = payload.get("action")
        if not action:
            return None

        if event_name in ("issue_comment", "pull_request_review_comment"):
            return MappedAction.COMMENT_CREATED if action == "created" else MappedAction.UNKNOWN

        if action == "closed":
            merged = dig(payload, "pull_request", "merged") is True
            return MappedAction.MERGED if merged else MappedAction.CLOSED

        return _PULL_REQUEST_ACTIONS.get(as_str(action), MappedAction.UNKNOWN)

    def map_pull_request_number(self, payload: Dict[str, Any]) -> Optional[int]:
        return to_positive_int(
            dig(payload, "pull_request", "number")
            or payload.get("number")
            or dig(payload, "issue", "number")
        )

    def map_pull_request(self, payload: Dict[str, Any]) -> Optional[NormalizedPullRequest]:
        pull_request = payload.get("pull_request")
        if not isinstance(pull_request, dict):
            return None

        number = to_positive_int(pull_request.get("number"))
        if number is None:
            return None

        if pull_request.get("merged") is True:
            state = PullRequestState.MERGED
        elif pull_request.get("state") == "closed":
            state = PullRequestState.CLOSED
        else:
            state = PullRequestState.OPEN

        return safe_build(
            NormalizedPullRequest,
            number=number,
            title=pull_request.get("title") or "",
            body=pull_request.get("body") or "",
            state=state,
            is_draft=bool(pull_request.get("draft", False)),
            head_ref=dig(pull_request, "head", "ref") or "",
            base_ref=dig(pull_request, "base", "ref") or "",
            head_repo_full_name=dig(pull_request, "head", "repo", "full_name"),
            base_repo_full_name=dig(pull_request, "base", "repo", "full_name"),
            default_branch=dig(payload, "repository", "default_branch"),
            head_sha=dig(pull_request, "head", "sha"),
            author=_map_user(pull_request.get("user")),
            url=pull_request.get("html_url"),
        )

    def map_repository(self, payload: Dict[str, Any]) -> Optional[NormalizedRepository]:
        repository = payload.get("repository")
        if not isinstance(repository, dict):
            return None

        repository_id = as_str(repository.get("id"))
        if not repository_id:
            return None

        return safe_build(
            NormalizedRepository,
            id=repository_id,
            name=repository.get("name") or "",
            full_name=(
                dig(payload, "pull_request", "base", "repo", "full_name")
                or repository.get("full_name")
                or repository.get("name")
                or ""
            ),
            language=repository.get("language"),
        )

    def map_users(self, payload: Dict[str, Any]) -> Optional[NormalizedUsers]:
        author = _map_user(dig(payload, "pull_request", "user") or dig(payload, "issue", "user"))
        actor = _map_user(payload.get("sender"))
        if author is None and actor is None:
            return None
        return NormalizedUsers(author=author, actor=actor)

    def map_fingerprint(
        self, payload: Dict[str, Any], delivery_id: Optional[str] = None
    ) -> Dict[str, Any]:
        if delivery_id:
            return {"delivery_id": delivery_id}
        return {
            "action": payload.get("action"),
            "updated_at": dig(payload, "pull_request", "updated_at"),
        }

    def map_comment(self, payload: Dict[str, Any]) -> Optional[NormalizedComment]:
        comment = payload.get("comment")
        if not isinstance(comment, dict):
            return None

        return safe_build(
            NormalizedComment,
            id=as_str(comment.get("id")),
            body=as_str(comment.get("body")) or "",
            author_id=as_str(dig(comment, "user", "id")),
            is_deleted_action=payload.get("action") == "deleted",
        )
