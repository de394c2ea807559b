"""Bitbucket Cloud webhook payload mapper.

Payloads must go through `strip_curly_braces_from_uuids` before mapping.
"""

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

_EVENT_ACTIONS = {
    "pullrequest:created": MappedAction.OPENED,
    "pullrequest:updated": MappedAction.UPDATED,
    "pullrequest:fulfilled": MappedAction.MERGED,
    "pullrequest:rejected": MappedAction.CLOSED,
    "pullrequest:comment_created": MappedAction.COMMENT_CREATED,
}

_STATES = {
    "OPEN": PullRequestState.OPEN,
    "MERGED": PullRequestState.MERGED,
    "DECLINED": PullRequestState.CLOSED,
    "SUPERSEDED": PullRequestState.CLOSED,
}


def _map_user(user: Any) -> Optional[NormalizedUser]:
    if not isinstance(user, dict):
        return None
    return safe_build(
        NormalizedUser,
        id=as_str(user.get("uuid") or user.get("account_id")),
        username=as_str(user.get("nickname") or user.get("username")),
        display_name=as_str(user.get("display_name")),
    )


class BitbucketEventMapper:
    """Maps Bitbucket `pullrequest:*` payloads."""

    def map_action(self, payload: Dict[str, Any], event_name: str) -> Optional[MappedAction]:
        return _EVENT_ACTIONS.get(event_name)

    def map_pull_request_number(self, payload: Dict[str, Any]) -> Optional[int]:
        return to_positive_int(dig(payload, "pullrequest", "id"))

    def map_pull_request(self, payload: Dict[str, Any]) -> Optional[NormalizedPullRequest]:
        pull_request = payload.get("pullrequest")
        if not isinstance(pull_request, dict):
            return None

        number = to_positive_int(pull_request.get("id"))
        if number is None:
            return None

        return safe_build(
            NormalizedPullRequest,
            number=number,
            title=pull_request.get("title") or "",
            body=pull_request.get("description") or "",
            state=_STATES.get(as_str(pull_request.get("state")), PullRequestState.OPEN),
            is_draft=bool(pull_request.get("draft", False)),
            head_ref=dig(pull_request, "source", "branch", "name") or "",
            base_ref=dig(pull_request, "destination", "branch", "name") or "",
            head_repo_full_name=dig(pull_request, "source", "repository", "full_name"),
            base_repo_full_name=(
                dig(pull_request, "destination", "repository", "full_name")
                or dig(payload, "repository", "full_name")
            ),
            default_branch=dig(payload, "repository", "mainbranch", "name"),
            head_sha=dig(pull_request, "source", "commit", "hash"),
            author=_map_user(pull_request.get("author")),
            url=dig(pull_request, "links", "html", "href"),
        )

    def map_repository(self, payload: Dict[str, Any]) -> Optional[NormalizedRepository]:
        repository = payload.get("repository")
        if not isinstance(repository, dict):
            return None

        repository_id = as_str(repository.get("uuid"))
        if not repository_id:
            return None

        return safe_build(
            NormalizedRepository,
            id=repository_id.strip("{}"),
            name=repository.get("name") or "",
            full_name=repository.get("full_name") or repository.get("name") or "",
            language=repository.get("language") or None,
        )

    def map_users(self, payload: Dict[str, Any]) -> Optional[NormalizedUsers]:
        author = _map_user(dig(payload, "pullrequest", "author"))
        actor = _map_user(payload.get("actor"))
        if author is None and actor is None:
            return None
        return NormalizedUsers(author=author, actor=actor)

    def map_fingerprint(
        self, payload: Dict[str, Any], delivery_id: Optional[str] = None
    ) -> Dict[str, Any]:
        if delivery_id:
            return {"request_uuid": delivery_id}
        return {"updated_on": dig(payload, "pullrequest", "updated_on")}

    def map_comment(self, payload: Dict[str, Any]) -> Optional[NormalizedComment]:
        comment = payload.get("comment")
        if not isinstance(comment, dict):
            return None

        return safe_build(
            NormalizedComment,
            id=as_str(comment.get("id")),
            body=as_str(dig(comment, "content", "raw")) or "",
            author_id=as_str(dig(comment, "user", "uuid")),
            is_deleted_action=payload.get("action") == "deleted" or bool(comment.get("deleted")),
        )
