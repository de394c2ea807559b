"""GitLab webhook payload mapper (`Merge Request Hook` and `Note Hook`)."""

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

_MERGE_REQUEST_ACTIONS = {
    "open": MappedAction.OPENED,
    "update": MappedAction.UPDATED,
    "close": MappedAction.CLOSED,
    "merge": MappedAction.MERGED,
    "reopen": MappedAction.REOPENED,
}

_STATES = {
    "opened": PullRequestState.OPEN,
    "reopened": PullRequestState.OPEN,
    "closed": PullRequestState.CLOSED,
    "locked": PullRequestState.CLOSED,
    "merged": PullRequestState.MERGED,
}


def _is_note(payload: Dict[str, Any]) -> bool:
    attributes = payload.get("object_attributes")
    return payload.get("object_kind") == "note" or (isinstance(attributes, dict) and "noteable_type" in attributes)


def _merge_request_attributes(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Note hooks carry the MR under `merge_request`, MR hooks under `object_attributes`."""
    attributes = payload.get("merge_request") if _is_note(payload) else payload.get("object_attributes")
    return attributes if isinstance(attributes, dict) else None


class GitLabEventMapper:
    """Maps GitLab merge request and note payloads."""

    def map_action(self, payload: Dict[str, Any], event_name: str) -> Optional[MappedAction]:
        if event_name == "Note Hook" or _is_note(payload):
            action = dig(payload, "object_attributes", "action") or "create"
            return MappedAction.COMMENT_CREATED if action == "create" else MappedAction.UNKNOWN

        action = dig(payload, "object_attributes", "action")
        if not action:
            return None
        return _MERGE_REQUEST_ACTIONS.get(as_str(action), MappedAction.UNKNOWN)

    def map_pull_request_number(self, payload: Dict[str, Any]) -> Optional[int]:
        attributes = _merge_request_attributes(payload) or {}
        return to_positive_int(attributes.get("iid"))

    def map_pull_request(self, payload: Dict[str, Any]) -> Optional[NormalizedPullRequest]:
        attributes = _merge_request_attributes(payload)
        if attributes is None:
            return None

        number = to_positive_int(attributes.get("iid"))
        if number is None:
            return None

        is_draft = attributes.get("draft")
        if is_draft is None:
            is_draft = attributes.get("work_in_progress", False)

        return safe_build(
            NormalizedPullRequest,
            number=number,
            title=attributes.get("title") or "",
            body=attributes.get("description") or "",
            state=_STATES.get(as_str(attributes.get("state")), PullRequestState.OPEN),
            is_draft=bool(is_draft),
            head_ref=attributes.get("source_branch") or "",
            base_ref=attributes.get("target_branch") or "",
            head_repo_full_name=dig(attributes, "source", "path_with_namespace"),
            base_repo_full_name=(
                dig(attributes, "target", "path_with_namespace")
                or dig(payload, "project", "path_with_namespace")
            ),
            default_branch=(
                dig(attributes, "target", "default_branch")
                or dig(payload, "project", "default_branch")
            ),
            head_sha=dig(attributes, "last_commit", "id"),
            author=self._map_author(payload, attributes),
            url=attributes.get("url"),
        )

    def map_repository(self, payload: Dict[str, Any]) -> Optional[NormalizedRepository]:
        project = payload.get("project")
        if not isinstance(project, dict):
            return None

        project_id = as_str(project.get("id"))
        if not project_id:
            return None

        return safe_build(
            NormalizedRepository,
            id=project_id,
            name=project.get("path") or project.get("name") or "",
            full_name=project.get("path_with_namespace") or project.get("name") or "",
            language=None,
        )

    def map_users(self, payload: Dict[str, Any]) -> Optional[NormalizedUsers]:
        attributes = _merge_request_attributes(payload) or {}
        author = self._map_author(payload, attributes)
        actor = self._map_user(payload.get("user"))
        if author is None and actor is None:
            return None
        return NormalizedUsers(author=author, actor=actor)

    def map_fingerprint(
        self, payload: Dict[str, Any], delivery_id: Optional[str] = None
    ) -> Dict[str, Any]:
        # GitLab's webhook UUID changes on manual redelivery, so it is not used
        attributes = payload.get("object_attributes") or {}
        return {
            "updated_at": attributes.get("updated_at"),
            "action": attributes.get("action"),
            "last_commit": dig(attributes, "last_commit", "id"),
        }

    def map_comment(self, payload: Dict[str, Any]) -> Optional[NormalizedComment]:
        if not _is_note(payload):
            return None

        attributes = payload.get("object_attributes")
        if not isinstance(attributes, dict):
            return None

        return safe_build(
            NormalizedComment,
            id=as_str(attributes.get("id")),
            body=as_str(attributes.get("note")) or "",
            author_id=as_str(attributes.get("author_id")) or as_str(dig(payload, "user", "id")),
            is_deleted_action=attributes.get("action") == "delete",
        )

    def _map_user(self, user: Any) -> Optional[NormalizedUser]:
        if not isinstance(user, dict):
            return None
        return safe_build(
            NormalizedUser,
            id=as_str(user.get("id")),
            username=as_str(user.get("username")),
            display_name=as_str(user.get("name")),
        )

    def _map_author(self, payload: Dict[str, Any], attributes: Dict[str, Any]) -> Optional[NormalizedUser]:
        author_id = as_str(attributes.get("author_id"))
        actor = self._map_user(payload.get("user"))
        # MR hooks only carry the author's id; reuse the actor's details when they match
        if actor is not None and (author_id is None or actor.id == author_id) and not _is_note(payload):
            return actor
        if author_id is None:
            return None
        return safe_build(NormalizedUser, id=author_id)
