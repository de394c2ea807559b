"""Normalized pull request, repository, user and comment models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PullRequestState(str, Enum):
    """Platform-agnostic pull request state."""

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class MappedAction(str, Enum):
    """Platform-agnostic webhook action."""

    OPENED = "opened"
    UPDATED = "updated"
    CLOSED = "closed"
    MERGED = "merged"
    REOPENED = "reopened"
    READY_FOR_REVIEW = "ready_for_review"
    COMMENT_CREATED = "comment_created"
    UNKNOWN = "unknown"


class NormalizedUser(BaseModel):
    """User reference as seen on any platform."""

    id: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None


class NormalizedUsers(BaseModel):
    """PR author and the user that triggered the event."""

    author: Optional[NormalizedUser] = None
    actor: Optional[NormalizedUser] = None


class NormalizedPullRequest(BaseModel):
    """Pull/merge request in a platform-agnostic shape."""

    number: int = Field(gt=0)
    title: str = ""
    body: str = ""
    state: PullRequestState = PullRequestState.OPEN
    is_draft: bool = False
    head_ref: str = ""
    base_ref: str = ""
    head_repo_full_name: Optional[str] = None
    base_repo_full_name: Optional[str] = None
    default_branch: Optional[str] = None
    head_sha: Optional[str] = None
    author: Optional[NormalizedUser] = None
    url: Optional[str] = None


class NormalizedRepository(BaseModel):
    """Repository in a platform-agnostic shape."""

    id: str = Field(min_length=1)
    name: str = ""
    full_name: str = ""
    language: Optional[str] = None


class NormalizedComment(BaseModel):
    """Comment left on a pull request."""

    id: Optional[str] = None
    body: str = ""
    author_id: Optional[str] = None
    is_deleted_action: bool = False
