"""Models returned by the code-management facade and configuration lookups."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from .review_trigger import OrganizationAndTeamData


class FileStatus(str, Enum):
    """Change status of a file in a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


class ChangedFile(BaseModel):
    """File touched by a pull request."""

    filename: str
    status: FileStatus = FileStatus.MODIFIED
    previous_filename: Optional[str] = None


class PullRequestCommit(BaseModel):
    """Commit belonging to a pull request."""

    sha: str
    message: Optional[str] = None


class FileContent(BaseModel):
    """Content of a repository file at a given ref."""

    path: str
    ref: str
    content: str


class StoredPullRequest(BaseModel):
    """Previously persisted pull request state."""

    number: int
    repository_id: str
    state: str
    is_draft: bool = False
    head_sha: Optional[str] = None
    commits: List[str] = []
    updated_at: Optional[datetime] = None


class TeamRepositoryConfig(BaseModel):
    """A team that has onboarded a repository."""

    organization_and_team_data: OrganizationAndTeamData
    review_active: bool = True
    base_branches: List[str] = []
