"""
Repository rule file sync.

After a pull request is merged into the default branch, rule files it
touched (IDE/agent instruction files) are queued for the rules worker:
changed files with their content, removed or `@kody-ignore` files as
deletions.
"""

import fnmatch
import re
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from review_gateway.models.code_management import ChangedFile, FileStatus
from review_gateway.models.platform import Platform
from review_gateway.models.pull_request import NormalizedRepository
from review_gateway.models.review_trigger import OrganizationAndTeamData
from review_gateway.services.code_management import (
    CodeManagementService,
    build_ref_candidates,
    get_code_management_service,
)
from review_gateway.services.redis_client import RedisClient, get_redis_client
from review_gateway.utils.logging import get_logger

logger = get_logger(__name__)

RULE_FILE_PATTERNS = [
    ".cursorrules",
    ".cursor/rules/*",
    ".windsurfrules",
    "CLAUDE.md",
    "*/CLAUDE.md",
    "AGENTS.md",
    "*/AGENTS.md",
    ".github/copilot-instructions.md",
    ".kody/rules/*",
]

IGNORE_MARKER = re.compile(r'(?:^|[^a-zA-Z0-9._-])@kody-ignore(?![a-zA-Z0-9_-])', re.IGNORECASE)
MARKER_SCAN_LINES = 10


class RuleSyncOperation(str, Enum):
    """What the rules worker should do with a file."""

    UPSERT = "upsert"
    DELETE = "delete"


class RuleSyncJob(BaseModel):
    """One rule file change handed to the rules worker."""

    operation: RuleSyncOperation
    platform: Platform
    organization_and_team_data: OrganizationAndTeamData
    repository_id: str
    pull_request_number: int
    source_path: str
    previous_path: Optional[str] = None
    ref: Optional[str] = None
    content: Optional[str] = None


def is_rule_file(path: Optional[str]) -> bool:
    """Check whether a repository path is a rule file."""
    if not path:
        return False
    normalized = path.lstrip("/")
    return any(fnmatch.fnmatchcase(normalized, pattern) for pattern in RULE_FILE_PATTERNS)


def has_ignore_marker(content: str) -> bool:
    """
    Check for an `@kody-ignore` marker near the top or bottom of a file.

    Only the first and last lines are scanned so that prose mentioning the
    marker in the middle of a document does not count.
    """
    lines = content.strip().splitlines()
    if len(lines) <= 2 * MARKER_SCAN_LINES:
        candidates = lines
    else:
        candidates = lines[:MARKER_SCAN_LINES] + lines[-MARKER_SCAN_LINES:]
    return any(IGNORE_MARKER.search(line.strip()) for line in candidates)


class RuleSyncService:
    """Turns rule file changes from a merged pull request into rule sync jobs."""

    QUEUE_KEY = "job_queue:rule_sync"

    def __init__(
        self,
        code_management: Optional[CodeManagementService] = None,
        redis_client: Optional[RedisClient] = None
    ):
        self.code_management = code_management or get_code_management_service()
        self.redis_client = redis_client or get_redis_client()

    async def sync_from_changed_files(
        self,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        pull_request_number: int,
        files: List[ChangedFile],
        platform: Platform
    ) -> List[RuleSyncJob]:
        """
        Queue sync jobs for the rule files among a pull request's changes.

        Args:
            organization_and_team_data: Team owning the repository
            repository: Repository the pull request was merged into
            pull_request_number: Merged pull request
            files: Files changed by the pull request
            platform: Source platform

        Returns:
            The jobs that were queued
        """
        rule_changes = [
            f for f in files
            if is_rule_file(f.filename) or is_rule_file(f.previous_filename)
        ]
        if not rule_changes:
            logger.debug(f"No rule files changed in PR #{pull_request_number}")
            return []

        ref_candidates = await self._ref_candidates(
            platform, organization_and_team_data, repository, pull_request_number
        )

        jobs: List[RuleSyncJob] = []
        for changed in rule_changes:
            job = await self._build_job(
                changed,
                platform,
                organization_and_team_data,
                repository,
                pull_request_number,
                ref_candidates,
            )
            if job is None:
                continue
            await self.redis_client.push_job(self.QUEUE_KEY, job.model_dump(mode="json"))
            jobs.append(job)

        logger.info(
            f"Queued {len(jobs)} rule sync job(s) for PR #{pull_request_number}",
            extra={
                "platform": platform.value,
                "repository_id": repository.id,
                "pr_number": pull_request_number,
            }
        )
        return jobs

    async def _ref_candidates(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        pull_request_number: int
    ) -> List[str]:
        """Head ref, base ref, then default branch of the merged pull request."""
        pull_request = await self.code_management.get_pull_request_by_number(
            platform, organization_and_team_data, repository, pull_request_number
        )
        default_branch = await self.code_management.get_default_branch(
            platform, organization_and_team_data, repository
        )

        if pull_request is None:
            return [default_branch] if default_branch else []
        return build_ref_candidates(pull_request, default_branch)

    async def _build_job(
        self,
        changed: ChangedFile,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        pull_request_number: int,
        ref_candidates: List[str]
    ) -> Optional[RuleSyncJob]:
        base = dict(
            platform=platform,
            organization_and_team_data=organization_and_team_data,
            repository_id=repository.id,
            pull_request_number=pull_request_number,
            source_path=changed.filename,
            previous_path=changed.previous_filename,
        )

        if changed.status == FileStatus.REMOVED:
            return RuleSyncJob(operation=RuleSyncOperation.DELETE, **base)

        content = await self.code_management.get_repository_content_file(
            platform,
            organization_and_team_data,
            repository,
            changed.filename,
            ref_candidates,
        )
        if content is None or not content.content:
            logger.warning(f"Rule file {changed.filename} has no content on any ref, skipping")
            return None

        if has_ignore_marker(content.content):
            logger.info(f"Rule file {changed.filename} marked @kody-ignore, removing its rules")
            return RuleSyncJob(operation=RuleSyncOperation.DELETE, **base)

        return RuleSyncJob(
            operation=RuleSyncOperation.UPSERT,
            ref=content.ref,
            content=content.content,
            **base,
        )
