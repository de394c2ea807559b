"""
Azure Repos client for the code-management facade.

Uses the Azure DevOps Python SDK. SDK calls are synchronous, so they run in
the default thread pool executor.
"""

import asyncio
import time
from typing import Any, List, Optional
from azure.devops.connection import Connection
from azure.devops.v7_1.git import GitClient
from azure.devops.v7_1.git.models import GitPullRequest, GitVersionDescriptor
from msrest.authentication import BasicAuthentication

from review_gateway.mappers.common import as_str, normalize_ref
from review_gateway.models.code_management import ChangedFile, FileContent, FileStatus, PullRequestCommit
from review_gateway.models.pull_request import (
    NormalizedPullRequest,
    NormalizedRepository,
    NormalizedUser,
    PullRequestState,
)
from review_gateway.services.code_management import (
    CodeManagementError,
    NotFoundError,
    PermanentError,
    TransientError,
)
from review_gateway.utils.logging import get_logger, log_api_call
from review_gateway.utils.resilience import CircuitBreaker, create_code_management_circuit_breaker


logger = get_logger(__name__, platform="azure_repos")

_STATES = {
    "active": PullRequestState.OPEN,
    "completed": PullRequestState.MERGED,
    "abandoned": PullRequestState.CLOSED,
}


class AzureReposClient:
    """
    Reads repositories and pull requests from Azure DevOps.

    This component uses the Azure DevOps Python SDK to:
    - Resolve a repository's default branch
    - Fetch pull request details, changed files and commits
    - Fetch file content at a branch
    - Retry transient failures with exponential backoff
    """

    def __init__(
        self,
        organization_url: str,
        personal_access_token: str,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize the client with an Azure DevOps connection.

        Args:
            organization_url: Azure DevOps organization URL
            personal_access_token: PAT for authentication
            max_retries: Maximum number of retry attempts for transient failures
            base_delay: Base delay in seconds for exponential backoff
            max_delay: Maximum delay in seconds between retries
            circuit_breaker: Optional CircuitBreaker instance for fault tolerance
        """
        self.organization_url = organization_url
        self.pat = personal_access_token
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

        self.circuit_breaker = circuit_breaker or create_code_management_circuit_breaker("azure_repos")

        credentials = BasicAuthentication('', self.pat)
        self.connection = Connection(base_url=self.organization_url, creds=credentials)
        self.git_client: GitClient = self.connection.clients.get_git_client()

        logger.info(f"AzureReposClient initialized for organization: {self.organization_url}")

    async def _retry_with_backoff(self, func, *args, **kwargs):
        """
        Execute an SDK call with exponential backoff retry and circuit breaker.

        Args:
            func: SDK function to execute
            *args: Positional arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Function result

        Raises:
            TransientError: If all retries are exhausted
            PermanentError: If a permanent error occurs
        """
        async def _execute():
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, lambda: func(*args, **kwargs))

        last_exception = None
        start_time = time.time()
        endpoint = getattr(func, "__name__", "git_client")

        for attempt in range(self.max_retries):
            try:
                result = await self.circuit_breaker.call(_execute)

                log_api_call(
                    logger,
                    service="azure_devops",
                    endpoint=endpoint,
                    method="GET",
                    status_code=200,
                    duration_ms=(time.time() - start_time) * 1000
                )

                if attempt > 0:
                    logger.info(f"Retry succeeded on attempt {attempt + 1}")

                return result

            except Exception as e:
                last_exception = e
                error_msg = str(e).lower()

                if any(keyword in error_msg for keyword in ['unauthorized', 'forbidden', 'not found', 'does not exist', 'invalid']):
                    log_api_call(
                        logger,
                        service="azure_devops",
                        endpoint=endpoint,
                        method="GET",
                        duration_ms=(time.time() - start_time) * 1000,
                        error=str(e)
                    )
                    if 'not found' in error_msg or 'does not exist' in error_msg:
                        raise NotFoundError(f"Not found: {e}") from e
                    raise PermanentError(f"Permanent error: {e}") from e

                if attempt < self.max_retries - 1:
                    delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                    logger.warning(
                        f"Attempt {attempt + 1}/{self.max_retries} failed: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    log_api_call(
                        logger,
                        service="azure_devops",
                        endpoint=endpoint,
                        method="GET",
                        duration_ms=(time.time() - start_time) * 1000,
                        error=str(e)
                    )
                    logger.error(f"All {self.max_retries} retry attempts exhausted")

        raise TransientError(f"Failed after {self.max_retries} attempts: {last_exception}") from last_exception

    async def get_default_branch(self, repository: NormalizedRepository) -> Optional[str]:
        """
        Resolve the repository's default branch.

        Returns:
            Branch name without the `refs/heads/` prefix
        """
        repo = await self._retry_with_backoff(
            self.git_client.get_repository,
            repository_id=repository.id
        )
        return normalize_ref(repo.default_branch)

    async def get_repository_language(self, repository: NormalizedRepository) -> Optional[str]:
        # Azure Repos does not report a repository language
        return None

    async def get_pull_request(
        self, repository: NormalizedRepository, number: int
    ) -> Optional[NormalizedPullRequest]:
        """
        Retrieve pull request details.

        Raises:
            PermanentError: If access is denied
            TransientError: If API call fails after retries
        """
        try:
            pr: GitPullRequest = await self._retry_with_backoff(
                self.git_client.get_pull_request,
                repository_id=repository.id,
                pull_request_id=number
            )
        except NotFoundError:
            logger.warning(f"Pull request {number} not found in repository {repository.id}")
            return None

        created_by = pr.created_by
        last_source_commit = pr.last_merge_source_commit

        return NormalizedPullRequest(
            number=pr.pull_request_id,
            title=pr.title or "",
            body=pr.description or "",
            state=_STATES.get(str(pr.status).lower(), PullRequestState.OPEN),
            is_draft=bool(pr.is_draft),
            head_ref=normalize_ref(pr.source_ref_name) or "",
            base_ref=normalize_ref(pr.target_ref_name) or "",
            head_repo_full_name=repository.name or None,
            base_repo_full_name=repository.name or None,
            default_branch=normalize_ref(pr.repository.default_branch) if pr.repository else None,
            head_sha=last_source_commit.commit_id if last_source_commit else None,
            author=NormalizedUser(
                id=as_str(created_by.id),
                username=created_by.unique_name,
                display_name=created_by.display_name,
            ) if created_by else None,
            url=pr.url,
        )

    async def get_pull_request_files(
        self, repository: NormalizedRepository, number: int
    ) -> List[ChangedFile]:
        """Files changed in the latest iteration of a pull request."""
        iterations = await self._retry_with_backoff(
            self.git_client.get_pull_request_iterations,
            repository_id=repository.id,
            pull_request_id=number
        )
        if not iterations:
            return []

        changes = await self._retry_with_backoff(
            self.git_client.get_pull_request_iteration_changes,
            repository_id=repository.id,
            pull_request_id=number,
            iteration_id=iterations[-1].id
        )

        files: List[ChangedFile] = []
        for change in changes.change_entries or []:
            path = self._item_path(change.item)
            if not path:
                continue
            status = self._map_change_type(change.change_type)
            original_path = getattr(change, 'original_path', None)
            files.append(ChangedFile(
                filename=path.lstrip('/'),
                status=status,
                previous_filename=original_path.lstrip('/') if status == FileStatus.RENAMED and original_path else None,
            ))

        logger.info(f"Retrieved {len(files)} changed files for PR {number}")
        return files

    async def get_pull_request_commits(
        self, repository: NormalizedRepository, number: int
    ) -> List[PullRequestCommit]:
        commits = await self._retry_with_backoff(
            self.git_client.get_pull_request_commits,
            repository_id=repository.id,
            pull_request_id=number
        )
        result = [
            PullRequestCommit(sha=commit.commit_id, message=commit.comment)
            for commit in commits or []
        ]
        # Azure lists newest first
        result.reverse()
        return result

    async def get_file_content(
        self, repository: NormalizedRepository, path: str, ref: str
    ) -> Optional[FileContent]:
        """
        Retrieve file content at the tip of a branch.

        Returns:
            FileContent, or None if the file doesn't exist on that branch
        """
        try:
            content_stream = await self._retry_with_backoff(
                self.git_client.get_item_content,
                repository_id=repository.id,
                path=path,
                version_descriptor=GitVersionDescriptor(
                    version=normalize_ref(ref),
                    version_type="branch"
                )
            )
        except NotFoundError:
            return None

        content = b''.join(content_stream).decode('utf-8', errors='ignore')
        logger.debug(f"Retrieved {len(content)} bytes for {path}@{ref}")
        return FileContent(path=path, ref=ref, content=content)

    def _item_path(self, item: Any) -> Optional[str]:
        """Change entries carry the item either as a dict or as a model."""
        if isinstance(item, dict):
            return item.get('path')
        return getattr(item, 'path', None)

    def _map_change_type(self, azure_change_type: Any) -> FileStatus:
        """
        Map Azure DevOps change type to FileStatus.

        Azure DevOps change types are flag strings: add, edit, delete, rename,
        or combinations such as 'edit, rename'.
        """
        change_type_str = str(azure_change_type).lower()

        if 'delete' in change_type_str:
            return FileStatus.REMOVED
        if 'add' in change_type_str:
            return FileStatus.ADDED
        if 'rename' in change_type_str:
            return FileStatus.RENAMED
        return FileStatus.MODIFIED


def get_azure_repos_client() -> AzureReposClient:
    """
    Factory function to create AzureReposClient with settings from config.

    Returns:
        AzureReposClient instance configured with application settings
    """
    from review_gateway.config import settings

    if not settings.azure_devops_org or not settings.azure_devops_pat:
        raise CodeManagementError("Azure DevOps organization and PAT must be configured")

    return AzureReposClient(
        organization_url=f"https://dev.azure.com/{settings.azure_devops_org}",
        personal_access_token=settings.azure_devops_pat
    )
