"""
Code-management facade.

Single-purpose async calls against whichever platform hosts a repository.
Provider clients raise `CodeManagementError`s; the facade logs them and
returns None or an empty list so that callers can fall back.
"""

from typing import Dict, List, Optional, Protocol, Sequence

from review_gateway.models.code_management import ChangedFile, FileContent, PullRequestCommit
from review_gateway.models.platform import Platform
from review_gateway.models.pull_request import NormalizedPullRequest, NormalizedRepository
from review_gateway.models.review_trigger import OrganizationAndTeamData
from review_gateway.utils.logging import get_logger
from review_gateway.utils.resilience import call_with_timeout

logger = get_logger(__name__)


class CodeManagementError(Exception):
    """Base exception for code-management provider errors."""
    pass


class TransientError(CodeManagementError):
    """Transient error that may succeed on retry."""
    pass


class PermanentError(CodeManagementError):
    """Permanent error that won't succeed on retry."""
    pass


class NotFoundError(PermanentError):
    """The requested resource does not exist."""
    pass


class CodeManagementProvider(Protocol):
    """Operations every platform client implements."""

    async def get_default_branch(self, repository: NormalizedRepository) -> Optional[str]: ...

    async def get_pull_request(
        self, repository: NormalizedRepository, number: int
    ) -> Optional[NormalizedPullRequest]: ...

    async def get_pull_request_files(
        self, repository: NormalizedRepository, number: int
    ) -> List[ChangedFile]: ...

    async def get_pull_request_commits(
        self, repository: NormalizedRepository, number: int
    ) -> List[PullRequestCommit]: ...

    async def get_file_content(
        self, repository: NormalizedRepository, path: str, ref: str
    ) -> Optional[FileContent]: ...

    async def get_repository_language(self, repository: NormalizedRepository) -> Optional[str]: ...


class CodeManagementService:
    """
    Routes code-management calls to the provider of a platform.

    Every method takes the organization/team the call is made for, and
    returns None or an empty list instead of raising.
    """

    def __init__(
        self,
        providers: Dict[Platform, CodeManagementProvider],
        timeout_seconds: Optional[float] = None
    ):
        """
        Initialize the facade.

        Args:
            providers: Provider client per platform
            timeout_seconds: Per-call timeout. If None, will load from settings.
        """
        if timeout_seconds is None:
            from review_gateway.config import settings
            timeout_seconds = settings.enrichment_timeout_seconds

        self.providers = providers
        self.timeout_seconds = timeout_seconds

    def _provider(self, platform: Platform) -> Optional[CodeManagementProvider]:
        provider = self.providers.get(platform)
        if provider is None:
            logger.warning(
                f"No code-management provider configured for {platform.value}",
                extra={"platform": platform.value}
            )
        return provider

    async def get_default_branch(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository
    ) -> Optional[str]:
        """Default branch name of a repository, without `refs/heads/`."""
        provider = self._provider(platform)
        if provider is None:
            return None
        return await call_with_timeout(
            lambda: provider.get_default_branch(repository),
            self.timeout_seconds,
            f"get_default_branch({platform.value}, {repository.full_name or repository.id})",
        )

    async def get_pull_request_by_number(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        number: int
    ) -> Optional[NormalizedPullRequest]:
        """Fetch pull request details by number."""
        provider = self._provider(platform)
        if provider is None:
            return None
        return await call_with_timeout(
            lambda: provider.get_pull_request(repository, number),
            self.timeout_seconds,
            f"get_pull_request({platform.value}, #{number})",
        )

    async def get_files_by_pull_request_id(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        number: int
    ) -> List[ChangedFile]:
        """Files changed by a pull request."""
        provider = self._provider(platform)
        if provider is None:
            return []
        files = await call_with_timeout(
            lambda: provider.get_pull_request_files(repository, number),
            self.timeout_seconds,
            f"get_pull_request_files({platform.value}, #{number})",
        )
        return files or []

    async def get_commits_for_pull_request(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        number: int
    ) -> List[PullRequestCommit]:
        """Commits of a pull request, oldest first."""
        provider = self._provider(platform)
        if provider is None:
            return []
        commits = await call_with_timeout(
            lambda: provider.get_pull_request_commits(repository, number),
            self.timeout_seconds,
            f"get_pull_request_commits({platform.value}, #{number})",
        )
        return commits or []

    async def get_repository_content_file(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository,
        filename: str,
        ref_candidates: Sequence[str]
    ) -> Optional[FileContent]:
        """
        Fetch a file, trying each ref in order until one has it.

        A ref whose fetch fails or times out counts as unavailable.

        Args:
            platform: Source platform
            organization_and_team_data: Team the call is made for
            repository: Repository holding the file
            filename: Path of the file
            ref_candidates: Refs to try, in order

        Returns:
            FileContent from the first ref that has the file, else None
        """
        provider = self._provider(platform)
        if provider is None:
            return None

        for ref in ref_candidates:
            content = await call_with_timeout(
                lambda: provider.get_file_content(repository, filename, ref),
                self.timeout_seconds,
                f"get_file_content({platform.value}, {filename}@{ref})",
            )
            if content is not None:
                return content
            logger.debug(f"{filename} unavailable at {ref}, trying next ref")

        return None

    async def get_repository_language(
        self,
        platform: Platform,
        organization_and_team_data: OrganizationAndTeamData,
        repository: NormalizedRepository
    ) -> Optional[str]:
        """Primary language of a repository, if the platform reports one."""
        provider = self._provider(platform)
        if provider is None:
            return None
        return await call_with_timeout(
            lambda: provider.get_repository_language(repository),
            self.timeout_seconds,
            f"get_repository_language({platform.value}, {repository.full_name or repository.id})",
        )


def build_ref_candidates(
    pull_request: NormalizedPullRequest,
    default_branch: Optional[str] = None
) -> List[str]:
    """
    Refs to read PR files from: head, then base, then default branch.

    The head branch is often deleted once a PR is merged, so the base
    branch and the default branch act as fallbacks.
    """
    candidates: List[str] = []
    for ref in (pull_request.head_ref, pull_request.base_ref, default_branch or pull_request.default_branch):
        if ref and ref not in candidates:
            candidates.append(ref)
    return candidates


_code_management_service: Optional[CodeManagementService] = None


def get_code_management_service() -> CodeManagementService:
    """
    Get or create the global code-management facade.

    Only platforms with credentials in settings get a provider.

    Returns:
        CodeManagementService instance
    """
    global _code_management_service
    if _code_management_service is not None:
        return _code_management_service

    from review_gateway.config import settings

    providers: Dict[Platform, CodeManagementProvider] = {}

    if settings.github_token:
        from review_gateway.services.platforms.github_client import GitHubClient
        providers[Platform.GITHUB] = GitHubClient(
            token=settings.github_token,
            api_url=settings.github_api_url,
        )

    if settings.gitlab_token:
        from review_gateway.services.platforms.gitlab_client import GitLabClient
        providers[Platform.GITLAB] = GitLabClient(
            token=settings.gitlab_token,
            api_url=settings.gitlab_api_url,
        )

    if settings.bitbucket_username and settings.bitbucket_app_password:
        from review_gateway.services.platforms.bitbucket_client import BitbucketClient
        providers[Platform.BITBUCKET] = BitbucketClient(
            username=settings.bitbucket_username,
            app_password=settings.bitbucket_app_password,
            api_url=settings.bitbucket_api_url,
        )

    if settings.azure_devops_org and settings.azure_devops_pat:
        from review_gateway.services.platforms.azure_repos_client import get_azure_repos_client
        providers[Platform.AZURE_REPOS] = get_azure_repos_client()

    logger.info(f"Code-management providers configured: {sorted(p.value for p in providers)}")

    _code_management_service = CodeManagementService(providers)
    return _code_management_service
