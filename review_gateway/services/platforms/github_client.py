"""GitHub REST API client for the code-management facade."""

import base64
from typing import List, Optional

import httpx

from review_gateway.mappers.github import GitHubEventMapper
from review_gateway.models.code_management import ChangedFile, FileContent, FileStatus, PullRequestCommit
from review_gateway.models.pull_request import NormalizedPullRequest, NormalizedRepository
from review_gateway.services.code_management import NotFoundError
from review_gateway.services.platforms.rest import RestApiClient
from review_gateway.utils.logging import get_logger
from review_gateway.utils.resilience import CircuitBreaker

logger = get_logger(__name__, platform="github")

PER_PAGE = 100
MAX_PAGES = 30

_FILE_STATUSES = {
    "added": FileStatus.ADDED,
    "removed": FileStatus.REMOVED,
    "renamed": FileStatus.RENAMED,
}


class GitHubClient(RestApiClient):
    """Reads repositories and pull requests from the GitHub REST API."""

    service_name = "github"

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(
            api_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            http_client=http_client,
            circuit_breaker=circuit_breaker,
        )
        self._mapper = GitHubEventMapper()

    def _repo_path(self, repository: NormalizedRepository) -> str:
        return f"/repos/{repository.full_name}"

    async def get_default_branch(self, repository: NormalizedRepository) -> Optional[str]:
        data = await self._get_json(self._repo_path(repository))
        return data.get("default_branch")

    async def get_repository_language(self, repository: NormalizedRepository) -> Optional[str]:
        data = await self._get_json(self._repo_path(repository))
        return data.get("language")

    async def get_pull_request(
        self, repository: NormalizedRepository, number: int
    ) -> Optional[NormalizedPullRequest]:
        try:
            data = await self._get_json(f"{self._repo_path(repository)}/pulls/{number}")
        except NotFoundError:
            logger.warning(f"Pull request #{number} not found in {repository.full_name}")
            return None

        # The REST representation matches the webhook `pull_request` object
        return self._mapper.map_pull_request({
            "pull_request": data,
            "repository": (data.get("base") or {}).get("repo") or {},
        })

    async def get_pull_request_files(
        self, repository: NormalizedRepository, number: int
    ) -> List[ChangedFile]:
        files: List[ChangedFile] = []
        for page in range(1, MAX_PAGES + 1):
            batch = await self._get_json(
                f"{self._repo_path(repository)}/pulls/{number}/files",
                params={"per_page": PER_PAGE, "page": page},
            )
            for item in batch:
                files.append(ChangedFile(
                    filename=item["filename"],
                    status=_FILE_STATUSES.get(item.get("status"), FileStatus.MODIFIED),
                    previous_filename=item.get("previous_filename"),
                ))
            if len(batch) < PER_PAGE:
                break
        return files

    async def get_pull_request_commits(
        self, repository: NormalizedRepository, number: int
    ) -> List[PullRequestCommit]:
        commits: List[PullRequestCommit] = []
        for page in range(1, MAX_PAGES + 1):
            batch = await self._get_json(
                f"{self._repo_path(repository)}/pulls/{number}/commits",
                params={"per_page": PER_PAGE, "page": page},
            )
            for item in batch:
                commits.append(PullRequestCommit(
                    sha=item["sha"],
                    message=(item.get("commit") or {}).get("message"),
                ))
            if len(batch) < PER_PAGE:
                break
        return commits

    async def get_file_content(
        self, repository: NormalizedRepository, path: str, ref: str
    ) -> Optional[FileContent]:
        try:
            data = await self._get_json(
                f"{self._repo_path(repository)}/contents/{path}",
                params={"ref": ref},
            )
        except NotFoundError:
            return None

        if not isinstance(data, dict) or data.get("type") != "file":
            return None

        raw = base64.b64decode(data.get("content") or "")
        return FileContent(path=path, ref=ref, content=raw.decode("utf-8", errors="ignore"))
