"""Bitbucket Cloud REST API (2.0) client for the code-management facade."""

from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from review_gateway.mappers.bitbucket import BitbucketEventMapper
from review_gateway.mappers.common import strip_curly_braces_from_uuids
from review_gateway.models.code_management import ChangedFile, FileContent, FileStatus, PullRequestCommit
from review_gateway.models.pull_request import NormalizedPullRequest, NormalizedRepository
from review_gateway.services.code_management import NotFoundError
from review_gateway.services.platforms.rest import RestApiClient
from review_gateway.utils.logging import get_logger
from review_gateway.utils.resilience import CircuitBreaker

logger = get_logger(__name__, platform="bitbucket")

PAGE_LEN = 50
MAX_PAGES = 30

_FILE_STATUSES = {
    "added": FileStatus.ADDED,
    "removed": FileStatus.REMOVED,
    "renamed": FileStatus.RENAMED,
}


class BitbucketClient(RestApiClient):
    """Reads repositories and pull requests from the Bitbucket Cloud API."""

    service_name = "bitbucket"

    def __init__(
        self,
        username: str,
        app_password: str,
        api_url: str = "https://api.bitbucket.org/2.0",
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(
            api_url,
            auth=httpx.BasicAuth(username, app_password),
            http_client=http_client,
            circuit_breaker=circuit_breaker,
        )
        self._mapper = BitbucketEventMapper()

    def _repo_path(self, repository: NormalizedRepository) -> str:
        return f"/repositories/{repository.full_name}"

    async def _paginate(self, path: str) -> AsyncIterator[Dict[str, Any]]:
        """Follow Bitbucket's `next` links."""
        url: Optional[str] = path
        params: Optional[Dict[str, Any]] = {"pagelen": PAGE_LEN}
        pages = 0
        while url and pages < MAX_PAGES:
            data = await self._get_json(url, params=params)
            for value in data.get("values", []):
                yield value
            url = data.get("next")
            # `next` already carries the query string
            params = None
            pages += 1

    async def get_default_branch(self, repository: NormalizedRepository) -> Optional[str]:
        data = await self._get_json(self._repo_path(repository))
        return (data.get("mainbranch") or {}).get("name")

    async def get_repository_language(self, repository: NormalizedRepository) -> Optional[str]:
        data = await self._get_json(self._repo_path(repository))
        return data.get("language") or None

    async def get_pull_request(
        self, repository: NormalizedRepository, number: int
    ) -> Optional[NormalizedPullRequest]:
        try:
            data = await self._get_json(f"{self._repo_path(repository)}/pullrequests/{number}")
        except NotFoundError:
            logger.warning(f"Pull request #{number} not found in {repository.full_name}")
            return None

        return self._mapper.map_pull_request(strip_curly_braces_from_uuids({"pullrequest": data}))

    async def get_pull_request_files(
        self, repository: NormalizedRepository, number: int
    ) -> List[ChangedFile]:
        files: List[ChangedFile] = []
        async for entry in self._paginate(f"{self._repo_path(repository)}/pullrequests/{number}/diffstat"):
            new = entry.get("new") or {}
            old = entry.get("old") or {}
            status = _FILE_STATUSES.get(entry.get("status"), FileStatus.MODIFIED)
            files.append(ChangedFile(
                filename=new.get("path") or old.get("path"),
                status=status,
                previous_filename=old.get("path") if status == FileStatus.RENAMED else None,
            ))
        return files

    async def get_pull_request_commits(
        self, repository: NormalizedRepository, number: int
    ) -> List[PullRequestCommit]:
        commits = [
            PullRequestCommit(sha=entry["hash"], message=entry.get("message"))
            async for entry in self._paginate(f"{self._repo_path(repository)}/pullrequests/{number}/commits")
        ]
        # Bitbucket lists newest first
        commits.reverse()
        return commits

    async def get_file_content(
        self, repository: NormalizedRepository, path: str, ref: str
    ) -> Optional[FileContent]:
        try:
            content = await self._get_text(f"{self._repo_path(repository)}/src/{ref}/{path}")
        except NotFoundError:
            return None
        return FileContent(path=path, ref=ref, content=content)
