"""GitLab REST API (v4) client for the code-management facade."""

from typing import List, Optional
from urllib.parse import quote

import httpx

from review_gateway.mappers.common import as_str
from review_gateway.models.code_management import ChangedFile, FileContent, FileStatus, PullRequestCommit
from review_gateway.models.pull_request import (
    NormalizedPullRequest,
    NormalizedRepository,
    NormalizedUser,
    PullRequestState,
)
from review_gateway.services.code_management import NotFoundError
from review_gateway.services.platforms.rest import RestApiClient
from review_gateway.utils.logging import get_logger
from review_gateway.utils.resilience import CircuitBreaker

logger = get_logger(__name__, platform="gitlab")

PER_PAGE = 100
MAX_PAGES = 30

_STATES = {
    "opened": PullRequestState.OPEN,
    "closed": PullRequestState.CLOSED,
    "locked": PullRequestState.CLOSED,
    "merged": PullRequestState.MERGED,
}


class GitLabClient(RestApiClient):
    """Reads projects and merge requests from the GitLab REST API."""

    service_name = "gitlab"

    def __init__(
        self,
        token: str,
        api_url: str = "https://gitlab.com/api/v4",
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(
            api_url,
            headers={"PRIVATE-TOKEN": token},
            http_client=http_client,
            circuit_breaker=circuit_breaker,
        )

    def _project_path(self, repository: NormalizedRepository) -> str:
        return f"/projects/{quote(repository.id, safe='')}"

    async def get_default_branch(self, repository: NormalizedRepository) -> Optional[str]:
        data = await self._get_json(self._project_path(repository))
        return data.get("default_branch")

    async def get_repository_language(self, repository: NormalizedRepository) -> Optional[str]:
        """GitLab reports languages as percentages; the largest share wins."""
        languages = await self._get_json(f"{self._project_path(repository)}/languages")
        if not languages:
            return None
        return max(languages.items(), key=lambda item: item[1])[0]

    async def get_pull_request(
        self, repository: NormalizedRepository, number: int
    ) -> Optional[NormalizedPullRequest]:
        try:
            data = await self._get_json(f"{self._project_path(repository)}/merge_requests/{number}")
        except NotFoundError:
            logger.warning(f"Merge request !{number} not found in project {repository.id}")
            return None

        author = data.get("author") or {}
        return NormalizedPullRequest(
            number=data["iid"],
            title=data.get("title") or "",
            body=data.get("description") or "",
            state=_STATES.get(data.get("state"), PullRequestState.OPEN),
            is_draft=bool(data.get("draft", data.get("work_in_progress", False))),
            head_ref=data.get("source_branch") or "",
            base_ref=data.get("target_branch") or "",
            head_repo_full_name=repository.full_name,
            base_repo_full_name=repository.full_name,
            head_sha=data.get("sha"),
            author=NormalizedUser(
                id=as_str(author.get("id")),
                username=author.get("username"),
                display_name=author.get("name"),
            ),
            url=data.get("web_url"),
        )

    async def get_pull_request_files(
        self, repository: NormalizedRepository, number: int
    ) -> List[ChangedFile]:
        files: List[ChangedFile] = []
        for page in range(1, MAX_PAGES + 1):
            batch = await self._get_json(
                f"{self._project_path(repository)}/merge_requests/{number}/diffs",
                params={"per_page": PER_PAGE, "page": page},
            )
            for diff in batch:
                if diff.get("new_file"):
                    status = FileStatus.ADDED
                elif diff.get("deleted_file"):
                    status = FileStatus.REMOVED
                elif diff.get("renamed_file"):
                    status = FileStatus.RENAMED
                else:
                    status = FileStatus.MODIFIED

                files.append(ChangedFile(
                    filename=diff.get("new_path") or diff.get("old_path"),
                    status=status,
                    previous_filename=diff.get("old_path") if status == FileStatus.RENAMED else None,
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
                f"{self._project_path(repository)}/merge_requests/{number}/commits",
                params={"per_page": PER_PAGE, "page": page},
            )
            commits.extend(
                PullRequestCommit(sha=item["id"], message=item.get("message"))
                for item in batch
            )
            if len(batch) < PER_PAGE:
                break
        # GitLab lists newest first
        commits.reverse()
        return commits

    async def get_file_content(
        self, repository: NormalizedRepository, path: str, ref: str
    ) -> Optional[FileContent]:
        try:
            content = await self._get_text(
                f"{self._project_path(repository)}/repository/files/{quote(path, safe='')}/raw",
                params={"ref": ref},
            )
        except NotFoundError:
            return None
        return FileContent(path=path, ref=ref, content=content)
