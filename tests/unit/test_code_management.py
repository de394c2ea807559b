"""
Unit tests for the code-management facade and the REST platform clients.

Platform clients run against `httpx.MockTransport`, so no requests leave
the process.
"""

import asyncio
import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from review_gateway.models.code_management import FileContent, FileStatus
from review_gateway.models.platform import Platform
from review_gateway.models.pull_request import NormalizedPullRequest, NormalizedRepository, PullRequestState
from review_gateway.models.review_trigger import OrganizationAndTeamData
from review_gateway.services.code_management import (
    CodeManagementService,
    PermanentError,
    TransientError,
    build_ref_candidates,
)
from review_gateway.services.platforms.bitbucket_client import BitbucketClient
from review_gateway.services.platforms.github_client import GitHubClient
from review_gateway.services.platforms.gitlab_client import GitLabClient

ORG = OrganizationAndTeamData(organization_id="org-1", team_id="team-1")
REPO = NormalizedRepository(id="1001", name="api", full_name="acme/api")


def mock_http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestRefCandidates:
    """Test head/base/default ref ordering."""

    def test_order_and_dedup(self):
        pr = NormalizedPullRequest(number=1, head_ref="feature/x", base_ref="main")
        assert build_ref_candidates(pr, "main") == ["feature/x", "main"]

    def test_default_branch_from_pull_request(self):
        pr = NormalizedPullRequest(number=1, head_ref="feature/x", base_ref="release", default_branch="main")
        assert build_ref_candidates(pr) == ["feature/x", "release", "main"]

    def test_empty_refs_skipped(self):
        assert build_ref_candidates(NormalizedPullRequest(number=1), None) == []


class TestFacade:
    """Test routing and fallbacks of the facade."""

    @pytest.fixture
    def provider(self):
        return AsyncMock()

    @pytest.fixture
    def service(self, provider) -> CodeManagementService:
        return CodeManagementService({Platform.GITHUB: provider}, timeout_seconds=1.0)

    @pytest.mark.asyncio
    async def test_routes_to_platform_provider(self, service, provider):
        provider.get_default_branch.return_value = "main"

        assert await service.get_default_branch(Platform.GITHUB, ORG, REPO) == "main"
        provider.get_default_branch.assert_awaited_once_with(REPO)

    @pytest.mark.asyncio
    async def test_unconfigured_platform(self, service):
        assert await service.get_default_branch(Platform.GITLAB, ORG, REPO) is None
        assert await service.get_files_by_pull_request_id(Platform.GITLAB, ORG, REPO, 1) == []
        assert await service.get_commits_for_pull_request(Platform.GITLAB, ORG, REPO, 1) == []

    @pytest.mark.asyncio
    async def test_provider_error_returns_none(self, service, provider):
        provider.get_pull_request.side_effect = PermanentError("401")

        assert await service.get_pull_request_by_number(Platform.GITHUB, ORG, REPO, 1) is None

    @pytest.mark.asyncio
    async def test_provider_error_returns_empty_list(self, service, provider):
        provider.get_pull_request_files.side_effect = TransientError("503")

        assert await service.get_files_by_pull_request_id(Platform.GITHUB, ORG, REPO, 1) == []

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, provider):
        async def slow(repository):
            await asyncio.sleep(1)

        provider.get_repository_language.side_effect = slow
        service = CodeManagementService({Platform.GITHUB: provider}, timeout_seconds=0.05)

        assert await service.get_repository_language(Platform.GITHUB, ORG, REPO) is None

    @pytest.mark.asyncio
    async def test_content_falls_back_through_refs(self, service, provider):
        async def get_file_content(repository, path, ref):
            if ref == "feature/x":
                return None
            if ref == "release":
                raise TransientError("timeout")
            return FileContent(path=path, ref=ref, content="rules")

        provider.get_file_content.side_effect = get_file_content

        content = await service.get_repository_content_file(
            Platform.GITHUB, ORG, REPO, "CLAUDE.md", ["feature/x", "release", "main"]
        )

        assert content.ref == "main"
        assert provider.get_file_content.await_count == 3

    @pytest.mark.asyncio
    async def test_content_missing_everywhere(self, service, provider):
        provider.get_file_content.return_value = None

        assert await service.get_repository_content_file(
            Platform.GITHUB, ORG, REPO, "CLAUDE.md", ["a", "b"]
        ) is None


class TestGitHubClient:
    """Test the GitHub REST client."""

    @pytest.mark.asyncio
    async def test_get_pull_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/acme/api/pulls/42"
            assert request.headers["Authorization"] == "Bearer t0ken"
            return httpx.Response(200, json={
                "number": 42,
                "state": "closed",
                "merged": True,
                "head": {"ref": "feature/login", "sha": "abc"},
                "base": {"ref": "main", "repo": {"id": 1001, "default_branch": "main"}},
            })

        client = GitHubClient(token="t0ken", http_client=mock_http(handler))
        pr = await client.get_pull_request(REPO, 42)

        assert pr.state == PullRequestState.MERGED
        assert pr.head_ref == "feature/login"
        assert pr.default_branch == "main"

    @pytest.mark.asyncio
    async def test_pull_request_not_found(self):
        client = GitHubClient(token="t", http_client=mock_http(lambda request: httpx.Response(404)))
        assert await client.get_pull_request(REPO, 42) is None

    @pytest.mark.asyncio
    async def test_files_paginate(self):
        pages = {
            "1": [{"filename": f"f{i}.py", "status": "modified"} for i in range(100)],
            "2": [{"filename": "CLAUDE.md", "status": "renamed", "previous_filename": "OLD.md"}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages[request.url.params["page"]])

        client = GitHubClient(token="t", http_client=mock_http(handler))
        files = await client.get_pull_request_files(REPO, 42)

        assert len(files) == 101
        assert files[-1].status == FileStatus.RENAMED
        assert files[-1].previous_filename == "OLD.md"

    @pytest.mark.asyncio
    async def test_file_content_is_decoded(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["ref"] == "main"
            encoded = base64.b64encode(b"Use type hints.").decode()
            return httpx.Response(200, json={"type": "file", "content": encoded})

        client = GitHubClient(token="t", http_client=mock_http(handler))
        content = await client.get_file_content(REPO, "CLAUDE.md", "main")

        assert content.content == "Use type hints."
        assert content.ref == "main"

    @pytest.mark.asyncio
    async def test_unauthorized_is_permanent(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401)

        client = GitHubClient(token="t", http_client=mock_http(handler))
        with pytest.raises(PermanentError):
            await client.get_default_branch(REPO)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        responses = [httpx.Response(502), httpx.Response(200, json={"default_branch": "trunk"})]

        client = GitHubClient(token="t", http_client=mock_http(lambda request: responses.pop(0)))
        with patch("review_gateway.utils.resilience.asyncio.sleep", new=AsyncMock()):
            assert await client.get_default_branch(REPO) == "trunk"


class TestGitLabClient:
    """Test the GitLab REST client."""

    @pytest.mark.asyncio
    async def test_language_is_largest_share(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v4/projects/1001/languages"
            assert request.headers["PRIVATE-TOKEN"] == "glpat"
            return httpx.Response(200, json={"Python": 70.5, "Shell": 29.5})

        client = GitLabClient(token="glpat", http_client=mock_http(handler))
        assert await client.get_repository_language(REPO) == "Python"

    @pytest.mark.asyncio
    async def test_commits_oldest_first(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": "c3"}, {"id": "c2"}, {"id": "c1"}])

        client = GitLabClient(token="t", http_client=mock_http(handler))
        commits = await client.get_pull_request_commits(REPO, 7)

        assert [c.sha for c in commits] == ["c1", "c2", "c3"]

    @pytest.mark.asyncio
    async def test_diffs_map_statuses(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[
                {"new_path": "a.py", "old_path": "a.py", "new_file": True},
                {"new_path": "b.py", "old_path": "b.py", "deleted_file": True},
                {"new_path": "AGENTS.md", "old_path": "docs/AGENTS.md", "renamed_file": True},
            ])

        client = GitLabClient(token="t", http_client=mock_http(handler))
        files = await client.get_pull_request_files(REPO, 7)

        assert [f.status for f in files] == [FileStatus.ADDED, FileStatus.REMOVED, FileStatus.RENAMED]
        assert files[2].previous_filename == "docs/AGENTS.md"

    @pytest.mark.asyncio
    async def test_raw_file_missing(self):
        client = GitLabClient(token="t", http_client=mock_http(lambda request: httpx.Response(404)))
        assert await client.get_file_content(REPO, ".cursorrules", "main") is None


class TestBitbucketClient:
    """Test the Bitbucket REST client."""

    @pytest.mark.asyncio
    async def test_commits_follow_next_links(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json={"values": [{"hash": "c1"}]})
            return httpx.Response(200, json={
                "values": [{"hash": "c3"}, {"hash": "c2"}],
                "next": "https://api.bitbucket.org/2.0/repositories/acme/api/pullrequests/3/commits?page=2",
            })

        client = BitbucketClient(username="u", app_password="p", http_client=mock_http(handler))
        commits = await client.get_pull_request_commits(REPO, 3)

        assert [c.sha for c in commits] == ["c1", "c2", "c3"]

    @pytest.mark.asyncio
    async def test_default_branch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/2.0/repositories/acme/api"
            return httpx.Response(200, json={"mainbranch": {"name": "develop"}})

        client = BitbucketClient(username="u", app_password="p", http_client=mock_http(handler))
        assert await client.get_default_branch(REPO) == "develop"

    @pytest.mark.asyncio
    async def test_file_content_at_ref(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/2.0/repositories/acme/api/src/main/.windsurfrules"
            return httpx.Response(200, text="No globals.")

        client = BitbucketClient(username="u", app_password="p", http_client=mock_http(handler))
        content = await client.get_file_content(REPO, ".windsurfrules", "main")

        assert content.content == "No globals."
