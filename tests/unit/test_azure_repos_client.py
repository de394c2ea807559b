"""Unit tests for the Azure Repos client."""

import pytest
from unittest.mock import Mock, patch
from azure.devops.v7_1.git.models import (
    GitCommitRef,
    GitPullRequest,
    GitRepository,
    IdentityRef,
)

from review_gateway.models.code_management import FileStatus
from review_gateway.models.pull_request import NormalizedRepository, PullRequestState
from review_gateway.services.code_management import NotFoundError, PermanentError, TransientError
from review_gateway.services.platforms.azure_repos_client import AzureReposClient

REPO = NormalizedRepository(id="repo-guid", name="api", full_name="Platform/api")


@pytest.fixture
def mock_git_client():
    """Create a mock GitClient."""
    return Mock()


@pytest.fixture
def client(mock_git_client):
    """Create AzureReposClient with a mocked SDK connection."""
    with patch('review_gateway.services.platforms.azure_repos_client.Connection') as mock_conn:
        mock_conn.return_value.clients.get_git_client.return_value = mock_git_client
        return AzureReposClient(
            organization_url="https://dev.azure.com/test-org",
            personal_access_token="test-pat",
            base_delay=0.01,
        )


@pytest.fixture
def mock_pr():
    """Create a mock GitPullRequest object."""
    pr = Mock(spec=GitPullRequest)
    pr.pull_request_id = 11
    pr.title = "Add retries"
    pr.description = "Retry transient failures"
    pr.status = "active"
    pr.is_draft = False
    pr.source_ref_name = "refs/heads/feature/retries"
    pr.target_ref_name = "refs/heads/main"
    pr.url = "https://dev.azure.com/test-org/_apis/git/pullRequests/11"

    author = Mock(spec=IdentityRef)
    author.id = "u-1"
    author.unique_name = "dev@acme.com"
    author.display_name = "Dev"
    pr.created_by = author

    commit = Mock(spec=GitCommitRef)
    commit.commit_id = "az1"
    pr.last_merge_source_commit = commit

    repository = Mock(spec=GitRepository)
    repository.default_branch = "refs/heads/main"
    pr.repository = repository
    return pr


class TestAzureReposClient:
    """Test suite for AzureReposClient."""

    def test_initialization(self):
        """Test client initialization."""
        with patch('review_gateway.services.platforms.azure_repos_client.Connection'):
            client = AzureReposClient(
                organization_url="https://dev.azure.com/test-org",
                personal_access_token="test-pat"
            )

            assert client.organization_url == "https://dev.azure.com/test-org"
            assert client.pat == "test-pat"
            assert client.max_retries == 3

    @pytest.mark.asyncio
    async def test_get_pull_request(self, client, mock_git_client, mock_pr):
        mock_git_client.get_pull_request.return_value = mock_pr

        pr = await client.get_pull_request(REPO, 11)

        assert pr.number == 11
        assert pr.state == PullRequestState.OPEN
        assert pr.head_ref == "feature/retries"
        assert pr.base_ref == "main"
        assert pr.default_branch == "main"
        assert pr.head_sha == "az1"
        assert pr.author.username == "dev@acme.com"

    @pytest.mark.asyncio
    async def test_get_pull_request_not_found(self, client, mock_git_client):
        mock_git_client.get_pull_request.side_effect = Exception("Pull request does not exist")

        assert await client.get_pull_request(REPO, 999) is None

    @pytest.mark.asyncio
    async def test_get_default_branch(self, client, mock_git_client):
        repository = Mock(spec=GitRepository)
        repository.default_branch = "refs/heads/develop"
        mock_git_client.get_repository.return_value = repository

        assert await client.get_default_branch(REPO) == "develop"

    @pytest.mark.asyncio
    async def test_get_pull_request_files(self, client, mock_git_client):
        mock_git_client.get_pull_request_iterations.return_value = [Mock(id=1), Mock(id=2)]
        changes = Mock()
        changes.change_entries = [
            Mock(item={"path": "/src/app.py"}, change_type="edit", original_path=None),
            Mock(item={"path": "/CLAUDE.md"}, change_type="edit, rename", original_path="/docs/CLAUDE.md"),
            Mock(item={"path": "/old.py"}, change_type="delete", original_path=None),
        ]
        mock_git_client.get_pull_request_iteration_changes.return_value = changes

        files = await client.get_pull_request_files(REPO, 11)

        assert [f.filename for f in files] == ["src/app.py", "CLAUDE.md", "old.py"]
        assert [f.status for f in files] == [FileStatus.MODIFIED, FileStatus.RENAMED, FileStatus.REMOVED]
        assert files[1].previous_filename == "docs/CLAUDE.md"
        assert mock_git_client.get_pull_request_iteration_changes.call_args.kwargs["iteration_id"] == 2

    @pytest.mark.asyncio
    async def test_get_pull_request_commits_oldest_first(self, client, mock_git_client):
        mock_git_client.get_pull_request_commits.return_value = [
            Mock(commit_id="c2", comment="second"),
            Mock(commit_id="c1", comment="first"),
        ]

        commits = await client.get_pull_request_commits(REPO, 11)

        assert [c.sha for c in commits] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_get_file_content(self, client, mock_git_client):
        mock_git_client.get_item_content.return_value = [b"line 1\n", b"line 2\n"]

        content = await client.get_file_content(REPO, ".cursorrules", "refs/heads/main")

        assert content.content == "line 1\nline 2\n"
        descriptor = mock_git_client.get_item_content.call_args.kwargs["version_descriptor"]
        assert descriptor.version == "main"

    @pytest.mark.asyncio
    async def test_get_file_content_not_found(self, client, mock_git_client):
        mock_git_client.get_item_content.side_effect = Exception("File not found")

        assert await client.get_file_content(REPO, "AGENTS.md", "main") is None

    @pytest.mark.asyncio
    async def test_retry_succeeds_on_second_attempt(self, client):
        mock_func = Mock(side_effect=[Exception("Temporary error"), "success"])

        assert await client._retry_with_backoff(mock_func) == "success"
        assert mock_func.call_count == 2

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self, client):
        mock_func = Mock(side_effect=Exception("unauthorized"))

        with pytest.raises(PermanentError):
            await client._retry_with_backoff(mock_func)
        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_not_found_error(self, client):
        mock_func = Mock(side_effect=Exception("not found"))

        with pytest.raises(NotFoundError):
            await client._retry_with_backoff(mock_func)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client):
        mock_func = Mock(side_effect=Exception("Temporary error"))

        with pytest.raises(TransientError):
            await client._retry_with_backoff(mock_func)
        assert mock_func.call_count == client.max_retries
