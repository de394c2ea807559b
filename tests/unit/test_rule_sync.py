"""
Unit tests for rule file detection and rule sync job creation.
"""

import json
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import fakeredis
import pytest

from review_gateway.models.code_management import ChangedFile, FileContent, FileStatus
from review_gateway.models.platform import Platform
from review_gateway.models.pull_request import NormalizedPullRequest, NormalizedRepository
from review_gateway.models.review_trigger import OrganizationAndTeamData
from review_gateway.services.code_management import CodeManagementService
from review_gateway.services.redis_client import RedisClient
from review_gateway.services.rule_sync import (
    RuleSyncOperation,
    RuleSyncService,
    has_ignore_marker,
    is_rule_file,
)

ORG = OrganizationAndTeamData(organization_id="org-1", team_id="team-1")
REPO = NormalizedRepository(id="1001", name="api", full_name="acme/api")


@pytest.fixture
async def redis_client() -> AsyncGenerator[RedisClient, None]:
    """Create Redis client with fakeredis for testing."""
    client = RedisClient(redis_url="redis://localhost:6379/0")
    fake_redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    client._client = fake_redis

    yield client

    await fake_redis.flushdb()
    await fake_redis.aclose()


@pytest.fixture
def code_management():
    service = AsyncMock(spec=CodeManagementService)
    service.get_pull_request_by_number.return_value = NormalizedPullRequest(
        number=42, head_ref="feature/rules", base_ref="main"
    )
    service.get_default_branch.return_value = "main"
    service.get_repository_content_file.return_value = FileContent(
        path=".cursorrules", ref="feature/rules", content="Prefer small functions."
    )
    return service


@pytest.fixture
def service(code_management, redis_client) -> RuleSyncService:
    return RuleSyncService(code_management=code_management, redis_client=redis_client)


class TestRuleFileDetection:
    """Test rule file path matching."""

    @pytest.mark.parametrize("path", [
        ".cursorrules",
        ".cursor/rules/style.mdc",
        ".windsurfrules",
        "CLAUDE.md",
        "backend/CLAUDE.md",
        "AGENTS.md",
        ".github/copilot-instructions.md",
        ".kody/rules/naming.md",
    ])
    def test_rule_files(self, path):
        assert is_rule_file(path) is True

    @pytest.mark.parametrize("path", ["README.md", "src/app.py", "claude.md", "", None])
    def test_other_files(self, path):
        assert is_rule_file(path) is False


class TestIgnoreMarker:
    """Test the @kody-ignore marker scan."""

    def test_marker_in_header(self):
        assert has_ignore_marker("@kody-ignore\n# Rules\n- be nice") is True

    def test_marker_in_footer(self):
        body = "\n".join(f"line {i}" for i in range(40)) + "\n<!-- @kody-ignore -->"
        assert has_ignore_marker(body) is True

    def test_marker_in_middle_of_long_file(self):
        lines = [f"line {i}" for i in range(40)]
        lines[20] = "@kody-ignore"
        assert has_ignore_marker("\n".join(lines)) is False

    def test_marker_must_be_a_whole_token(self):
        assert has_ignore_marker("see user@kody-ignored for details") is False

    def test_no_marker(self):
        assert has_ignore_marker("# Rules") is False


class TestSyncFromChangedFiles:
    """Test rule sync job creation."""

    @pytest.mark.asyncio
    async def test_no_rule_files(self, service, code_management):
        files = [ChangedFile(filename="src/app.py")]

        assert await service.sync_from_changed_files(ORG, REPO, 42, files, Platform.GITHUB) == []
        code_management.get_pull_request_by_number.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_with_ref_candidates(self, service, code_management, redis_client):
        files = [ChangedFile(filename=".cursorrules"), ChangedFile(filename="src/app.py")]

        jobs = await service.sync_from_changed_files(ORG, REPO, 42, files, Platform.GITHUB)

        assert len(jobs) == 1
        assert jobs[0].operation == RuleSyncOperation.UPSERT
        assert jobs[0].ref == "feature/rules"
        assert jobs[0].content == "Prefer small functions."

        refs = code_management.get_repository_content_file.call_args.args[4]
        assert refs == ["feature/rules", "main"]

        assert await redis_client._client.llen(RuleSyncService.QUEUE_KEY) == 1
        queued = json.loads(await redis_client._client.lpop(RuleSyncService.QUEUE_KEY))
        assert queued["operation"] == "upsert"
        assert queued["source_path"] == ".cursorrules"

    @pytest.mark.asyncio
    async def test_removed_file_is_deleted_without_fetch(self, service, code_management):
        files = [ChangedFile(filename="AGENTS.md", status=FileStatus.REMOVED)]

        jobs = await service.sync_from_changed_files(ORG, REPO, 42, files, Platform.GITLAB)

        assert jobs[0].operation == RuleSyncOperation.DELETE
        code_management.get_repository_content_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_rename_away_from_rule_path(self, service):
        files = [ChangedFile(filename="docs/old-rules.md", status=FileStatus.RENAMED, previous_filename="CLAUDE.md")]

        jobs = await service.sync_from_changed_files(ORG, REPO, 42, files, Platform.GITHUB)

        assert len(jobs) == 1
        assert jobs[0].previous_path == "CLAUDE.md"

    @pytest.mark.asyncio
    async def test_ignore_marker_deletes(self, service, code_management):
        code_management.get_repository_content_file.return_value = FileContent(
            path="CLAUDE.md", ref="main", content="@kody-ignore\nstuff"
        )

        jobs = await service.sync_from_changed_files(
            ORG, REPO, 42, [ChangedFile(filename="CLAUDE.md")], Platform.GITHUB
        )

        assert jobs[0].operation == RuleSyncOperation.DELETE

    @pytest.mark.asyncio
    async def test_content_unavailable_skips(self, service, code_management, redis_client):
        code_management.get_repository_content_file.return_value = None

        jobs = await service.sync_from_changed_files(
            ORG, REPO, 42, [ChangedFile(filename=".windsurfrules")], Platform.BITBUCKET
        )

        assert jobs == []
        assert await redis_client._client.llen(RuleSyncService.QUEUE_KEY) == 0

    @pytest.mark.asyncio
    async def test_pull_request_unavailable_uses_default_branch(self, service, code_management):
        code_management.get_pull_request_by_number.return_value = None

        await service.sync_from_changed_files(
            ORG, REPO, 42, [ChangedFile(filename=".cursorrules")], Platform.GITHUB
        )

        assert code_management.get_repository_content_file.call_args.args[4] == ["main"]
