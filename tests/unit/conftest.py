"""
Shared fixtures: one realistic webhook payload per platform.
"""

from typing import Any, Dict

import pytest


@pytest.fixture
def github_pr_payload() -> Dict[str, Any]:
    """GitHub `pull_request` opened payload."""
    return {
        "action": "opened",
        "number": 42,
        "pull_request": {
            "number": 42,
            "title": "Add login endpoint",
            "body": "Implements the login flow",
            "state": "open",
            "merged": False,
            "draft": False,
            "updated_at": "2026-03-01T10:00:00Z",
            "html_url": "https://github.com/acme/api/pull/42",
            "head": {"ref": "feature/login", "sha": "abc123", "repo": {"full_name": "acme/api"}},
            "base": {"ref": "main", "repo": {"full_name": "acme/api"}},
            "user": {"id": 7, "login": "octocat"},
        },
        "repository": {
            "id": 1001,
            "name": "api",
            "full_name": "acme/api",
            "default_branch": "main",
            "language": "Python",
        },
        "sender": {"id": 7, "login": "octocat"},
    }


@pytest.fixture
def github_comment_payload() -> Dict[str, Any]:
    """GitHub `issue_comment` created on a pull request."""
    return {
        "action": "created",
        "issue": {
            "number": 42,
            "pull_request": {"url": "https://api.github.com/repos/acme/api/pulls/42"},
            "user": {"id": 7, "login": "octocat"},
        },
        "comment": {"id": 900, "body": "@kody start-review", "user": {"id": 8, "login": "reviewer"}},
        "repository": {"id": 1001, "name": "api", "full_name": "acme/api", "default_branch": "main"},
        "sender": {"id": 8, "login": "reviewer"},
    }


@pytest.fixture
def gitlab_mr_payload() -> Dict[str, Any]:
    """GitLab `Merge Request Hook` open payload."""
    return {
        "object_kind": "merge_request",
        "user": {"id": 5, "username": "dev", "name": "Dev"},
        "project": {
            "id": 2002,
            "path": "api",
            "name": "api",
            "path_with_namespace": "acme/api",
            "default_branch": "main",
        },
        "object_attributes": {
            "iid": 7,
            "title": "Refactor auth",
            "description": "",
            "state": "opened",
            "action": "open",
            "source_branch": "feature/auth",
            "target_branch": "main",
            "draft": False,
            "author_id": 5,
            "last_commit": {"id": "c2"},
            "updated_at": "2026-03-01 10:00:00 UTC",
            "url": "https://gitlab.com/acme/api/-/merge_requests/7",
        },
        "changes": {},
    }


@pytest.fixture
def gitlab_note_payload() -> Dict[str, Any]:
    """GitLab `Note Hook` on a merge request."""
    return {
        "object_kind": "note",
        "user": {"id": 6, "username": "reviewer", "name": "Reviewer"},
        "project": {"id": 2002, "path": "api", "path_with_namespace": "acme/api"},
        "object_attributes": {
            "id": 31,
            "note": "@kody what does this change do?",
            "noteable_type": "MergeRequest",
            "action": "create",
            "author_id": 6,
        },
        "merge_request": {
            "iid": 7,
            "title": "Refactor auth",
            "state": "opened",
            "source_branch": "feature/auth",
            "target_branch": "main",
            "author_id": 5,
        },
    }


@pytest.fixture
def bitbucket_pr_payload() -> Dict[str, Any]:
    """Bitbucket `pullrequest:updated` payload, UUIDs still wrapped in braces."""
    return {
        "repository": {
            "uuid": "{1b2c3d4e-aaaa-bbbb-cccc-111122223333}",
            "name": "api",
            "full_name": "acme/api",
            "mainbranch": {"name": "main"},
        },
        "pullrequest": {
            "id": 3,
            "title": "Cache tokens",
            "description": "",
            "state": "OPEN",
            "draft": False,
            "updated_on": "2026-03-01T10:00:00Z",
            "source": {
                "branch": {"name": "feature/cache"},
                "commit": {"hash": "bb2"},
                "repository": {"full_name": "acme/api"},
            },
            "destination": {"branch": {"name": "main"}},
            "author": {"uuid": "{9f8e7d6c-1111-2222-3333-444455556666}", "display_name": "Dev"},
        },
        "actor": {"uuid": "{9f8e7d6c-1111-2222-3333-444455556666}", "display_name": "Dev"},
    }


@pytest.fixture
def azure_pr_payload() -> Dict[str, Any]:
    """Azure Repos `git.pullrequest.created` service hook payload."""
    return {
        "id": "evt-0001",
        "eventType": "git.pullrequest.created",
        "createdDate": "2026-03-01T10:00:00Z",
        "resource": {
            "pullRequestId": 11,
            "status": "active",
            "title": "Add retries",
            "description": "",
            "isDraft": False,
            "sourceRefName": "refs/heads/feature/retries",
            "targetRefName": "refs/heads/main",
            "lastMergeSourceCommit": {"commitId": "az1"},
            "createdBy": {"id": "u-1", "uniqueName": "dev@acme.com", "displayName": "Dev"},
            "repository": {
                "id": "repo-guid",
                "name": "api",
                "project": {"name": "Platform"},
                "defaultBranch": "refs/heads/main",
            },
        },
    }


@pytest.fixture
def azure_comment_payload(azure_pr_payload) -> Dict[str, Any]:
    """Azure Repos pull request comment service hook payload."""
    return {
        "id": "evt-0002",
        "eventType": "ms.vss-code.git-pullrequest-comment-event",
        "createdDate": "2026-03-01T10:05:00Z",
        "resource": {
            "comment": {
                "id": 4,
                "content": "@kody start-review",
                "author": {"id": "u-2", "displayName": "Reviewer"},
            },
            "pullRequest": azure_pr_payload["resource"],
        },
    }
