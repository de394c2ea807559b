"""
Per-platform webhook payload mappers.

Each mapper turns a raw platform payload into the normalized models. Mappers
are plain classes sharing a structural interface; lookup is a dict keyed by
platform.
"""

from typing import Any, Dict, Optional, Protocol

from review_gateway.mappers.azure_repos import AzureReposEventMapper
from review_gateway.mappers.bitbucket import BitbucketEventMapper
from review_gateway.mappers.common import normalize_ref, strip_curly_braces_from_uuids
from review_gateway.mappers.github import GitHubEventMapper
from review_gateway.mappers.gitlab import GitLabEventMapper
from review_gateway.models.platform import Platform
from review_gateway.models.pull_request import (
    MappedAction,
    NormalizedComment,
    NormalizedPullRequest,
    NormalizedRepository,
    NormalizedUsers,
)


class PlatformEventMapper(Protocol):
    """Structural interface implemented by every platform mapper."""

    def map_action(self, payload: Dict[str, Any], event_name: str) -> Optional[MappedAction]: ...

    def map_pull_request_number(self, payload: Dict[str, Any]) -> Optional[int]: ...

    def map_pull_request(self, payload: Dict[str, Any]) -> Optional[NormalizedPullRequest]: ...

    def map_repository(self, payload: Dict[str, Any]) -> Optional[NormalizedRepository]: ...

    def map_users(self, payload: Dict[str, Any]) -> Optional[NormalizedUsers]: ...

    def map_comment(self, payload: Dict[str, Any]) -> Optional[NormalizedComment]: ...

    def map_fingerprint(
        self, payload: Dict[str, Any], delivery_id: Optional[str] = None
    ) -> Dict[str, Any]: ...


MAPPERS: Dict[Platform, PlatformEventMapper] = {
    Platform.GITHUB: GitHubEventMapper(),
    Platform.GITLAB: GitLabEventMapper(),
    Platform.BITBUCKET: BitbucketEventMapper(),
    Platform.AZURE_REPOS: AzureReposEventMapper(),
}


def get_mapped_platform(platform: Platform) -> Optional[PlatformEventMapper]:
    """Return the mapper for a platform, or None for unsupported platforms."""
    return MAPPERS.get(platform)


def prepare_payload(platform: Platform, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply platform-specific sanitization before any mapper call.

    Bitbucket payloads get their ``{uuid}`` values unwrapped; other
    platforms are returned unchanged.
    """
    if platform == Platform.BITBUCKET:
        return strip_curly_braces_from_uuids(payload)
    return payload


__all__ = [
    "PlatformEventMapper",
    "GitHubEventMapper",
    "GitLabEventMapper",
    "BitbucketEventMapper",
    "AzureReposEventMapper",
    "MAPPERS",
    "get_mapped_platform",
    "prepare_payload",
    "normalize_ref",
    "strip_curly_braces_from_uuids",
]
