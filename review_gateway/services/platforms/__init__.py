"""
Code-management provider clients, one per platform.
"""

from review_gateway.services.platforms.azure_repos_client import AzureReposClient, get_azure_repos_client
from review_gateway.services.platforms.bitbucket_client import BitbucketClient
from review_gateway.services.platforms.github_client import GitHubClient
from review_gateway.services.platforms.gitlab_client import GitLabClient

__all__ = [
    "AzureReposClient",
    "BitbucketClient",
    "GitHubClient",
    "GitLabClient",
    "get_azure_repos_client",
]
