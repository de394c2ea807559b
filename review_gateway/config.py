"""
Application configuration management.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (repository/team configuration)
    database_url: str = "mysql+aiomysql://root@localhost:3306/review_gateway"

    # Redis (dedup cache, PR state, automation queues)
    redis_url: str = "redis://localhost:6379/0"

    # GitHub
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    github_webhook_secret: Optional[str] = None

    # GitLab
    gitlab_token: Optional[str] = None
    gitlab_api_url: str = "https://gitlab.com/api/v4"
    gitlab_webhook_token: Optional[str] = None

    # Bitbucket
    bitbucket_username: Optional[str] = None
    bitbucket_app_password: Optional[str] = None
    bitbucket_api_url: str = "https://api.bitbucket.org/2.0"

    # Azure DevOps
    azure_devops_pat: Optional[str] = None
    azure_devops_org: Optional[str] = None

    # Webhook processing
    dedup_ttl_seconds: int = 60
    enrichment_timeout_seconds: float = 30.0
    pr_state_ttl_days: int = 30

    # Application
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
