"""Data models for the review webhook gateway."""

from .api_response import WebhookResponse
from .branch_rule import BranchExpressionValidation, BranchReviewRule, RuleKind
from .code_management import (
    ChangedFile,
    FileContent,
    FileStatus,
    PullRequestCommit,
    StoredPullRequest,
    TeamRepositoryConfig,
)
from .command import CommandClassification, CommandDecision
from .error import (
    ConfigurationNotFound,
    EnrichmentFailure,
    MappingFailure,
    ReviewNotActive,
    WebhookProcessingError,
)
from .platform import Platform, WebhookEvent
from .processing import ProcessingOutcome, ProcessingPhase
from .pull_request import (
    MappedAction,
    NormalizedComment,
    NormalizedPullRequest,
    NormalizedRepository,
    NormalizedUser,
    NormalizedUsers,
    PullRequestState,
)
from .review_trigger import (
    OrganizationAndTeamData,
    ReviewTrigger,
    TriggerAction,
    TriggerOrigin,
)

__all__ = [
    # Platform models
    "Platform",
    "WebhookEvent",
    # Normalized payload models
    "MappedAction",
    "NormalizedComment",
    "NormalizedPullRequest",
    "NormalizedRepository",
    "NormalizedUser",
    "NormalizedUsers",
    "PullRequestState",
    # Branch rule models
    "RuleKind",
    "BranchReviewRule",
    "BranchExpressionValidation",
    # Trigger models
    "OrganizationAndTeamData",
    "ReviewTrigger",
    "TriggerAction",
    "TriggerOrigin",
    # Code management models
    "ChangedFile",
    "FileContent",
    "FileStatus",
    "PullRequestCommit",
    "StoredPullRequest",
    "TeamRepositoryConfig",
    # Command models
    "CommandClassification",
    "CommandDecision",
    # Processing models
    "ProcessingOutcome",
    "ProcessingPhase",
    # Error models
    "WebhookProcessingError",
    "MappingFailure",
    "ConfigurationNotFound",
    "ReviewNotActive",
    "EnrichmentFailure",
    # API response models
    "WebhookResponse",
]
