"""Branch review rule models."""

from enum import Enum
from typing import List

from pydantic import BaseModel


class RuleKind(str, Enum):
    """Kind of a branch pattern."""

    EXACT = "exact"
    WILDCARD_SPECIFIC = "wildcard_specific"
    WILDCARD_GENERAL = "wildcard_general"
    CONTAINS = "contains"
    EXCLUSION = "exclusion"


class BranchReviewRule(BaseModel):
    """A compiled branch pattern.

    For exclusions, ``pattern`` holds the pattern without its ``!`` prefix.
    """

    raw: str
    pattern: str
    kind: RuleKind
    specificity_score: int


class BranchExpressionValidation(BaseModel):
    """Result of validating a branch expression."""

    is_valid: bool
    errors: List[str] = []
