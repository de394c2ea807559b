"""Comment command classification models."""

from enum import Enum

from pydantic import BaseModel


class CommandClassification(BaseModel):
    """What a PR comment body contains."""

    is_start_command: bool = False
    has_review_marker: bool = False
    is_mention: bool = False


class CommandDecision(str, Enum):
    """What to do with a classified comment."""

    START_REVIEW = "start_review"
    CHAT = "chat"
    IGNORE = "ignore"
