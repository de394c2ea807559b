"""
Pull request comment command detection.

Comments are classified as an explicit review command, a bot-authored
comment (carries the review marker), or a mention addressed to the bot.
"""

import re
from typing import Optional

from review_gateway.models.command import CommandClassification, CommandDecision
from review_gateway.models.platform import Platform

START_REVIEW_COMMAND = re.compile(r'^\s*@kody\s+start-review', re.IGNORECASE)
REVIEW_MARKER = re.compile(r'<!--\s*kody-codereview\s*-->', re.IGNORECASE)
MENTION = re.compile(r'^\s*@kody\b(?!\s+start-review)', re.IGNORECASE)

# Bitbucket strips HTML comments, so bot comments are recognized by their footer
BITBUCKET_REVIEW_MARKER = re.compile(r'\U0001F44D|\U0001F44E|kody code-review', re.IGNORECASE)


def has_review_marker(body: str, platform: Optional[Platform] = None) -> bool:
    """Check whether a comment was produced by the review bot."""
    if platform == Platform.BITBUCKET:
        return bool(BITBUCKET_REVIEW_MARKER.search(body))
    return bool(REVIEW_MARKER.search(body))


def classify(body: Optional[str], platform: Optional[Platform] = None) -> CommandClassification:
    """
    Classify a comment body.

    Args:
        body: Comment text
        platform: Source platform, selects the review marker heuristic

    Returns:
        CommandClassification
    """
    if not body:
        return CommandClassification()

    return CommandClassification(
        is_start_command=bool(START_REVIEW_COMMAND.search(body)),
        has_review_marker=has_review_marker(body, platform),
        is_mention=bool(MENTION.search(body)),
    )


def decide(classification: CommandClassification) -> CommandDecision:
    """Map a classification to the action the gateway takes."""
    if classification.has_review_marker:
        return CommandDecision.IGNORE
    if classification.is_start_command:
        return CommandDecision.START_REVIEW
    if classification.is_mention:
        return CommandDecision.CHAT
    return CommandDecision.IGNORE
