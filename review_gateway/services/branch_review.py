"""
Branch review eligibility.

Decides whether a pull request targeting a given branch should be reviewed,
from a list of configured branch patterns:

- ``main``           exact match on the target branch
- ``feature/*``      glob with a single-star wildcard over the whole name
- ``*``              any target branch
- ``contains:hot``   target branch contains the substring
- ``!release/*``     exclusion; always wins over inclusions

Only the target (base) branch is matched. The source branch never restricts
a review.
"""

import re
from typing import Iterable, List, Optional

from review_gateway.models.branch_rule import (
    BranchExpressionValidation,
    BranchReviewRule,
    RuleKind,
)
from review_gateway.utils.logging import get_logger

logger = get_logger(__name__)

EXCLUSION_PREFIX = "!"
CONTAINS_PREFIX = "contains:"
WILDCARD = "*"

SPECIFICITY_SCORES = {
    RuleKind.EXCLUSION: 100,
    RuleKind.EXACT: 10,
    RuleKind.WILDCARD_SPECIFIC: 8,
    RuleKind.CONTAINS: 5,
    RuleKind.WILDCARD_GENERAL: 1,
}

MAX_RULE_LENGTH = 100
_VALID_RULE_CHARACTERS = re.compile(r'^[a-zA-Z0-9/*\-_!=:.]+$')


def compile_rule(raw_pattern: str) -> BranchReviewRule:
    """
    Parse one raw pattern string into a rule.

    Args:
        raw_pattern: Pattern as configured (e.g. '!main', 'feature/*')

    Returns:
        Compiled BranchReviewRule
    """
    if raw_pattern.startswith(EXCLUSION_PREFIX):
        kind = RuleKind.EXCLUSION
        pattern = raw_pattern[len(EXCLUSION_PREFIX):]
    elif raw_pattern.startswith(CONTAINS_PREFIX):
        kind = RuleKind.CONTAINS
        pattern = raw_pattern[len(CONTAINS_PREFIX):]
    elif WILDCARD in raw_pattern:
        kind = RuleKind.WILDCARD_GENERAL if raw_pattern == WILDCARD else RuleKind.WILDCARD_SPECIFIC
        pattern = raw_pattern
    else:
        kind = RuleKind.EXACT
        pattern = raw_pattern

    return BranchReviewRule(
        raw=raw_pattern,
        pattern=pattern,
        kind=kind,
        specificity_score=SPECIFICITY_SCORES[kind],
    )


def compile_rules(patterns: Iterable[str]) -> List[BranchReviewRule]:
    """Compile raw patterns, skipping blanks."""
    return [compile_rule(p.strip()) for p in patterns if p and p.strip()]


def glob_matches(branch: str, pattern: str) -> bool:
    """
    Match a branch name against a glob where ``*`` spans any characters.

    The pattern is anchored at both ends; every other character is literal.
    """
    regex = ".*".join(re.escape(part) for part in pattern.split(WILDCARD))
    return re.fullmatch(regex, branch) is not None


def rule_matches(rule: BranchReviewRule, branch: str) -> bool:
    """
    Check whether a rule's pattern matches a branch.

    Exclusions match with the semantics of the pattern they wrap.
    """
    pattern = rule.pattern
    if rule.kind == RuleKind.EXCLUSION:
        # '!contains:x' and '!feature/*' keep the semantics of their inner pattern
        if pattern.startswith(CONTAINS_PREFIX):
            return pattern[len(CONTAINS_PREFIX):] in branch
        if WILDCARD in pattern:
            return glob_matches(branch, pattern)
        return branch == pattern
    if rule.kind == RuleKind.CONTAINS:
        return pattern in branch
    if rule.kind in (RuleKind.WILDCARD_GENERAL, RuleKind.WILDCARD_SPECIFIC):
        return glob_matches(branch, pattern)
    return branch == pattern


def find_winning_rule(
    target_branch: str,
    rules: List[BranchReviewRule]
) -> Optional[BranchReviewRule]:
    """
    Return the highest-scoring rule matching the target branch.

    On equal scores an exclusion is preferred, then the first configured
    rule. Exclusions always outscore inclusions, so among inclusions the
    choice never changes the outcome.
    """
    matches = [rule for rule in rules if rule_matches(rule, target_branch)]
    if not matches:
        return None

    return max(
        matches,
        key=lambda r: (r.specificity_score, r.kind == RuleKind.EXCLUSION),
    )


def is_review_eligible(source_branch: str, target_branch: str, patterns: List[str]) -> bool:
    """
    Decide whether a source→target transition warrants a review.

    Args:
        source_branch: Head branch of the pull request (never restricts)
        target_branch: Base branch the pull request merges into
        patterns: Configured raw branch patterns

    Returns:
        True when the PR should be reviewed
    """
    rules = compile_rules(patterns or [])
    if not rules:
        return True

    winner = find_winning_rule(target_branch or "", rules)
    if winner is None:
        logger.debug(
            f"No branch rule matches target '{target_branch}' (source '{source_branch}')"
        )
        return False

    eligible = winner.kind != RuleKind.EXCLUSION
    logger.debug(
        f"Branch rule '{winner.raw}' decided {'REVIEW' if eligible else 'NO_REVIEW'} "
        f"for {source_branch} -> {target_branch}"
    )
    return eligible


def parse_branch_expression(expression: Optional[str]) -> List[str]:
    """
    Split a comma-separated branch expression into raw patterns.

    Legacy prefixes are normalized: ``=main`` is an exact inclusion and
    ``!==develop`` an exclusion.

    Args:
        expression: e.g. 'feature/*, !develop, =main'

    Returns:
        List of raw pattern strings usable by is_review_eligible
    """
    if not expression or not expression.strip():
        return []

    patterns = []
    for rule in (r.strip() for r in expression.split(",")):
        if not rule:
            continue
        if rule.startswith("!=="):
            patterns.append(f"!{rule[3:]}")
        elif rule.startswith("="):
            patterns.append(rule[1:])
        else:
            patterns.append(rule)
    return patterns


def validate_branch_expression(expression: Optional[str]) -> BranchExpressionValidation:
    """
    Validate a comma-separated branch expression.

    Args:
        expression: Branch expression as entered in configuration

    Returns:
        BranchExpressionValidation with every problem found
    """
    if not expression or not expression.strip():
        return BranchExpressionValidation(is_valid=True, errors=[])

    rules = [r.strip() for r in expression.split(",") if r.strip()]
    errors: List[str] = []

    if len(set(rules)) != len(rules):
        errors.append("Duplicate rules found")

    for index, rule in enumerate(rules, start=1):
        if len(rule) > MAX_RULE_LENGTH:
            errors.append(f"Rule {index} exceeds {MAX_RULE_LENGTH} characters")
            continue

        if rule in (EXCLUSION_PREFIX, "=", CONTAINS_PREFIX):
            errors.append(f'Rule {index} is invalid: "{rule}" cannot be empty')
            continue

        if not _VALID_RULE_CHARACTERS.match(rule):
            errors.append(f'Rule {index} contains invalid characters: "{rule}"')
            continue

        if "**" in rule:
            errors.append(f'Rule {index} is invalid: "**" is not allowed')

    return BranchExpressionValidation(is_valid=not errors, errors=errors)


def merge_base_branches(configured_branches: List[str], api_base_branch: Optional[str]) -> List[str]:
    """
    Merge configured patterns with the repository's own base branch.

    The repository base branch (usually the default branch) is always
    reviewed unless explicitly excluded. A pattern configured both as an
    inclusion and as an exclusion cancels out.

    Args:
        configured_branches: Patterns from the team configuration
        api_base_branch: Base branch reported by the platform

    Returns:
        Merged list of raw patterns, inclusions first
    """
    inclusions: List[str] = []
    exclusions: List[str] = []

    for branch in configured_branches:
        target = exclusions if branch.startswith(EXCLUSION_PREFIX) else inclusions
        if branch not in target:
            target.append(branch)

    if (
        api_base_branch
        and api_base_branch not in inclusions
        and f"{EXCLUSION_PREFIX}{api_base_branch}" not in exclusions
    ):
        inclusions.append(api_base_branch)

    merged = [b for b in inclusions if f"{EXCLUSION_PREFIX}{b}" not in exclusions]
    merged.extend(b for b in exclusions if b[len(EXCLUSION_PREFIX):] not in inclusions)
    return merged
