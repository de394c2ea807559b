"""
Unit tests for branch review eligibility.
"""

import pytest

from review_gateway.models.branch_rule import RuleKind
from review_gateway.services.branch_review import (
    compile_rule,
    find_winning_rule,
    compile_rules,
    is_review_eligible,
    merge_base_branches,
    parse_branch_expression,
    validate_branch_expression,
)


class TestCompileRule:
    """Test pattern classification."""

    @pytest.mark.parametrize("raw,kind,pattern", [
        ("main", RuleKind.EXACT, "main"),
        ("feature/*", RuleKind.WILDCARD_SPECIFIC, "feature/*"),
        ("*", RuleKind.WILDCARD_GENERAL, "*"),
        ("contains:hotfix", RuleKind.CONTAINS, "hotfix"),
        ("!develop", RuleKind.EXCLUSION, "develop"),
    ])
    def test_kinds(self, raw, kind, pattern):
        rule = compile_rule(raw)
        assert rule.kind == kind
        assert rule.pattern == pattern
        assert rule.raw == raw

    def test_specificity_order(self):
        """Exclusions outrank exact, which outrank globs, contains and '*'."""
        scores = [compile_rule(p).specificity_score for p in ("!x", "x", "x/*", "contains:x", "*")]
        assert scores == sorted(scores, reverse=True)

    def test_blank_patterns_skipped(self):
        assert [r.raw for r in compile_rules(["main", "", "  "])] == ["main"]


class TestEligibility:
    """Test source→target review decisions."""

    def test_empty_patterns_always_eligible(self):
        for target in ("main", "develop", "feature/anything", ""):
            assert is_review_eligible("feature/x", target, []) is True

    @pytest.mark.parametrize("patterns", [
        ["*", "!release"],
        ["!release", "*"],
        ["release", "*", "!release"],
        ["!release", "release/*", "*"],
    ])
    def test_exclusion_always_wins(self, patterns):
        """An excluded target is never eligible, whatever the order."""
        assert is_review_eligible("feature/x", "release", patterns) is False

    def test_general_wildcard_matches_anything(self):
        assert is_review_eligible("x", "anything/not-feature", ["feature/*", "*"]) is True

    def test_no_matching_rule_is_not_eligible(self):
        assert is_review_eligible("x", "other", ["feature/*"]) is False

    def test_star_exclusions(self):
        patterns = ["*", "!main", "!develop"]
        assert is_review_eligible("feature/x", "main", patterns) is False
        assert is_review_eligible("feature/x", "staging", patterns) is True

    def test_mixed_inclusions(self):
        patterns = ["develop", "feature/*", "main"]
        assert is_review_eligible("x", "feature/abc", patterns) is True
        assert is_review_eligible("x", "staging", patterns) is False

    def test_source_branch_never_restricts(self):
        assert is_review_eligible("main", "develop", ["develop", "!main"]) is True

    def test_contains_rule(self):
        assert is_review_eligible("x", "release/hotfix-1", ["contains:hotfix"]) is True
        assert is_review_eligible("x", "release/1.0", ["contains:hotfix"]) is False

    def test_excluded_glob(self):
        patterns = ["*", "!release/*"]
        assert is_review_eligible("x", "release/1.0", patterns) is False
        assert is_review_eligible("x", "releases", patterns) is True

    def test_glob_is_anchored(self):
        assert is_review_eligible("x", "old-feature/a", ["feature/*"]) is False

    def test_dots_are_literal(self):
        assert is_review_eligible("x", "release-1x0", ["release-1.0"]) is False

    def test_winning_rule_prefers_exclusion_over_exact(self):
        rules = compile_rules(["main", "!main"])
        assert find_winning_rule("main", rules).kind == RuleKind.EXCLUSION


class TestBranchExpressions:
    """Test parsing and validation of comma-separated expressions."""

    def test_parse_expression(self):
        assert parse_branch_expression("feature/*, !==develop, =main") == ["feature/*", "!develop", "main"]

    def test_parse_empty_expression(self):
        assert parse_branch_expression("") == []
        assert parse_branch_expression(None) == []

    def test_valid_expression(self):
        result = validate_branch_expression("feature/*, !develop, contains:hotfix, main")
        assert result.is_valid is True
        assert result.errors == []

    def test_duplicate_rules(self):
        result = validate_branch_expression("main, main")
        assert result.is_valid is False
        assert "Duplicate rules found" in result.errors

    def test_double_star_rejected(self):
        result = validate_branch_expression("feature/**")
        assert result.is_valid is False
        assert any('"**"' in error for error in result.errors)

    def test_empty_exclusion_rejected(self):
        result = validate_branch_expression("main, !")
        assert result.is_valid is False
        assert any("cannot be empty" in error for error in result.errors)

    def test_invalid_characters(self):
        result = validate_branch_expression("bad branch?")
        assert result.is_valid is False
        assert any("invalid characters" in error for error in result.errors)

    def test_too_long(self):
        result = validate_branch_expression("a" * 101)
        assert result.is_valid is False


class TestMergeBaseBranches:
    """Test merging configured patterns with the repository base branch."""

    def test_adds_api_base_branch(self):
        assert merge_base_branches(["develop"], "main") == ["develop", "main"]

    def test_excluded_base_branch_not_added(self):
        assert merge_base_branches(["!main"], "main") == ["!main"]

    def test_inclusion_and_exclusion_cancel(self):
        assert merge_base_branches(["release", "!release"], None) == []

    def test_duplicates_removed(self):
        assert merge_base_branches(["main", "main"], "main") == ["main"]

    def test_default_branch_reviewed_with_restrictive_config(self):
        patterns = merge_base_branches(["develop"], "main")
        assert is_review_eligible("feature/x", "main", patterns) is True
        assert is_review_eligible("feature/x", "staging", patterns) is False
