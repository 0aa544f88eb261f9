"""
Tests for normalization and name similarity.
"""

import pytest
from decimal import Decimal

from surveylink.normalize import (
    is_blank,
    name_similarity,
    normalize_email,
    requires_manual_match,
)
from surveylink.stats import average_present, difference, round_half_up


class TestNormalizeEmail:
    """Test email normalization."""

    def test_lowercases_and_trims(self):
        assert normalize_email("  Ana@Example.ORG ") == "ana@example.org"

    def test_removes_inner_whitespace(self):
        assert normalize_email("ana @ example .org") == "ana@example.org"

    @pytest.mark.parametrize("value", [None, "", "   ", "\t\n"])
    def test_blank_is_empty(self, value):
        assert normalize_email(value) == ""


class TestManualMatchFlag:

    def test_question_mark_cohort(self):
        assert requires_manual_match("?") is True
        assert requires_manual_match(" ? ") is True

    def test_regular_cohort(self):
        assert requires_manual_match("C1") is False
        assert requires_manual_match(None) is False


class TestNameSimilarity:
    """Test the normalized edit-distance similarity."""

    def test_identical(self):
        assert name_similarity("Ana Silva", "Ana Silva") == 1.0

    def test_case_and_padding_ignored(self):
        assert name_similarity("  ana silva", "ANA SILVA ") == 1.0

    def test_one_insertion(self):
        assert name_similarity("Jon Smith", "John Smith") == pytest.approx(0.9)

    def test_one_substitution(self):
        assert name_similarity("Maria Lopez", "Maria Lopes") == pytest.approx(1 - 1 / 11)

    def test_threshold_boundary(self):
        assert name_similarity("abcde", "abcdx") == pytest.approx(0.8)

    def test_half_different(self):
        assert name_similarity("abcd", "abxy") == pytest.approx(0.5)

    @pytest.mark.parametrize("a,b", [(None, "Ana"), ("Ana", None), ("", "Ana"), ("  ", "Ana")])
    def test_missing_name_scores_zero(self, a, b):
        assert name_similarity(a, b) == 0.0

    def test_symmetric(self):
        assert name_similarity("Ana", "Anna") == name_similarity("Anna", "Ana")


class TestBlank:

    @pytest.mark.parametrize("value,expected", [(None, True), ("", True), ("  ", True), ("a", False)])
    def test_is_blank(self, value, expected):
        assert is_blank(value) is expected


class TestAverages:
    """Test averaging over present values."""

    def test_gaps_are_skipped(self):
        assert average_present([2, None, 4]) == Decimal("3.00")

    def test_nothing_present_is_none(self):
        assert average_present([None, None]) is None
        assert average_present([]) is None

    def test_zero_is_not_none(self):
        assert average_present([0, 0]) == Decimal("0.00")

    def test_half_up_rounding(self):
        assert round_half_up(Decimal("2.345")) == Decimal("2.35")
        assert round_half_up(Decimal("-0.125")) == Decimal("-0.13")

    def test_float_input_uses_shortest_repr(self):
        assert round_half_up(2.675) == Decimal("2.68")

    def test_difference(self):
        assert difference(Decimal("4.00"), Decimal("2.50")) == Decimal("1.50")
        assert difference(None, Decimal("2.50")) is None
        assert difference(Decimal("2.50"), None) is None
