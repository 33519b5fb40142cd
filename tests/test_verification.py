"""
Tests for the verification scorer.

This test suite verifies:
- Score to confidence conversion (clamping, flooring)
- Strict threshold classification
- Threshold validation

Run with: pytest tests/test_verification.py -v
"""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import ValidationError
from core.models import MatchClass, VerificationSample
from core.verification import (
    VerificationScorer,
    classify,
    compute_confidence,
    validate_threshold,
)


class TestComputeConfidence:
    """Tests for compute_confidence."""

    def test_typical_score(self):
        assert compute_confidence(0.42) == 42
        assert compute_confidence(0.91) == 91

    def test_floor_not_round(self):
        assert compute_confidence(0.499) == 49

    @pytest.mark.parametrize("score", [0.0, -0.3, -5.0, float("nan")])
    def test_non_positive_is_zero(self, score):
        assert compute_confidence(score) == 0

    @pytest.mark.parametrize("score", [1.0, 1.2, 37.5])
    def test_clamped_to_100(self, score):
        assert compute_confidence(score) == 100

    def test_score_scale(self):
        """A scale of 0.5 maps 0.25 to 50%."""
        assert compute_confidence(0.25, score_scale=0.5) == 50
        assert compute_confidence(0.6, score_scale=0.5) == 100

    def test_invalid_scale(self):
        with pytest.raises(ValueError):
            compute_confidence(0.5, score_scale=0)


class TestClassify:
    """Tests for classify."""

    def test_above_threshold_matches(self):
        assert classify(91, 80) is MatchClass.MATCH

    def test_below_threshold_mismatches(self):
        assert classify(42, 50) is MatchClass.MISMATCH

    def test_equal_is_mismatch(self):
        assert classify(50, 50) is MatchClass.MISMATCH
        assert classify(100, 100) is MatchClass.MISMATCH


class TestValidateThreshold:
    """Tests for validate_threshold."""

    @pytest.mark.parametrize("value", [20, 50, 100])
    def test_accepts_range(self, value):
        assert validate_threshold(value) == value

    def test_accepts_integral_float(self):
        """Sliders report floats."""
        result = validate_threshold(60.0)
        assert result == 60
        assert isinstance(result, int)

    @pytest.mark.parametrize("value", [19, 101, 0, -50])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(ValidationError):
            validate_threshold(value)

    @pytest.mark.parametrize("value", [55.5, "50", None, True])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            validate_threshold(value)

    def test_custom_range(self):
        assert validate_threshold(10, min_threshold=5, max_threshold=15) == 10
        with pytest.raises(ValidationError):
            validate_threshold(20, min_threshold=5, max_threshold=15)


class TestVerificationScorer:
    """Tests for VerificationScorer."""

    def test_defaults(self):
        scorer = VerificationScorer()
        assert scorer.score_scale == 1.0
        assert scorer.default_threshold == 50
        assert (scorer.min_threshold, scorer.max_threshold) == (20, 100)

    def test_score_with_default_threshold(self):
        result = VerificationScorer().score(VerificationSample(score=0.42))
        assert result.confidence == 42
        assert result.classification is MatchClass.MISMATCH
        assert result.threshold == 50
        assert not result.is_match

    def test_score_with_threshold(self):
        result = VerificationScorer().score(VerificationSample(score=0.91), threshold=80)
        assert result.confidence == 91
        assert result.is_match

    def test_config(self):
        scorer = VerificationScorer({"score_scale": 0.8, "default_threshold": 70})
        result = scorer.score(VerificationSample(score=0.4))
        assert result.confidence == 50
        assert result.threshold == 70

    def test_invalid_default_threshold(self):
        with pytest.raises(ValidationError):
            VerificationScorer({"default_threshold": 5})

    def test_invalid_scale(self):
        with pytest.raises(ValueError):
            VerificationScorer({"score_scale": -1.0})
