"""
Verification Scorer: Turn raw recognizer similarity into a user-facing percentage.

The recognizer reports an unbounded cosine similarity. The UI shows an
integer confidence in [0, 100] and classifies it against a user-chosen
threshold:

    confidence = floor(min(100, score / score_scale * 100))   if score > 0
               = 0                                           otherwise
    match      = confidence > threshold                       (equality is a mismatch)

There is no smoothing across samples: each sample fully replaces the last.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.errors import ValidationError
from core.models import MatchClass, VerificationSample

logger = logging.getLogger(__name__)

DEFAULT_SCORE_SCALE = 1.0
DEFAULT_THRESHOLD = 50
MIN_THRESHOLD = 20
MAX_THRESHOLD = 100


@dataclass(frozen=True)
class VerificationResult:
    """Confidence state derived from the latest verification sample."""
    confidence: int
    classification: MatchClass
    threshold: int

    @property
    def is_match(self) -> bool:
        return self.classification is MatchClass.MATCH


def compute_confidence(score: float, score_scale: float = DEFAULT_SCORE_SCALE) -> int:
    """
    Convert a raw similarity score to an integer percentage in [0, 100].

    Args:
        score: Raw similarity score from the recognizer.
        score_scale: Value of ``score`` that maps to 100%.

    Returns:
        Confidence percentage. Non-positive (and NaN) scores give 0,
        scores at or above ``score_scale`` give 100.
    """
    if score_scale <= 0:
        raise ValueError(f"score_scale must be positive, got {score_scale}")
    if not score > 0:
        return 0
    return int(math.floor(min(100.0, score / score_scale * 100.0)))


def classify(confidence: int, threshold: int) -> MatchClass:
    """MATCH iff confidence is strictly above the threshold."""
    return MatchClass.MATCH if confidence > threshold else MatchClass.MISMATCH


def validate_threshold(
    value: Any,
    min_threshold: int = MIN_THRESHOLD,
    max_threshold: int = MAX_THRESHOLD,
) -> int:
    """
    Check a threshold entered by the user.

    Accepts ints and integral floats (sliders report floats).

    Raises:
        ValidationError: If the value is not an integer in range.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Threshold must be an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"Threshold must be an integer, got {value!r}")
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"Threshold must be an integer, got {value!r}")
    if not min_threshold <= value <= max_threshold:
        raise ValidationError(
            f"Threshold must be between {min_threshold} and {max_threshold}, got {value}"
        )
    return value


class VerificationScorer:
    """
    Scores verification samples against a threshold.

    Args:
        config: Dictionary with optional keys:
            - score_scale: Raw score mapped to 100% (default 1.0)
            - default_threshold: Threshold used when none is given (default 50)
            - min_threshold / max_threshold: Accepted threshold range (20..100)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        if config is None:
            config = {}
        self.score_scale = float(config.get("score_scale", DEFAULT_SCORE_SCALE))
        self.min_threshold = int(config.get("min_threshold", MIN_THRESHOLD))
        self.max_threshold = int(config.get("max_threshold", MAX_THRESHOLD))
        self.default_threshold = self.validate_threshold(
            config.get("default_threshold", DEFAULT_THRESHOLD)
        )

        if self.score_scale <= 0:
            raise ValueError(f"score_scale must be positive, got {self.score_scale}")
        if self.score_scale != DEFAULT_SCORE_SCALE:
            logger.info(f"Verification scores scaled by 1/{self.score_scale}")

    def validate_threshold(self, value: Any) -> int:
        return validate_threshold(value, self.min_threshold, self.max_threshold)

    def confidence(self, score: float) -> int:
        return compute_confidence(score, self.score_scale)

    def score(
        self, sample: VerificationSample, threshold: Optional[int] = None
    ) -> VerificationResult:
        """
        Score one sample.

        Args:
            sample: The latest verification sample.
            threshold: Threshold to classify against; defaults to the
                       configured default.

        Returns:
            VerificationResult with confidence and classification.
        """
        if threshold is None:
            threshold = self.default_threshold
        confidence = self.confidence(sample.score)
        return VerificationResult(
            confidence=confidence,
            classification=classify(confidence, threshold),
            threshold=threshold,
        )
