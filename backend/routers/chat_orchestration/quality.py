"""
Retrieval quality assessment.

The tier depends only on the top-ranked record: the search service already
orders results, so a strong first hit is what makes an answer trustworthy.
max_score is reported for diagnostics and does not affect the tier.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

QUALITY_NONE = "none"
QUALITY_LOW = "low"
QUALITY_HIGH = "high"

DEFAULT_HIGH_THRESHOLD = 0.3


@dataclass
class QualityAssessment:
    quality: str = QUALITY_NONE
    first_score: float = 0.0
    max_score: float = 0.0
    count: int = 0
    scores: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quality": self.quality,
            "first_score": self.first_score,
            "max_score": self.max_score,
            "count": self.count,
            "scores": list(self.scores),
        }


class QualityAnalyzer:
    """Buckets a ranked result list into none / low / high."""

    def __init__(self, high_threshold: float = DEFAULT_HIGH_THRESHOLD):
        self.high_threshold = high_threshold

    def assess(self, records: Sequence) -> QualityAssessment:
        if not records:
            return QualityAssessment()

        scores = [float(getattr(r, "score", 0.0) or 0.0) for r in records]
        first_score = scores[0]
        quality = QUALITY_HIGH if first_score >= self.high_threshold else QUALITY_LOW

        return QualityAssessment(
            quality=quality,
            first_score=first_score,
            max_score=max(scores),
            count=len(scores),
            scores=scores,
        )
