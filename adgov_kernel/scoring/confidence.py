"""
Confidence Scorer — how much evidence supports a recommendation.

confidence = w_dp * min(data_points / full_data_points, 1)
           + w_var * variance_score
           + w_comp * completeness
           + w_health * health_score / 100
           + w_hist * historical_success_rate

Pure. Inputs are clamped to their domains so the result stays in [0, 1].
"""

from typing import Optional

from adgov_kernel.models.agent import ConfidenceWeights
from adgov_kernel.models.recommendation import Evidence, VarianceLevel


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def calculate_confidence(
    data_points: int,
    variance: VarianceLevel,
    completeness: float,
    health_score: float,
    historical_success_rate: Optional[float] = None,
    weights: Optional[ConfidenceWeights] = None,
) -> float:
    """Combine evidence quality signals into a confidence in [0, 1], 2 d.p."""
    w = weights or ConfidenceWeights()
    hist = (
        w.default_historical_success
        if historical_success_rate is None
        else historical_success_rate
    )

    score = (
        w.data_points * _clamp(max(data_points, 0) / w.full_data_points)
        + w.variance * w.variance_scores.get(variance, 0.0)
        + w.completeness * _clamp(completeness)
        + w.health * _clamp(health_score / 100)
        + w.historical_success * _clamp(hist)
    )
    return round(_clamp(score), 2)


def confidence_label(score: float) -> str:
    if score >= 0.85:
        return "very_high"
    if score >= 0.7:
        return "high"
    if score >= 0.5:
        return "medium"
    if score >= 0.3:
        return "low"
    return "very_low"


class ConfidenceScorer:
    """Scores Evidence records with a fixed set of weights."""

    def __init__(self, weights: Optional[ConfidenceWeights] = None):
        self.weights = weights or ConfidenceWeights()

    def score(self, evidence: Evidence) -> float:
        return calculate_confidence(
            data_points=evidence.data_points,
            variance=evidence.variance,
            completeness=evidence.completeness,
            health_score=evidence.health_score,
            historical_success_rate=evidence.historical_success_rate,
            weights=self.weights,
        )
