"""
Neighbor Predictor — performance estimate from similar historical entities.

Behavioral Contract:
- Prediction is the recency-weighted mean of neighbor outcomes
- Final score = alpha * neighbor prediction + (1 - alpha) * legacy score
- alpha is forced to 0 when the pool is smaller than min_neighbors or its
  mean similarity to the target is below min_similarity; the legacy score
  is then returned unchanged and fallback_triggered is set
- Otherwise alpha starts at base_alpha and is scaled down for small pools,
  weak similarity and high outcome variance
"""

import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional

from adgov_kernel.models.neighbor import (
    NeighborConfig,
    NeighborPrediction,
    NeighborRecord,
    PredictionBounds,
    TraitValue,
)
from adgov_kernel.neighbors.contrastive import analyze_traits
from adgov_kernel.neighbors.similarity import (
    days_between,
    hybrid_similarity,
    recency_weight,
)

logger = logging.getLogger(__name__)


class _ScoredNeighbor:
    def __init__(self, record: NeighborRecord, similarity: float, recency: float):
        self.record = record
        self.similarity = similarity
        self.recency = recency


def _std_dev(values: List[float]) -> float:
    """Sample standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / (len(values) - 1))


class NeighborPredictor:
    def __init__(self, config: Optional[NeighborConfig] = None):
        self.config = config or NeighborConfig()

    def _score(
        self,
        target_traits: Dict[str, TraitValue],
        target_embedding: Optional[List[float]],
        pool: List[NeighborRecord],
        now: datetime,
    ) -> List[_ScoredNeighbor]:
        return [
            _ScoredNeighbor(
                record=n,
                similarity=hybrid_similarity(
                    target_traits,
                    n.traits,
                    target_embedding,
                    n.embedding,
                    self.config.vector_weight,
                ),
                recency=recency_weight(
                    days_between(n.created_at, now), self.config.half_life_days
                ),
            )
            for n in pool
        ]

    def blend_alpha(self, scored: List[_ScoredNeighbor]) -> float:
        cfg = self.config
        alpha = cfg.base_alpha
        if cfg.adjust_for_neighbor_count:
            alpha *= 0.5 + 0.5 * min(1.0, len(scored) / cfg.saturation_neighbors)
        if cfg.adjust_for_similarity:
            mean_sim = sum(s.similarity for s in scored) / len(scored)
            alpha *= 0.7 + 0.3 * mean_sim
        if cfg.variance_penalty:
            std = _std_dev([s.record.outcome for s in scored])
            if std > cfg.max_std_dev_for_full_confidence * 2:
                alpha *= 0.7
        return max(0.0, min(1.0, alpha))

    def _confidence(self, scored: List[_ScoredNeighbor], std: float) -> float:
        cfg = self.config
        sample_factor = min(1.0, len(scored) / cfg.saturation_neighbors)
        similarity_factor = sum(s.similarity for s in scored) / len(scored)
        variance_factor = 1.0
        if cfg.variance_penalty and std > cfg.max_std_dev_for_full_confidence:
            variance_factor = cfg.max_std_dev_for_full_confidence / std
        recency_factor = sum(s.recency for s in scored) / len(scored)
        w = cfg.confidence_weights
        confidence = (
            sample_factor * w.sample
            + similarity_factor * w.similarity
            + variance_factor * w.variance
            + recency_factor * w.recency
        ) * 100
        return round(max(0.0, min(100.0, confidence)))

    @staticmethod
    def _bounds(outcomes: List[float], prediction: float, std: float) -> PredictionBounds:
        spread = std * 1.5 if len(outcomes) >= 10 else std * 2
        lower = max(0.0, min(outcomes), prediction - spread)
        upper = min(100.0, max(outcomes), prediction + spread)
        return PredictionBounds(lower=round(lower, 1), upper=round(upper, 1))

    def predict(
        self,
        target_traits: Dict[str, TraitValue],
        neighbor_pool: List[NeighborRecord],
        legacy_score: float = 50.0,
        target_embedding: Optional[List[float]] = None,
        now: Optional[datetime] = None,
    ) -> NeighborPrediction:
        cfg = self.config
        now = now or datetime.now(timezone.utc)
        scored = self._score(target_traits, target_embedding, neighbor_pool, now)

        mean_sim = (
            sum(s.similarity for s in scored) / len(scored) if scored else 0.0
        )

        fallback_reason = None
        if len(scored) < cfg.min_neighbors:
            fallback_reason = (
                f"Only {len(scored)} neighbors (minimum {cfg.min_neighbors})"
            )
        elif mean_sim < cfg.min_similarity:
            fallback_reason = (
                f"Mean similarity {mean_sim:.2f} below {cfg.min_similarity:g}"
            )

        if fallback_reason is not None:
            logger.debug(f"Neighbor prediction fell back to legacy: {fallback_reason}")
            return NeighborPrediction(
                prediction=round(legacy_score, 1),
                alpha_used=0.0,
                fallback_triggered=True,
                fallback_reason=fallback_reason,
                legacy_score=legacy_score,
                neighbor_count=len(scored),
                mean_similarity=round(mean_sim, 2),
            )

        total_weight = sum(s.recency for s in scored)
        if total_weight > 0:
            neighbor_prediction = (
                sum(s.record.outcome * s.recency for s in scored) / total_weight
            )
        else:
            neighbor_prediction = sum(s.record.outcome for s in scored) / len(scored)

        outcomes = [s.record.outcome for s in scored]
        std = _std_dev(outcomes)
        alpha = self.blend_alpha(scored)
        final = alpha * neighbor_prediction + (1 - alpha) * legacy_score

        return NeighborPrediction(
            prediction=round(final, 1),
            alpha_used=round(alpha, 4),
            fallback_triggered=False,
            neighbor_prediction=round(neighbor_prediction, 1),
            legacy_score=legacy_score,
            neighbor_count=len(scored),
            mean_similarity=round(mean_sim, 2),
            std_dev=round(std, 1),
            bounds=self._bounds(outcomes, neighbor_prediction, std),
            confidence=self._confidence(scored, std),
            trait_effects=analyze_traits(target_traits, neighbor_pool, cfg),
        )


def predict_neighbor(
    target_traits: Dict[str, TraitValue],
    neighbor_pool: List[NeighborRecord],
    config: Optional[NeighborConfig] = None,
    legacy_score: float = 50.0,
    now: Optional[datetime] = None,
) -> NeighborPrediction:
    return NeighborPredictor(config).predict(
        target_traits, neighbor_pool, legacy_score=legacy_score, now=now
    )
