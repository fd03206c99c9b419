"""Neighbor prediction models."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

TraitValue = Union[bool, int, float, str]


class PredictionConfidenceWeights(BaseModel):
    sample: float = Field(ge=0.0, le=1.0, default=0.35)
    similarity: float = Field(ge=0.0, le=1.0, default=0.35)
    variance: float = Field(ge=0.0, le=1.0, default=0.15)
    recency: float = Field(ge=0.0, le=1.0, default=0.15)


class NeighborConfig(BaseModel):
    half_life_days: float = Field(gt=0, default=30.0)
    min_neighbors: int = 5
    min_similarity: float = Field(ge=0.0, le=1.0, default=0.5)
    base_alpha: float = Field(ge=0.0, le=1.0, default=0.7)
    adjust_for_neighbor_count: bool = True
    adjust_for_similarity: bool = True
    variance_penalty: bool = True
    max_std_dev_for_full_confidence: float = 15.0
    min_samples_per_group: int = 3
    max_lift: float = 50.0
    significant_lift: float = 5.0
    vector_weight: float = Field(ge=0.0, le=1.0, default=0.6)
    # Neighbor count at which sample size stops adding to alpha and confidence
    saturation_neighbors: int = Field(gt=0, default=15)
    confidence_weights: PredictionConfidenceWeights = PredictionConfidenceWeights()
    # Parent prediction confidence (0-100) at which suggestions are skipped
    confident_prediction: float = Field(ge=0, le=100, default=80.0)


class NeighborRecord(BaseModel):
    """A historical entity with a known outcome (0-100 success score)."""

    id: str
    traits: Dict[str, TraitValue] = {}
    outcome: float = Field(ge=0, le=100)
    created_at: datetime
    embedding: Optional[List[float]] = Field(default=None, exclude=True)


class TraitRecommendation(str, Enum):
    USE = "use"
    AVOID = "avoid"
    NEUTRAL = "neutral"
    TEST = "test"


class TraitEffect(BaseModel):
    trait: str
    value: TraitValue
    lift: float
    mean_with: Optional[float] = None
    mean_without: Optional[float] = None
    n_with: int = 0
    n_without: int = 0
    is_significant: bool = False
    recommendation: TraitRecommendation = TraitRecommendation.TEST


class PredictionBounds(BaseModel):
    lower: float
    upper: float


class NeighborPrediction(BaseModel):
    prediction: float
    alpha_used: float = Field(ge=0.0, le=1.0)
    fallback_triggered: bool
    fallback_reason: Optional[str] = None
    neighbor_prediction: Optional[float] = None
    legacy_score: float
    neighbor_count: int = 0
    mean_similarity: float = 0.0
    std_dev: float = 0.0
    bounds: Optional[PredictionBounds] = None
    confidence: float = Field(ge=0, le=100, default=0)
    trait_effects: List[TraitEffect] = []
