"""Metric snapshots, data-health reports and historical benchmarks."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class EntityType(str, Enum):
    AD = "ad"
    ADSET = "adset"
    CAMPAIGN = "campaign"


class MetricSnapshot(BaseModel):
    """Aggregated performance of one entity over a date window."""

    entity_id: str
    entity_type: EntityType = EntityType.AD
    found: bool = True
    spend: Optional[float] = None
    impressions: Optional[int] = None
    clicks: Optional[int] = None
    conversions: Optional[int] = None
    cpa: Optional[float] = None
    roas: Optional[float] = None
    in_learning_phase: bool = False
    traits: Dict[str, str] = {}
    observed_at: Optional[datetime] = None

    def populated_fraction(self, metrics: List[str]) -> float:
        """Share of the requested metric fields that carry a value."""
        if not metrics:
            return 0.0
        present = sum(1 for m in metrics if getattr(self, m, None) is not None)
        return present / len(metrics)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthWeights(BaseModel):
    freshness: float = 0.20
    completeness: float = 0.25
    lag: float = 0.15
    attribution: float = 0.15
    api_stability: float = 0.15
    consistency: float = 0.10


class HealthSignals(BaseModel):
    """Raw observations a data-health score is computed from."""

    hours_since_update: float = 0.0
    field_values: Dict[str, Optional[float]] = {}
    reporting_delay_hours: float = 0.0
    attribution_window_days: int = 7
    has_all_conversions: bool = True
    conversion_lag_hours: float = 0.0
    api_success_count: int = 0
    api_total_count: int = 0
    daily_values: List[float] = []


class HealthScores(BaseModel):
    freshness: float = Field(ge=0, le=100)
    completeness: float = Field(ge=0, le=100)
    lag: float = Field(ge=0, le=100)
    attribution: float = Field(ge=0, le=100)
    api_stability: float = Field(ge=0, le=100)
    consistency: float = Field(ge=0, le=100)


class HealthIssue(BaseModel):
    type: str
    severity: str  # "info" | "warning" | "critical"
    message: str
    metric: str
    value: float


class DataHealthReport(BaseModel):
    entity_id: str
    scores: HealthScores
    overall_score: int = Field(ge=0, le=100)
    status: HealthStatus
    issues: List[HealthIssue] = []
    confidence_modifier: float = 1.0
    recommendations: List[str] = []
    computed_at: datetime


class HealthGate(BaseModel):
    """Go/no-go answer for a batch of entities."""

    health_score: float = Field(ge=0, le=100)
    can_recommend: bool
    status: HealthStatus
    entities_scored: int = 0
    issues: List[HealthIssue] = []


class BenchmarkObservation(BaseModel):
    metric: str
    entity_type: EntityType = EntityType.AD
    value: float
    observed_at: datetime


class Benchmark(BaseModel):
    metric: str
    entity_type: EntityType
    benchmark: Optional[float] = None
    sample_size: int = 0
    p25: Optional[float] = None
    p75: Optional[float] = None
    lookback_days: int = 30
