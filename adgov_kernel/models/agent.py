"""Agent run records — the audit trail of one decision pipeline invocation."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from adgov_kernel.models.metrics import EntityType
from adgov_kernel.models.recommendation import Intent, Recommendation, VarianceLevel


class ToolName(str, Enum):
    FETCH_METRICS = "fetch_metrics"
    VALIDATE_DATA_HEALTH = "validate_data_health"
    GET_HISTORICAL_BENCHMARKS = "get_historical_benchmarks"
    CHECK_GUARDRAILS = "check_guardrails"
    GENERATE_RECOMMENDATION = "generate_recommendation"


class AgentRunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class StepStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ToolResult(BaseModel):
    tool: ToolName
    success: bool
    data: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0


class AgentStep(BaseModel):
    step: int = Field(ge=1)
    tool: ToolName
    input: Dict[str, Any] = {}
    output: Any = None
    duration_ms: float = 0.0
    status: StepStatus
    error: Optional[str] = None


class AgentQuery(BaseModel):
    """Caller input. Rejected before any step runs when malformed."""

    query: str = ""
    org_id: str
    user_id: str
    entity_ids: Optional[List[str]] = None
    intent: Optional[Intent] = None

    @field_validator("org_id", "user_id")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty identifier")
        return value


class AgentRun(BaseModel):
    id: str
    org_id: str
    user_id: str
    query: str = ""
    status: AgentRunStatus
    steps: List[AgentStep] = []
    recommendations: List[Recommendation] = []
    total_duration_ms: float = 0.0
    error_message: Optional[str] = None
    blocked_reason: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    # Set by the run store when the record is appended
    signature: str = ""
    prior_record_hash: Optional[str] = None


class ConfidenceWeights(BaseModel):
    data_points: float = 0.30
    variance: float = 0.20
    completeness: float = 0.20
    health: float = 0.20
    historical_success: float = 0.10
    full_data_points: int = 100
    variance_scores: Dict[VarianceLevel, float] = {
        VarianceLevel.LOW: 1.0,
        VarianceLevel.MEDIUM: 0.7,
        VarianceLevel.HIGH: 0.4,
    }
    default_historical_success: float = 0.5


class AgentConfig(BaseModel):
    entity_type: EntityType = EntityType.AD
    date_range: str = "last_7d"
    window_days: int = 7
    metrics: List[str] = ["spend", "impressions", "clicks", "conversions", "cpa", "roas"]
    can_recommend_threshold: float = Field(ge=0, le=100, default=70.0)
    benchmark_metric: str = "cpa"
    benchmark_lookback_days: int = 30
    default_benchmark: float = 50.0
    scale_min_roas: float = 2.0
    scale_min_spend: float = 10.0
    scale_factor: float = 1.2
    pause_cpa_multiplier: float = 1.5
    default_variance: VarianceLevel = VarianceLevel.MEDIUM
