"""Governance models — risk scoring, approval, rate limits and change requests."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from croniter import croniter
from pydantic import BaseModel, Field, field_validator


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChangeType(str, Enum):
    BUDGET = "budget"
    BID = "bid"
    STATUS = "status"
    TARGETING = "targeting"
    CREATIVE = "creative"


class ChangeRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"
    AUTO_REJECTED = "auto_rejected"


class RiskWeights(BaseModel):
    change_size: float = Field(ge=0.0, le=1.0, default=0.30)
    entity_value: float = Field(ge=0.0, le=1.0, default=0.25)
    historical_failure: float = Field(ge=0.0, le=1.0, default=0.25)
    learning_phase: float = Field(ge=0.0, le=1.0, default=0.20)


class GovernanceConfig(BaseModel):
    """Organization risk policy. Defaults mirror the shipped policy."""

    risk_weights: RiskWeights = RiskWeights()

    # Approval thresholds
    approval_change_percent: float = 50.0
    approval_risk_score: float = 70.0
    approval_entity_count: int = 5

    # Rate limits
    max_changes_per_day: int = 20
    max_changes_per_week: int = 50
    cooldown_minutes: int = 5
    # Cron expression marking when the daily quota resets.
    # None means a trailing 24-hour window.
    daily_reset_schedule: Optional[str] = None

    # Change-size limits (warnings)
    budget_max_daily_change_percent: float = 30.0
    budget_max_weekly_change_percent: float = 100.0
    bid_max_increase_percent: float = 25.0
    bid_max_decrease_percent: float = 50.0

    @field_validator("daily_reset_schedule")
    @classmethod
    def _valid_cron(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not croniter.is_valid(value):
            raise ValueError(f"invalid cron expression: {value!r}")
        return value


class RiskFactor(BaseModel):
    name: str
    score: float = Field(ge=0, le=100)        # raw factor score
    weighted_score: float = Field(ge=0, le=100)
    description: str


class RiskScore(BaseModel):
    """Derived risk for one proposed change. Always recomputed from factors."""

    score: float = Field(ge=0, le=100)
    level: RiskLevel
    factors: List[RiskFactor] = []


class ApprovalRequirement(BaseModel):
    required: bool
    reasons: List[str] = []


class RateLimitCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    remaining_today: int = 0
    remaining_this_week: int = 0
    next_available_at: Optional[datetime] = None


class ChangeRequest(BaseModel):
    id: str
    org_id: str
    entity_id: str
    change_type: ChangeType
    current_value: float
    proposed_value: float
    change_percent: float
    risk: RiskScore
    approval: ApprovalRequirement
    status: ChangeRequestStatus
    approvers: List[str] = []
    requested_by: str = "agent"
    created_at: datetime

    @property
    def requires_approval(self) -> bool:
        return self.approval.required


class GuardrailSeverity(str, Enum):
    BLOCK = "block"
    WARNING = "warning"


class GuardrailFinding(BaseModel):
    guardrail: str
    severity: GuardrailSeverity
    message: str


class GuardrailConfig(BaseModel):
    """Thresholds for the named guardrails."""

    min_conversions_out_of_learning: int = 50
    min_impressions: int = 500
    min_impressions_for_pause: int = 1000
    top_converter_roas: float = 2.0
    top_converter_conversions: int = 10
    min_tracking_health: float = 70.0
    max_budget_change_percent: float = 50.0
    never_pause_entities: List[str] = []
    never_recommend_actions: List[str] = []
    disabled_guardrails: List[str] = []


class OrgContext(BaseModel):
    """Caller-side facts a guardrail check needs beyond the entity itself."""

    org_id: str
    health_score: Optional[float] = Field(ge=0, le=100, default=None)
    affected_entities: int = 1
    requested_by: str = "agent"
    never_pause_entities: List[str] = []
    never_recommend_actions: List[str] = []


class GuardrailCheckResult(BaseModel):
    safe: bool
    violations: List[GuardrailFinding] = []
    warnings: List[GuardrailFinding] = []
    change_request: Optional[ChangeRequest] = None
    rate_limit: Optional[RateLimitCheck] = None
