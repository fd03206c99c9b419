"""Recommendation — a guarded, evidence-backed proposal for one ad entity."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from adgov_kernel.models.governance import ChangeRequest, ChangeType
from adgov_kernel.models.neighbor import NeighborPrediction

MAX_EXTRA_KEYS = 20


class ActionType(str, Enum):
    """Closed set of actions the kernel can propose."""
    SCALE = "scale"
    PAUSE = "pause"
    RESUME = "resume"
    BUDGET_INCREASE = "budget_increase"
    BUDGET_DECREASE = "budget_decrease"
    BID_ADJUST = "bid_adjust"
    TARGETING_CHANGE = "targeting_change"
    CREATIVE_REFRESH = "creative_refresh"


# Budget-moving actions that tracking health must support
SPEND_INCREASING_ACTIONS = (ActionType.SCALE, ActionType.BUDGET_INCREASE)


class RecommendationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    APPLIED = "applied"
    EXPIRED = "expired"


class VarianceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _Payload(BaseModel):
    expected_impact: str = ""
    extra: Dict[str, Any] = {}

    @field_validator("extra")
    @classmethod
    def _bounded_extra(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if len(value) > MAX_EXTRA_KEYS:
            raise ValueError(f"extra metadata limited to {MAX_EXTRA_KEYS} keys")
        return value


class BudgetChange(_Payload):
    kind: Literal["budget"] = "budget"
    current_value: float = Field(ge=0)
    proposed_value: float = Field(ge=0)
    change_percent: float


class BidChange(_Payload):
    kind: Literal["bid"] = "bid"
    current_value: float = Field(ge=0)
    proposed_value: float = Field(ge=0)
    change_percent: float


class StatusChange(_Payload):
    kind: Literal["status"] = "status"
    current_status: str = "active"
    proposed_status: str = "paused"
    reason: str = ""


class TargetingChange(_Payload):
    kind: Literal["targeting"] = "targeting"
    added: List[str] = []
    removed: List[str] = []


class CreativeChange(_Payload):
    kind: Literal["creative"] = "creative"
    creative_id: Optional[str] = None
    description: str = ""


ActionPayload = Union[BudgetChange, BidChange, StatusChange, TargetingChange, CreativeChange]

PAYLOAD_CHANGE_TYPES = {
    "budget": ChangeType.BUDGET,
    "bid": ChangeType.BID,
    "status": ChangeType.STATUS,
    "targeting": ChangeType.TARGETING,
    "creative": ChangeType.CREATIVE,
}


class Evidence(BaseModel):
    data_points: int = 0
    variance: VarianceLevel = VarianceLevel.MEDIUM
    completeness: float = Field(ge=0.0, le=1.0, default=0.0)
    health_score: float = Field(ge=0, le=100, default=100)
    historical_success_rate: Optional[float] = None
    sources: List[str] = []
    metrics: Dict[str, Optional[float]] = {}
    benchmark: Optional[float] = None
    neighbor: Optional[NeighborPrediction] = None


class Recommendation(BaseModel):
    id: str
    org_id: str
    type: ActionType
    entity_id: str
    entity_type: str = "ad"
    action: ActionPayload = Field(discriminator="kind")
    evidence: Evidence
    confidence: float = Field(ge=0.0, le=1.0)
    status: RecommendationStatus = RecommendationStatus.PENDING
    change_request: Optional[ChangeRequest] = None
    reasoning: List[str] = []
    run_id: Optional[str] = None
    created_at: datetime
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    evaluation_ends_at: Optional[datetime] = None

    @property
    def approval_status(self) -> Optional[str]:
        if self.change_request is None:
            return None
        return self.change_request.status.value


class Intent(BaseModel):
    """Structured intent produced by an upstream language-understanding step."""

    action: ActionType
    parameters: Dict[str, Any] = {}
    confidence: float = Field(ge=0.0, le=1.0, default=1.0)
