"""Prompt execution telemetry and regression alerts."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class PromptExecution(BaseModel):
    id: str
    prompt_version_id: str
    model_id: Optional[str] = None
    success: bool
    latency_ms: float = Field(ge=0)
    tokens_used: int = Field(ge=0, default=0)
    quality_score: Optional[float] = Field(ge=0, le=100, default=None)
    error_type: Optional[str] = None
    created_at: datetime


class ExecutionMetrics(BaseModel):
    sample_size: int
    success_rate: float
    avg_latency_ms: float
    avg_tokens: float
    avg_quality: Optional[float] = None
    error_rate: float
    error_breakdown: Dict[str, int] = {}


class RegressionThresholds(BaseModel):
    min_samples: int = 10
    success_rate_drop_percent: float = 10.0
    latency_increase_percent: float = 30.0
    quality_drop_percent: float = 15.0
    error_spike_percent: float = 50.0


class RegressionType(str, Enum):
    SUCCESS_RATE_DROP = "success_rate_drop"
    LATENCY_INCREASE = "latency_increase"
    QUALITY_DROP = "quality_drop"
    ERROR_SPIKE = "error_spike"


class AlertSeverity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK = {
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}


class AlertStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class RegressionAlert(BaseModel):
    id: str
    prompt_version_id: Optional[str] = None
    alert_type: RegressionType
    severity: AlertSeverity
    baseline_value: float
    current_value: float
    change_percent: float
    baseline_samples: int
    current_samples: int
    status: AlertStatus = AlertStatus.ACTIVE
    message: str
    detected_at: datetime
