"""Ad Governance Kernel data models."""

from adgov_kernel.models.agent import (
    AgentConfig,
    AgentQuery,
    AgentRun,
    AgentRunStatus,
    AgentStep,
    ConfidenceWeights,
    StepStatus,
    ToolName,
    ToolResult,
)
from adgov_kernel.models.governance import (
    ChangeRequest,
    ChangeRequestStatus,
    ChangeType,
    GovernanceConfig,
    GuardrailCheckResult,
    GuardrailConfig,
    GuardrailFinding,
    GuardrailSeverity,
    OrgContext,
    RateLimitCheck,
    RiskLevel,
    RiskScore,
)
from adgov_kernel.models.metrics import (
    Benchmark,
    DataHealthReport,
    EntityType,
    HealthGate,
    HealthSignals,
    HealthStatus,
    MetricSnapshot,
)
from adgov_kernel.models.neighbor import (
    NeighborConfig,
    NeighborPrediction,
    NeighborRecord,
    PredictionConfidenceWeights,
    TraitEffect,
    TraitRecommendation,
)
from adgov_kernel.models.orb import (
    ExperimentLever,
    LearningIntent,
    Orb,
    OrbRemoval,
    OrbSource,
    OrbSpec,
    OrbState,
)
from adgov_kernel.models.recommendation import (
    ActionPayload,
    ActionType,
    BidChange,
    BudgetChange,
    CreativeChange,
    Evidence,
    Intent,
    Recommendation,
    RecommendationStatus,
    StatusChange,
    TargetingChange,
    VarianceLevel,
)
from adgov_kernel.models.regression import (
    AlertSeverity,
    AlertStatus,
    ExecutionMetrics,
    PromptExecution,
    RegressionAlert,
    RegressionThresholds,
    RegressionType,
)

__all__ = [
    "ActionPayload",
    "ActionType",
    "AgentConfig",
    "AgentQuery",
    "AgentRun",
    "AgentRunStatus",
    "AgentStep",
    "AlertSeverity",
    "AlertStatus",
    "Benchmark",
    "BidChange",
    "BudgetChange",
    "ChangeRequest",
    "ChangeRequestStatus",
    "ChangeType",
    "ConfidenceWeights",
    "CreativeChange",
    "DataHealthReport",
    "EntityType",
    "Evidence",
    "ExecutionMetrics",
    "ExperimentLever",
    "GovernanceConfig",
    "GuardrailCheckResult",
    "GuardrailConfig",
    "GuardrailFinding",
    "GuardrailSeverity",
    "HealthGate",
    "HealthSignals",
    "HealthStatus",
    "Intent",
    "LearningIntent",
    "MetricSnapshot",
    "NeighborConfig",
    "NeighborPrediction",
    "NeighborRecord",
    "Orb",
    "OrbRemoval",
    "OrbSource",
    "OrbSpec",
    "OrbState",
    "OrgContext",
    "PredictionConfidenceWeights",
    "PromptExecution",
    "RateLimitCheck",
    "Recommendation",
    "RecommendationStatus",
    "RegressionAlert",
    "RegressionThresholds",
    "RegressionType",
    "RiskLevel",
    "RiskScore",
    "StatusChange",
    "StepStatus",
    "TargetingChange",
    "ToolName",
    "ToolResult",
    "TraitEffect",
    "TraitRecommendation",
    "VarianceLevel",
]
