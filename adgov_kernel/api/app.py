"""
Ad Governance Kernel API — FastAPI endpoints.

Exposes the kernel's functionality via a REST API for:
- Metric, health and benchmark ingestion
- Agent runs and the run audit log
- Guardrail checks, risk scoring, change requests and rate limits
- Neighbor prediction
- Recommendation status transitions
- Orb lifecycle
- Prompt regression tracking
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from adgov_kernel.agent.runner import AgentRunner
from adgov_kernel.agent.tools import ToolBelt
from adgov_kernel.audit.run_store import RunStore
from adgov_kernel.benchmarks.provider import BenchmarkProvider
from adgov_kernel.config import Settings, configure_logging, get_settings
from adgov_kernel.errors import (
    AdGovError,
    AutoPublishRefused,
    InvalidTransitionError,
    LearningIntentRequired,
    OrbNotFound,
    RateLimitExceeded,
    RecommendationNotFound,
    SuggestionCapExceeded,
    ValidationError,
)
from adgov_kernel.governance import policy
from adgov_kernel.governance.guardrails import GuardrailEngine
from adgov_kernel.governance.ledger import GovernanceLedger
from adgov_kernel.health.validator import HealthValidator
from adgov_kernel.metrics.gateway import InMemoryMetricsGateway
from adgov_kernel.models.agent import AgentConfig, AgentRunStatus
from adgov_kernel.models.governance import (
    ChangeType,
    GovernanceConfig,
    GuardrailConfig,
    OrgContext,
)
from adgov_kernel.models.metrics import EntityType, HealthSignals, MetricSnapshot
from adgov_kernel.models.neighbor import NeighborConfig, NeighborRecord, TraitValue
from adgov_kernel.models.orb import LearningIntent, OrbSpec, OrbState
from adgov_kernel.models.recommendation import (
    ActionPayload,
    ActionType,
    Intent,
    RecommendationStatus,
)
from adgov_kernel.models.regression import AlertStatus, PromptExecution
from adgov_kernel.neighbors.pool import NeighborPool
from adgov_kernel.neighbors.predictor import NeighborPredictor
from adgov_kernel.orbs.generator import SuggestionGenerator
from adgov_kernel.orbs.lifecycle import OrbLifecycleManager
from adgov_kernel.recommendations.book import RecommendationBook
from adgov_kernel.regression.detector import ExecutionTracker

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class AgentRunRequest(BaseModel):
    query: str = ""
    org_id: str
    user_id: str
    entity_ids: Optional[List[str]] = None
    intent: Optional[Intent] = None


class BenchmarkObservationRequest(BaseModel):
    metric: str
    value: float
    entity_type: EntityType = EntityType.AD


class GuardrailCheckRequest(BaseModel):
    action_type: ActionType
    entity_id: str
    proposed_change: ActionPayload = Field(discriminator="kind")
    metrics: MetricSnapshot
    org_context: OrgContext


class RiskRequest(BaseModel):
    change_percent: float
    spend: float = 0.0
    historical_failure_rate: float = Field(ge=0.0, le=1.0, default=0.0)
    in_learning_phase: bool = False


class ChangeRequestCreate(BaseModel):
    org_id: str
    entity_id: str
    change_type: ChangeType
    current_value: float
    proposed_value: float
    spend: float = 0.0
    in_learning_phase: bool = False
    affected_entities: int = 1
    requested_by: str = "api_user"


class NeighborPredictRequest(BaseModel):
    target_traits: Dict[str, TraitValue]
    neighbor_pool: Optional[List[NeighborRecord]] = None
    config: Optional[NeighborConfig] = None
    legacy_score: float = Field(ge=0, le=100, default=50.0)


class RecommendationAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    APPLY = "apply"
    EXPIRE = "expire"


class ActorRequest(BaseModel):
    actor: str


class OutcomeRequest(BaseModel):
    success: bool


class OrbCreateRequest(BaseModel):
    session_id: str
    spec: OrbSpec = OrbSpec()
    actor: str
    parent_id: Optional[str] = None


class SuggestedOrbCreateRequest(BaseModel):
    session_id: str
    spec: OrbSpec = OrbSpec()
    learning_intent: Optional[LearningIntent] = None
    parent_id: Optional[str] = None


class SuggestionRequest(BaseModel):
    count: int = Field(ge=1, le=3, default=3)
    prediction_confidence: Optional[float] = None


class OrbTransitionRequest(BaseModel):
    to_state: OrbState
    actor: str


class OrbResultsRequest(BaseModel):
    success_score: float = Field(ge=0, le=100)
    actor: str


class OrbEditRequest(BaseModel):
    spec: OrbSpec
    actor: str


class OrbRemovalRequest(BaseModel):
    actor: str
    reason: str = ""


class ExecutionRecordRequest(BaseModel):
    prompt_version_id: str
    model_id: Optional[str] = None
    success: bool
    latency_ms: float = Field(ge=0)
    tokens_used: int = Field(ge=0, default=0)
    quality_score: Optional[float] = Field(ge=0, le=100, default=None)
    error_type: Optional[str] = None


def _http_error(e: AdGovError) -> HTTPException:
    if isinstance(e, (OrbNotFound, RecommendationNotFound)):
        return HTTPException(404, str(e))
    if isinstance(e, (ValidationError, LearningIntentRequired)):
        return HTTPException(422, str(e))
    if isinstance(e, AutoPublishRefused):
        return HTTPException(403, str(e))
    if isinstance(e, (InvalidTransitionError, SuggestionCapExceeded, RateLimitExceeded)):
        return HTTPException(409, str(e))
    return HTTPException(400, str(e))


# --- Application Factory ---

def create_app(
    metrics_gateway: Optional[InMemoryMetricsGateway] = None,
    health_validator: Optional[HealthValidator] = None,
    benchmark_provider: Optional[BenchmarkProvider] = None,
    ledger: Optional[GovernanceLedger] = None,
    run_store: Optional[RunStore] = None,
    orb_manager: Optional[OrbLifecycleManager] = None,
    execution_tracker: Optional[ExecutionTracker] = None,
    neighbor_pool: Optional[NeighborPool] = None,
    agent_config: Optional[AgentConfig] = None,
    guardrail_config: Optional[GuardrailConfig] = None,
    governance_config: Optional[GovernanceConfig] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Ad Governance Kernel API",
        description="Guarded recommendations for advertising entities",
        version="0.1.0",
    )

    # Initialize components
    gateway = metrics_gateway or InMemoryMetricsGateway()
    health = health_validator or HealthValidator(threshold=settings.can_recommend_threshold)
    benchmarks = benchmark_provider or BenchmarkProvider()
    gl = ledger or GovernanceLedger(governance_config)
    store = run_store or RunStore(settings.run_store_path)
    orbs = orb_manager or OrbLifecycleManager(settings.max_outstanding_suggestions)
    tracker = execution_tracker or ExecutionTracker()
    pool = neighbor_pool or NeighborPool()
    neighbor_config = NeighborConfig(
        half_life_days=settings.neighbor_half_life_days,
        min_neighbors=settings.neighbor_min_count,
        min_similarity=settings.neighbor_min_similarity,
    )
    config = agent_config or AgentConfig(
        can_recommend_threshold=settings.can_recommend_threshold,
        default_benchmark=settings.default_benchmark,
    )

    guardrails = GuardrailEngine(config=guardrail_config, ledger=gl)
    tools = ToolBelt(gateway, health, benchmarks, guardrails)
    runner = AgentRunner(
        tools=tools,
        config=config,
        ledger=gl,
        neighbor_source=pool,
        neighbor_predictor=NeighborPredictor(neighbor_config),
        run_store=store,
    )
    book = RecommendationBook(ledger=gl)
    generator = SuggestionGenerator(orbs, neighbor_config)

    # Store components on app state for access in endpoints
    app.state.metrics_gateway = gateway
    app.state.health_validator = health
    app.state.benchmark_provider = benchmarks
    app.state.ledger = gl
    app.state.run_store = store
    app.state.orb_manager = orbs
    app.state.execution_tracker = tracker
    app.state.neighbor_pool = pool
    app.state.runner = runner
    app.state.recommendation_book = book

    # === INGESTION ===

    @app.post("/metrics/ingest")
    def ingest_metrics(snapshot: MetricSnapshot):
        """Insert or replace an entity's metric snapshot."""
        gateway.upsert(snapshot)
        return {"status": "ingested", "entity_id": snapshot.entity_id}

    @app.post("/health/{entity_id}")
    def record_health(entity_id: str, signals: HealthSignals):
        """Score and store an entity's data health."""
        return health.record(entity_id, signals).model_dump(mode="json")

    @app.get("/health/gate")
    def health_gate(org_id: str, entity_ids: str = ""):
        """Go/no-go for a comma-separated list of entities."""
        ids = [e for e in entity_ids.split(",") if e]
        return health.validate_data_health(ids, org_id).model_dump(mode="json")

    @app.post("/benchmarks/observations")
    def record_benchmark(req: BenchmarkObservationRequest):
        obs = benchmarks.record(req.metric, req.value, req.entity_type)
        return obs.model_dump(mode="json")

    @app.get("/benchmarks/{metric}")
    def get_benchmark(metric: str, entity_type: EntityType = EntityType.AD, lookback_days: int = 30):
        return benchmarks.get_historical_benchmarks(
            metric, entity_type, lookback_days
        ).model_dump(mode="json")

    # === AGENT ===

    @app.post("/agent/run")
    def run_agent(req: AgentRunRequest):
        """Run the decision pipeline; emitted recommendations become reviewable."""
        try:
            run = runner.run_agent(
                query=req.query,
                org_id=req.org_id,
                user_id=req.user_id,
                entity_ids=req.entity_ids,
                intent=req.intent,
            )
        except ValidationError as e:
            raise _http_error(e)
        book.add_all(run.recommendations)
        return run.model_dump(mode="json")

    @app.get("/agent/runs")
    def list_runs(org_id: Optional[str] = None, status: Optional[AgentRunStatus] = None, limit: int = 50):
        if org_id:
            runs = store.query_by_org(org_id, limit)
        elif status:
            runs = store.query_by_status(status)
        else:
            runs = store.query_recent(limit)
        return [r.model_dump(mode="json") for r in runs]

    @app.get("/agent/runs/verify")
    def verify_runs():
        """Verify the run log's hash chain."""
        return {"integrity": store.verify_chain_integrity(), "count": store.count()}

    @app.get("/agent/runs/{run_id}")
    def get_run(run_id: str):
        run = store.get(run_id)
        if run is None:
            raise HTTPException(404, "Run not found")
        return run.model_dump(mode="json")

    # === GOVERNANCE ===

    @app.post("/guardrails/check")
    def check_guardrails(req: GuardrailCheckRequest):
        result = guardrails.check(
            req.action_type, req.entity_id, req.proposed_change, req.metrics, req.org_context
        )
        return result.model_dump(mode="json")

    @app.post("/governance/risk")
    def score_risk(req: RiskRequest):
        risk = policy.calculate_risk_score(
            change_pct=req.change_percent,
            spend=req.spend,
            historical_failure_rate=req.historical_failure_rate,
            in_learning_phase=req.in_learning_phase,
            config=gl.config,
        )
        return risk.model_dump(mode="json")

    @app.post("/governance/change-requests")
    def create_change_request(req: ChangeRequestCreate):
        cr = policy.create_change_request(
            org_id=req.org_id,
            entity_id=req.entity_id,
            change_type=req.change_type,
            current_value=req.current_value,
            proposed_value=req.proposed_value,
            spend=req.spend,
            historical_failure_rate=gl.failure_rate(req.entity_id),
            in_learning_phase=req.in_learning_phase,
            affected_entities=req.affected_entities,
            requested_by=req.requested_by,
            config=gl.config,
        )
        return cr.model_dump(mode="json")

    @app.get("/governance/rate-limit/{org_id}")
    def rate_limit(org_id: str):
        return gl.check_rate_limit(org_id).model_dump(mode="json")

    # === NEIGHBORS ===

    @app.post("/neighbors/records")
    def add_neighbor(record: NeighborRecord):
        pool.add(record)
        return {"status": "added", "id": record.id}

    @app.post("/neighbors/predict")
    def predict(req: NeighborPredictRequest):
        """Predict from the given pool, or the stored pool when none is given."""
        predictor = NeighborPredictor(req.config or neighbor_config)
        neighbors = req.neighbor_pool if req.neighbor_pool is not None else pool.records()
        result = predictor.predict(
            req.target_traits, neighbors, legacy_score=req.legacy_score
        )
        return result.model_dump(mode="json")

    # === RECOMMENDATIONS ===

    @app.get("/recommendations")
    def list_recommendations(org_id: Optional[str] = None, status: Optional[RecommendationStatus] = None):
        return [
            r.model_dump(mode="json")
            for r in book.list_recommendations(org_id=org_id, status=status)
        ]

    @app.get("/recommendations/{rec_id}")
    def get_recommendation(rec_id: str):
        try:
            return book.get(rec_id).model_dump(mode="json")
        except RecommendationNotFound as e:
            raise _http_error(e)

    @app.post("/recommendations/{rec_id}/outcome")
    def record_outcome(rec_id: str, req: OutcomeRequest):
        try:
            book.record_outcome(rec_id, req.success)
        except AdGovError as e:
            raise _http_error(e)
        return {"status": "recorded", "id": rec_id}

    @app.post("/recommendations/{rec_id}/{action}")
    def transition_recommendation(rec_id: str, action: RecommendationAction, req: ActorRequest):
        """accept | reject | apply | expire."""
        handlers = {
            RecommendationAction.ACCEPT: book.accept,
            RecommendationAction.REJECT: book.reject,
            RecommendationAction.APPLY: book.apply,
            RecommendationAction.EXPIRE: book.expire,
        }
        try:
            rec = handlers[action](rec_id, req.actor)
        except AdGovError as e:
            raise _http_error(e)
        return rec.model_dump(mode="json")

    # === ORBS ===

    @app.post("/orbs")
    def create_orb(req: OrbCreateRequest):
        """User-created orbs start as drafts."""
        orb = orbs.create_user_orb(req.session_id, req.spec, req.actor, req.parent_id)
        return orbs.public_view(orb)

    @app.post("/orbs/suggested")
    def create_suggested_orb(req: SuggestedOrbCreateRequest):
        try:
            orb = orbs.create_suggested_orb(
                req.session_id, req.spec, req.learning_intent, req.parent_id
            )
        except AdGovError as e:
            raise _http_error(e)
        return orbs.public_view(orb)

    @app.get("/orbs")
    def list_orbs(session_id: Optional[str] = None, state: Optional[OrbState] = None):
        return [orbs.public_view(o) for o in orbs.list_orbs(session_id, state)]

    @app.get("/orbs/{orb_id}")
    def get_orb(orb_id: str):
        try:
            return orbs.public_view(orbs.get(orb_id))
        except OrbNotFound as e:
            raise _http_error(e)

    @app.post("/orbs/{orb_id}/suggestions")
    def suggest_variants(orb_id: str, req: SuggestionRequest):
        """Generate suggested variants of a parent orb, up to the session cap."""
        try:
            parent = orbs.get(orb_id)
        except OrbNotFound as e:
            raise _http_error(e)
        created = generator.generate(
            parent, pool.records(), req.count, req.prediction_confidence
        )
        return [orbs.public_view(o) for o in created]

    @app.post("/orbs/{orb_id}/transition")
    def transition_orb(orb_id: str, req: OrbTransitionRequest):
        try:
            orb = orbs.transition(orb_id, req.to_state, req.actor)
        except AdGovError as e:
            raise _http_error(e)
        return orbs.public_view(orb)

    @app.post("/orbs/{orb_id}/results")
    def attach_results(orb_id: str, req: OrbResultsRequest):
        try:
            orb = orbs.attach_results(orb_id, req.success_score, req.actor)
        except AdGovError as e:
            raise _http_error(e)
        return orbs.public_view(orb)

    @app.put("/orbs/{orb_id}")
    def edit_draft(orb_id: str, req: OrbEditRequest):
        try:
            orb = orbs.update_draft(orb_id, req.spec, req.actor)
        except AdGovError as e:
            raise _http_error(e)
        return orbs.public_view(orb)

    @app.post("/orbs/{orb_id}/reject")
    def reject_orb(orb_id: str, req: OrbRemovalRequest):
        try:
            removal = orbs.reject_suggestion(orb_id, req.actor, req.reason)
        except AdGovError as e:
            raise _http_error(e)
        return removal.model_dump(mode="json")

    @app.delete("/orbs/{orb_id}")
    def delete_orb(orb_id: str, actor: str, reason: str = ""):
        try:
            removal = orbs.delete(orb_id, actor, reason)
        except AdGovError as e:
            raise _http_error(e)
        return removal.model_dump(mode="json")

    # === REGRESSION ===

    @app.post("/regression/executions")
    def record_execution(req: ExecutionRecordRequest):
        execution = PromptExecution(
            id=f"exec_{uuid4().hex[:12]}",
            created_at=datetime.now(timezone.utc),
            **req.model_dump(),
        )
        tracker.record(execution)
        return execution.model_dump(mode="json")

    @app.post("/regression/{prompt_version_id}/evaluate")
    def evaluate_regression(prompt_version_id: str):
        alerts = tracker.evaluate(prompt_version_id)
        return {
            "metrics": tracker.metrics(prompt_version_id).model_dump(mode="json"),
            "alerts": [a.model_dump(mode="json") for a in alerts],
        }

    @app.get("/regression/alerts")
    def list_alerts(prompt_version_id: Optional[str] = None, status: Optional[AlertStatus] = None):
        return [a.model_dump(mode="json") for a in tracker.alerts(prompt_version_id, status)]

    @app.post("/regression/alerts/{alert_id}/acknowledge")
    def acknowledge_alert(alert_id: str):
        alert = tracker.acknowledge(alert_id)
        if alert is None:
            raise HTTPException(404, "Alert not found")
        return alert.model_dump(mode="json")

    @app.post("/regression/alerts/{alert_id}/resolve")
    def resolve_alert(alert_id: str):
        alert = tracker.resolve(alert_id)
        if alert is None:
            raise HTTPException(404, "Alert not found")
        return alert.model_dump(mode="json")

    return app


# Default application instance
app = create_app()
