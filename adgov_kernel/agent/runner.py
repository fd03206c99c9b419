"""
Agent Runner — the decision pipeline from raw metrics to guarded recommendations.

    fetch_metrics -> validate_data_health -> get_historical_benchmarks
      -> hypotheses per entity -> check_guardrails -> generate_recommendation

Behavioral Contract:
- Input is validated before any step runs (ValidationError)
- Steps run strictly in order and are numbered in execution order
- A failed metrics/health/benchmark call fails the run with the tool's
  message verbatim (ToolExecutionError)
- Health below the can-recommend threshold ends the run as blocked with zero
  recommendations (HealthBlockedError)
- A guardrail veto is recorded as an error step and processing moves on to
  the next hypothesis (GuardrailViolation)
- Any other exception fails the run; steps completed so far are kept
- Recommendations are emitted pending; nothing here approves or applies them
- The finished run is appended to the run store; a storage failure raises
  from run_agent rather than being folded into the run status
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from adgov_kernel.agent.hypotheses import Hypothesis, RuleBasedHypothesisGenerator
from adgov_kernel.agent.tools import ToolBelt
from adgov_kernel.audit.run_store import RunStore
from adgov_kernel.errors import (
    GuardrailViolation,
    HealthBlockedError,
    ToolExecutionError,
    ValidationError,
)
from adgov_kernel.governance.ledger import GovernanceLedger
from adgov_kernel.models.agent import (
    AgentConfig,
    AgentQuery,
    AgentRun,
    AgentRunStatus,
    AgentStep,
    StepStatus,
    ToolName,
    ToolResult,
)
from adgov_kernel.models.governance import GuardrailCheckResult, OrgContext
from adgov_kernel.models.metrics import Benchmark, HealthGate, MetricSnapshot
from adgov_kernel.models.recommendation import Evidence, Intent, Recommendation
from adgov_kernel.neighbors.pool import NeighborSource
from adgov_kernel.neighbors.predictor import NeighborPredictor
from adgov_kernel.scoring.confidence import ConfidenceScorer

logger = logging.getLogger(__name__)


def _snapshot(value: Any) -> Any:
    """JSON-friendly copy of a step input or output."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Hypothesis):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _snapshot(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_snapshot(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


class AgentRunner:
    def __init__(
        self,
        tools: ToolBelt,
        config: Optional[AgentConfig] = None,
        scorer: Optional[ConfidenceScorer] = None,
        ledger: Optional[GovernanceLedger] = None,
        neighbor_source: Optional[NeighborSource] = None,
        neighbor_predictor: Optional[NeighborPredictor] = None,
        run_store: Optional[RunStore] = None,
    ):
        self.tools = tools
        self.config = config or AgentConfig()
        self.scorer = scorer or ConfidenceScorer()
        self.ledger = ledger
        self.neighbor_source = neighbor_source
        self.neighbor_predictor = neighbor_predictor or NeighborPredictor()
        self.run_store = run_store
        self.hypotheses = RuleBasedHypothesisGenerator(self.config)
        # Per-runner executors; never registered on the shared tool belt
        self._own_executors = {
            ToolName.GENERATE_RECOMMENDATION: self._generate_recommendation,
        }

    def run_agent(
        self,
        query: str,
        org_id: str,
        user_id: str,
        entity_ids: Optional[List[str]] = None,
        intent: Optional[Intent] = None,
    ) -> AgentRun:
        """Validate caller input, then run the pipeline."""
        try:
            agent_query = AgentQuery(
                query=query,
                org_id=org_id,
                user_id=user_id,
                entity_ids=entity_ids,
                intent=intent,
            )
        except PydanticValidationError as e:
            raise ValidationError(str(e)) from e
        return self.run(agent_query)

    # --- Steps ---

    def _step(
        self,
        steps: List[AgentStep],
        tool: ToolName,
        params: Dict[str, Any],
        fatal: bool = True,
    ) -> ToolResult:
        result = self.tools.call(tool, params, executor=self._own_executors.get(tool))
        steps.append(AgentStep(
            step=len(steps) + 1,
            tool=tool,
            input=_snapshot(params),
            output=_snapshot(result.data) if result.success else None,
            duration_ms=result.duration_ms,
            status=StepStatus.SUCCESS if result.success else StepStatus.ERROR,
            error=result.error,
        ))
        if not result.success and fatal:
            raise ToolExecutionError(tool.value, result.error or "unknown error")
        return result

    def run(self, query: AgentQuery) -> AgentRun:
        run_id = f"run_{uuid4().hex[:12]}"
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        steps: List[AgentStep] = []
        recommendations: List[Recommendation] = []
        error_message = None
        blocked_reason = None

        logger.info(f"Agent run {run_id} started for org {query.org_id}")

        try:
            recommendations = self._pipeline(run_id, query, steps)
            status = AgentRunStatus.COMPLETED
        except HealthBlockedError as e:
            status = AgentRunStatus.BLOCKED
            blocked_reason = str(e)
            recommendations = []
            logger.info(f"Agent run {run_id} blocked: {blocked_reason}")
        except ToolExecutionError as e:
            status = AgentRunStatus.FAILED
            error_message = e.message
            logger.error(f"Agent run {run_id} failed in {e.tool}: {e.message}")
        except Exception as e:
            status = AgentRunStatus.FAILED
            error_message = str(e)
            logger.exception(f"Agent run {run_id} failed")

        if status == AgentRunStatus.FAILED:
            recommendations = []

        elapsed = time.monotonic() - start
        run = AgentRun(
            id=run_id,
            org_id=query.org_id,
            user_id=query.user_id,
            query=query.query,
            status=status,
            steps=steps,
            recommendations=recommendations,
            total_duration_ms=round(elapsed * 1000, 3),
            error_message=error_message,
            blocked_reason=blocked_reason,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

        # Storage errors propagate to the caller
        if self.run_store is not None:
            self.run_store.append(run)

        logger.info(
            f"Agent run {run_id} {status.value} with "
            f"{len(recommendations)} recommendations in {len(steps)} steps"
        )
        return run

    def _pipeline(
        self, run_id: str, query: AgentQuery, steps: List[AgentStep]
    ) -> List[Recommendation]:
        cfg = self.config

        # 1. Metrics
        fetched = self._step(steps, ToolName.FETCH_METRICS, {
            "entity_type": cfg.entity_type,
            "entity_ids": query.entity_ids,
            "date_range": cfg.date_range,
            "metrics": cfg.metrics,
        })
        snapshots: List[MetricSnapshot] = fetched.data or []
        valid = [s for s in snapshots if s.found]
        entity_ids = query.entity_ids or [s.entity_id for s in snapshots]

        # 2. Health gate
        health = self._step(steps, ToolName.VALIDATE_DATA_HEALTH, {
            "entity_ids": entity_ids,
            "org_id": query.org_id,
        })
        gate: HealthGate = health.data
        if gate.health_score < cfg.can_recommend_threshold:
            raise HealthBlockedError(gate.health_score, cfg.can_recommend_threshold)

        # 3. Benchmark
        bench = self._step(steps, ToolName.GET_HISTORICAL_BENCHMARKS, {
            "metric": cfg.benchmark_metric,
            "entity_type": cfg.entity_type,
            "lookback_days": cfg.benchmark_lookback_days,
        })
        benchmark: Benchmark = bench.data
        benchmark_value = (
            benchmark.benchmark if benchmark.benchmark is not None else cfg.default_benchmark
        )

        # 4. Hypotheses
        only = query.intent.action if query.intent is not None else None
        hypotheses = self.hypotheses.generate(valid, benchmark_value, only=only)

        # 5. Guardrails, then confidence and recommendation
        recommendations = []
        for hypothesis in hypotheses:
            entity_id = hypothesis.entity.entity_id
            org_context = OrgContext(
                org_id=query.org_id,
                health_score=gate.health_score,
                requested_by=query.user_id,
            )
            checked = self._step(steps, ToolName.CHECK_GUARDRAILS, {
                "action_type": hypothesis.action_type,
                "entity_id": entity_id,
                "proposed_change": hypothesis.payload,
                "metrics": hypothesis.entity,
                "org_context": org_context,
            }, fatal=False)
            if not checked.success:
                continue

            check: GuardrailCheckResult = checked.data
            if not check.safe:
                violation = GuardrailViolation(entity_id, check.violations)
                steps[-1].status = StepStatus.ERROR
                steps[-1].error = str(violation)
                logger.info(f"Run {run_id}: {violation}")
                continue

            generated = self._step(steps, ToolName.GENERATE_RECOMMENDATION, {
                "run_id": run_id,
                "org_id": query.org_id,
                "hypothesis": hypothesis,
                "check": check,
                "health_score": gate.health_score,
                "benchmark": benchmark_value,
                "valid_entities": len(valid),
            }, fatal=False)
            if generated.success:
                recommendations.append(generated.data)

        return recommendations

    # --- Recommendation assembly ---

    def _historical_success(self, entity: MetricSnapshot):
        """Ledger success rate, blended with a neighbor estimate when available."""
        known = self.ledger.historical_success_rate(entity.entity_id) if self.ledger else None
        if self.neighbor_source is None or not entity.traits:
            return known, None

        legacy = (known if known is not None else self.scorer.weights.default_historical_success)
        prediction = self.neighbor_predictor.predict(
            entity.traits,
            self.neighbor_source.neighbors_for(entity),
            legacy_score=legacy * 100,
        )
        if prediction.fallback_triggered:
            return known, prediction
        return prediction.prediction / 100, prediction

    def _generate_recommendation(
        self,
        run_id: str,
        org_id: str,
        hypothesis: Hypothesis,
        check: GuardrailCheckResult,
        health_score: float,
        benchmark: float,
        valid_entities: int,
    ) -> Recommendation:
        entity = hypothesis.entity
        historical, neighbor = self._historical_success(entity)

        evidence = Evidence(
            data_points=valid_entities * self.config.window_days,
            variance=self.config.default_variance,
            completeness=round(entity.populated_fraction(self.config.metrics), 4),
            health_score=health_score,
            historical_success_rate=historical,
            sources=["metrics", "data_health", "benchmarks"]
            + (["neighbors"] if neighbor is not None else []),
            metrics={m: getattr(entity, m, None) for m in self.config.metrics},
            benchmark=benchmark,
            neighbor=neighbor,
        )

        reasoning = [hypothesis.rationale]
        reasoning.extend(f"Warning: {w.message}" for w in check.warnings)
        if check.change_request is not None:
            cr = check.change_request
            reasoning.append(f"Risk {cr.risk.score:g} ({cr.risk.level.value})")
            reasoning.extend(f"Approval: {r}" for r in cr.approval.reasons)

        return Recommendation(
            id=f"rec_{uuid4().hex[:12]}",
            org_id=org_id,
            type=hypothesis.action_type,
            entity_id=entity.entity_id,
            entity_type=entity.entity_type.value,
            action=hypothesis.payload,
            evidence=evidence,
            confidence=self.scorer.score(evidence),
            change_request=check.change_request,
            reasoning=reasoning,
            run_id=run_id,
            created_at=datetime.now(timezone.utc),
        )
