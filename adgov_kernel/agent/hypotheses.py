"""
Hypothesis rules — deterministic candidate actions from one entity's metrics.

Rules run in order and the first that fires wins, so an entity yields at most
one hypothesis. With an intent filter, rules for other actions are skipped
before a winner is picked. Entities matching no rule produce nothing.
"""

from typing import Callable, List, Optional

from adgov_kernel.models.agent import AgentConfig
from adgov_kernel.models.metrics import MetricSnapshot
from adgov_kernel.models.recommendation import (
    ActionPayload,
    ActionType,
    BudgetChange,
    StatusChange,
)


class Hypothesis:
    """A candidate action awaiting guardrail review."""

    def __init__(
        self,
        entity: MetricSnapshot,
        action_type: ActionType,
        payload: ActionPayload,
        rationale: str,
    ):
        self.entity = entity
        self.action_type = action_type
        self.payload = payload
        self.rationale = rationale

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity.entity_id,
            "action_type": self.action_type.value,
            "payload": self.payload.model_dump(mode="json"),
            "rationale": self.rationale,
        }


class RuleBasedHypothesisGenerator:
    def __init__(self, config: Optional[AgentConfig] = None):
        self.config = config or AgentConfig()
        self._rules: List[Callable[[MetricSnapshot, float], Optional[Hypothesis]]] = []
        self._register_default_rules()

    def _register_default_rules(self) -> None:
        self._rules = [
            self._rule_scale_winner,
            self._rule_pause_expensive,
        ]

    def generate(
        self,
        entities: List[MetricSnapshot],
        benchmark: float,
        only: Optional[ActionType] = None,
    ) -> List[Hypothesis]:
        hypotheses = []
        for entity in entities:
            if not entity.found:
                continue
            for rule in self._rules:
                hypothesis = rule(entity, benchmark)
                if hypothesis is None:
                    continue
                if only is not None and hypothesis.action_type != only:
                    continue
                hypotheses.append(hypothesis)
                break
        return hypotheses

    def _rule_scale_winner(
        self, entity: MetricSnapshot, benchmark: float
    ) -> Optional[Hypothesis]:
        roas = entity.roas or 0.0
        spend = entity.spend or 0.0
        if roas <= self.config.scale_min_roas or spend <= self.config.scale_min_spend:
            return None

        factor = self.config.scale_factor
        return Hypothesis(
            entity=entity,
            action_type=ActionType.SCALE,
            payload=BudgetChange(
                current_value=spend,
                proposed_value=round(spend * factor, 2),
                change_percent=round((factor - 1) * 100, 2),
                expected_impact="conversions +15-25%",
            ),
            rationale=f"ROAS {roas:.2f} above {self.config.scale_min_roas:g} on ${spend:.2f} spend",
        )

    def _rule_pause_expensive(
        self, entity: MetricSnapshot, benchmark: float
    ) -> Optional[Hypothesis]:
        cpa = entity.cpa
        limit = benchmark * self.config.pause_cpa_multiplier
        if benchmark <= 0 or cpa is None or cpa <= limit:
            return None

        return Hypothesis(
            entity=entity,
            action_type=ActionType.PAUSE,
            payload=StatusChange(
                current_status="active",
                proposed_status="paused",
                reason=f"CPA ${cpa:.2f} is {cpa / benchmark:.1f}x the ${benchmark:.2f} benchmark",
                expected_impact="stop spend on an underperforming entity",
            ),
            rationale=f"CPA ${cpa:.2f} exceeds {self.config.pause_cpa_multiplier:g}x benchmark",
        )
