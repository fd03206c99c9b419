"""
Guardrail Engine — the single gate a hypothesis must pass to become a recommendation.

Behavioral Contract:
- Evaluates every enabled named guardrail; blocks become violations,
  soft findings become warnings
- Composes governance into the same gate: a rate-limit refusal is a violation,
  and every result carries a freshly computed ChangeRequest (risk + approval)
- safe is True only when there are no violations
- Never records a change; the ledger is consulted read-only
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from adgov_kernel.governance import policy
from adgov_kernel.governance.ledger import GovernanceLedger
from adgov_kernel.models.governance import (
    GovernanceConfig,
    GuardrailCheckResult,
    GuardrailConfig,
    GuardrailFinding,
    GuardrailSeverity,
    OrgContext,
)
from adgov_kernel.models.metrics import MetricSnapshot
from adgov_kernel.models.recommendation import (
    PAYLOAD_CHANGE_TYPES,
    SPEND_INCREASING_ACTIONS,
    ActionPayload,
    ActionType,
)

logger = logging.getLogger(__name__)


class GuardrailContext:
    """Everything a single guardrail rule may look at."""

    def __init__(
        self,
        action_type: ActionType,
        entity_id: str,
        proposed_change: ActionPayload,
        metrics: MetricSnapshot,
        org_context: OrgContext,
        config: GuardrailConfig,
    ):
        self.action_type = action_type
        self.entity_id = entity_id
        self.proposed_change = proposed_change
        self.metrics = metrics
        self.org_context = org_context
        self.config = config


def _change_values(
    proposed_change: ActionPayload, metrics: MetricSnapshot
) -> Tuple[float, float]:
    """Numeric (current, proposed) pair used for risk scoring."""
    if proposed_change.kind in ("budget", "bid"):
        return proposed_change.current_value, proposed_change.proposed_value
    if proposed_change.kind == "status":
        spend = metrics.spend or 0.0
        stopping = proposed_change.proposed_status == "paused"
        return spend, 0.0 if stopping else spend
    return 0.0, 0.0


def _payload_change_percent(proposed_change: ActionPayload) -> float:
    return getattr(proposed_change, "change_percent", 0.0)


# --- Guardrail rules ---
# Each returns a message when the guardrail trips, None when it passes.

def _learning_phase(ctx: GuardrailContext) -> Optional[str]:
    conversions = ctx.metrics.conversions or 0
    required = ctx.config.min_conversions_out_of_learning
    if conversions < required:
        return (
            f"Only {conversions}/{required} conversions. "
            f"Wait for learning phase to complete."
        )
    return None


def _sample_size(ctx: GuardrailContext) -> Optional[str]:
    required = (
        ctx.config.min_impressions_for_pause
        if ctx.action_type == ActionType.PAUSE
        else ctx.config.min_impressions
    )
    impressions = ctx.metrics.impressions or 0
    if impressions < required:
        return f"Insufficient data: {impressions}/{required} impressions required"
    return None


def _top_converter_protection(ctx: GuardrailContext) -> Optional[str]:
    if ctx.action_type != ActionType.PAUSE:
        return None
    protected = ctx.entity_id in (
        ctx.org_context.never_pause_entities + ctx.config.never_pause_entities
    )
    if protected:
        return "This entity is protected from pausing"
    top = (ctx.metrics.roas or 0) > ctx.config.top_converter_roas or (
        ctx.metrics.conversions or 0
    ) > ctx.config.top_converter_conversions
    if top:
        return (
            f"Cannot pause: This is a top performer "
            f"(ROAS > {ctx.config.top_converter_roas:g} or "
            f"{ctx.config.top_converter_conversions}+ conversions)"
        )
    return None


def _tracking_health(ctx: GuardrailContext) -> Optional[str]:
    if ctx.action_type not in SPEND_INCREASING_ACTIONS:
        return None
    health = ctx.org_context.health_score
    if health is not None and health < ctx.config.min_tracking_health:
        return f"Tracking unhealthy ({health:g}/100). Fix tracking before scaling."
    return None


def _budget_limit(ctx: GuardrailContext) -> Optional[str]:
    if ctx.proposed_change.kind != "budget":
        return None
    pct = abs(_payload_change_percent(ctx.proposed_change))
    if pct > ctx.config.max_budget_change_percent:
        return f"Large budget change ({pct:g}%). Consider smaller increments."
    return None


def _action_blocklist(ctx: GuardrailContext) -> Optional[str]:
    blocked = ctx.org_context.never_recommend_actions + ctx.config.never_recommend_actions
    if ctx.action_type.value in blocked:
        return f'Action "{ctx.action_type.value}" is blocked by user preferences'
    return None


def _minimum_spend(ctx: GuardrailContext) -> Optional[str]:
    if (ctx.metrics.spend or 0) <= 0:
        return "No spend data available for this entity"
    return None


GUARDRAILS: Dict[str, Tuple[GuardrailSeverity, Callable]] = {
    "learning_phase": (GuardrailSeverity.BLOCK, _learning_phase),
    "sample_size": (GuardrailSeverity.BLOCK, _sample_size),
    "top_converter_protection": (GuardrailSeverity.BLOCK, _top_converter_protection),
    "tracking_health": (GuardrailSeverity.BLOCK, _tracking_health),
    "budget_limit": (GuardrailSeverity.WARNING, _budget_limit),
    "action_blocklist": (GuardrailSeverity.BLOCK, _action_blocklist),
    "minimum_spend": (GuardrailSeverity.BLOCK, _minimum_spend),
}


class GuardrailEngine:
    """Runs the named guardrails plus governance checks for one proposed action."""

    def __init__(
        self,
        config: Optional[GuardrailConfig] = None,
        governance_config: Optional[GovernanceConfig] = None,
        ledger: Optional[GovernanceLedger] = None,
    ):
        self.config = config or GuardrailConfig()
        self.ledger = ledger
        if governance_config is not None:
            self.governance_config = governance_config
        elif ledger is not None:
            self.governance_config = ledger.config
        else:
            self.governance_config = GovernanceConfig()

    def check(
        self,
        action_type: ActionType,
        entity_id: str,
        proposed_change: ActionPayload,
        metrics: MetricSnapshot,
        org_context: OrgContext,
    ) -> GuardrailCheckResult:
        ctx = GuardrailContext(
            action_type=action_type,
            entity_id=entity_id,
            proposed_change=proposed_change,
            metrics=metrics,
            org_context=org_context,
            config=self.config,
        )

        violations = []
        warnings = []
        for name, (severity, rule) in GUARDRAILS.items():
            if name in self.config.disabled_guardrails:
                continue
            message = rule(ctx)
            if message is None:
                continue
            finding = GuardrailFinding(guardrail=name, severity=severity, message=message)
            if severity == GuardrailSeverity.BLOCK:
                violations.append(finding)
            else:
                warnings.append(finding)

        warnings.extend(self._change_limit_warnings(proposed_change))

        rate_limit = None
        if self.ledger is not None:
            rate_limit = self.ledger.check_rate_limit(org_context.org_id)
            if not rate_limit.allowed:
                violations.append(GuardrailFinding(
                    guardrail="rate_limit",
                    severity=GuardrailSeverity.BLOCK,
                    message=rate_limit.reason or "Rate limit exceeded",
                ))

        change_request = self._change_request(
            entity_id, proposed_change, metrics, org_context
        )

        if violations:
            logger.info(
                f"Guardrails blocked {action_type.value} on {entity_id}: "
                f"{[v.guardrail for v in violations]}"
            )

        return GuardrailCheckResult(
            safe=len(violations) == 0,
            violations=violations,
            warnings=warnings,
            change_request=change_request,
            rate_limit=rate_limit,
        )

    def _change_limit_warnings(self, proposed_change: ActionPayload) -> list:
        cfg = self.governance_config
        pct = _payload_change_percent(proposed_change)
        warnings = []
        if proposed_change.kind == "budget" and abs(pct) > cfg.budget_max_daily_change_percent:
            warnings.append(GuardrailFinding(
                guardrail="budget_daily_change",
                severity=GuardrailSeverity.WARNING,
                message=(
                    f"Budget change {pct:g}% exceeds daily limit of "
                    f"{cfg.budget_max_daily_change_percent:g}%"
                ),
            ))
        if proposed_change.kind == "bid":
            if pct > cfg.bid_max_increase_percent:
                warnings.append(GuardrailFinding(
                    guardrail="bid_increase_limit",
                    severity=GuardrailSeverity.WARNING,
                    message=f"Bid increase {pct:g}% exceeds {cfg.bid_max_increase_percent:g}%",
                ))
            elif pct < -cfg.bid_max_decrease_percent:
                warnings.append(GuardrailFinding(
                    guardrail="bid_decrease_limit",
                    severity=GuardrailSeverity.WARNING,
                    message=f"Bid decrease {abs(pct):g}% exceeds {cfg.bid_max_decrease_percent:g}%",
                ))
        return warnings

    def _change_request(self, entity_id, proposed_change, metrics, org_context):
        current, proposed = _change_values(proposed_change, metrics)
        failure_rate = self.ledger.failure_rate(entity_id) if self.ledger else 0.0
        return policy.create_change_request(
            org_id=org_context.org_id,
            entity_id=entity_id,
            change_type=PAYLOAD_CHANGE_TYPES[proposed_change.kind],
            current_value=current,
            proposed_value=proposed,
            spend=metrics.spend or 0.0,
            historical_failure_rate=failure_rate,
            in_learning_phase=metrics.in_learning_phase,
            affected_entities=org_context.affected_entities,
            requested_by=org_context.requested_by,
            config=self.governance_config,
        )
