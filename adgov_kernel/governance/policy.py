"""
Governance Policy — pure risk, approval and rate-limit evaluation.

Behavioral Contract:
- Risk score is the capped weighted sum of four factors, recomputed on every call
- Approval requirement reports every triggered reason, not just a boolean
- Rate limits are checked cooldown first, then daily, then weekly
- A change request that requires approval starts pending, never auto_approved
- No function here reads or writes shared state; the ledger owns that
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence
from uuid import uuid4

from croniter import croniter

from adgov_kernel.models.governance import (
    ApprovalRequirement,
    ChangeRequest,
    ChangeRequestStatus,
    ChangeType,
    GovernanceConfig,
    RateLimitCheck,
    RiskFactor,
    RiskLevel,
    RiskScore,
)


def risk_level(score: float) -> RiskLevel:
    """Fixed level boundaries: >=75 critical, >=50 high, >=25 medium."""
    if score >= 75:
        return RiskLevel.CRITICAL
    if score >= 50:
        return RiskLevel.HIGH
    if score >= 25:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def change_percent(current_value: float, proposed_value: float) -> float:
    if current_value > 0:
        return (proposed_value - current_value) / current_value * 100
    return 0.0


def calculate_risk_score(
    change_pct: float,
    spend: float = 0.0,
    historical_failure_rate: float = 0.0,
    in_learning_phase: bool = False,
    config: Optional[GovernanceConfig] = None,
) -> RiskScore:
    cfg = config or GovernanceConfig()
    weights = cfg.risk_weights
    spend = max(spend or 0.0, 0.0)
    failure_rate = max(0.0, min(1.0, historical_failure_rate or 0.0))

    raw = [
        (
            "change_size",
            min(100.0, abs(change_pct) * 1.5),
            weights.change_size,
            f"{abs(change_pct):.1f}% change",
        ),
        (
            "entity_value",
            min(100.0, spend / 1000 * 10),
            weights.entity_value,
            f"${spend:.0f} spend",
        ),
        (
            "historical_failure",
            failure_rate * 100,
            weights.historical_failure,
            f"{failure_rate * 100:.0f}% failure rate",
        ),
        (
            "learning_phase",
            80.0 if in_learning_phase else 0.0,
            weights.learning_phase,
            "In learning phase" if in_learning_phase else "Stable",
        ),
    ]

    factors = [
        RiskFactor(
            name=name,
            score=round(score, 4),
            weighted_score=round(score * weight, 4),
            description=description,
        )
        for name, score, weight, description in raw
    ]
    total = min(100.0, sum(score * weight for _, score, weight, _ in raw))
    total = round(total, 2)
    return RiskScore(score=total, level=risk_level(total), factors=factors)


def check_approval_required(
    change_pct: float,
    risk_score: float,
    affected_entities: int = 1,
    config: Optional[GovernanceConfig] = None,
) -> ApprovalRequirement:
    cfg = config or GovernanceConfig()
    reasons: List[str] = []

    if abs(change_pct) >= cfg.approval_change_percent:
        reasons.append(f"Change exceeds {cfg.approval_change_percent:g}% threshold")

    if risk_score >= cfg.approval_risk_score:
        reasons.append(
            f"Risk score {risk_score:g} exceeds {cfg.approval_risk_score:g} threshold"
        )

    if affected_entities >= cfg.approval_entity_count:
        reasons.append(
            f"Affects {affected_entities} entities "
            f"(threshold: {cfg.approval_entity_count})"
        )

    return ApprovalRequirement(required=len(reasons) > 0, reasons=reasons)


def daily_window_start(now: datetime, config: GovernanceConfig) -> datetime:
    """Start of the current daily quota window."""
    if config.daily_reset_schedule:
        return croniter(config.daily_reset_schedule, now).get_prev(datetime)
    return now - timedelta(days=1)


def check_rate_limit(
    change_times: Sequence[datetime],
    config: Optional[GovernanceConfig] = None,
    now: Optional[datetime] = None,
) -> RateLimitCheck:
    """Evaluate a caller's change history against the configured limits."""
    cfg = config or GovernanceConfig()
    now = now or datetime.now(timezone.utc)
    day_start = daily_window_start(now, cfg)
    week_start = now - timedelta(days=7)

    today = [t for t in change_times if t > day_start]
    this_week = [t for t in change_times if t > week_start]
    remaining_today = max(0, cfg.max_changes_per_day - len(today))
    remaining_week = max(0, cfg.max_changes_per_week - len(this_week))

    if change_times:
        cooldown_end = max(change_times) + timedelta(minutes=cfg.cooldown_minutes)
        if now < cooldown_end:
            return RateLimitCheck(
                allowed=False,
                reason="Cooldown period in effect",
                remaining_today=remaining_today,
                remaining_this_week=remaining_week,
                next_available_at=cooldown_end,
            )

    if remaining_today <= 0:
        return RateLimitCheck(
            allowed=False,
            reason=f"Daily change limit ({cfg.max_changes_per_day}) reached",
            remaining_today=0,
            remaining_this_week=remaining_week,
        )

    if remaining_week <= 0:
        return RateLimitCheck(
            allowed=False,
            reason=f"Weekly change limit ({cfg.max_changes_per_week}) reached",
            remaining_today=remaining_today,
            remaining_this_week=0,
        )

    return RateLimitCheck(
        allowed=True,
        remaining_today=remaining_today,
        remaining_this_week=remaining_week,
    )


def create_change_request(
    org_id: str,
    entity_id: str,
    change_type: ChangeType,
    current_value: float,
    proposed_value: float,
    spend: float = 0.0,
    historical_failure_rate: float = 0.0,
    in_learning_phase: bool = False,
    affected_entities: int = 1,
    requested_by: str = "agent",
    config: Optional[GovernanceConfig] = None,
) -> ChangeRequest:
    """Bundle risk scoring and approval determination into one request."""
    pct = change_percent(current_value, proposed_value)
    risk = calculate_risk_score(
        change_pct=pct,
        spend=spend,
        historical_failure_rate=historical_failure_rate,
        in_learning_phase=in_learning_phase,
        config=config,
    )
    approval = check_approval_required(
        change_pct=pct,
        risk_score=risk.score,
        affected_entities=affected_entities,
        config=config,
    )

    return ChangeRequest(
        id=f"cr_{uuid4().hex[:12]}",
        org_id=org_id,
        entity_id=entity_id,
        change_type=change_type,
        current_value=current_value,
        proposed_value=proposed_value,
        change_percent=round(pct, 2),
        risk=risk,
        approval=approval,
        status=(
            ChangeRequestStatus.PENDING
            if approval.required
            else ChangeRequestStatus.AUTO_APPROVED
        ),
        requested_by=requested_by,
        created_at=datetime.now(timezone.utc),
    )
