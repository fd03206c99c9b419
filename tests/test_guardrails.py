"""Tests for the Guardrail Engine."""

from datetime import datetime, timezone

import pytest

from adgov_kernel.governance.guardrails import GUARDRAILS, GuardrailEngine
from adgov_kernel.governance.ledger import GovernanceLedger
from adgov_kernel.models.governance import (
    ChangeRequestStatus,
    GuardrailConfig,
    GuardrailSeverity,
    OrgContext,
)
from adgov_kernel.models.metrics import MetricSnapshot
from adgov_kernel.models.recommendation import (
    ActionType,
    BidChange,
    BudgetChange,
    StatusChange,
)


def _make_metrics(**overrides) -> MetricSnapshot:
    """A mature, well-converting ad."""
    values = dict(
        entity_id="ad_1",
        spend=20.0,
        impressions=1500,
        clicks=90,
        conversions=60,
        cpa=10.0,
        roas=3.0,
    )
    values.update(overrides)
    return MetricSnapshot(**values)


def _make_scale(current: float = 20.0, pct: float = 20.0) -> BudgetChange:
    return BudgetChange(
        current_value=current,
        proposed_value=round(current * (1 + pct / 100), 2),
        change_percent=pct,
    )


def _names(findings) -> list:
    return [f.guardrail for f in findings]


class TestGuardrailEngine:
    def setup_method(self):
        self.ledger = GovernanceLedger()
        self.engine = GuardrailEngine(ledger=self.ledger)
        self.ctx = OrgContext(org_id="org_1", health_score=90)

    def test_healthy_scale_is_safe(self):
        result = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(), self.ctx
        )
        assert result.safe
        assert result.violations == []
        assert result.warnings == []
        assert result.rate_limit.allowed
        assert result.change_request.status == ChangeRequestStatus.AUTO_APPROVED
        assert result.change_request.proposed_value == 24.0

    def test_learning_phase_blocks(self):
        result = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(conversions=12), self.ctx
        )
        assert not result.safe
        assert _names(result.violations) == ["learning_phase"]
        assert "12/50 conversions" in result.violations[0].message

    def test_pause_needs_more_impressions(self):
        metrics = _make_metrics(impressions=800, roas=0.5, conversions=60)
        engine = GuardrailEngine(
            config=GuardrailConfig(disabled_guardrails=["top_converter_protection"])
        )
        scale = engine.check(ActionType.SCALE, "ad_1", _make_scale(), metrics, self.ctx)
        pause = engine.check(ActionType.PAUSE, "ad_1", StatusChange(), metrics, self.ctx)
        assert scale.safe
        assert _names(pause.violations) == ["sample_size"]
        assert "800/1000" in pause.violations[0].message

    def test_top_converter_cannot_be_paused(self):
        result = self.engine.check(
            ActionType.PAUSE, "ad_1", StatusChange(), _make_metrics(), self.ctx
        )
        assert "top_converter_protection" in _names(result.violations)
        assert "top performer" in result.violations[0].message

    def test_protected_entity_cannot_be_paused(self):
        ctx = OrgContext(org_id="org_1", never_pause_entities=["ad_1"])
        result = self.engine.check(
            ActionType.PAUSE, "ad_1", StatusChange(),
            _make_metrics(roas=0.5, conversions=60), ctx,
        )
        finding = next(v for v in result.violations if v.guardrail == "top_converter_protection")
        assert finding.message == "This entity is protected from pausing"

    def test_unhealthy_tracking_blocks_scaling(self):
        ctx = OrgContext(org_id="org_1", health_score=60)
        result = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(), ctx
        )
        assert _names(result.violations) == ["tracking_health"]

    def test_tracking_health_only_guards_spend_increases(self):
        ctx = OrgContext(org_id="org_1", health_score=60)
        result = self.engine.check(
            ActionType.PAUSE, "ad_1", StatusChange(), _make_metrics(), ctx
        )
        assert "tracking_health" not in _names(result.violations)

    def test_large_budget_change_warns(self):
        result = self.engine.check(
            ActionType.BUDGET_INCREASE, "ad_1", _make_scale(pct=60), _make_metrics(), self.ctx
        )
        assert result.safe
        assert _names(result.warnings) == ["budget_limit", "budget_daily_change"]
        assert all(w.severity == GuardrailSeverity.WARNING for w in result.warnings)
        assert result.change_request.status == ChangeRequestStatus.PENDING

    def test_bid_limits_warn(self):
        up = BidChange(current_value=1.0, proposed_value=1.4, change_percent=40)
        down = BidChange(current_value=1.0, proposed_value=0.3, change_percent=-70)
        result_up = self.engine.check(ActionType.BID_ADJUST, "ad_1", up, _make_metrics(), self.ctx)
        result_down = self.engine.check(ActionType.BID_ADJUST, "ad_1", down, _make_metrics(), self.ctx)
        assert _names(result_up.warnings) == ["bid_increase_limit"]
        assert _names(result_down.warnings) == ["bid_decrease_limit"]

    def test_blocked_action(self):
        ctx = OrgContext(org_id="org_1", never_recommend_actions=["scale"])
        result = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(), ctx
        )
        assert _names(result.violations) == ["action_blocklist"]

    def test_no_spend_blocks(self):
        result = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(current=5), _make_metrics(spend=0.0), self.ctx
        )
        assert "minimum_spend" in _names(result.violations)

    def test_disabled_guardrail_skipped(self):
        engine = GuardrailEngine(config=GuardrailConfig(disabled_guardrails=["learning_phase"]))
        result = engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(conversions=3), self.ctx
        )
        assert result.safe

    def test_rate_limit_is_a_violation(self):
        self.ledger.record_change("org_1", "ad_9", datetime.now(timezone.utc))
        result = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(), self.ctx
        )
        assert not result.safe
        assert _names(result.violations) == ["rate_limit"]
        assert result.violations[0].message == "Cooldown period in effect"

    def test_check_never_records_a_change(self):
        self.engine.check(ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(), self.ctx)
        assert self.ledger.changes_for("org_1") == []

    def test_pausing_is_a_full_spend_change(self):
        engine = GuardrailEngine(
            config=GuardrailConfig(disabled_guardrails=list(GUARDRAILS))
        )
        result = engine.check(
            ActionType.PAUSE, "ad_1", StatusChange(), _make_metrics(spend=200.0), self.ctx
        )
        cr = result.change_request
        assert cr.current_value == 200.0
        assert cr.proposed_value == 0.0
        assert cr.change_percent == -100.0
        assert cr.status == ChangeRequestStatus.PENDING

    def test_failure_history_raises_risk(self):
        baseline = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(), self.ctx
        ).change_request.risk.score
        for _ in range(4):
            self.ledger.record_outcome("ad_1", False)
        riskier = self.engine.check(
            ActionType.SCALE, "ad_1", _make_scale(), _make_metrics(), self.ctx
        ).change_request.risk.score
        assert riskier == pytest.approx(baseline + 25)
