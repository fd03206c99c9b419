"""Tests for prompt regression detection."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from adgov_kernel.models.regression import (
    SEVERITY_RANK,
    AlertSeverity,
    AlertStatus,
    PromptExecution,
    RegressionThresholds,
    RegressionType,
)
from adgov_kernel.regression.detector import (
    ExecutionTracker,
    RegressionDetector,
    calculate_metrics,
)

START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _make_executions(
    n: int,
    failures: int = 0,
    latency_ms: float = 200.0,
    quality: Optional[float] = None,
    offset: int = 0,
    prompt_version_id: str = "pv_1",
) -> List[PromptExecution]:
    """n executions, the first `failures` of which failed."""
    return [
        PromptExecution(
            id=f"exec_{offset + i}",
            prompt_version_id=prompt_version_id,
            success=i >= failures,
            latency_ms=latency_ms,
            tokens_used=100,
            quality_score=quality,
            error_type=None if i >= failures else "timeout",
            created_at=START + timedelta(seconds=offset + i),
        )
        for i in range(n)
    ]


def _types(alerts) -> list:
    return [a.alert_type for a in alerts]


class TestCalculateMetrics:
    def test_empty_window(self):
        m = calculate_metrics([])
        assert m.sample_size == 0
        assert m.success_rate == 0.0

    def test_rates_and_breakdown(self):
        m = calculate_metrics(_make_executions(10, failures=2, quality=80))
        assert m.success_rate == 0.8
        assert m.error_rate == 0.2
        assert m.avg_quality == 80
        assert m.error_breakdown == {"timeout": 2}


class TestRegressionDetector:
    def setup_method(self):
        self.detector = RegressionDetector()

    def test_success_rate_drop(self):
        baseline = _make_executions(20, failures=1)   # 0.95
        current = _make_executions(20, failures=4)    # 0.80
        alerts = self.detector.detect(baseline, current, "pv_1")
        drops = [a for a in alerts if a.alert_type == RegressionType.SUCCESS_RATE_DROP]
        assert len(drops) == 1
        assert SEVERITY_RANK[drops[0].severity] >= SEVERITY_RANK[AlertSeverity.HIGH]
        assert drops[0].baseline_value == 0.95
        assert drops[0].current_value == 0.8
        assert drops[0].change_percent == -15.79

    def test_eight_samples_never_alert(self):
        baseline = _make_executions(8)
        current = _make_executions(8, failures=8, latency_ms=5000)
        assert self.detector.detect(baseline, current) == []
        assert self.detector.detect(_make_executions(50), current) == []

    def test_stable_prompt_has_no_alerts(self):
        assert self.detector.detect(_make_executions(20), _make_executions(20)) == []

    def test_severe_success_drop_is_critical(self):
        alerts = self.detector.detect(_make_executions(20), _make_executions(20, failures=10))
        drop = next(a for a in alerts if a.alert_type == RegressionType.SUCCESS_RATE_DROP)
        assert drop.severity == AlertSeverity.CRITICAL

    def test_latency_increase(self):
        alerts = self.detector.detect(
            _make_executions(20, latency_ms=200), _make_executions(20, latency_ms=280)
        )
        assert _types(alerts) == [RegressionType.LATENCY_INCREASE]
        assert alerts[0].severity == AlertSeverity.MEDIUM

    def test_latency_doubling_is_high(self):
        alerts = self.detector.detect(
            _make_executions(20, latency_ms=200), _make_executions(20, latency_ms=500)
        )
        assert alerts[0].severity == AlertSeverity.HIGH

    def test_quality_drop(self):
        alerts = self.detector.detect(
            _make_executions(20, quality=80), _make_executions(20, quality=60)
        )
        assert _types(alerts) == [RegressionType.QUALITY_DROP]
        assert alerts[0].change_percent == -25.0

    def test_errors_against_clean_baseline_spike(self):
        alerts = self.detector.detect(_make_executions(20), _make_executions(20, failures=1))
        assert RegressionType.ERROR_SPIKE in _types(alerts)

    def test_custom_thresholds(self):
        detector = RegressionDetector(RegressionThresholds(min_samples=5))
        alerts = detector.detect(_make_executions(6), _make_executions(6, failures=3))
        assert RegressionType.SUCCESS_RATE_DROP in _types(alerts)


class TestExecutionTracker:
    def setup_method(self):
        self.tracker = ExecutionTracker(baseline_size=20, current_size=20)

    def _record(self, executions):
        for e in executions:
            self.tracker.record(e)

    def test_newest_executions_form_current_window(self):
        self._record(_make_executions(20))
        self._record(_make_executions(20, failures=4, offset=100))
        baseline, current = self.tracker.windows("pv_1")
        assert all(e.success for e in baseline)
        assert sum(1 for e in current if not e.success) == 4

    def test_evaluate_stores_alerts(self):
        self._record(_make_executions(20, failures=1))
        self._record(_make_executions(20, failures=4, offset=100))
        alerts = self.tracker.evaluate("pv_1")
        assert alerts
        assert len(self.tracker.alerts("pv_1")) == len(alerts)
        assert self.tracker.alerts("pv_other") == []

    def test_too_little_history(self):
        self._record(_make_executions(25))
        assert self.tracker.evaluate("pv_1") == []

    def test_acknowledge_and_resolve(self):
        self._record(_make_executions(20))
        self._record(_make_executions(20, failures=10, offset=100))
        alert = self.tracker.evaluate("pv_1")[0]
        assert self.tracker.acknowledge(alert.id).status == AlertStatus.ACKNOWLEDGED
        assert self.tracker.resolve(alert.id).status == AlertStatus.RESOLVED
        assert alert.id not in [a.id for a in self.tracker.alerts(status=AlertStatus.ACTIVE)]
        assert self.tracker.acknowledge("ra_missing") is None

    def test_current_metrics(self):
        self._record(_make_executions(20, failures=5))
        assert self.tracker.metrics("pv_1").success_rate == 0.75
