"""
Regression Detector — compares a current execution window to a baseline.

Behavioral Contract:
- Either window under min_samples ⇒ no alerts (not an error)
- One alert per regressed dimension: success rate, latency, quality, error rate
- Changes are relative to the baseline value, in percent
- Severity escalates with the size of the deviation
"""

import logging
import threading
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from adgov_kernel.models.regression import (
    AlertSeverity,
    AlertStatus,
    ExecutionMetrics,
    PromptExecution,
    RegressionAlert,
    RegressionThresholds,
    RegressionType,
)

logger = logging.getLogger(__name__)


def calculate_metrics(executions: List[PromptExecution]) -> ExecutionMetrics:
    n = len(executions)
    if n == 0:
        return ExecutionMetrics(
            sample_size=0,
            success_rate=0.0,
            avg_latency_ms=0.0,
            avg_tokens=0.0,
            error_rate=0.0,
        )

    successes = sum(1 for e in executions if e.success)
    quality = [e.quality_score for e in executions if e.quality_score is not None]
    errors = Counter(e.error_type or "unknown" for e in executions if not e.success)

    return ExecutionMetrics(
        sample_size=n,
        success_rate=successes / n,
        avg_latency_ms=sum(e.latency_ms for e in executions) / n,
        avg_tokens=sum(e.tokens_used for e in executions) / n,
        avg_quality=sum(quality) / len(quality) if quality else None,
        error_rate=(n - successes) / n,
        error_breakdown=dict(errors),
    )


def _relative_change(baseline: float, current: float) -> float:
    if baseline == 0:
        return 0.0
    return (current - baseline) / baseline * 100


def _success_severity(drop: float) -> AlertSeverity:
    if drop > 30:
        return AlertSeverity.CRITICAL
    if drop >= 15:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def _error_severity(error_rate: float) -> AlertSeverity:
    if error_rate > 0.2:
        return AlertSeverity.CRITICAL
    if error_rate > 0.1:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


class RegressionDetector:
    def __init__(self, thresholds: Optional[RegressionThresholds] = None):
        self.thresholds = thresholds or RegressionThresholds()

    def detect(
        self,
        baseline: List[PromptExecution],
        current: List[PromptExecution],
        prompt_version_id: Optional[str] = None,
    ) -> List[RegressionAlert]:
        t = self.thresholds
        if len(baseline) < t.min_samples or len(current) < t.min_samples:
            return []

        base = calculate_metrics(baseline)
        cur = calculate_metrics(current)
        now = datetime.now(timezone.utc)
        alerts: List[RegressionAlert] = []

        def alert(kind, severity, base_value, cur_value, change, message):
            alerts.append(RegressionAlert(
                id=f"ra_{uuid4().hex[:12]}",
                prompt_version_id=prompt_version_id,
                alert_type=kind,
                severity=severity,
                baseline_value=round(base_value, 4),
                current_value=round(cur_value, 4),
                change_percent=round(change, 2),
                baseline_samples=base.sample_size,
                current_samples=cur.sample_size,
                message=message,
                detected_at=now,
            ))

        success_drop = -_relative_change(base.success_rate, cur.success_rate)
        if success_drop >= t.success_rate_drop_percent:
            alert(
                RegressionType.SUCCESS_RATE_DROP,
                _success_severity(success_drop),
                base.success_rate,
                cur.success_rate,
                -success_drop,
                f"Success rate dropped {success_drop:.1f}% "
                f"({base.success_rate:.1%} -> {cur.success_rate:.1%})",
            )

        latency_rise = _relative_change(base.avg_latency_ms, cur.avg_latency_ms)
        if latency_rise >= t.latency_increase_percent:
            alert(
                RegressionType.LATENCY_INCREASE,
                AlertSeverity.HIGH if latency_rise > 100 else AlertSeverity.MEDIUM,
                base.avg_latency_ms,
                cur.avg_latency_ms,
                latency_rise,
                f"Latency increased {latency_rise:.1f}% "
                f"({base.avg_latency_ms:.0f}ms -> {cur.avg_latency_ms:.0f}ms)",
            )

        if base.avg_quality is not None and cur.avg_quality is not None:
            quality_drop = -_relative_change(base.avg_quality, cur.avg_quality)
            if quality_drop >= t.quality_drop_percent:
                alert(
                    RegressionType.QUALITY_DROP,
                    AlertSeverity.HIGH if quality_drop > 25 else AlertSeverity.MEDIUM,
                    base.avg_quality,
                    cur.avg_quality,
                    -quality_drop,
                    f"Quality dropped {quality_drop:.1f}%",
                )

        if base.error_rate > 0:
            spike = _relative_change(base.error_rate, cur.error_rate)
        else:
            # Any errors against a clean baseline count as a full spike
            spike = 100.0 if cur.error_rate > 0 else 0.0
        if spike >= t.error_spike_percent:
            alert(
                RegressionType.ERROR_SPIKE,
                _error_severity(cur.error_rate),
                base.error_rate,
                cur.error_rate,
                spike,
                f"Error rate spiked {spike:.1f}% "
                f"({base.error_rate:.1%} -> {cur.error_rate:.1%})",
            )

        for a in alerts:
            logger.warning(f"Regression detected for {prompt_version_id}: {a.message}")
        return alerts


class ExecutionTracker:
    """Rolling execution log per prompt version, plus alert history."""

    def __init__(
        self,
        detector: Optional[RegressionDetector] = None,
        baseline_size: int = 50,
        current_size: int = 50,
    ):
        self.detector = detector or RegressionDetector()
        self.baseline_size = baseline_size
        self.current_size = current_size
        self._executions: Dict[str, List[PromptExecution]] = defaultdict(list)
        self._alerts: Dict[str, RegressionAlert] = {}
        self._lock = threading.Lock()

    def record(self, execution: PromptExecution) -> None:
        with self._lock:
            self._executions[execution.prompt_version_id].append(execution)

    def windows(self, prompt_version_id: str):
        """(baseline, current): the newest executions are the current window."""
        with self._lock:
            executions = sorted(
                self._executions.get(prompt_version_id, []),
                key=lambda e: e.created_at,
            )
        current = executions[-self.current_size:]
        baseline = executions[:-self.current_size][-self.baseline_size:]
        return baseline, current

    def metrics(self, prompt_version_id: str) -> ExecutionMetrics:
        _, current = self.windows(prompt_version_id)
        return calculate_metrics(current)

    def evaluate(self, prompt_version_id: str) -> List[RegressionAlert]:
        baseline, current = self.windows(prompt_version_id)
        alerts = self.detector.detect(baseline, current, prompt_version_id)
        with self._lock:
            for a in alerts:
                self._alerts[a.id] = a
        return alerts

    def alerts(
        self,
        prompt_version_id: Optional[str] = None,
        status: Optional[AlertStatus] = None,
    ) -> List[RegressionAlert]:
        with self._lock:
            alerts = list(self._alerts.values())
        return [
            a for a in alerts
            if (prompt_version_id is None or a.prompt_version_id == prompt_version_id)
            and (status is None or a.status == status)
        ]

    def _set_status(self, alert_id: str, status: AlertStatus) -> Optional[RegressionAlert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            alert.status = status
            return alert

    def acknowledge(self, alert_id: str) -> Optional[RegressionAlert]:
        return self._set_status(alert_id, AlertStatus.ACKNOWLEDGED)

    def resolve(self, alert_id: str) -> Optional[RegressionAlert]:
        return self._set_status(alert_id, AlertStatus.RESOLVED)
