"""
Health Validator — data-quality scoring and the can-recommend gate.

Behavioral Contract:
- Each entity's health is a weighted blend of six 0-100 sub-scores
- validate_data_health averages the latest report of every requested entity
  that has one; with no reports at all the data is assumed healthy (100)
- can_recommend is score >= threshold; the gate never raises
"""

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from adgov_kernel.models.metrics import (
    DataHealthReport,
    HealthGate,
    HealthIssue,
    HealthScores,
    HealthSignals,
    HealthStatus,
    HealthWeights,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("impressions", "spend", "clicks")
IMPORTANT_FIELDS = ("reach", "ctr", "cpc", "cpm")
OPTIONAL_FIELDS = ("frequency", "video_views", "conversions")


def freshness_score(hours_since_update: float) -> float:
    if hours_since_update <= 4:
        return 100
    if hours_since_update <= 12:
        return 80
    if hours_since_update <= 24:
        return 60
    if hours_since_update <= 48:
        return 40
    return max(10, 40 - (hours_since_update - 48) * 0.5)


def completeness_score(field_values: Dict[str, Optional[float]]) -> float:
    score = 0
    total = 0
    for fields, weight in (
        (REQUIRED_FIELDS, 3),
        (IMPORTANT_FIELDS, 2),
        (OPTIONAL_FIELDS, 1),
    ):
        for field in fields:
            total += weight
            if field_values.get(field) is not None:
                score += weight
    return round(score / total * 100)


def lag_score(reporting_delay_hours: float) -> float:
    if reporting_delay_hours <= 2:
        return 100
    if reporting_delay_hours <= 6:
        return 70
    if reporting_delay_hours <= 12:
        return 40
    return 20


def attribution_score(
    window_days: int, has_all_conversions: bool, conversion_lag_hours: float
) -> float:
    score = 100
    if window_days < 7:
        score -= 20
    if window_days < 1:
        score -= 30
    if not has_all_conversions:
        score -= 30
    if conversion_lag_hours > 24:
        score -= 10
    if conversion_lag_hours > 48:
        score -= 20
    return max(0, score)


def api_stability_score(success_count: int, total_count: int) -> float:
    if total_count == 0:
        return 50
    rate = success_count / total_count
    if rate >= 0.99:
        return 100
    if rate >= 0.95:
        return 80
    if rate >= 0.90:
        return 60
    return max(20, round(rate * 100))


def consistency_score(daily_values: List[float]) -> float:
    if len(daily_values) < 3:
        return 70
    n = len(daily_values)
    missing_penalty = sum(1 for v in daily_values if v == 0) / n * 50
    mean = sum(daily_values) / n
    std_dev = math.sqrt(sum((v - mean) ** 2 for v in daily_values) / n)
    outliers = sum(1 for v in daily_values if abs(v - mean) > 3 * std_dev)
    return max(0.0, 100 - missing_penalty - outliers * 10)


def health_status(score: float) -> HealthStatus:
    if score >= 80:
        return HealthStatus.HEALTHY
    if score >= 50:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


def detect_issues(scores: HealthScores) -> List[HealthIssue]:
    issues = []
    if scores.freshness < 40:
        issues.append(HealthIssue(
            type="stale_data", severity="critical",
            message="Data is significantly outdated",
            metric="freshness", value=scores.freshness,
        ))
    elif scores.freshness < 60:
        issues.append(HealthIssue(
            type="stale_data", severity="warning",
            message="Data may be outdated",
            metric="freshness", value=scores.freshness,
        ))
    if scores.completeness < 50:
        issues.append(HealthIssue(
            type="incomplete_data", severity="critical",
            message="Required metrics are missing",
            metric="completeness", value=scores.completeness,
        ))
    if scores.api_stability < 60:
        issues.append(HealthIssue(
            type="api_instability", severity="warning",
            message="API connection has been unstable",
            metric="api_stability", value=scores.api_stability,
        ))
    if scores.attribution < 50:
        issues.append(HealthIssue(
            type="attribution_issue", severity="warning",
            message="Conversion attribution may be incomplete",
            metric="attribution", value=scores.attribution,
        ))
    if scores.consistency < 40:
        issues.append(HealthIssue(
            type="inconsistent_data", severity="info",
            message="Data shows unexpected patterns",
            metric="consistency", value=scores.consistency,
        ))
    return issues


def calculate_data_health(
    entity_id: str,
    signals: HealthSignals,
    weights: Optional[HealthWeights] = None,
) -> DataHealthReport:
    w = weights or HealthWeights()
    scores = HealthScores(
        freshness=freshness_score(signals.hours_since_update),
        completeness=completeness_score(signals.field_values),
        lag=lag_score(signals.reporting_delay_hours),
        attribution=attribution_score(
            signals.attribution_window_days,
            signals.has_all_conversions,
            signals.conversion_lag_hours,
        ),
        api_stability=api_stability_score(
            signals.api_success_count, signals.api_total_count
        ),
        consistency=consistency_score(signals.daily_values),
    )
    overall = round(
        scores.freshness * w.freshness
        + scores.completeness * w.completeness
        + scores.lag * w.lag
        + scores.attribution * w.attribution
        + scores.api_stability * w.api_stability
        + scores.consistency * w.consistency
    )
    status = health_status(overall)

    modifier = 1.0
    if status == HealthStatus.UNHEALTHY:
        modifier = 0.5
    elif status == HealthStatus.DEGRADED:
        modifier = 0.75

    hints = []
    if scores.freshness < 60:
        hints.append("Sync data more frequently to improve freshness")
    if scores.completeness < 70:
        hints.append("Ensure all required metrics are being tracked")
    if scores.api_stability < 80:
        hints.append("Check API connection and error logs")

    return DataHealthReport(
        entity_id=entity_id,
        scores=scores,
        overall_score=overall,
        status=status,
        issues=detect_issues(scores),
        confidence_modifier=modifier,
        recommendations=hints,
        computed_at=datetime.now(timezone.utc),
    )


class HealthValidator:
    """Holds the latest health report per entity and answers the go/no-go gate."""

    def __init__(
        self,
        threshold: float = 70.0,
        weights: Optional[HealthWeights] = None,
    ):
        self.threshold = threshold
        self.weights = weights or HealthWeights()
        self._reports: Dict[str, DataHealthReport] = {}
        self._lock = threading.Lock()

    def record(self, entity_id: str, signals: HealthSignals) -> DataHealthReport:
        report = calculate_data_health(entity_id, signals, self.weights)
        with self._lock:
            self._reports[entity_id] = report
        return report

    def get_report(self, entity_id: str) -> Optional[DataHealthReport]:
        with self._lock:
            return self._reports.get(entity_id)

    def validate_data_health(
        self, entity_ids: List[str], org_id: str
    ) -> HealthGate:
        with self._lock:
            reports = [self._reports[e] for e in entity_ids if e in self._reports]

        if not reports:
            score = 100.0
        else:
            score = round(sum(r.overall_score for r in reports) / len(reports), 1)

        issues = [issue for r in reports for issue in r.issues]
        gate = HealthGate(
            health_score=score,
            can_recommend=score >= self.threshold,
            status=health_status(score),
            entities_scored=len(reports),
            issues=issues,
        )
        if not gate.can_recommend:
            logger.info(
                f"Data health {score}/100 for org {org_id} is below "
                f"threshold {self.threshold}"
            )
        return gate
