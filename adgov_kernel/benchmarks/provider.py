"""Benchmark Provider — historical baselines for a metric."""

import statistics
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from adgov_kernel.models.metrics import Benchmark, BenchmarkObservation, EntityType


def _percentile(sorted_values: List[float], pct: float) -> float:
    """Linear-interpolated percentile over pre-sorted values."""
    if len(sorted_values) == 1:
        return sorted_values[0]
    k = (len(sorted_values) - 1) * pct
    lower = int(k)
    upper = min(lower + 1, len(sorted_values) - 1)
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * (k - lower)


class BenchmarkProvider:
    """In-memory store of historical metric observations."""

    def __init__(self):
        self._observations: List[BenchmarkObservation] = []
        self._lock = threading.Lock()

    def record(
        self,
        metric: str,
        value: float,
        entity_type: EntityType = EntityType.AD,
        observed_at: Optional[datetime] = None,
    ) -> BenchmarkObservation:
        obs = BenchmarkObservation(
            metric=metric,
            entity_type=entity_type,
            value=value,
            observed_at=observed_at or datetime.now(timezone.utc),
        )
        with self._lock:
            self._observations.append(obs)
        return obs

    def get_historical_benchmarks(
        self,
        metric: str,
        entity_type: EntityType = EntityType.AD,
        lookback_days: int = 30,
        now: Optional[datetime] = None,
    ) -> Benchmark:
        """Median of the metric over the lookback window; None when there is no history."""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=lookback_days)
        with self._lock:
            values = sorted(
                o.value
                for o in self._observations
                if o.metric == metric
                and o.entity_type == entity_type
                and since <= o.observed_at <= now
            )

        if not values:
            return Benchmark(
                metric=metric, entity_type=entity_type, lookback_days=lookback_days
            )

        return Benchmark(
            metric=metric,
            entity_type=entity_type,
            benchmark=round(statistics.median(values), 4),
            sample_size=len(values),
            p25=round(_percentile(values, 0.25), 4),
            p75=round(_percentile(values, 0.75), 4),
            lookback_days=lookback_days,
        )
