"""
Metrics Gateway — per-entity performance snapshots for a date window.

The gateway is an external collaborator; the kernel only depends on the
Protocol. InMemoryMetricsGateway backs the API and the tests.
"""

from typing import Dict, List, Optional, Protocol

from adgov_kernel.models.metrics import EntityType, MetricSnapshot

DATE_RANGES = ("today", "yesterday", "last_7d", "last_14d", "last_30d")


class MetricsGateway(Protocol):
    """Protocol for metric sources — pluggable backend."""

    def fetch_metrics(
        self,
        entity_type: EntityType,
        entity_ids: Optional[List[str]],
        date_range: str,
        metrics: List[str],
    ) -> List[MetricSnapshot]: ...


class InMemoryMetricsGateway:
    """Snapshots keyed by entity id. Date range is validated but not sliced."""

    def __init__(self):
        self._snapshots: Dict[str, MetricSnapshot] = {}

    def upsert(self, snapshot: MetricSnapshot) -> None:
        self._snapshots[snapshot.entity_id] = snapshot

    def get(self, entity_id: str) -> Optional[MetricSnapshot]:
        return self._snapshots.get(entity_id)

    def fetch_metrics(
        self,
        entity_type: EntityType,
        entity_ids: Optional[List[str]],
        date_range: str,
        metrics: List[str],
    ) -> List[MetricSnapshot]:
        if date_range not in DATE_RANGES:
            raise ValueError(f"Unsupported date range: {date_range}")

        if entity_ids is None:
            return [
                s for s in self._snapshots.values() if s.entity_type == entity_type
            ]

        results = []
        for entity_id in entity_ids:
            snapshot = self._snapshots.get(entity_id)
            if snapshot is None or snapshot.entity_type != entity_type:
                results.append(MetricSnapshot(
                    entity_id=entity_id, entity_type=entity_type, found=False
                ))
            else:
                results.append(snapshot)
        return results
