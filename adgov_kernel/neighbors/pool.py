"""Neighbor pools — where historical entities with known outcomes come from."""

import threading
from typing import List, Protocol

from adgov_kernel.models.metrics import MetricSnapshot
from adgov_kernel.models.neighbor import NeighborRecord


class NeighborSource(Protocol):
    def neighbors_for(self, entity: MetricSnapshot) -> List[NeighborRecord]: ...


class NeighborPool:
    """In-memory pool. Every entity sees the whole pool; excludes itself."""

    def __init__(self):
        self._records: List[NeighborRecord] = []
        self._lock = threading.Lock()

    def add(self, record: NeighborRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self) -> List[NeighborRecord]:
        with self._lock:
            return list(self._records)

    def neighbors_for(self, entity: MetricSnapshot) -> List[NeighborRecord]:
        return [r for r in self.records() if r.id != entity.entity_id]
