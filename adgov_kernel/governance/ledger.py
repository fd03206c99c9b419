"""
Governance Ledger — shared change history behind rate limits and failure rates.

Behavioral Contract:
- The only mutable governance state. Every check receives the ledger explicitly
- record_change checks the rate limit and records under one lock, so two
  concurrent callers can never both observe "under quota" and both proceed
- Per-entity outcomes feed the historical-failure risk factor
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from adgov_kernel.errors import RateLimitExceeded
from adgov_kernel.governance.policy import check_rate_limit
from adgov_kernel.models.governance import GovernanceConfig, RateLimitCheck

logger = logging.getLogger(__name__)


class GovernanceLedger:
    """In-memory ledger keyed by organization (changes) and entity (outcomes)."""

    def __init__(self, config: Optional[GovernanceConfig] = None):
        self.config = config or GovernanceConfig()
        self._lock = threading.Lock()
        self._changes: Dict[str, List[datetime]] = defaultdict(list)
        self._entity_changes: Dict[str, List[datetime]] = defaultdict(list)
        self._outcomes: Dict[str, List[bool]] = defaultdict(list)

    def check_rate_limit(
        self, org_id: str, now: Optional[datetime] = None
    ) -> RateLimitCheck:
        """Read-only view of the caller's remaining budget."""
        with self._lock:
            history = list(self._changes[org_id])
        return check_rate_limit(history, self.config, now)

    def record_change(
        self, org_id: str, entity_id: str, now: Optional[datetime] = None
    ) -> RateLimitCheck:
        """
        Atomically check the rate limit and, if allowed, record the change.

        Returns the check as it stood before recording. Raises
        RateLimitExceeded when the change is refused.
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            check = check_rate_limit(self._changes[org_id], self.config, now)
            if not check.allowed:
                logger.warning(
                    f"Rate limit refused change on {entity_id} for {org_id}: {check.reason}"
                )
                raise RateLimitExceeded(check)
            self._changes[org_id].append(now)
            self._entity_changes[entity_id].append(now)
        return check

    def record_outcome(self, entity_id: str, success: bool) -> None:
        with self._lock:
            self._outcomes[entity_id].append(success)

    def failure_rate(self, entity_id: str) -> float:
        with self._lock:
            outcomes = list(self._outcomes.get(entity_id, []))
        if not outcomes:
            return 0.0
        return outcomes.count(False) / len(outcomes)

    def historical_success_rate(self, entity_id: str) -> Optional[float]:
        """None when nothing is known about the entity."""
        with self._lock:
            outcomes = list(self._outcomes.get(entity_id, []))
        if not outcomes:
            return None
        return outcomes.count(True) / len(outcomes)

    def changes_for(self, org_id: str) -> List[datetime]:
        with self._lock:
            return list(self._changes.get(org_id, []))

    def changes_for_entity(self, entity_id: str) -> List[datetime]:
        with self._lock:
            return list(self._entity_changes.get(entity_id, []))
