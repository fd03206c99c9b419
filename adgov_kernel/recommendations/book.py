"""
Recommendation Book — holds emitted recommendations and their status changes.

Behavioral Contract:
- The kernel never moves a recommendation past pending on its own; every
  transition here is an explicit call by a human or automation actor
- accept / reject only from pending
- apply from pending or accepted, but a recommendation whose change request
  still awaits approval must be accepted first. Applying records the change
  in the governance ledger (rate limited) and opens a 7-day evaluation window
- accepting approves a pending change request; rejecting rejects it
- expire from pending or accepted
- applied, rejected and expired are terminal
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from adgov_kernel.errors import InvalidTransitionError, RecommendationNotFound
from adgov_kernel.governance.ledger import GovernanceLedger
from adgov_kernel.models.governance import ChangeRequestStatus
from adgov_kernel.models.recommendation import Recommendation, RecommendationStatus

logger = logging.getLogger(__name__)

EVALUATION_WINDOW = timedelta(days=7)

_P = RecommendationStatus.PENDING
_A = RecommendationStatus.ACCEPTED

ALLOWED_FROM: Dict[RecommendationStatus, Tuple[RecommendationStatus, ...]] = {
    RecommendationStatus.ACCEPTED: (_P,),
    RecommendationStatus.REJECTED: (_P,),
    RecommendationStatus.APPLIED: (_P, _A),
    RecommendationStatus.EXPIRED: (_P, _A),
}


class RecommendationBook:
    def __init__(self, ledger: Optional[GovernanceLedger] = None):
        self.ledger = ledger
        self._recs: Dict[str, Recommendation] = {}
        self._lock = threading.Lock()

    def add(self, recommendation: Recommendation) -> Recommendation:
        with self._lock:
            self._recs[recommendation.id] = recommendation
        return recommendation

    def add_all(self, recommendations: List[Recommendation]) -> None:
        with self._lock:
            for rec in recommendations:
                self._recs[rec.id] = rec

    def get(self, rec_id: str) -> Recommendation:
        with self._lock:
            rec = self._recs.get(rec_id)
        if rec is None:
            raise RecommendationNotFound(f"Recommendation {rec_id} not found")
        return rec

    def list_recommendations(
        self,
        org_id: Optional[str] = None,
        status: Optional[RecommendationStatus] = None,
        entity_id: Optional[str] = None,
    ) -> List[Recommendation]:
        with self._lock:
            recs = list(self._recs.values())
        return [
            r for r in recs
            if (org_id is None or r.org_id == org_id)
            and (status is None or r.status == status)
            and (entity_id is None or r.entity_id == entity_id)
        ]

    def _transition(
        self,
        rec_id: str,
        to_status: RecommendationStatus,
        actor: str,
        now: Optional[datetime] = None,
    ) -> Recommendation:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            rec = self._recs.get(rec_id)
            if rec is None:
                raise RecommendationNotFound(f"Recommendation {rec_id} not found")
            if rec.status not in ALLOWED_FROM[to_status]:
                raise InvalidTransitionError(
                    f"recommendation {rec_id}", rec.status.value, to_status.value
                )

            cr = rec.change_request
            awaiting_approval = cr is not None and cr.status == ChangeRequestStatus.PENDING

            if to_status == RecommendationStatus.APPLIED:
                if awaiting_approval:
                    # Changes that need approval must be accepted first
                    raise InvalidTransitionError(
                        f"recommendation {rec_id}", rec.status.value, to_status.value
                    )
                if self.ledger is not None:
                    # Raises RateLimitExceeded and leaves the status untouched
                    self.ledger.record_change(rec.org_id, rec.entity_id, now)
                rec.applied_at = now
                rec.evaluation_ends_at = now + EVALUATION_WINDOW

            if awaiting_approval and to_status == RecommendationStatus.ACCEPTED:
                cr.status = ChangeRequestStatus.APPROVED
                cr.approvers.append(actor)
            elif awaiting_approval and to_status == RecommendationStatus.REJECTED:
                cr.status = ChangeRequestStatus.REJECTED

            rec.status = to_status
            rec.decided_by = actor
            rec.decided_at = now

        logger.info(f"Recommendation {rec_id} {to_status.value} by {actor}")
        return rec

    def accept(self, rec_id: str, actor: str) -> Recommendation:
        return self._transition(rec_id, RecommendationStatus.ACCEPTED, actor)

    def reject(self, rec_id: str, actor: str) -> Recommendation:
        return self._transition(rec_id, RecommendationStatus.REJECTED, actor)

    def apply(
        self, rec_id: str, actor: str, now: Optional[datetime] = None
    ) -> Recommendation:
        return self._transition(rec_id, RecommendationStatus.APPLIED, actor, now)

    def expire(self, rec_id: str, actor: str = "system") -> Recommendation:
        return self._transition(rec_id, RecommendationStatus.EXPIRED, actor)

    def record_outcome(self, rec_id: str, success: bool) -> None:
        """Feed an applied recommendation's result into the entity's failure history."""
        rec = self.get(rec_id)
        if rec.status != RecommendationStatus.APPLIED:
            raise InvalidTransitionError(
                f"recommendation {rec_id}", rec.status.value, "outcome"
            )
        if self.ledger is not None:
            self.ledger.record_outcome(rec.entity_id, success)
