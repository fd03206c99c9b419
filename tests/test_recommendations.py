"""Tests for recommendation status transitions."""

from datetime import datetime, timedelta, timezone

import pytest

from adgov_kernel.errors import (
    InvalidTransitionError,
    RateLimitExceeded,
    RecommendationNotFound,
)
from adgov_kernel.governance import policy
from adgov_kernel.governance.ledger import GovernanceLedger
from adgov_kernel.models.governance import ChangeRequestStatus, ChangeType
from adgov_kernel.models.recommendation import (
    ActionType,
    BudgetChange,
    Evidence,
    Recommendation,
    RecommendationStatus,
)
from adgov_kernel.recommendations.book import RecommendationBook

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _make_recommendation(
    rec_id: str = "rec_1",
    entity_id: str = "ad_1",
    proposed: float = 24.0,
) -> Recommendation:
    cr = policy.create_change_request(
        org_id="org_1",
        entity_id=entity_id,
        change_type=ChangeType.BUDGET,
        current_value=20.0,
        proposed_value=proposed,
        spend=20.0,
    )
    return Recommendation(
        id=rec_id,
        org_id="org_1",
        type=ActionType.SCALE,
        entity_id=entity_id,
        action=BudgetChange(
            current_value=20.0,
            proposed_value=proposed,
            change_percent=cr.change_percent,
        ),
        evidence=Evidence(),
        confidence=0.7,
        change_request=cr,
        created_at=NOW,
    )


class TestRecommendationBook:
    def setup_method(self):
        self.ledger = GovernanceLedger()
        self.book = RecommendationBook(ledger=self.ledger)
        self.book.add(_make_recommendation())

    def test_starts_pending(self):
        rec = self.book.get("rec_1")
        assert rec.status == RecommendationStatus.PENDING
        assert rec.approval_status == "auto_approved"

    def test_accept_from_pending(self):
        rec = self.book.accept("rec_1", "alice")
        assert rec.status == RecommendationStatus.ACCEPTED
        assert rec.decided_by == "alice"
        assert rec.decided_at is not None

    def test_reject_is_terminal(self):
        self.book.reject("rec_1", "alice")
        for transition in (self.book.accept, self.book.apply, self.book.expire):
            with pytest.raises(InvalidTransitionError):
                transition("rec_1", "alice")

    def test_accepted_cannot_be_rejected(self):
        self.book.accept("rec_1", "alice")
        with pytest.raises(InvalidTransitionError):
            self.book.reject("rec_1", "alice")

    def test_apply_records_change_and_opens_evaluation(self):
        rec = self.book.apply("rec_1", "alice", now=NOW)
        assert rec.status == RecommendationStatus.APPLIED
        assert rec.applied_at == NOW
        assert rec.evaluation_ends_at == NOW + timedelta(days=7)
        assert self.ledger.changes_for("org_1") == [NOW]
        assert self.ledger.changes_for_entity("ad_1") == [NOW]

    def test_apply_after_accept(self):
        self.book.accept("rec_1", "alice")
        assert self.book.apply("rec_1", "alice", now=NOW).status == RecommendationStatus.APPLIED

    def test_apply_rate_limited(self):
        self.book.add(_make_recommendation("rec_2", "ad_2"))
        self.book.apply("rec_1", "alice", now=NOW)
        with pytest.raises(RateLimitExceeded):
            self.book.apply("rec_2", "alice", now=NOW + timedelta(minutes=1))
        assert self.book.get("rec_2").status == RecommendationStatus.PENDING

    def test_change_needing_approval_must_be_accepted_first(self):
        self.book.add(_make_recommendation("rec_big", proposed=40.0))
        rec = self.book.get("rec_big")
        assert rec.approval_status == "pending"

        with pytest.raises(InvalidTransitionError):
            self.book.apply("rec_big", "alice", now=NOW)

        rec = self.book.accept("rec_big", "bob")
        assert rec.change_request.status == ChangeRequestStatus.APPROVED
        assert rec.change_request.approvers == ["bob"]
        assert self.book.apply("rec_big", "bob", now=NOW).status == RecommendationStatus.APPLIED

    def test_reject_rejects_pending_change_request(self):
        self.book.add(_make_recommendation("rec_big", proposed=40.0))
        rec = self.book.reject("rec_big", "bob")
        assert rec.change_request.status == ChangeRequestStatus.REJECTED

    def test_expire(self):
        rec = self.book.expire("rec_1")
        assert rec.status == RecommendationStatus.EXPIRED
        assert rec.decided_by == "system"

    def test_unknown_recommendation(self):
        with pytest.raises(RecommendationNotFound):
            self.book.accept("rec_missing", "alice")

    def test_outcome_feeds_failure_history(self):
        self.book.apply("rec_1", "alice", now=NOW)
        self.book.record_outcome("rec_1", success=False)
        assert self.ledger.failure_rate("ad_1") == 1.0

    def test_outcome_requires_applied(self):
        with pytest.raises(InvalidTransitionError):
            self.book.record_outcome("rec_1", success=True)

    def test_list_filters(self):
        self.book.add(_make_recommendation("rec_2", "ad_2"))
        self.book.accept("rec_2", "alice")
        assert len(self.book.list_recommendations(org_id="org_1")) == 2
        pending = self.book.list_recommendations(status=RecommendationStatus.PENDING)
        assert [r.id for r in pending] == ["rec_1"]
        assert [r.id for r in self.book.list_recommendations(entity_id="ad_2")] == ["rec_2"]
