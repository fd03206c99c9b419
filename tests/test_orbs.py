"""Tests for the orb lifecycle and suggestion generation."""

import threading
from datetime import datetime, timezone

import pytest

from adgov_kernel.errors import (
    AutoPublishRefused,
    InvalidTransitionError,
    LearningIntentRequired,
    OrbNotFound,
    SuggestionCapExceeded,
    ValidationError,
)
from adgov_kernel.models.neighbor import NeighborConfig, NeighborRecord
from adgov_kernel.models.orb import (
    ExperimentLever,
    LearningIntent,
    OrbRemovalKind,
    OrbSource,
    OrbSpec,
    OrbState,
    SimilarityEvidence,
)
from adgov_kernel.orbs.generator import SuggestionGenerator, should_generate
from adgov_kernel.orbs.lifecycle import OrbLifecycleManager

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _make_intent(lever: ExperimentLever = ExperimentLever.VOICEOVER) -> LearningIntent:
    return LearningIntent(lever=lever, rationale=f"Test whether {lever.value} matters")


class TestOrbLifecycle:
    def setup_method(self):
        self.manager = OrbLifecycleManager(max_outstanding_suggestions=3)

    def _suggest(self, session_id: str = "s1"):
        return self.manager.create_suggested_orb(session_id, OrbSpec(), _make_intent())

    def test_user_orbs_start_as_draft(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(headline="Hi"), actor="alice")
        assert orb.state == OrbState.DRAFT
        assert orb.source == OrbSource.USER
        assert orb.id.startswith("orb_")

    def test_ai_orbs_start_as_suggested(self):
        orb = self._suggest()
        assert orb.state == OrbState.SUGGESTED
        assert orb.source == OrbSource.AI
        assert orb.learning_intent.lever == ExperimentLever.VOICEOVER

    def test_suggestion_requires_learning_intent(self):
        with pytest.raises(LearningIntentRequired):
            self.manager.create_suggested_orb("s1", OrbSpec(), None)

    def test_full_forward_sequence(self):
        orb = self._suggest()
        self.manager.transition(orb.id, OrbState.DRAFT, "alice")
        self.manager.transition(orb.id, OrbState.PUBLISHED, "alice")
        self.manager.transition(orb.id, OrbState.OBSERVED, "alice")
        orb = self.manager.get(orb.id)
        assert orb.state == OrbState.OBSERVED
        assert orb.published_by == "alice"
        assert [h.to_state for h in orb.history] == [
            OrbState.SUGGESTED, OrbState.DRAFT, OrbState.PUBLISHED, OrbState.OBSERVED
        ]

    def test_suggested_cannot_skip_to_published(self):
        orb = self._suggest()
        with pytest.raises(InvalidTransitionError):
            self.manager.transition(orb.id, OrbState.PUBLISHED, "alice")
        assert self.manager.get(orb.id).state == OrbState.SUGGESTED

    def test_draft_cannot_go_back_to_suggested(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        with pytest.raises(InvalidTransitionError):
            self.manager.transition(orb.id, OrbState.SUGGESTED, "alice")

    def test_observed_is_terminal(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        self.manager.publish(orb.id, "alice")
        self.manager.attach_results(orb.id, 72, "alice")
        for state in OrbState:
            with pytest.raises(InvalidTransitionError):
                self.manager.transition(orb.id, state, "alice")
        assert self.manager.get(orb.id).success_score == 72

    @pytest.mark.parametrize("actor", ["", "system", "agent", "AI"])
    def test_automation_cannot_publish(self, actor):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        with pytest.raises(AutoPublishRefused):
            self.manager.publish(orb.id, actor)
        assert self.manager.get(orb.id).state == OrbState.DRAFT

    def test_suggestion_cap(self):
        for _ in range(3):
            self._suggest()
        with pytest.raises(SuggestionCapExceeded):
            self._suggest()
        assert self.manager.outstanding_suggestions("s1") == 3
        # Another session has its own cap
        self._suggest("s2")

    def test_accepting_frees_a_slot(self):
        first = self._suggest()
        self._suggest()
        self._suggest()
        self.manager.accept_suggestion(first.id, "alice")
        assert self.manager.remaining_suggestion_slots("s1") == 1
        self._suggest()

    def test_cap_holds_under_concurrency(self):
        errors = []

        def worker():
            try:
                self._suggest()
            except SuggestionCapExceeded:
                errors.append(1)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert self.manager.outstanding_suggestions("s1") == 3
        assert len(errors) == 7

    def test_similarity_evidence_stays_inside_manager(self):
        orb = self.manager.create_suggested_orb(
            "s1", OrbSpec(), _make_intent(),
            similarity_evidence=SimilarityEvidence(
                neighbor_ids=["n1"], similarities=[0.9], embedding=[0.1, 0.2]
            ),
        )
        fetched = self.manager.get(orb.id)
        assert not hasattr(orb, "similarity_evidence")
        assert not hasattr(fetched, "similarity_evidence")
        assert "similarity_evidence" not in self.manager.public_view(fetched)
        assert all(not hasattr(o, "similarity_evidence") for o in self.manager.list_orbs())
        assert self.manager._evidence[orb.id].neighbor_ids == ["n1"]

    def test_returned_orbs_are_copies(self):
        orb = self._suggest()
        fetched = self.manager.get(orb.id)
        fetched.state = OrbState.PUBLISHED
        orb.state = OrbState.PUBLISHED
        self.manager.list_orbs()[0].state = OrbState.OBSERVED

        stored = self.manager.get(orb.id)
        assert stored.state == OrbState.SUGGESTED
        with pytest.raises(InvalidTransitionError):
            self.manager.transition(orb.id, OrbState.OBSERVED, "alice")

    def test_transition_result_is_detached(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        published = self.manager.publish(orb.id, "alice")
        published.history.clear()
        assert len(self.manager.get(orb.id).history) == 2

    def test_results_score_validated_before_transition(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        self.manager.publish(orb.id, "alice")
        with pytest.raises(ValidationError):
            self.manager.attach_results(orb.id, 140, "alice")
        stored = self.manager.get(orb.id)
        assert stored.state == OrbState.PUBLISHED
        assert stored.success_score is None

        observed = self.manager.attach_results(orb.id, 72.5, "alice")
        assert observed.state == OrbState.OBSERVED
        assert observed.success_score == 72.5

    def test_edit_draft(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(headline="Old"), actor="alice")
        self.manager.update_draft(orb.id, OrbSpec(headline="New"), "alice")
        orb = self.manager.get(orb.id)
        assert orb.spec.headline == "New"
        assert orb.state == OrbState.DRAFT
        assert len(orb.history) == 1

    def test_edit_published_refused(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        self.manager.publish(orb.id, "alice")
        with pytest.raises(InvalidTransitionError):
            self.manager.update_draft(orb.id, OrbSpec(headline="New"), "alice")

    def test_reject_suggestion(self):
        orb = self._suggest()
        removal = self.manager.reject_suggestion(orb.id, "alice", "off brand")
        assert removal.kind == OrbRemovalKind.REJECTED
        assert removal.state_at_removal == OrbState.SUGGESTED
        assert removal.reason == "off brand"
        assert self.manager.removals("s1") == [removal]
        with pytest.raises(OrbNotFound):
            self.manager.get(orb.id)

    def test_reject_only_applies_to_suggestions(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        with pytest.raises(InvalidTransitionError):
            self.manager.reject_suggestion(orb.id, "alice")

    def test_delete_draft(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        removal = self.manager.delete(orb.id, "alice")
        assert removal.kind == OrbRemovalKind.DELETED
        assert self.manager.list_orbs("s1") == []

    def test_published_cannot_be_deleted(self):
        orb = self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        self.manager.publish(orb.id, "alice")
        with pytest.raises(InvalidTransitionError):
            self.manager.delete(orb.id, "alice")

    def test_removal_requires_actor(self):
        orb = self._suggest()
        with pytest.raises(ValidationError):
            self.manager.delete(orb.id, "  ")

    def test_list_by_state(self):
        self._suggest()
        self.manager.create_user_orb("s1", OrbSpec(), actor="alice")
        assert len(self.manager.list_orbs("s1", OrbState.SUGGESTED)) == 1
        assert len(self.manager.list_orbs("s1")) == 2


class TestSuggestionGenerator:
    def setup_method(self):
        self.manager = OrbLifecycleManager(max_outstanding_suggestions=3)
        self.generator = SuggestionGenerator(self.manager)
        self.parent = self.manager.create_user_orb(
            "s1",
            OrbSpec(traits={"hook_type": "question", "voiceover": "female"}),
            actor="alice",
        )

    def _make_pool(self):
        pool = [
            NeighborRecord(id=f"j{i}", traits={"jingle": "on"}, outcome=80, created_at=NOW)
            for i in range(3)
        ]
        pool += [
            NeighborRecord(id=f"x{i}", traits={"subtitles": "burned_in"}, outcome=50, created_at=NOW)
            for i in range(3)
        ]
        return pool

    def test_confident_prediction_skips_generation(self):
        assert not should_generate(85)
        assert should_generate(None)
        assert self.generator.generate(self.parent, [], prediction_confidence=90) == []

    def test_generates_up_to_cap(self):
        created = self.generator.generate(self.parent, self._make_pool(), count=5)
        assert len(created) == 3
        assert all(o.state == OrbState.SUGGESTED for o in created)
        assert all(o.parent_id == self.parent.id for o in created)
        assert self.manager.remaining_suggestion_slots("s1") == 0

    def test_respects_existing_suggestions(self):
        self.manager.create_suggested_orb("s1", OrbSpec(), _make_intent())
        self.manager.create_suggested_orb("s1", OrbSpec(), _make_intent())
        created = self.generator.generate(self.parent, self._make_pool())
        assert len(created) == 1

    def test_each_suggestion_tests_one_new_lever(self):
        created = self.generator.generate(self.parent, self._make_pool())
        levers = [o.learning_intent.lever for o in created]
        assert len(set(levers)) == len(levers)
        assert ExperimentLever.HOOK_TYPE not in levers
        assert ExperimentLever.VOICEOVER not in levers
        for orb in created:
            lever = orb.learning_intent.lever.value
            assert lever in orb.spec.traits
            assert orb.spec.traits["hook_type"] == "question"

    def test_untested_levers_ranked_first(self):
        ranked = self.generator.rank_levers(self.parent, self._make_pool())
        gains = {lever: gain for lever, _, gain, _ in ranked}
        assert gains[ExperimentLever.ANIMATION] == 90
        assert gains[ExperimentLever.JINGLE] == 40
        assert ranked[0][2] == 90

    def test_suggestions_keep_evidence_private(self):
        created = self.generator.generate(self.parent, self._make_pool(), count=1)
        orb = self.manager.get(created[0].id)
        assert not hasattr(orb, "similarity_evidence")
        assert len(self.manager._evidence[orb.id].neighbor_ids) == 6

    def test_confidence_threshold_is_configurable(self):
        assert should_generate(85, NeighborConfig(confident_prediction=90))
        assert not should_generate(85, NeighborConfig(confident_prediction=85))
        generator = SuggestionGenerator(self.manager, NeighborConfig(confident_prediction=95))
        assert len(generator.generate(self.parent, [], count=1, prediction_confidence=90)) == 1
