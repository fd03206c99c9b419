"""
Orb Lifecycle Manager — state machine for creative variants.

    suggested -> draft -> published -> observed

Behavioral Contract:
- Only the three forward transitions above are legal; anything else raises
  InvalidTransitionError. Editing a draft is an update, not a transition
- AI-sourced orbs start suggested and must carry a learning intent naming an
  allowed lever; user-sourced orbs start draft
- At most max_outstanding suggested orbs per session. The count and the
  insert happen under one lock
- Publishing requires a named human actor; automation actors are refused
- Similarity evidence stays in the manager; no returned orb carries it
- Every orb handed out is a copy. Stored orbs change only through this manager
- Rejecting or deleting a suggested/draft orb returns an OrbRemoval record
  and is logged
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from adgov_kernel.errors import (
    AutoPublishRefused,
    InvalidTransitionError,
    LearningIntentRequired,
    OrbNotFound,
    SuggestionCapExceeded,
    ValidationError,
)
from adgov_kernel.models.orb import (
    LearningIntent,
    Orb,
    OrbRemoval,
    OrbRemovalKind,
    OrbSource,
    OrbSpec,
    OrbState,
    OrbTransition,
    SimilarityEvidence,
)

logger = logging.getLogger(__name__)

LEGAL_TRANSITIONS: Dict[OrbState, OrbState] = {
    OrbState.SUGGESTED: OrbState.DRAFT,
    OrbState.DRAFT: OrbState.PUBLISHED,
    OrbState.PUBLISHED: OrbState.OBSERVED,
}

AUTOMATION_ACTORS = frozenset({"", "system", "agent", "ai", "generator", "automation"})

REMOVABLE_STATES = (OrbState.SUGGESTED, OrbState.DRAFT)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _copy(orb: Orb) -> Orb:
    return orb.model_copy(deep=True)


class OrbLifecycleManager:
    """In-memory orb store that owns every state change."""

    def __init__(self, max_outstanding_suggestions: int = 3):
        self.max_outstanding_suggestions = max_outstanding_suggestions
        self._orbs: Dict[str, Orb] = {}
        self._evidence: Dict[str, SimilarityEvidence] = {}
        self._removals: List[OrbRemoval] = []
        self._lock = threading.Lock()

    # --- Creation ---

    def create_user_orb(
        self,
        session_id: str,
        spec: OrbSpec,
        actor: str,
        parent_id: Optional[str] = None,
    ) -> Orb:
        now = _now()
        orb = Orb(
            id=f"orb_{uuid4().hex[:12]}",
            session_id=session_id,
            state=OrbState.DRAFT,
            source=OrbSource.USER,
            parent_id=parent_id,
            spec=spec.model_copy(deep=True),
            history=[OrbTransition(to_state=OrbState.DRAFT, actor=actor, at=now)],
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._orbs[orb.id] = orb
            return _copy(orb)

    def create_suggested_orb(
        self,
        session_id: str,
        spec: OrbSpec,
        learning_intent: Optional[LearningIntent],
        parent_id: Optional[str] = None,
        similarity_evidence: Optional[SimilarityEvidence] = None,
    ) -> Orb:
        if learning_intent is None:
            raise LearningIntentRequired(
                "A suggested orb must name the experiment lever it tests"
            )

        now = _now()
        orb = Orb(
            id=f"orb_{uuid4().hex[:12]}",
            session_id=session_id,
            state=OrbState.SUGGESTED,
            source=OrbSource.AI,
            parent_id=parent_id,
            spec=spec.model_copy(deep=True),
            learning_intent=learning_intent.model_copy(),
            history=[OrbTransition(to_state=OrbState.SUGGESTED, actor="ai", at=now)],
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            outstanding = self._count_suggested(session_id)
            if outstanding >= self.max_outstanding_suggestions:
                raise SuggestionCapExceeded(
                    f"Session {session_id} already has {outstanding} outstanding "
                    f"suggestions (max {self.max_outstanding_suggestions})"
                )
            self._orbs[orb.id] = orb
            if similarity_evidence is not None:
                self._evidence[orb.id] = similarity_evidence.model_copy(deep=True)
            return _copy(orb)

    # --- Queries ---

    def _count_suggested(self, session_id: str) -> int:
        return sum(
            1
            for o in self._orbs.values()
            if o.session_id == session_id and o.state == OrbState.SUGGESTED
        )

    def _stored(self, orb_id: str) -> Orb:
        """Caller must hold the lock."""
        orb = self._orbs.get(orb_id)
        if orb is None:
            raise OrbNotFound(f"Orb {orb_id} not found")
        return orb

    def outstanding_suggestions(self, session_id: str) -> int:
        with self._lock:
            return self._count_suggested(session_id)

    def remaining_suggestion_slots(self, session_id: str) -> int:
        return max(0, self.max_outstanding_suggestions - self.outstanding_suggestions(session_id))

    def get(self, orb_id: str) -> Orb:
        with self._lock:
            return _copy(self._stored(orb_id))

    def list_orbs(
        self, session_id: Optional[str] = None, state: Optional[OrbState] = None
    ) -> List[Orb]:
        with self._lock:
            return [
                _copy(o) for o in self._orbs.values()
                if (session_id is None or o.session_id == session_id)
                and (state is None or o.state == state)
            ]

    def public_view(self, orb: Orb) -> dict:
        """Serializable view for consumers."""
        return orb.model_dump(mode="json")

    def removals(self, session_id: Optional[str] = None) -> List[OrbRemoval]:
        with self._lock:
            return [
                r.model_copy() for r in self._removals
                if session_id is None or r.session_id == session_id
            ]

    # --- Transitions ---

    def _apply_transition(self, orb: Orb, to_state: OrbState, actor: str) -> None:
        """Caller must hold the lock."""
        if LEGAL_TRANSITIONS.get(orb.state) != to_state:
            raise InvalidTransitionError(f"orb {orb.id}", orb.state.value, to_state.value)

        now = _now()
        orb.history.append(OrbTransition(
            from_state=orb.state, to_state=to_state, actor=actor, at=now
        ))
        orb.state = to_state
        orb.updated_at = now
        if to_state == OrbState.PUBLISHED:
            orb.published_by = actor

    def transition(self, orb_id: str, to_state: OrbState, actor: str) -> Orb:
        if to_state == OrbState.PUBLISHED and actor.strip().lower() in AUTOMATION_ACTORS:
            raise AutoPublishRefused(
                f"Orb {orb_id} can only be published by a named user, not '{actor}'"
            )

        with self._lock:
            orb = self._stored(orb_id)
            self._apply_transition(orb, to_state, actor)
            result = _copy(orb)

        logger.info(f"Orb {orb_id} moved to {to_state.value} by {actor}")
        return result

    def accept_suggestion(self, orb_id: str, actor: str) -> Orb:
        return self.transition(orb_id, OrbState.DRAFT, actor)

    def publish(self, orb_id: str, actor: str) -> Orb:
        return self.transition(orb_id, OrbState.PUBLISHED, actor)

    def attach_results(self, orb_id: str, success_score: float, actor: str) -> Orb:
        """Move a published orb to observed together with its 0-100 score."""
        if not 0 <= success_score <= 100:
            raise ValidationError(f"success_score must be within 0-100, got {success_score}")

        with self._lock:
            orb = self._stored(orb_id)
            self._apply_transition(orb, OrbState.OBSERVED, actor)
            orb.success_score = success_score
            result = _copy(orb)

        logger.info(f"Orb {orb_id} observed by {actor} with score {success_score:g}")
        return result

    def update_draft(self, orb_id: str, spec: OrbSpec, actor: str) -> Orb:
        """Edit a draft in place. Not a state transition."""
        with self._lock:
            orb = self._stored(orb_id)
            if orb.state != OrbState.DRAFT:
                raise InvalidTransitionError(f"orb {orb_id}", orb.state.value, "edit")
            orb.spec = spec.model_copy(deep=True)
            orb.updated_at = _now()
            result = _copy(orb)
        logger.debug(f"Draft {orb_id} edited by {actor}")
        return result

    # --- Explicit removal ---

    def _remove(
        self, orb_id: str, kind: OrbRemovalKind, allowed: tuple, actor: str, reason: str
    ) -> OrbRemoval:
        if not actor.strip():
            raise ValidationError("Removing an orb requires a named actor")

        with self._lock:
            orb = self._stored(orb_id)
            if orb.state not in allowed:
                raise InvalidTransitionError(
                    f"orb {orb_id}", orb.state.value, kind.value
                )
            del self._orbs[orb_id]
            self._evidence.pop(orb_id, None)
            removal = OrbRemoval(
                orb_id=orb_id,
                session_id=orb.session_id,
                kind=kind,
                state_at_removal=orb.state,
                actor=actor,
                reason=reason,
                removed_at=_now(),
            )
            self._removals.append(removal)

        logger.info(
            f"Orb {orb_id} {kind.value} in state {removal.state_at_removal.value} "
            f"by {actor}: {reason or 'no reason given'}"
        )
        return removal.model_copy()

    def reject_suggestion(self, orb_id: str, actor: str, reason: str = "") -> OrbRemoval:
        return self._remove(
            orb_id, OrbRemovalKind.REJECTED, (OrbState.SUGGESTED,), actor, reason
        )

    def delete(self, orb_id: str, actor: str, reason: str = "") -> OrbRemoval:
        return self._remove(orb_id, OrbRemovalKind.DELETED, REMOVABLE_STATES, actor, reason)
