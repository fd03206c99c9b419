"""Orb models — creative variants and their lifecycle metadata."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class OrbState(str, Enum):
    SUGGESTED = "suggested"
    DRAFT = "draft"
    PUBLISHED = "published"
    OBSERVED = "observed"


class OrbSource(str, Enum):
    USER = "user"
    AI = "ai"


class ExperimentLever(str, Enum):
    """Creative dimensions a suggested variant is allowed to test."""
    BRAND_TIMING = "brand_timing"
    VOICEOVER = "voiceover"
    ANIMATION = "animation"
    JINGLE = "jingle"
    SUBTITLES = "subtitles"
    UGC_STYLE = "ugc_style"
    HOOK_TYPE = "hook_type"
    CTA_STRENGTH = "cta_strength"


class LearningIntent(BaseModel):
    """Why a suggested orb exists: the single lever it tests."""

    lever: ExperimentLever
    rationale: str
    expected_information_gain: float = Field(ge=0, le=100, default=50)

    @field_validator("rationale")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("rationale must not be empty")
        return value


class OrbSpec(BaseModel):
    platform: str = "meta"
    objective: str = "conversions"
    traits: Dict[str, str] = {}
    headline: str = ""
    body: str = ""
    call_to_action: str = ""


class SimilarityEvidence(BaseModel):
    """Backing data for a suggestion. Never leaves the lifecycle manager."""

    neighbor_ids: List[str] = []
    similarities: List[float] = []
    embedding: Optional[List[float]] = None


class OrbTransition(BaseModel):
    from_state: Optional[OrbState] = None
    to_state: OrbState
    actor: str
    at: datetime


class Orb(BaseModel):
    id: str
    session_id: str
    state: OrbState
    source: OrbSource
    parent_id: Optional[str] = None
    spec: OrbSpec = OrbSpec()
    learning_intent: Optional[LearningIntent] = None
    success_score: Optional[float] = Field(ge=0, le=100, default=None)
    published_by: Optional[str] = None
    history: List[OrbTransition] = []
    created_at: datetime
    updated_at: datetime


class OrbRemovalKind(str, Enum):
    REJECTED = "rejected"
    DELETED = "deleted"


class OrbRemoval(BaseModel):
    """Audit record of an explicit rejection or deletion."""

    orb_id: str
    session_id: str
    kind: OrbRemovalKind
    state_at_removal: OrbState
    actor: str
    reason: str
    removed_at: datetime
