"""
Suggestion Generator — proposes suggested orbs that test one lever each.

Generation is skipped when the parent's prediction is already confident, and
never asks for more suggestions than the session has free slots. Every
suggestion goes through OrbLifecycleManager, which enforces the cap and the
learning-intent rule; nothing here can publish.
"""

import logging
from collections import Counter
from typing import List, Optional, Tuple

from adgov_kernel.errors import SuggestionCapExceeded
from adgov_kernel.models.neighbor import (
    NeighborConfig,
    NeighborRecord,
    TraitEffect,
    TraitRecommendation,
)
from adgov_kernel.models.orb import (
    ExperimentLever,
    LearningIntent,
    Orb,
    OrbSpec,
    SimilarityEvidence,
)
from adgov_kernel.neighbors.contrastive import trait_lift
from adgov_kernel.neighbors.similarity import structured_similarity
from adgov_kernel.orbs.lifecycle import OrbLifecycleManager

logger = logging.getLogger(__name__)

DEFAULT_LEVER_VALUE = "on"


def should_generate(
    prediction_confidence: Optional[float], config: Optional[NeighborConfig] = None
) -> bool:
    threshold = (config or NeighborConfig()).confident_prediction
    return prediction_confidence is None or prediction_confidence < threshold


def _information_gain(effect: Optional[TraitEffect]) -> Tuple[float, str]:
    if effect is None:
        return 90.0, "No comparable variants have tested this lever yet"
    if effect.recommendation == TraitRecommendation.TEST:
        return 75.0, (
            f"Too few samples to judge ({effect.n_with} with, "
            f"{effect.n_without} without)"
        )
    if not effect.is_significant:
        return 60.0, f"Observed lift of {effect.lift:+.1f} is inconclusive"
    return 40.0, f"Observed lift of {effect.lift:+.1f} worth confirming"


class SuggestionGenerator:
    def __init__(
        self,
        manager: OrbLifecycleManager,
        config: Optional[NeighborConfig] = None,
    ):
        self.manager = manager
        self.config = config or NeighborConfig()

    def rank_levers(
        self, parent: Orb, neighbor_pool: List[NeighborRecord]
    ) -> List[Tuple[ExperimentLever, str, float, str]]:
        """Untested levers first: (lever, value, information gain, rationale)."""
        ranked = []
        for lever in ExperimentLever:
            if lever.value in parent.spec.traits:
                continue
            seen = [n.traits[lever.value] for n in neighbor_pool if lever.value in n.traits]
            if seen:
                common = Counter(seen).most_common(1)[0][0]
                effect = trait_lift(neighbor_pool, lever.value, common, self.config)
                value = str(common)
            else:
                value = DEFAULT_LEVER_VALUE
                effect = None
            gain, rationale = _information_gain(effect)
            ranked.append((lever, value, gain, rationale))
        return sorted(ranked, key=lambda r: -r[2])

    def generate(
        self,
        parent: Orb,
        neighbor_pool: List[NeighborRecord],
        count: int = 3,
        prediction_confidence: Optional[float] = None,
    ) -> List[Orb]:
        if not should_generate(prediction_confidence, self.config):
            logger.info(
                f"Skipping suggestions for {parent.id}: prediction confidence "
                f"{prediction_confidence} already high"
            )
            return []

        slots = min(count, self.manager.remaining_suggestion_slots(parent.session_id))
        created: List[Orb] = []
        for lever, value, gain, rationale in self.rank_levers(parent, neighbor_pool)[:slots]:
            traits = dict(parent.spec.traits)
            traits[lever.value] = value
            spec = OrbSpec(**{**parent.spec.model_dump(), "traits": traits})

            scored = sorted(
                ((n.id, structured_similarity(traits, n.traits)) for n in neighbor_pool),
                key=lambda pair: -pair[1],
            )[:10]
            evidence = SimilarityEvidence(
                neighbor_ids=[nid for nid, _ in scored],
                similarities=[round(s, 4) for _, s in scored],
            )
            try:
                orb = self.manager.create_suggested_orb(
                    session_id=parent.session_id,
                    spec=spec,
                    learning_intent=LearningIntent(
                        lever=lever,
                        rationale=rationale,
                        expected_information_gain=gain,
                    ),
                    parent_id=parent.id,
                    similarity_evidence=evidence,
                )
            except SuggestionCapExceeded as e:
                # A concurrent caller took the remaining slots
                logger.info(f"Stopped generating for {parent.id}: {e}")
                break
            created.append(orb)
        return created
