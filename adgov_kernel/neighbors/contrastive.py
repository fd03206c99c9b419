"""
Contrastive trait analysis — does having a trait move the outcome?

Neighbors are split into those that carry trait=value and those that do not.
Lift is the difference in mean outcome. A side with fewer than the minimum
sample count yields lift 0 and a "test" recommendation rather than a signal.
"""

from typing import Dict, List, Optional, Sequence

from adgov_kernel.models.neighbor import (
    NeighborConfig,
    NeighborRecord,
    TraitEffect,
    TraitRecommendation,
    TraitValue,
)


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def trait_lift(
    neighbors: List[NeighborRecord],
    trait: str,
    value: TraitValue,
    config: Optional[NeighborConfig] = None,
) -> TraitEffect:
    cfg = config or NeighborConfig()
    with_trait = [n.outcome for n in neighbors if n.traits.get(trait) == value]
    without_trait = [
        n.outcome
        for n in neighbors
        if trait not in n.traits or n.traits[trait] != value
    ]
    mean_with = _mean(with_trait)
    mean_without = _mean(without_trait)

    enough = (
        len(with_trait) >= cfg.min_samples_per_group
        and len(without_trait) >= cfg.min_samples_per_group
    )
    if not enough:
        return TraitEffect(
            trait=trait,
            value=value,
            lift=0.0,
            mean_with=mean_with,
            mean_without=mean_without,
            n_with=len(with_trait),
            n_without=len(without_trait),
            is_significant=False,
            recommendation=TraitRecommendation.TEST,
        )

    lift = max(-cfg.max_lift, min(cfg.max_lift, mean_with - mean_without))
    significant = abs(lift) >= cfg.significant_lift
    if not significant:
        recommendation = TraitRecommendation.NEUTRAL
    elif lift > 0:
        recommendation = TraitRecommendation.USE
    else:
        recommendation = TraitRecommendation.AVOID

    return TraitEffect(
        trait=trait,
        value=value,
        lift=round(lift, 2),
        mean_with=round(mean_with, 2),
        mean_without=round(mean_without, 2),
        n_with=len(with_trait),
        n_without=len(without_trait),
        is_significant=significant,
        recommendation=recommendation,
    )


def analyze_traits(
    target_traits: Dict[str, TraitValue],
    neighbors: List[NeighborRecord],
    config: Optional[NeighborConfig] = None,
) -> List[TraitEffect]:
    """Lift of every trait the target carries, strongest signals first."""
    effects = [
        trait_lift(neighbors, trait, value, config)
        for trait, value in sorted(target_traits.items())
    ]
    return sorted(effects, key=lambda e: (not e.is_significant, -abs(e.lift)))
