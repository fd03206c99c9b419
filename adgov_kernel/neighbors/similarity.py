"""Similarity and recency weighting between trait sets."""

import math
from datetime import datetime
from typing import Dict, List, Optional

from adgov_kernel.models.neighbor import TraitValue


def structured_similarity(
    a: Dict[str, TraitValue], b: Dict[str, TraitValue]
) -> float:
    """Matching key/value pairs over the union of keys. 0.0 for two empty sets."""
    keys = set(a) | set(b)
    if not keys:
        return 0.0
    matches = sum(1 for k in keys if k in a and k in b and a[k] == b[k])
    return matches / len(keys)


def cosine_similarity(a: List[float], b: List[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return max(0.0, min(1.0, dot / norm))


def hybrid_similarity(
    traits_a: Dict[str, TraitValue],
    traits_b: Dict[str, TraitValue],
    embedding_a: Optional[List[float]] = None,
    embedding_b: Optional[List[float]] = None,
    vector_weight: float = 0.6,
) -> float:
    """Structured similarity, blended with cosine when both sides carry embeddings."""
    structured = structured_similarity(traits_a, traits_b)
    if not embedding_a or not embedding_b:
        return structured
    vector = cosine_similarity(embedding_a, embedding_b)
    return vector_weight * vector + (1 - vector_weight) * structured


def days_between(earlier: datetime, later: datetime) -> float:
    return max(0.0, (later - earlier).total_seconds() / 86400)


def recency_weight(days_since_created: float, half_life_days: float = 30.0) -> float:
    """exp(-ln2 * days / half_life): 1.0 at day 0, 0.5 at one half-life."""
    if days_since_created <= 0:
        return 1.0
    return math.exp(-math.log(2) * days_since_created / half_life_days)
