"""Random draws shared by the growth phase and the selectors."""

import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


def weighted_random(
    items: Sequence[T],
    weights: Sequence[float],
    rng: Optional[random.Random] = None,
) -> Optional[T]:
    """
    Pick one item with probability proportional to its weight.

    Walks the cumulative sum and returns the first item whose cumulative
    weight reaches r * total. Non-positive weights are never picked; returns
    None when nothing has positive weight.
    """
    rng = rng or random
    total = sum(w for w in weights if w > 0)
    if total <= 0:
        return None

    threshold = rng.random() * total
    cumulative = 0.0
    last = None
    for item, weight in zip(items, weights):
        if weight <= 0:
            continue
        cumulative += weight
        last = item
        if cumulative >= threshold:
            return item
    # Float rounding can leave the threshold a hair above the final sum
    return last


def pick_random(items: Sequence[T], rng: Optional[random.Random] = None) -> Optional[T]:
    if not items:
        return None
    return (rng or random).choice(items)


def diversity_penalty(run_count: int) -> float:
    """Weight multiplier that flattens repeated use of the same template."""
    return 1.0 / (1 + run_count ** 2)
