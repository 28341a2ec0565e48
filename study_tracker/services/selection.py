"""
Weighted random selection.
"""
import random
from typing import Sequence

from study_tracker.exceptions import InvalidStateException


def weighted_select(weights: Sequence[float], rng: random.Random = None) -> int:
    """
    Pick an index with probability proportional to its weight.

    Draws r uniformly from [0, total) and walks the candidates in order,
    subtracting each weight until r falls inside a candidate's span. The
    result is deterministic for a seeded rng.

    Args:
        weights: Candidate weights, all > 0
        rng: Random source, defaults to the module-level generator

    Returns:
        Selected index

    Raises:
        InvalidStateException: On empty input or a non-positive weight
    """
    if not weights:
        raise InvalidStateException("cannot select from zero candidates")
    for index, weight in enumerate(weights):
        if weight is None or weight <= 0:
            raise InvalidStateException(f"candidate {index} has non-positive weight {weight}")

    rng = rng or random
    total = sum(weights)
    r = rng.random() * total

    for index, weight in enumerate(weights):
        if r < weight:
            return index
        r -= weight

    # float rounding can leave r marginally above the last span
    return len(weights) - 1
