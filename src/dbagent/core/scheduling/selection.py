"""Per-tick parallelism ceiling.

When more schedules are eligible than a tick may run, the tick takes a
uniform random sample.  The ones left out are still eligible on the next
tick.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def select_for_tick(candidates: Sequence[T], cap: int, rng: random.Random | None = None) -> list[T]:
    """Choose at most *cap* of *candidates*, uniformly without replacement.

    Args:
        candidates: Eligible schedules.
        cap: Maximum number to run this tick; ``<= 0`` selects nothing.
        rng: Optional random source (tests pass a seeded ``random.Random``).

    Returns:
        Every candidate if there are no more than *cap*, otherwise exactly
        *cap* distinct candidates.
    """
    if cap <= 0:
        return []
    if len(candidates) <= cap:
        return list(candidates)
    return (rng or random).sample(list(candidates), cap)
