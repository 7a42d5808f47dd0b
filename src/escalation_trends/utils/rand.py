from __future__ import annotations

import math
import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")

MOCK_CONFIDENCE_CENTER = 65
MOCK_CONFIDENCE_SPREAD = 20
MOCK_CONFIDENCE_MIN = 30
MOCK_CONFIDENCE_MAX = 99


def make_rng(seed: Optional[int]) -> random.Random:
    """Return a random number generator seeded for deterministic output."""
    return random.Random(seed)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, even for negatives."""
    return int(math.floor(value + 0.5))


def pick_label(rng: random.Random, labels: Sequence[T]) -> T:
    """Pick one label uniformly at random."""
    if not labels:
        raise ValueError("labels must not be empty")
    return labels[int(rng.random() * len(labels))]


def mock_confidence(rng: random.Random) -> int:
    """Return a demo confidence centred on 65 and clamped to [30, 99]."""
    raw = round_half_up(
        MOCK_CONFIDENCE_CENTER + (rng.random() - 0.5) * MOCK_CONFIDENCE_SPREAD
    )
    return max(MOCK_CONFIDENCE_MIN, min(MOCK_CONFIDENCE_MAX, raw))


__all__ = [
    "MOCK_CONFIDENCE_MAX",
    "MOCK_CONFIDENCE_MIN",
    "make_rng",
    "mock_confidence",
    "pick_label",
    "round_half_up",
]
