"""
Seed utilities.

Scenes are identified by a 32-bit unsigned seed. This module turns
arbitrary integers into such seeds and picks fresh ones for the
"regenerate" action. Scene generation itself never touches Python's
``random`` module; it is only used here to perturb wall-clock seeds.
"""

import numbers
import random
import time
from typing import Optional

SEED_MASK = 0xFFFFFFFF


def normalize_seed(seed: int) -> int:
    """
    Reduce an integer to the 32-bit unsigned range.

    Mirrors JavaScript's ``seed >>> 0``: negative values and values above
    2**32 wrap around.

    Args:
        seed: Any integer

    Returns:
        Seed in [0, 2**32)
    """
    if isinstance(seed, bool) or not isinstance(seed, numbers.Integral):
        raise TypeError(f"Seed must be an integer, got {type(seed).__name__}")
    return int(seed) & SEED_MASK


def new_seed(previous: Optional[int] = None) -> int:
    """
    Pick a new seed from the clock, perturbed so quick repeats still differ.

    Args:
        previous: Seed currently shown; never returned again

    Returns:
        Fresh 32-bit seed
    """
    while True:
        candidate = normalize_seed(int(time.time() * 1000) ^ random.randint(0, 10**9 - 1))
        if previous is None or candidate != normalize_seed(previous):
            return candidate
