"""Deterministic option shuffle.

Every client derives the option order from the round's shuffle seed, so the
generator and the Fisher-Yates walk below must stay bit-for-bit stable.
"""

import math
import secrets
from typing import Iterator, List, Sequence, TypeVar

T = TypeVar('T')

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
UINT32_MASK = 0xFFFFFFFF
UINT32_RANGE = 4294967296  # 2**32


def lcg(seed: int) -> Iterator[float]:
    """Yield uniform floats in [0, 1) from a 32-bit linear congruential generator."""
    state = seed & UINT32_MASK
    while True:
        state = (state * LCG_MULTIPLIER + LCG_INCREMENT) & UINT32_MASK
        yield state / UINT32_RANGE


def seeded_shuffle(items: Sequence[T], seed: int) -> List[T]:
    arr = list(items)
    draws = lcg(seed)
    for i in range(len(arr) - 1, 0, -1):
        j = math.floor(next(draws) * (i + 1))
        arr[i], arr[j] = arr[j], arr[i]
    return arr


def create_shuffle_map(length: int, seed: int) -> List[int]:
    """Map shuffled position -> original option index."""
    return seeded_shuffle(range(length), seed)


def new_seed() -> int:
    return secrets.randbits(32)
