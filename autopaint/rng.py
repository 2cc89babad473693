import time
from typing import List, Optional, Sequence, TypeVar

T = TypeVar('T')

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2 ** 32


def time_seed() -> int:
    """Millisecond wall-clock seed for requests that did not supply one."""
    return int(time.time() * 1000)


class SeededRandom:
    """
    Linear congruential generator (Numerical Recipes parameters).

    Identical seeds produce identical streams on every platform, which is
    what makes seeded optimizer runs reproducible and cacheable.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = time_seed()
        self.state = int(seed) % LCG_MODULUS

    def next(self) -> float:
        """Random float in [0, 1)."""
        self.state = (self.state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return self.state / LCG_MODULUS

    def next_int(self, low: int, high: int) -> int:
        """Random integer in [low, high)."""
        return int(self.next() * (high - low)) + low

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """Fisher-Yates shuffle into a new list."""
        arr = list(items)
        for i in range(len(arr) - 1, 0, -1):
            j = self.next_int(0, i + 1)
            arr[i], arr[j] = arr[j], arr[i]
        return arr
