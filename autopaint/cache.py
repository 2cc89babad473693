import logging
import threading
from collections import OrderedDict
from typing import Dict, Hashable, Optional, Sequence, Tuple

from .config import CACHE_CAPACITY
from .models import Filament, OptimizerResult, WeightedLabTarget

logger = logging.getLogger(__name__)


def filament_signature(filaments: Sequence[Filament]) -> Tuple:
    """Order-independent signature of a filament set."""
    return tuple(sorted((f.id, f.color, float(f.td)) for f in filaments))


def target_signature(targets: Sequence[WeightedLabTarget]) -> Tuple:
    return tuple(
        (f"{t.L:.1f}", f"{t.a:.1f}", f"{t.b:.1f}", f"{t.weight:.4f}") for t in targets
    )


def make_cache_key(filaments: Sequence[Filament],
                   targets: Sequence[WeightedLabTarget],
                   layer_height: float,
                   first_layer_height: float,
                   algorithm: str,
                   seed: int,
                   tunables: Tuple = ()) -> Tuple:
    """Canonical key for an optimizer request. Everything that changes the result is part of it."""
    return (
        filament_signature(filaments),
        target_signature(targets),
        float(layer_height),
        float(first_layer_height),
        algorithm,
        int(seed),
        tuple(tunables),
    )


class OptimizerCache:
    """
    Bounded memo of optimizer results for explicitly seeded requests.

    Inserting past capacity evicts the oldest entry. The cache is safe to
    share between threads.
    """

    def __init__(self, capacity: int = CACHE_CAPACITY):
        self.capacity = capacity
        self._entries: 'OrderedDict[Hashable, OptimizerResult]' = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[OptimizerResult]:
        with self._lock:
            result = self._entries.get(key)
            if result is None:
                self.misses += 1
            else:
                self.hits += 1
            return result

    def put(self, key: Hashable, result: OptimizerResult):
        if self.capacity <= 0:
            return
        with self._lock:
            if key in self._entries:
                self._entries[key] = result
                return
            while len(self._entries) >= self.capacity:
                self._entries.popitem(last=False)
                logger.debug("Evicted optimizer cache entry (%d left)", len(self._entries))
            self._entries[key] = result

    def clear(self):
        """Drop every entry. Call this when switching filament sets."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'size': len(self._entries),
                'max_size': self.capacity,
                'hits': self.hits,
                'misses': self.misses,
            }

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries
