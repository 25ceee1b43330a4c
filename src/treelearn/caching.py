"""
Prediction memoisation keyed by model identity and sample contents.

Models receive a cache instance at construction; ``NullCache`` (the default)
stores nothing.
"""

from collections import OrderedDict
from typing import Any, Dict, Hashable, Mapping, Tuple

_MISSING = object()


def sample_key(sample: Mapping) -> Tuple:
    """Order-independent, hashable representation of a sample."""
    return tuple(sorted((str(key), repr(value)) for key, value in sample.items()))


class NullCache:
    """Cache interface that never stores anything."""

    def get(self, model_id: str, sample: Mapping, default: Any = None) -> Any:
        return default

    def set(self, model_id: str, sample: Mapping, prediction: Any) -> None:
        pass

    def clear(self) -> None:
        pass

    def stats(self) -> Dict[str, int]:
        return {"hits": 0, "misses": 0, "size": 0}


class PredictionCache(NullCache):
    """
    Least-recently-used prediction cache.

    Parameters
    ----------
    max_size : int, default=1000
        Maximum number of stored predictions; the least recently used entry
        is evicted first.
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, model_id: str, sample: Mapping, default: Any = None) -> Any:
        key = (model_id, sample_key(sample))
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            self.misses += 1
            return default
        self.hits += 1
        self._entries.move_to_end(key)
        return value

    def set(self, model_id: str, sample: Mapping, prediction: Any) -> None:
        key = (model_id, sample_key(sample))
        self._entries[key] = prediction
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "size": len(self._entries)}
