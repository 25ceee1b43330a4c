"""
Seeded sampling for ensembles.

All randomness in training flows through a :class:`SeededRandom` instance
created per training call, so the same seed and the same rows always give
the same bootstrap samples, feature subsets and validation splits.
"""

import math
from numbers import Number
from typing import List, Optional, Sequence, TypeVar, Union

import numpy as np

T = TypeVar("T")

MaxFeatures = Union[str, int, float]

_MULTIPLIER = 9301
_INCREMENT = 49297
_MODULUS = 233280

MAX_FEATURES_POLICIES = ("sqrt", "log2", "auto")


class SeededRandom:
    """
    Linear congruential generator.

    ``seed' = (seed * 9301 + 49297) mod 233280``; each draw is ``seed' / 233280``.
    When no seed is given one is drawn from numpy's default generator.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = int(np.random.default_rng().integers(0, 1_000_000))
        self.seed = int(seed)

    def next_float(self) -> float:
        """Uniform draw in [0, 1)."""
        self.seed = (self.seed * _MULTIPLIER + _INCREMENT) % _MODULUS
        return self.seed / _MODULUS

    def next_int(self, upper: int) -> int:
        """Uniform integer in [0, upper)."""
        return int(math.floor(self.next_float() * upper))


def bootstrap_sample(rows: Sequence[T], n: int, rng: SeededRandom) -> List[T]:
    """
    Draw ``n`` rows uniformly with replacement.

    Raises:
        ValueError: If ``rows`` is empty.
    """
    if len(rows) == 0:
        raise ValueError("Cannot create bootstrap sample from empty data")
    return [rows[rng.next_int(len(rows))] for _ in range(n)]


def resolve_max_features(policy: MaxFeatures, total: int) -> int:
    """Number of features a ``max_features`` policy selects out of ``total`` (at least 1)."""
    if isinstance(policy, str):
        if policy in ("sqrt", "auto"):
            count = math.floor(math.sqrt(total)) if total > 0 else 0
        elif policy == "log2":
            count = math.floor(math.log2(total)) if total > 0 else 0
        else:
            raise ValueError(
                f"max_features must be one of {MAX_FEATURES_POLICIES} or a number, got {policy!r}"
            )
    elif isinstance(policy, Number) and not isinstance(policy, bool):
        count = int(min(policy, total))
    else:
        raise ValueError(f"max_features must be a string policy or a number, got {policy!r}")

    return max(1, count)


def shuffle(items: Sequence[T], rng: SeededRandom) -> List[T]:
    """Fisher-Yates shuffle of a copy of ``items``."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.next_int(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def select_random_features(
    attributes: Sequence[str],
    policy: MaxFeatures,
    rng: SeededRandom
) -> List[str]:
    """
    Random subset of ``attributes`` sized by ``policy``.

    ``"sqrt"``/``"auto"`` -> floor(sqrt(n)), ``"log2"`` -> floor(log2(n)),
    a number -> min(number, n); never fewer than one. The subset is the
    head of a Fisher-Yates shuffle, so it contains no duplicates.
    """
    count = resolve_max_features(policy, len(attributes))
    return shuffle(attributes, rng)[:count]


def subsample_indices(n: int, fraction: float, rng: SeededRandom) -> List[int]:
    """
    Row indices for stochastic boosting, drawn without replacement.

    Fractions outside (0, 1) keep every row.
    """
    if not 0 < fraction < 1:
        return list(range(n))

    size = max(1, int(math.floor(n * fraction)))
    pool = list(range(n))
    chosen = []
    for _ in range(min(size, n)):
        chosen.append(pool.pop(rng.next_int(len(pool))))
    return chosen
