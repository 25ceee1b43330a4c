"""
Split criteria: impurity measures and information gain.

Classification impurities (Gini, entropy) work on label frequencies;
regression impurities (MSE, MAE) work on numeric targets. Every measure is
0 for an empty input.

References:
- Quinlan, J. R. (1986). Induction of decision trees. Machine Learning, 1(1).
- Breiman, L., Friedman, J., Olshen, R., & Stone, C. (1984). Classification
  and Regression Trees. Wadsworth.
- Chen, T., & Guestrin, C. (2016). XGBoost: A scalable tree boosting system.
"""

from collections import Counter
from typing import Callable, Dict, Sequence

import numpy as np

from .utils import to_number, value_key


CLASSIFICATION_CRITERIA = ("gini", "entropy")
REGRESSION_CRITERIA = ("mse", "mae")


def _probabilities(labels: Sequence) -> np.ndarray:
    counts = Counter(value_key(label) for label in labels)
    frequencies = np.fromiter(counts.values(), dtype=np.float64, count=len(counts))
    return frequencies / len(labels)


def _numeric(values: Sequence) -> np.ndarray:
    numbers = [to_number(value) for value in values]
    return np.array([n for n in numbers if n is not None], dtype=np.float64)


def gini(labels: Sequence) -> float:
    """Gini impurity: 1 - Σ p_i²."""
    if len(labels) == 0:
        return 0.0
    p = _probabilities(labels)
    return float(1.0 - np.sum(p ** 2))


def entropy(labels: Sequence) -> float:
    """Shannon entropy in bits: -Σ p_i log2(p_i)."""
    if len(labels) == 0:
        return 0.0
    p = _probabilities(labels)
    return float(abs(-np.sum(p * np.log2(p))))


def mse(values: Sequence) -> float:
    """Mean squared deviation from the mean (non-numeric values are skipped)."""
    numbers = _numeric(values)
    if numbers.size == 0:
        return 0.0
    return float(np.mean((numbers - numbers.mean()) ** 2))


def mae(values: Sequence) -> float:
    """Mean absolute deviation from the mean (non-numeric values are skipped)."""
    numbers = _numeric(values)
    if numbers.size == 0:
        return 0.0
    return float(np.mean(np.abs(numbers - numbers.mean())))


CRITERIA: Dict[str, Callable[[Sequence], float]] = {
    "gini": gini,
    "entropy": entropy,
    "mse": mse,
    "mae": mae,
}


def get_criterion(name: str) -> Callable[[Sequence], float]:
    """Look up an impurity function by name."""
    try:
        return CRITERIA[name]
    except (KeyError, TypeError):
        raise ValueError(
            f"criterion must be one of {sorted(CRITERIA)}, got {name!r}"
        ) from None


def information_gain(
    parent: Sequence,
    partitions: Sequence[Sequence],
    criterion: Callable[[Sequence], float] = entropy
) -> float:
    """
    Parent impurity minus the size-weighted impurity of the partitions.

    Args:
        parent: Labels (or targets) at the node being split.
        partitions: Labels of each child; sizes should sum to ``len(parent)``.
        criterion: Impurity function.
    """
    total = len(parent)
    if total == 0:
        return 0.0
    weighted = sum(len(part) / total * criterion(part) for part in partitions)
    return criterion(parent) - weighted


# ===========================
# Second-order (boosting) statistics
# ===========================

def structure_score(gradient_sum: float, hessian_sum: float, reg_lambda: float) -> float:
    """
    Newton structure score G² / (H + λ) of a node.

    Larger is better; the loss reduction of a split is half the children's
    scores minus the parent's.
    """
    denominator = hessian_sum + reg_lambda
    if denominator <= 0:
        return 0.0
    return gradient_sum ** 2 / denominator


def newton_leaf_value(gradient_sum: float, hessian_sum: float, reg_lambda: float) -> float:
    """L2-regularised leaf weight -G / (H + λ)."""
    denominator = hessian_sum + reg_lambda
    if denominator <= 0:
        return 0.0
    return -gradient_sum / denominator
