"""
Feature-type classification: labels each attribute ``discrete`` or ``continuous``.

The builders only consume the resulting mapping; callers that already know
their column types can pass the mapping to a model directly.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
from scipy import stats

from .utils import distinct_values, is_missing, to_number

logger = logging.getLogger(__name__)

DISCRETE = "discrete"
CONTINUOUS = "continuous"
FEATURE_TYPES = (DISCRETE, CONTINUOUS)


def _present(values: Sequence) -> List[Any]:
    return [value for value in values if not is_missing(value) and value != ""]


def normality_score(numbers: Sequence[float]) -> float:
    """
    Closeness of a sample to a normal shape in [0, 1].

    Averages a skewness term (0 is ideal) and a kurtosis term (3 is ideal).
    """
    numbers = np.asarray(numbers, dtype=np.float64)
    if numbers.size < 4 or np.std(numbers) == 0:
        return 0.0
    skewness = stats.skew(numbers, bias=False)
    kurtosis = stats.kurtosis(numbers, fisher=False, bias=False)
    skewness_score = max(0.0, 1 - abs(skewness) / 2)
    kurtosis_score = max(0.0, 1 - abs(kurtosis - 3) / 3)
    return float((skewness_score + kurtosis_score) / 2)


def detect_feature_type(
    values: Sequence,
    discrete_threshold: int = 20,
    continuous_threshold: int = 20,
    statistical_tests: bool = True
) -> str:
    """
    Classify one column of values.

    Args:
        values: Column values; None, NaN and "" are treated as missing.
        discrete_threshold: Max distinct values for a column to count as discrete.
        continuous_threshold: Min distinct numeric values for a column to count
            as continuous.
        statistical_tests: Use a normality score for numeric columns whose
            cardinality falls between the two thresholds.
    """
    present = _present(values)
    if not present:
        return DISCRETE

    if all(isinstance(value, (bool, np.bool_)) for value in present):
        return DISCRETE
    if all(isinstance(value, str) for value in present):
        return DISCRETE

    cardinality = len(distinct_values(present))
    numbers = [to_number(value) for value in present]
    is_numeric = all(n is not None and np.isfinite(n) for n in numbers)

    if is_numeric and cardinality >= continuous_threshold:
        return CONTINUOUS
    if cardinality <= discrete_threshold:
        return DISCRETE
    if is_numeric and statistical_tests:
        return CONTINUOUS if normality_score(numbers) > 0.6 else DISCRETE
    return DISCRETE


def detect_feature_types(
    rows: Sequence[Mapping],
    attributes: Sequence[str],
    **kwargs
) -> Dict[str, str]:
    """Map every attribute to ``"discrete"`` or ``"continuous"``."""
    return {
        attribute: detect_feature_type([row.get(attribute) for row in rows], **kwargs)
        for attribute in attributes
    }


def recommend_algorithm(feature_types: Mapping[str, str], target_type: str = DISCRETE) -> str:
    """``"id3"`` for all-discrete attributes with a discrete target, else ``"cart"``."""
    all_discrete = all(kind == DISCRETE for kind in feature_types.values())
    if all_discrete and target_type == DISCRETE:
        return "id3"
    return "cart"


def resolve_feature_types(
    rows: Sequence[Mapping],
    attributes: Sequence[str],
    known: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Feature types for ``attributes``, taking ``known`` entries as given and
    detecting the rest from ``rows``.
    """
    known = dict(known or {})
    for attribute, kind in known.items():
        if kind not in FEATURE_TYPES:
            raise ValueError(
                f"feature type for {attribute!r} must be one of {FEATURE_TYPES}, got {kind!r}"
            )

    unknown = [attribute for attribute in attributes if attribute not in known]
    detected = detect_feature_types(rows, unknown)
    if detected:
        logger.debug(f"Detected feature types: {detected}")

    return {attribute: known.get(attribute, detected.get(attribute)) for attribute in attributes}
