"""
Utility functions: row handling, label counting, voting, and metrics.
"""

import logging
import math
from collections import Counter
from collections.abc import Mapping
from numbers import Number
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, log_loss, mean_squared_error, roc_auc_score

logger = logging.getLogger(__name__)


# ===========================
# Rows and values
# ===========================

def as_records(data: Any) -> List[Mapping]:
    """
    Normalise training data into a list of attribute -> value mappings.

    Accepts a sequence of mappings or a pandas DataFrame (one record per row).

    Raises:
        ValueError: If ``data`` is neither.
    """
    if isinstance(data, pd.DataFrame):
        # Missing cells come back as None rather than NaN
        return data.astype(object).where(data.notna(), None).to_dict(orient="records")

    if data is None or isinstance(data, (str, bytes, Mapping)) or not isinstance(data, Sequence):
        raise ValueError("`data` is expected to be a sequence of mappings")

    rows = list(data)
    for row in rows:
        if not isinstance(row, Mapping):
            raise ValueError("`data` is expected to be a sequence of mappings")
    return rows


def to_number(value: Any) -> Optional[float]:
    """Coerce ``value`` to a float, or return None when it is not numeric."""
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def is_missing(value: Any) -> bool:
    """True for None and float NaN (what pandas uses for missing cells)."""
    return value is None or (isinstance(value, (float, np.floating)) and math.isnan(value))


def value_key(value: Any) -> Hashable:
    """
    Grouping key that keeps booleans apart from the numbers 0 and 1.

    None and every NaN share one key, so all missing values form one group.
    """
    if is_missing(value):
        return (False, None)
    return (isinstance(value, (bool, np.bool_)), value)


def distinct_values(values: Sequence) -> List:
    """Distinct values in first-encountered order."""
    seen = {}
    for value in values:
        seen.setdefault(value_key(value), value)
    return list(seen.values())


def partition_by_value(rows: Sequence[Mapping], attribute: str) -> List[Tuple[Any, List[Mapping]]]:
    """
    Group rows by their value of ``attribute``.

    Missing values are read as None and form their own group. Groups are
    returned in first-encountered order.
    """
    groups: Dict[Hashable, Tuple[Any, List[Mapping]]] = {}
    for row in rows:
        value = row.get(attribute)
        key = value_key(value)
        if key not in groups:
            groups[key] = (value, [])
        groups[key][1].append(row)
    return list(groups.values())


def most_common(values: Sequence) -> Any:
    """Most frequent value; ties go to the value encountered first."""
    if not values:
        return None
    counts = Counter(value_key(value) for value in values)
    best_key = counts.most_common(1)[0][0]
    return best_key[1]


def warn_missing_attributes(rows: Sequence[Mapping], attributes: Sequence[str]) -> None:
    """Log attributes that never appear in any training row."""
    present = set()
    for row in rows:
        present.update(row.keys())
    missing = [attribute for attribute in attributes if attribute not in present]
    if rows and missing:
        logger.warning(f"Attributes not found in training data: {missing}")


# ===========================
# Voting
# ===========================

def _vote_key(value: Any) -> Hashable:
    if isinstance(value, (bool, np.bool_)):
        return ("bool", bool(value))
    if isinstance(value, Number):
        return ("number", value)
    return ("text", str(value))


def majority_vote(predictions: Sequence) -> Any:
    """
    Most frequent prediction across an ensemble.

    Numbers and booleans are grouped by value, everything else by its string
    form. Ties go to the group encountered first. The winner is coerced back
    to the apparent type of the first prediction.
    """
    if not predictions:
        raise ValueError("Cannot vote over an empty list of predictions")

    counts: Dict[Hashable, int] = {}
    representatives: Dict[Hashable, Any] = {}
    for prediction in predictions:
        key = _vote_key(prediction)
        counts[key] = counts.get(key, 0) + 1
        representatives.setdefault(key, prediction)

    winner = representatives[max(counts, key=counts.get)]

    first = predictions[0]
    if isinstance(first, (bool, np.bool_)):
        return bool(winner) if isinstance(winner, (bool, np.bool_)) else str(winner).lower() == "true"
    if isinstance(first, Number):
        if isinstance(winner, Number) and not isinstance(winner, (bool, np.bool_)):
            return winner
        number = to_number(winner)
        return number if number is not None else float("nan")
    if isinstance(first, str):
        return str(winner)
    return winner


# ===========================
# Metrics
# ===========================

def accuracy(predictions: Sequence, actuals: Sequence) -> float:
    """Fraction of predictions equal to the actual values."""
    if len(actuals) == 0:
        return 0.0
    matches = [prediction == actual for prediction, actual in zip(predictions, actuals)]
    return float(np.mean(matches))


def compute_metrics_regression(
    y_true: np.ndarray,
    y_pred: np.ndarray
) -> dict:
    """Compute regression metrics."""
    mse = mean_squared_error(y_true, y_pred)
    rmse = np.sqrt(mse)
    mae = np.mean(np.abs(np.asarray(y_true) - np.asarray(y_pred)))

    return {
        "mse": mse,
        "rmse": rmse,
        "mae": mae
    }


def compute_metrics_classification(
    y_true: Sequence,
    y_pred: Sequence,
    y_pred_proba: Optional[np.ndarray] = None
) -> dict:
    """
    Compute classification metrics on predicted labels.

    When positive-class probabilities are given (binary targets encoded as
    0/1), log loss and ROC AUC are added.
    """
    labels_true = [str(label) for label in y_true]
    labels_pred = [str(label) for label in y_pred]

    metrics = {
        "accuracy": accuracy_score(labels_true, labels_pred),
        "n_samples": len(labels_true)
    }

    if y_pred_proba is not None:
        y_binary = np.asarray(y_true, dtype=float)
        proba_clipped = np.clip(np.asarray(y_pred_proba, dtype=float), 1e-15, 1 - 1e-15)
        metrics["log_loss"] = log_loss(y_binary, proba_clipped, labels=[0.0, 1.0])

        # ROC AUC only if both classes present
        if len(np.unique(y_binary)) == 2:
            metrics["roc_auc"] = roc_auc_score(y_binary, y_pred_proba)
        else:
            metrics["roc_auc"] = np.nan

    return metrics
