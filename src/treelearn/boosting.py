"""
Gradient boosted trees with second-order (Newton) leaf weights.

Each iteration computes per-row gradients and Hessians of the loss at the
current predictions, fits one weighted tree to them, and adds the tree's
output scaled by the learning rate. Optional row/column subsampling and
early stopping on a held-out validation split follow the stochastic
gradient boosting recipe.

Implements:
1. Initialisation: F_0 = mean(y) (regression), log(p / (1 - p)) (binary), 0 (multiclass).
2. For m = 1 to M:
   a. g_i = ∂L/∂F, h_i = ∂²L/∂F² at F_{m-1}(x_i).
   b. Fit a tree whose leaves hold w_j = -G_j / (H_j + λ).
   c. Update: F_m(x) = F_{m-1}(x) + ν * tree_m(x).
3. Predict with the first ``best_iteration`` trees.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
  Annals of Statistics, 29(5), 1189-1232.
- Friedman, J. H. (2002). Stochastic gradient boosting. Computational Statistics
  & Data Analysis, 38(4), 367-378.
- Chen, T., & Guestrin, C. (2016). XGBoost: A scalable tree boosting system. KDD.
"""

import logging
import math
from collections.abc import Mapping
from numbers import Number
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .base import TreeModel, require
from .feature_types import resolve_feature_types
from .losses import EPSILON, get_loss, sigmoid
from .nodes import TreeNode, node_from_dict, node_to_dict
from .predictor import predict_tree
from .sampling import SeededRandom, select_random_features, shuffle, subsample_indices
from .tree import accumulate_importance
from .utils import as_records, to_number, warn_missing_attributes
from .weighted import WeightedTreeBuilder

logger = logging.getLogger(__name__)


def is_positive(value: Any) -> bool:
    """Binary targets count as positive only when equal to 1 or True."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    return bool(isinstance(value, Number) and value == 1)


def base_score(targets: np.ndarray, objective: str) -> float:
    """Initial constant prediction F_0 for ``objective``."""
    if targets.size == 0:
        return 0.0
    if objective == "regression":
        return float(np.mean(targets))
    if objective == "binary":
        p = float(np.clip(np.mean(targets), EPSILON, 1 - EPSILON))
        return math.log(p / (1 - p + EPSILON))
    return 0.0


class GradientBoosting(TreeModel):
    """
    Gradient boosting over rows of attribute -> value mappings.

    Parameters
    ----------
    target : str
        Name of the target attribute.
    attributes : list of str
        Candidate split attributes.
    n_estimators : int, default=100
        Maximum number of boosting iterations.
    learning_rate : float, default=0.1
        Shrinkage ν applied to every tree's output.
    max_depth : int or None, default=6
        Maximum depth of each tree.
    min_child_weight : float, default=1.0
        Minimum Hessian sum per child of a split.
    min_samples_split : int, default=2
        Nodes with fewer rows become leaves.
    subsample : float, default=1.0
        Fraction of training rows drawn (without replacement) per iteration.
    colsample_bytree : float, default=1.0
        Fraction of attributes offered to each tree.
    reg_alpha : float, default=0.0
        L1 penalty; recorded in the configuration, leaf weights use L2 only.
    reg_lambda : float, default=1.0
        L2 penalty on leaf weights.
    objective : {"regression", "binary", "multiclass"}, default="regression"
        Loss to minimise.
    early_stopping_rounds : int or None, default=None
        Stop after this many iterations without validation improvement.
    validation_fraction : float, default=0.2
        Share of rows held out for early stopping.
    random_state : int or None, default=None
        Seed for the validation split and subsampling.
    feature_types : dict, optional
        Known attribute types; the rest are detected.
    cache : PredictionCache, optional
        Prediction cache (defaults to a no-op cache).
    verbose : bool, default=False
        Log every 10th iteration's losses at INFO level.
    """

    config_keys = (
        "n_estimators", "learning_rate", "max_depth", "min_child_weight", "min_samples_split",
        "subsample", "colsample_bytree", "reg_alpha", "reg_lambda", "objective",
        "early_stopping_rounds", "validation_fraction", "random_state",
    )

    def __init__(
        self,
        target: str,
        attributes: Sequence[str],
        n_estimators: int = 100,
        learning_rate: float = 0.1,
        max_depth: Optional[int] = 6,
        min_child_weight: float = 1.0,
        min_samples_split: int = 2,
        subsample: float = 1.0,
        colsample_bytree: float = 1.0,
        reg_alpha: float = 0.0,
        reg_lambda: float = 1.0,
        objective: str = "regression",
        early_stopping_rounds: Optional[int] = None,
        validation_fraction: float = 0.2,
        random_state: Optional[int] = None,
        feature_types: Optional[Dict[str, str]] = None,
        cache=None,
        verbose: bool = False
    ):
        super().__init__(target, attributes, feature_types=feature_types, cache=cache, verbose=verbose)
        if not isinstance(learning_rate, Number) or isinstance(learning_rate, bool):
            raise ValueError(f"learning_rate must be a number, got {learning_rate!r}")
        self._loss = get_loss(objective)

        self.n_estimators = n_estimators
        self.learning_rate = learning_rate
        self.max_depth = max_depth
        self.min_child_weight = min_child_weight
        self.min_samples_split = min_samples_split
        self.subsample = subsample
        self.colsample_bytree = colsample_bytree
        self.reg_alpha = reg_alpha
        self.reg_lambda = reg_lambda
        self.objective = objective
        self.early_stopping_rounds = early_stopping_rounds
        self.validation_fraction = validation_fraction
        self.random_state = random_state

        # Fitted state
        self.base_score_: float = 0.0
        self.trees_: List[TreeNode] = []
        self.best_iteration_: int = 0
        self.feature_types_: Dict[str, str] = {}

        # Training history
        self.train_scores_: List[float] = []
        self.val_scores_: List[float] = []
        self.iterations_: List[int] = []

    def _encode_targets(self, rows: Sequence[Mapping]) -> np.ndarray:
        values = [row.get(self.target) for row in rows]
        if self.objective == "binary":
            return np.array([1.0 if is_positive(v) else 0.0 for v in values])
        numbers = [to_number(v) for v in values]
        return np.array([np.nan if n is None else n for n in numbers], dtype=np.float64)

    def _split_validation(self, n_rows: int, rng: SeededRandom) -> Tuple[List[int], List[int]]:
        """Shuffle row indices and hold out ``floor(n * validation_fraction)`` of them."""
        if not self.early_stopping_rounds or not self.validation_fraction:
            return list(range(n_rows)), []

        size = int(math.floor(n_rows * self.validation_fraction))
        if size >= n_rows:
            logger.warning(
                f"validation_fraction={self.validation_fraction} leaves no training rows; "
                f"holding out {n_rows - 1} of {n_rows}"
            )
            size = n_rows - 1

        indices = shuffle(range(n_rows), rng)
        return indices[size:], indices[:size]

    def _select_columns(self, rng: SeededRandom) -> List[str]:
        if not 0 < self.colsample_bytree < 1:
            return list(self.attributes)
        count = max(1, int(math.floor(len(self.attributes) * self.colsample_bytree)))
        return select_random_features(self.attributes, count, rng)

    def train(self, data) -> "GradientBoosting":
        """
        Fit the boosted ensemble on ``data`` (sequence of mappings or DataFrame).

        Raises:
            ValueError: If ``data`` is empty or not a sequence of mappings.
        """
        rows = as_records(data)
        if not rows:
            raise ValueError("Cannot train gradient boosting on empty data")
        warn_missing_attributes(rows, self.attributes)

        feature_types = resolve_feature_types(rows, self.attributes, self.feature_types)
        y = self._encode_targets(rows)
        f0 = base_score(y, self.objective)
        logger.info(f"Initial base score = {f0:.6f} ({self.objective})")

        rng = SeededRandom(self.random_state)
        train_idx, val_idx = self._split_validation(len(rows), rng)
        train_rows = [rows[i] for i in train_idx]
        val_rows = [rows[i] for i in val_idx]
        y_train, y_val = y[train_idx], y[val_idx]

        F_train = np.full(len(train_rows), f0)
        F_val = np.full(len(val_rows), f0)

        builder = WeightedTreeBuilder(
            max_depth=self.max_depth,
            min_child_weight=self.min_child_weight,
            min_samples_split=self.min_samples_split,
            reg_lambda=self.reg_lambda,
        )

        trees = []
        train_scores, val_scores, iterations = [], [], []
        best_val_loss = math.inf
        best_iteration = 0
        rounds_without_improvement = 0

        for m in range(self.n_estimators):
            gradients, hessians = self._loss.gradients_and_hessians(F_train, y_train)

            indices = subsample_indices(len(train_rows), self.subsample, rng)
            columns = self._select_columns(rng)

            tree = builder.build(
                [train_rows[i] for i in indices],
                gradients[indices],
                hessians[indices],
                columns,
                feature_types,
            )
            trees.append(tree)

            F_train += self.learning_rate * np.array([predict_tree(tree, row) for row in train_rows])
            if val_rows:
                F_val += self.learning_rate * np.array([predict_tree(tree, row) for row in val_rows])

            train_loss = self._loss.loss(F_train, y_train)
            train_scores.append(train_loss)
            iterations.append(m + 1)

            if not val_rows:
                if (m + 1) % 10 == 0:
                    logger.info(f"Iteration {m+1}/{self.n_estimators}: train_loss={train_loss:.6f}")
                continue

            val_loss = self._loss.loss(F_val, y_val)
            val_scores.append(val_loss)
            if (m + 1) % 10 == 0:
                logger.info(
                    f"Iteration {m+1}/{self.n_estimators}: "
                    f"train_loss={train_loss:.6f}, val_loss={val_loss:.6f}"
                )

            if val_loss < best_val_loss:
                best_val_loss = val_loss
                best_iteration = m + 1
                rounds_without_improvement = 0
            else:
                rounds_without_improvement += 1
                if rounds_without_improvement >= self.early_stopping_rounds:
                    logger.info(
                        f"Early stopping at iteration {m+1}; best iteration {best_iteration} "
                        f"(val_loss={best_val_loss:.6f})"
                    )
                    break

        if not val_scores:
            best_iteration = len(trees)

        self.base_score_ = f0
        self.trees_ = trees
        self.best_iteration_ = best_iteration
        self.feature_types_ = feature_types
        self.train_scores_ = train_scores
        self.val_scores_ = val_scores
        self.iterations_ = iterations
        self._new_model_id()

        logger.info(f"Gradient boosting trained with {len(trees)} trees (best iteration {best_iteration})")
        return self

    @property
    def is_trained(self) -> bool:
        return len(self.trees_) > 0

    def predict_raw(self, sample: Mapping) -> float:
        """Raw score F(x) = base score + ν * Σ tree outputs over the first ``best_iteration`` trees."""
        self._check_trained()
        if not isinstance(sample, Mapping):
            raise TypeError(
                f"sample must be a mapping of attribute names to values, got {type(sample).__name__}"
            )
        F = self.base_score_
        for tree in self.trees_[:self.best_iteration_]:
            F += self.learning_rate * predict_tree(tree, sample)
        return float(F)

    def predict_proba(self, sample: Mapping) -> float:
        """Positive-class probability sigmoid(F(x)); binary objective only."""
        if self.objective != "binary":
            raise ValueError("predict_proba is only available for the binary objective")
        return float(sigmoid(self.predict_raw(sample)))

    def _predict_uncached(self, sample: Mapping) -> Any:
        if self.objective == "binary":
            return bool(self.predict_proba(sample) > 0.5)
        return self.predict_raw(sample)

    # ===========================
    # Inspection
    # ===========================

    def get_feature_importance(self) -> Dict[str, float]:
        """Summed ``gain * sample_size`` per attribute over the trees used for prediction."""
        self._check_trained()
        totals = {attribute: 0.0 for attribute in self.attributes}
        for tree in self.trees_[:self.best_iteration_]:
            accumulate_importance(tree, totals)
        return totals

    def get_boosting_history(self) -> Dict[str, List]:
        return {
            "train_loss": list(self.train_scores_),
            "validation_loss": list(self.val_scores_),
            "iterations": list(self.iterations_),
        }

    def get_best_iteration(self) -> int:
        return self.best_iteration_

    def get_tree_count(self) -> int:
        return len(self.trees_)

    def get_feature_types(self) -> Dict[str, str]:
        return dict(self.feature_types_)

    # ===========================
    # Persistence
    # ===========================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trees": [node_to_dict(tree) for tree in self.trees_],
            "target_name": self.target,
            "attributes": list(self.attributes),
            "feature_types": dict(self.feature_types_),
            "config": self.get_config(),
            "base_score": self.base_score_,
            "best_iteration": self.best_iteration_,
            "boosting_history": self.get_boosting_history(),
        }

    @classmethod
    def from_dict(cls, record: Mapping, cache=None, verbose: bool = False) -> "GradientBoosting":
        """Re-hydrate a model serialised by :meth:`to_dict`."""
        trees = require(record, "trees", (list, tuple), "an array")
        target = require(record, "target_name", (str,), "a string")
        attributes = require(record, "attributes", (list, tuple), "an array")
        config = dict(require(record, "config", (Mapping,), "an object"))
        base = require(record, "base_score", (int, float), "a number")
        best_iteration = require(record, "best_iteration", (int,), "an integer")
        history = require(record, "boosting_history", (Mapping,), "an object")

        feature_types = record.get("feature_types") or {}
        model = cls(target, attributes, feature_types=feature_types, cache=cache, verbose=verbose, **config)
        model.trees_ = [node_from_dict(tree) for tree in trees]
        model.base_score_ = float(base)
        model.best_iteration_ = best_iteration
        model.feature_types_ = dict(feature_types)
        model.train_scores_ = list(history.get("train_loss", []))
        model.val_scores_ = list(history.get("validation_loss", []))
        model.iterations_ = list(history.get("iterations", []))
        model._new_model_id()
        return model


class GradientBoostingRegressor(GradientBoosting):
    """Gradient boosting with the squared-error objective."""

    def __init__(self, target: str, attributes: Sequence[str], **kwargs):
        kwargs.pop("objective", None)
        super().__init__(target, attributes, objective="regression", **kwargs)


class GradientBoostingClassifier(GradientBoosting):
    """
    Binary gradient boosting with logistic loss.

    Targets equal to 1 or True are the positive class; ``predict`` returns
    a boolean and ``predict_proba`` the positive-class probability.
    """

    def __init__(self, target: str, attributes: Sequence[str], **kwargs):
        kwargs.pop("objective", None)
        super().__init__(target, attributes, objective="binary", **kwargs)
