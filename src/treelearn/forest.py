"""
Random forest: bagged decision trees combined by majority vote.

Each tree is grown on a bootstrap sample of the training rows using a random
subset of the attributes. All randomness comes from one seeded generator per
training call, so a fixed ``random_state`` reproduces the forest exactly.

Reference: Breiman, L. (2001). Random forests. Machine Learning, 45(1), 5-32.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Union

from .base import TreeModel, require
from .criteria import get_criterion
from .feature_types import resolve_feature_types
from .nodes import TreeNode, node_from_dict, node_to_dict
from .predictor import predict_tree
from .sampling import SeededRandom, bootstrap_sample, resolve_max_features, select_random_features
from .tree import accumulate_importance, build_tree, choose_algorithm, validate_algorithm
from .utils import as_records, majority_vote, warn_missing_attributes

logger = logging.getLogger(__name__)


class RandomForest(TreeModel):
    """
    Random forest over rows of attribute -> value mappings.

    Parameters
    ----------
    target : str
        Name of the target attribute.
    attributes : list of str
        Candidate split attributes.
    n_estimators : int, default=100
        Number of trees. Zero (or fewer) trains an empty forest.
    max_features : {"sqrt", "log2", "auto"} or int, default="sqrt"
        Size of the random attribute subset given to each tree.
    bootstrap : bool, default=True
        Grow each tree on a bootstrap sample; otherwise on all rows.
    random_state : int or None, default=None
        Seed for the forest's generator.
    max_depth, min_samples_split, min_samples_leaf, criterion, algorithm
        Passed to every tree (see :class:`~treelearn.tree.DecisionTree`).
    feature_types : dict, optional
        Known attribute types; the rest are detected.
    cache : PredictionCache, optional
        Prediction cache (defaults to a no-op cache).
    verbose : bool, default=False
        Log training progress at INFO level.
    """

    config_keys = (
        "n_estimators", "max_features", "bootstrap", "random_state", "max_depth",
        "min_samples_split", "min_samples_leaf", "criterion", "algorithm",
    )

    def __init__(
        self,
        target: str,
        attributes: Sequence[str],
        n_estimators: int = 100,
        max_features: Union[str, int, float] = "sqrt",
        bootstrap: bool = True,
        random_state: Optional[int] = None,
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        criterion: str = "gini",
        algorithm: str = "auto",
        feature_types: Optional[Dict[str, str]] = None,
        cache=None,
        verbose: bool = False
    ):
        super().__init__(target, attributes, feature_types=feature_types, cache=cache, verbose=verbose)
        resolve_max_features(max_features, 1)
        get_criterion(criterion)
        self.n_estimators = n_estimators
        self.max_features = max_features
        self.bootstrap = bootstrap
        self.random_state = random_state
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.criterion = criterion
        self.algorithm = validate_algorithm(algorithm)

        # Fitted state
        self.trees_: List[TreeNode] = []
        self.tree_attributes_: List[List[str]] = []
        self.feature_types_: Dict[str, str] = {}
        self.algorithm_: Optional[str] = None

    def train(self, data) -> "RandomForest":
        """
        Grow ``n_estimators`` trees on ``data`` (sequence of mappings or DataFrame).

        Raises:
            ValueError: If ``data`` is empty or not a sequence of mappings.
        """
        rows = as_records(data)
        if not rows:
            raise ValueError("Cannot train a random forest on empty data")
        warn_missing_attributes(rows, self.attributes)

        feature_types = resolve_feature_types(rows, self.attributes, self.feature_types)
        algorithm = choose_algorithm(self.algorithm, self.criterion, feature_types)
        logger.info(f"Training random forest ({algorithm}) on {len(rows)} rows, feature types: {feature_types}")

        rng = SeededRandom(self.random_state)
        trees = []
        tree_attributes = []

        for i in range(self.n_estimators):
            subset = bootstrap_sample(rows, len(rows), rng) if self.bootstrap else rows
            features = select_random_features(self.attributes, self.max_features, rng)

            trees.append(build_tree(
                subset,
                self.target,
                features,
                feature_types,
                algorithm,
                criterion=self.criterion,
                max_depth=self.max_depth,
                min_samples_split=self.min_samples_split,
                min_samples_leaf=self.min_samples_leaf,
            ))
            tree_attributes.append(features)

            if (i + 1) % 10 == 0:
                logger.info(f"Built {i + 1}/{self.n_estimators} trees")

        self.trees_ = trees
        self.tree_attributes_ = tree_attributes
        self.feature_types_ = feature_types
        self.algorithm_ = algorithm
        self._new_model_id()

        logger.info(f"Random forest trained with {len(trees)} trees")
        return self

    @property
    def is_trained(self) -> bool:
        return len(self.trees_) > 0

    def predict_all(self, sample: Mapping) -> List[Any]:
        """Each tree's prediction for ``sample``, in tree order."""
        self._check_trained()
        return [predict_tree(tree, sample) for tree in self.trees_]

    def _predict_uncached(self, sample: Mapping) -> Any:
        return majority_vote(self.predict_all(sample))

    # ===========================
    # Inspection
    # ===========================

    def get_feature_importance(self) -> Dict[str, float]:
        """
        Mean over trees of the summed ``gain * sample_size`` per attribute.

        Every configured attribute is present, with 0 for those never split on.
        """
        self._check_trained()
        totals = {attribute: 0.0 for attribute in self.attributes}
        for tree in self.trees_:
            accumulate_importance(tree, totals)
        return {attribute: total / len(self.trees_) for attribute, total in totals.items()}

    def get_tree_count(self) -> int:
        return len(self.trees_)

    def get_tree_attributes(self) -> List[List[str]]:
        return [list(features) for features in self.tree_attributes_]

    def get_feature_types(self) -> Dict[str, str]:
        return dict(self.feature_types_)

    # ===========================
    # Persistence
    # ===========================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trees": [node_to_dict(tree) for tree in self.trees_],
            "tree_attributes": self.get_tree_attributes(),
            "target_name": self.target,
            "attributes": list(self.attributes),
            "feature_types": dict(self.feature_types_),
            "algorithm": self.algorithm_,
            "config": self.get_config(),
        }

    @classmethod
    def from_dict(cls, record: Mapping, cache=None, verbose: bool = False) -> "RandomForest":
        """Re-hydrate a forest serialised by :meth:`to_dict`."""
        trees = require(record, "trees", (list, tuple), "an array")
        target = require(record, "target_name", (str,), "a string")
        attributes = require(record, "attributes", (list, tuple), "an array")
        config = require(record, "config", (Mapping,), "an object")

        feature_types = record.get("feature_types") or {}
        model = cls(target, attributes, feature_types=feature_types, cache=cache, verbose=verbose, **config)
        model.trees_ = [node_from_dict(tree) for tree in trees]
        model.tree_attributes_ = [
            list(features) for features in record.get("tree_attributes") or [attributes] * len(trees)
        ]
        model.feature_types_ = dict(feature_types)
        model.algorithm_ = record.get("algorithm")
        model._new_model_id()
        return model
