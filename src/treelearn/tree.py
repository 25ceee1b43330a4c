"""
Single decision tree model.

``DecisionTree`` wraps the ID3 and CART builders behind one train/predict
interface and handles feature-type detection, algorithm selection and
persistence. ``build_tree`` and ``choose_algorithm`` are shared with the
random forest.

References:
- Quinlan, J. R. (1986). Induction of decision trees. Machine Learning, 1(1).
- Breiman, L., Friedman, J., Olshen, R., & Stone, C. (1984). Classification
  and Regression Trees. Wadsworth.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional, Sequence

from .base import TreeModel, require
from .cart import CARTBuilder
from .criteria import CLASSIFICATION_CRITERIA, get_criterion
from .feature_types import DISCRETE, recommend_algorithm, resolve_feature_types
from .id3 import ID3Builder
from .nodes import TreeNode, count_nodes, iter_splits, node_from_dict, node_to_dict, tree_depth
from .predictor import predict_tree
from .utils import as_records, warn_missing_attributes

logger = logging.getLogger(__name__)

ALGORITHMS = ("auto", "id3", "cart")


def validate_algorithm(algorithm: str) -> str:
    if algorithm not in ALGORITHMS:
        raise ValueError(f"algorithm must be one of {ALGORITHMS}, got {algorithm!r}")
    return algorithm


def choose_algorithm(algorithm: str, criterion: str, feature_types: Mapping) -> str:
    """
    Resolve ``"auto"`` to a concrete builder.

    ID3 is used when every attribute is discrete and the criterion is a
    classification criterion; everything else goes to CART.
    """
    if algorithm != "auto":
        return algorithm
    if criterion not in CLASSIFICATION_CRITERIA:
        return "cart"
    return recommend_algorithm(feature_types, DISCRETE)


def build_tree(
    rows: Sequence[Mapping],
    target: str,
    attributes: Sequence[str],
    feature_types: Mapping[str, str],
    algorithm: str,
    criterion: str = "gini",
    max_depth: Optional[int] = None,
    min_samples_split: int = 2,
    min_samples_leaf: int = 1
) -> TreeNode:
    """Build one tree with the ID3 (``algorithm="id3"``) or CART builder."""
    if algorithm == "id3":
        builder = ID3Builder(max_depth=max_depth, min_samples_split=min_samples_split)
        return builder.build(rows, target, attributes)

    builder = CARTBuilder(
        criterion=criterion,
        max_depth=max_depth,
        min_samples_split=min_samples_split,
        min_samples_leaf=min_samples_leaf,
    )
    return builder.build(rows, target, attributes, feature_types)


def accumulate_importance(root: TreeNode, totals: Dict[str, float]) -> Dict[str, float]:
    """Add ``gain * sample_size`` of every split in ``root`` to ``totals``."""
    for split in iter_splits(root):
        totals[split.attribute] = totals.get(split.attribute, 0.0) + split.gain * split.sample_size
    return totals


class DecisionTree(TreeModel):
    """
    Decision tree classifier/regressor over rows of attribute -> value mappings.

    Args:
        target: Name of the target attribute.
        attributes: Names of the attributes to split on.
        algorithm: ``"id3"``, ``"cart"`` or ``"auto"``.
        criterion: ``"gini"``/``"entropy"`` (classification) or ``"mse"``/``"mae"``
            (regression). ID3 always splits on entropy.
        max_depth: Maximum tree depth (None for unlimited).
        min_samples_split: Minimum rows needed to split a node.
        min_samples_leaf: Minimum rows per child of a CART threshold split.
        feature_types: Optional attribute -> ``"discrete"``/``"continuous"``
            mapping; missing entries are detected from the training rows.
        cache: Prediction cache (defaults to a no-op cache).
        verbose: Log training progress at INFO level.
    """

    config_keys = ("algorithm", "criterion", "max_depth", "min_samples_split", "min_samples_leaf")

    def __init__(
        self,
        target: str,
        attributes: Sequence[str],
        algorithm: str = "auto",
        criterion: str = "gini",
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        feature_types: Optional[Dict[str, str]] = None,
        cache=None,
        verbose: bool = False
    ):
        super().__init__(target, attributes, feature_types=feature_types, cache=cache, verbose=verbose)
        self.algorithm = validate_algorithm(algorithm)
        get_criterion(criterion)
        self.criterion = criterion
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf

        # Fitted state
        self.root_: Optional[TreeNode] = None
        self.feature_types_: Dict[str, str] = {}
        self.algorithm_: Optional[str] = None

    def train(self, data) -> "DecisionTree":
        """
        Build the tree from ``data`` (sequence of mappings or DataFrame).

        Training again discards the previous tree.
        """
        rows = as_records(data)
        warn_missing_attributes(rows, self.attributes)

        feature_types = resolve_feature_types(rows, self.attributes, self.feature_types)
        algorithm = choose_algorithm(self.algorithm, self.criterion, feature_types)
        logger.info(f"Training {algorithm} tree on {len(rows)} rows, feature types: {feature_types}")

        root = build_tree(
            rows,
            self.target,
            self.attributes,
            feature_types,
            algorithm,
            criterion=self.criterion,
            max_depth=self.max_depth,
            min_samples_split=self.min_samples_split,
            min_samples_leaf=self.min_samples_leaf,
        )

        self.root_ = root
        self.feature_types_ = feature_types
        self.algorithm_ = algorithm
        self._new_model_id()

        logger.info(f"Tree built: depth={tree_depth(root)}, nodes={count_nodes(root)}")
        return self

    @property
    def is_trained(self) -> bool:
        return self.root_ is not None

    def _predict_uncached(self, sample: Mapping) -> Any:
        return predict_tree(self.root_, sample)

    # ===========================
    # Inspection
    # ===========================

    def get_feature_types(self) -> Dict[str, str]:
        return dict(self.feature_types_)

    def get_algorithm(self) -> str:
        """Builder used by the last training call (the configured value if untrained)."""
        return self.algorithm_ if self.algorithm_ is not None else self.algorithm

    def get_depth(self) -> int:
        self._check_trained()
        return tree_depth(self.root_)

    def get_node_count(self) -> int:
        self._check_trained()
        return count_nodes(self.root_)

    def get_feature_importance(self) -> Dict[str, float]:
        """Sum of ``gain * sample_size`` over the splits on each attribute."""
        self._check_trained()
        totals = {attribute: 0.0 for attribute in self.attributes}
        return accumulate_importance(self.root_, totals)

    # ===========================
    # Persistence
    # ===========================

    def to_dict(self) -> Dict[str, Any]:
        self._check_trained()
        return {
            "tree": node_to_dict(self.root_),
            "target_name": self.target,
            "attributes": list(self.attributes),
            "feature_types": dict(self.feature_types_),
            "algorithm": self.algorithm_,
            "config": self.get_config(),
        }

    @classmethod
    def from_dict(cls, record: Mapping, cache=None, verbose: bool = False) -> "DecisionTree":
        """Re-hydrate a tree serialised by :meth:`to_dict`."""
        tree = require(record, "tree", (Mapping,), "an object")
        target = require(record, "target_name", (str,), "a string")
        attributes = require(record, "attributes", (list, tuple), "an array")
        config = require(record, "config", (Mapping,), "an object")

        feature_types = record.get("feature_types") or {}
        model = cls(target, attributes, feature_types=feature_types, cache=cache, verbose=verbose, **config)
        model.root_ = node_from_dict(tree)
        model.feature_types_ = dict(feature_types)
        model.algorithm_ = record.get("algorithm") or choose_algorithm(
            model.algorithm, model.criterion, model.feature_types_
        )
        model._new_model_id()
        return model
