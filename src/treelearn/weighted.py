"""
Second-order tree builder for gradient boosting.

Each row carries a gradient g_i and Hessian h_i of the loss at the current
ensemble prediction. A node with sums G, H has structure score
G² / (H + λ), a split's gain is

    0.5 * (Σ_children G_c² / (H_c + λ) - G² / (H + λ))

and every leaf holds the Newton step -G / (H + λ).

Reference: Chen, T., & Guestrin, C. (2016). XGBoost: A scalable tree boosting
system. KDD.
"""

from typing import List, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .criteria import newton_leaf_value, structure_score
from .feature_types import CONTINUOUS
from .nodes import BinarySplit, Branch, Leaf, MultiwaySplit, TreeNode
from .utils import to_number, value_key


class WeightedSplit(NamedTuple):
    attribute: str
    gain: float
    threshold: Optional[float]
    groups: List[Tuple[object, np.ndarray]]


def _scores(gradient_sums: np.ndarray, hessian_sums: np.ndarray, reg_lambda: float) -> np.ndarray:
    denominator = hessian_sums + reg_lambda
    safe = np.where(denominator > 0, denominator, 1.0)
    return np.where(denominator > 0, gradient_sums ** 2 / safe, 0.0)


class WeightedTreeBuilder:
    """
    Builds one regression tree over per-row gradients and Hessians.

    Parameters
    ----------
    max_depth : int or None, default=6
        Maximum number of split levels (None for unlimited).
    min_child_weight : float, default=1.0
        Minimum Hessian sum required in every child of a split.
    min_samples_split : int, default=2
        Nodes with fewer rows become leaves.
    reg_lambda : float, default=1.0
        L2 regularisation on leaf weights.
    """

    def __init__(
        self,
        max_depth: Optional[int] = 6,
        min_child_weight: float = 1.0,
        min_samples_split: int = 2,
        reg_lambda: float = 1.0
    ):
        self.max_depth = max_depth
        self.min_child_weight = min_child_weight
        self.min_samples_split = min_samples_split
        self.reg_lambda = reg_lambda

    def build(
        self,
        rows: Sequence[Mapping],
        gradients: Sequence[float],
        hessians: Sequence[float],
        attributes: Sequence[str],
        feature_types: Mapping[str, str]
    ) -> TreeNode:
        """
        Build a tree whose leaves approximate the loss-minimising update.

        Parameters
        ----------
        rows : sequence of mappings
            Feature rows; ``gradients[i]``/``hessians[i]`` belong to ``rows[i]``.
        attributes : sequence of str
            Candidate split attributes.
        feature_types : mapping
            Attribute -> ``"discrete"`` or ``"continuous"``.
        """
        self._rows = list(rows)
        self._gradients = np.asarray(gradients, dtype=np.float64)
        self._hessians = np.asarray(hessians, dtype=np.float64)
        if not (len(self._rows) == self._gradients.size == self._hessians.size):
            raise ValueError(
                f"rows, gradients and hessians must have equal length: "
                f"{len(self._rows)}, {self._gradients.size}, {self._hessians.size}"
            )
        self._feature_types = feature_types
        try:
            indices = np.arange(len(self._rows))
            return self._build(indices, list(attributes), 0)
        finally:
            del self._rows, self._gradients, self._hessians, self._feature_types

    def _build(self, indices: np.ndarray, attributes: List[str], depth: int) -> TreeNode:
        gradient_sum = float(self._gradients[indices].sum())
        hessian_sum = float(self._hessians[indices].sum())
        leaf = Leaf(
            value=newton_leaf_value(gradient_sum, hessian_sum, self.reg_lambda),
            sample_size=int(indices.size),
        )

        if (
            indices.size < 2
            or indices.size < self.min_samples_split
            or not attributes
            or (self.max_depth is not None and depth >= self.max_depth)
        ):
            return leaf

        parent_score = structure_score(gradient_sum, hessian_sum, self.reg_lambda)
        best = None
        for attribute in attributes:
            if self._feature_types.get(attribute) == CONTINUOUS:
                split = self._threshold_split(indices, attribute, gradient_sum, hessian_sum, parent_score)
            else:
                split = self._value_split(indices, attribute, parent_score)
            if split is not None and (best is None or split.gain > best.gain):
                best = split

        if best is None or best.gain <= 0:
            return leaf

        remaining = [a for a in attributes if a != best.attribute]

        if best.threshold is not None:
            (_, left), (_, right) = best.groups
            return BinarySplit(
                attribute=best.attribute,
                gain=best.gain,
                sample_size=int(indices.size),
                threshold=best.threshold,
                left=self._build(left, remaining, depth + 1),
                right=self._build(right, remaining, depth + 1),
            )

        branches = tuple(
            Branch(
                value=value,
                child=self._build(subset, remaining, depth + 1),
                sample_size=int(subset.size),
                proportion=subset.size / indices.size,
            )
            for value, subset in best.groups
        )
        return MultiwaySplit(
            attribute=best.attribute,
            gain=best.gain,
            sample_size=int(indices.size),
            branches=branches,
        )

    # ===========================
    # Split search
    # ===========================

    def _threshold_split(
        self,
        indices: np.ndarray,
        attribute: str,
        gradient_sum: float,
        hessian_sum: float,
        parent_score: float
    ) -> Optional[WeightedSplit]:
        numbers = [to_number(self._rows[i].get(attribute)) for i in indices]
        values = np.array([np.nan if n is None else n for n in numbers], dtype=np.float64)
        missing = np.isnan(values)

        # Missing values first (they always go left), then ascending numbers.
        order = np.lexsort((np.where(missing, 0.0, values), ~missing))
        sorted_values = values[order]
        sorted_indices = indices[order]

        left_g = np.cumsum(self._gradients[sorted_indices])[:-1]
        left_h = np.cumsum(self._hessians[sorted_indices])[:-1]
        right_g = gradient_sum - left_g
        right_h = hessian_sum - left_h

        lower, upper = sorted_values[:-1], sorted_values[1:]
        valid = (
            ~np.isnan(lower) & ~np.isnan(upper) & (lower != upper)
            & (left_h >= self.min_child_weight)
            & (right_h >= self.min_child_weight)
        )
        if not valid.any():
            return None

        gains = 0.5 * (
            _scores(left_g, left_h, self.reg_lambda)
            + _scores(right_g, right_h, self.reg_lambda)
            - parent_score
        )
        gains = np.where(valid, gains, -np.inf)
        position = int(np.argmax(gains))

        return WeightedSplit(
            attribute=attribute,
            gain=float(gains[position]),
            threshold=float((lower[position] + upper[position]) / 2),
            groups=[
                (None, sorted_indices[:position + 1]),
                (None, sorted_indices[position + 1:]),
            ],
        )

    def _value_split(
        self,
        indices: np.ndarray,
        attribute: str,
        parent_score: float
    ) -> Optional[WeightedSplit]:
        groups = {}
        for i in indices:
            value = self._rows[i].get(attribute)
            groups.setdefault(value_key(value), (value, []))[1].append(i)
        if len(groups) < 2:
            return None

        partitions = [(value, np.array(members, dtype=np.intp)) for value, members in groups.values()]
        score = 0.0
        for _, subset in partitions:
            child_h = float(self._hessians[subset].sum())
            if child_h < self.min_child_weight:
                return None
            score += structure_score(float(self._gradients[subset].sum()), child_h, self.reg_lambda)

        return WeightedSplit(
            attribute=attribute,
            gain=0.5 * (score - parent_score),
            threshold=None,
            groups=partitions,
        )
