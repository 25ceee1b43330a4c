"""
CART induction over continuous and mixed attributes.

Continuous attributes are split on the midpoint between adjacent sorted
values that maximises impurity reduction. Discrete attributes are scored by
a single binary grouping of their values (the first half of the observed
values against the rest) and, when chosen, branch once per value.

Reference: Breiman, L., Friedman, J., Olshen, R., & Stone, C. (1984).
Classification and Regression Trees.
"""

from typing import Callable, List, Mapping, NamedTuple, Optional, Sequence

from .criteria import REGRESSION_CRITERIA, get_criterion
from .feature_types import CONTINUOUS
from .nodes import BinarySplit, Branch, Leaf, MultiwaySplit, TreeNode
from .utils import distinct_values, most_common, partition_by_value, to_number, value_key


class CandidateSplit(NamedTuple):
    attribute: str
    gain: float
    threshold: Optional[float]
    left: List[Mapping]
    right: List[Mapping]


def _sort_key(number: Optional[float]):
    # Non-numeric values sort first and always fall on the left.
    return (0, 0.0) if number is None else (1, number)


class CARTBuilder:
    """
    Recursive CART tree builder.

    Args:
        criterion: ``"gini"`` or ``"entropy"`` for classification,
            ``"mse"`` or ``"mae"`` for regression.
        max_depth: Maximum number of split levels (None for unlimited).
        min_samples_split: Nodes with fewer rows become leaves.
        min_samples_leaf: Candidate splits leaving fewer rows in a child are rejected.
    """

    def __init__(
        self,
        criterion: str = "gini",
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1
    ):
        self.criterion = criterion
        self.impurity: Callable[[Sequence], float] = get_criterion(criterion)
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf

    def build(
        self,
        rows: Sequence[Mapping],
        target: str,
        attributes: Sequence[str],
        feature_types: Mapping[str, str]
    ) -> TreeNode:
        """
        Build a tree predicting ``target``.

        Raises:
            ValueError: If ``rows`` is empty.
        """
        return self._build(list(rows), target, list(attributes), feature_types, 0)

    def leaf_value(self, labels: Sequence):
        """Mean target for regression criteria, most frequent label otherwise."""
        if self.criterion in REGRESSION_CRITERIA:
            numbers = [n for n in (to_number(label) for label in labels) if n is not None]
            if numbers:
                return sum(numbers) / len(numbers)
        return most_common(labels)

    def _build(
        self,
        rows: List[Mapping],
        target: str,
        attributes: List[str],
        feature_types: Mapping[str, str],
        depth: int
    ) -> TreeNode:
        if not rows:
            raise ValueError("Cannot create tree from empty dataset")

        labels = [row.get(target) for row in rows]
        leaf = Leaf(value=self.leaf_value(labels), sample_size=len(rows))

        if len(distinct_values(labels)) <= 1:
            return leaf
        if not attributes:
            return leaf
        if self.max_depth is not None and depth >= self.max_depth:
            return leaf
        if len(rows) < self.min_samples_split:
            return leaf

        split = self._best_split(rows, labels, target, attributes, feature_types)
        if split is None or split.gain <= 0:
            return leaf

        remaining = [a for a in attributes if a != split.attribute]

        if split.threshold is not None:
            return BinarySplit(
                attribute=split.attribute,
                gain=split.gain,
                sample_size=len(rows),
                threshold=split.threshold,
                left=self._build(split.left, target, remaining, feature_types, depth + 1),
                right=self._build(split.right, target, remaining, feature_types, depth + 1),
            )

        branches = []
        for value, subset in partition_by_value(rows, split.attribute):
            branches.append(Branch(
                value=value,
                child=self._build(subset, target, remaining, feature_types, depth + 1),
                sample_size=len(subset),
                proportion=len(subset) / len(rows),
            ))
        return MultiwaySplit(
            attribute=split.attribute,
            gain=split.gain,
            sample_size=len(rows),
            branches=tuple(branches),
        )

    # ===========================
    # Split search
    # ===========================

    def _best_split(
        self,
        rows: List[Mapping],
        labels: List,
        target: str,
        attributes: List[str],
        feature_types: Mapping[str, str]
    ) -> Optional[CandidateSplit]:
        parent_impurity = self.impurity(labels)
        best = None

        for attribute in attributes:
            if feature_types.get(attribute) == CONTINUOUS:
                split = self._continuous_split(rows, target, attribute, parent_impurity)
            else:
                split = self._discrete_split(rows, target, attribute, parent_impurity)

            if split is not None and (best is None or split.gain > best.gain):
                best = split

        return best

    def _gain(self, parent_impurity: float, left: List, right: List) -> float:
        total = len(left) + len(right)
        weighted = (
            len(left) / total * self.impurity(left)
            + len(right) / total * self.impurity(right)
        )
        return parent_impurity - weighted

    def _continuous_split(
        self,
        rows: List[Mapping],
        target: str,
        attribute: str,
        parent_impurity: float
    ) -> Optional[CandidateSplit]:
        numbers = [to_number(row.get(attribute)) for row in rows]
        order = sorted(range(len(rows)), key=lambda i: _sort_key(numbers[i]))
        sorted_numbers = [numbers[i] for i in order]
        sorted_labels = [rows[i].get(target) for i in order]

        best_gain = None
        best_position = None
        best_threshold = None

        for position in range(1, len(order)):
            lower, upper = sorted_numbers[position - 1], sorted_numbers[position]
            if lower is None or upper is None or lower == upper:
                continue
            if position < self.min_samples_leaf or len(order) - position < self.min_samples_leaf:
                continue

            gain = self._gain(parent_impurity, sorted_labels[:position], sorted_labels[position:])
            if best_gain is None or gain > best_gain:
                best_gain = gain
                best_position = position
                best_threshold = (lower + upper) / 2

        if best_gain is None:
            return None

        return CandidateSplit(
            attribute=attribute,
            gain=best_gain,
            threshold=best_threshold,
            left=[rows[i] for i in order[:best_position]],
            right=[rows[i] for i in order[best_position:]],
        )

    def _discrete_split(
        self,
        rows: List[Mapping],
        target: str,
        attribute: str,
        parent_impurity: float
    ) -> Optional[CandidateSplit]:
        values = distinct_values([row.get(attribute) for row in rows])
        if len(values) <= 1:
            return None

        group_size = 1 if len(values) <= 2 else len(values) // 2
        group = {value_key(value) for value in values[:group_size]}

        left = [row for row in rows if value_key(row.get(attribute)) in group]
        right = [row for row in rows if value_key(row.get(attribute)) not in group]
        if len(left) < self.min_samples_leaf or len(right) < self.min_samples_leaf:
            return None

        gain = self._gain(
            parent_impurity,
            [row.get(target) for row in left],
            [row.get(target) for row in right],
        )
        return CandidateSplit(attribute=attribute, gain=gain, threshold=None, left=left, right=right)
