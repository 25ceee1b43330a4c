"""
ID3 induction over discrete attributes.

Each split picks the attribute with the greatest information gain (entropy)
and branches once per distinct value seen at the node. An attribute is used
at most once on any root-to-leaf path.

Reference: Quinlan, J. R. (1986). Induction of decision trees.
"""

from typing import List, Mapping, Optional, Sequence, Tuple

from .criteria import entropy, information_gain
from .nodes import Branch, Leaf, MultiwaySplit, TreeNode
from .utils import distinct_values, most_common, partition_by_value


class ID3Builder:
    """
    Recursive ID3 tree builder.

    Args:
        max_depth: Maximum number of split levels (None for unlimited).
        min_samples_split: Nodes with fewer rows become leaves.
    """

    def __init__(self, max_depth: Optional[int] = None, min_samples_split: int = 2):
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split

    def build(self, rows: Sequence[Mapping], target: str, attributes: Sequence[str]) -> TreeNode:
        """Build a tree predicting ``target`` from ``attributes``."""
        return self._build(list(rows), target, list(attributes), 0)

    def _build(
        self,
        rows: List[Mapping],
        target: str,
        attributes: List[str],
        depth: int
    ) -> TreeNode:
        if not rows:
            return Leaf(value=None, sample_size=0)

        labels = [row.get(target) for row in rows]
        classes = distinct_values(labels)

        if len(classes) == 1:
            return Leaf(value=classes[0], sample_size=len(rows))

        if (
            not attributes
            or (self.max_depth is not None and depth >= self.max_depth)
            or len(rows) < self.min_samples_split
        ):
            return Leaf(value=most_common(labels), sample_size=len(rows))

        attribute, gain = self._best_attribute(rows, labels, target, attributes)
        if attribute is None:
            return Leaf(value=most_common(labels), sample_size=len(rows))

        remaining = [a for a in attributes if a != attribute]
        branches = []
        for value, subset in partition_by_value(rows, attribute):
            child = self._build(subset, target, remaining, depth + 1)
            branches.append(Branch(
                value=value,
                child=child,
                sample_size=len(subset),
                proportion=len(subset) / len(rows),
            ))

        return MultiwaySplit(
            attribute=attribute,
            gain=gain,
            sample_size=len(rows),
            branches=tuple(branches),
        )

    def _best_attribute(
        self,
        rows: List[Mapping],
        labels: List,
        target: str,
        attributes: List[str]
    ) -> Tuple[Optional[str], float]:
        """Attribute with the strictly greatest positive gain (first wins ties)."""
        best_attribute = None
        best_gain = 0.0

        for attribute in attributes:
            partitions = [
                [row.get(target) for row in subset]
                for _, subset in partition_by_value(rows, attribute)
            ]
            gain = information_gain(labels, partitions, entropy)
            if gain > best_gain:
                best_gain = gain
                best_attribute = attribute

        return best_attribute, best_gain
