"""
Tree traversal for a single sample.
"""

from collections.abc import Mapping
from typing import Any

from .nodes import BinarySplit, Leaf, MultiwaySplit, TreeNode
from .utils import to_number, value_key


def _goes_left(number: float, split: BinarySplit) -> bool:
    if split.operator == ">":
        return number > split.threshold
    return number <= split.threshold


def predict_tree(node: TreeNode, sample: Mapping) -> Any:
    """
    Walk from ``node`` to a leaf and return the leaf's value.

    Multiway splits descend into the branch whose value matches the sample
    exactly; an unseen or missing value follows the first stored branch.
    Binary splits coerce the sample value to a number; a non-numeric or
    missing value follows the first (left) child.
    """
    while not isinstance(node, Leaf):
        value = sample.get(node.attribute)

        if isinstance(node, MultiwaySplit):
            key = value_key(value)
            match = node.branches[0]
            for branch in node.branches:
                if value_key(branch.value) == key:
                    match = branch
                    break
            node = match.child
        else:
            number = to_number(value)
            if number is None or _goes_left(number, node):
                node = node.left
            else:
                node = node.right

    return node.value
