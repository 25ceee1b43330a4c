"""
Tree node types.

A built tree is an immutable structure made of three node kinds:

- ``Leaf``: a prediction value and the number of training rows that reached it.
- ``MultiwaySplit``: one ``Branch`` per distinct value of a discrete attribute.
- ``BinarySplit``: a numeric threshold with exactly two children
  (``left`` for values ``<= threshold``, ``right`` otherwise).

Nodes convert to and from plain dicts so trained models can be stored as JSON.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class Leaf:
    """Terminal node holding a prediction value."""

    value: Any
    sample_size: int = 0


@dataclass(frozen=True)
class Branch:
    """One attribute value of a multiway split and the subtree it leads to."""

    value: Any
    child: "TreeNode"
    sample_size: int
    proportion: float


@dataclass(frozen=True)
class MultiwaySplit:
    """Split on a discrete attribute, one branch per observed value."""

    attribute: str
    gain: float
    sample_size: int
    branches: Tuple[Branch, ...]

    def __post_init__(self):
        if not self.branches:
            raise ValueError("A multiway split needs at least one branch")


@dataclass(frozen=True)
class BinarySplit:
    """Threshold split on a continuous attribute."""

    attribute: str
    gain: float
    sample_size: int
    threshold: float
    left: "TreeNode"
    right: "TreeNode"
    operator: str = "<="

    def __post_init__(self):
        if self.operator not in ("<=", ">"):
            raise ValueError(f"Unsupported split operator: {self.operator!r}")


TreeNode = Union[Leaf, MultiwaySplit, BinarySplit]


# ===========================
# Structure helpers
# ===========================

def children(node: TreeNode) -> Tuple[TreeNode, ...]:
    """Direct children of a node, in stored order."""
    if isinstance(node, MultiwaySplit):
        return tuple(branch.child for branch in node.branches)
    if isinstance(node, BinarySplit):
        return (node.left, node.right)
    return ()


def iter_splits(node: TreeNode) -> Iterator[Union[MultiwaySplit, BinarySplit]]:
    """Yield every split node of the tree rooted at ``node`` (pre-order)."""
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Leaf):
            continue
        yield current
        stack.extend(reversed(children(current)))


def tree_depth(node: TreeNode) -> int:
    """Number of split levels between the root and its deepest leaf."""
    if isinstance(node, Leaf):
        return 0
    return 1 + max(tree_depth(child) for child in children(node))


def count_nodes(node: TreeNode) -> int:
    """Total number of nodes (splits and leaves)."""
    return 1 + sum(count_nodes(child) for child in children(node))


# ===========================
# Serialisation
# ===========================

def to_builtin(value: Any) -> Any:
    """Unwrap numpy scalars (labels, attribute values) into Python scalars."""
    return value.item() if isinstance(value, np.generic) else value


def node_to_dict(node: TreeNode) -> Dict[str, Any]:
    """Convert a node (recursively) into JSON-compatible dicts."""
    if isinstance(node, Leaf):
        return {"type": "leaf", "value": to_builtin(node.value), "sample_size": node.sample_size}

    if isinstance(node, MultiwaySplit):
        return {
            "type": "multiway",
            "attribute": node.attribute,
            "gain": float(node.gain),
            "sample_size": node.sample_size,
            "branches": [
                {
                    "value": to_builtin(branch.value),
                    "sample_size": branch.sample_size,
                    "proportion": branch.proportion,
                    "child": node_to_dict(branch.child),
                }
                for branch in node.branches
            ],
        }

    if isinstance(node, BinarySplit):
        return {
            "type": "binary",
            "attribute": node.attribute,
            "gain": float(node.gain),
            "sample_size": node.sample_size,
            "threshold": float(node.threshold),
            "operator": node.operator,
            "children": [node_to_dict(node.left), node_to_dict(node.right)],
        }

    raise TypeError(f"Not a tree node: {type(node).__name__}")


def node_from_dict(data: Dict[str, Any]) -> TreeNode:
    """Rebuild a node produced by :func:`node_to_dict`."""
    if not isinstance(data, dict):
        raise ValueError("Invalid tree node: expected a dict")

    node_type = data.get("type")

    if node_type == "leaf":
        return Leaf(value=data.get("value"), sample_size=int(data.get("sample_size", 0)))

    if node_type == "multiway":
        branches = tuple(
            Branch(
                value=branch.get("value"),
                child=node_from_dict(branch["child"]),
                sample_size=int(branch.get("sample_size", 0)),
                proportion=float(branch.get("proportion", 0.0)),
            )
            for branch in data.get("branches") or []
        )
        return MultiwaySplit(
            attribute=data["attribute"],
            gain=float(data.get("gain", 0.0)),
            sample_size=int(data.get("sample_size", 0)),
            branches=branches,
        )

    if node_type == "binary":
        left, right = data["children"]
        return BinarySplit(
            attribute=data["attribute"],
            gain=float(data.get("gain", 0.0)),
            sample_size=int(data.get("sample_size", 0)),
            threshold=float(data["threshold"]),
            left=node_from_dict(left),
            right=node_from_dict(right),
            operator=data.get("operator", "<="),
        )

    raise ValueError(f"Invalid tree node: unknown type {node_type!r}")
