"""
Unit tests for the tree builders: ID3, CART and the weighted boosting builder.
"""

import numpy as np
import pandas as pd
import pytest

import sys
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from treelearn.cart import CARTBuilder
from treelearn.id3 import ID3Builder
from treelearn.nodes import BinarySplit, Leaf, MultiwaySplit, iter_splits
from treelearn.predictor import predict_tree
from treelearn.utils import as_records
from treelearn.weighted import WeightedTreeBuilder


LO_HI_ROWS = [
    {"x": 1, "y": "lo"}, {"x": 2, "y": "lo"}, {"x": 3, "y": "lo"},
    {"x": 4, "y": "hi"}, {"x": 5, "y": "hi"}, {"x": 6, "y": "hi"},
]


# =========================
# ID3
# =========================

class TestID3:

    def test_separable_attribute(self):
        rows = [
            {"color": "red", "label": "yes"},
            {"color": "red", "label": "yes"},
            {"color": "blue", "label": "no"},
            {"color": "blue", "label": "no"},
            {"color": "blue", "label": "no"},
        ]
        root = ID3Builder().build(rows, "label", ["color"])

        assert isinstance(root, MultiwaySplit)
        assert root.attribute == "color"
        assert [b.value for b in root.branches] == ["red", "blue"]
        assert [b.sample_size for b in root.branches] == [2, 3]
        assert [b.proportion for b in root.branches] == pytest.approx([0.4, 0.6])
        assert [b.child.value for b in root.branches] == ["yes", "no"]
        assert root.gain > 0

    def test_nested_split_removes_used_attribute(self):
        rows = [
            {"a": "x", "b": "p", "label": "yes"},
            {"a": "x", "b": "q", "label": "no"},
            {"a": "y", "b": "p", "label": "no"},
            {"a": "y", "b": "q", "label": "no"},
        ]
        root = ID3Builder().build(rows, "label", ["a", "b"])

        # Both attributes tie on gain; the first listed wins.
        assert root.attribute == "a"
        x_branch, y_branch = root.branches
        assert isinstance(x_branch.child, MultiwaySplit)
        assert x_branch.child.attribute == "b"
        assert y_branch.child == Leaf(value="no", sample_size=2)

        for split in iter_splits(x_branch.child):
            assert split.attribute != "a"

    def test_empty_rows_give_empty_leaf(self):
        assert ID3Builder().build([], "label", ["a"]) == Leaf(value=None, sample_size=0)

    def test_pure_rows_give_leaf(self):
        rows = [{"a": i, "label": "same"} for i in range(4)]
        assert ID3Builder().build(rows, "label", ["a"]) == Leaf(value="same", sample_size=4)

    def test_depth_limit_uses_first_most_common_label(self):
        rows = [
            {"a": "x", "label": "b"},
            {"a": "y", "label": "a"},
            {"a": "z", "label": "a"},
            {"a": "w", "label": "b"},
        ]
        root = ID3Builder(max_depth=0).build(rows, "label", ["a"])
        assert root == Leaf(value="b", sample_size=4)

    def test_min_samples_split(self):
        rows = [{"a": "x", "label": 1}, {"a": "y", "label": 2}]
        assert isinstance(ID3Builder(min_samples_split=3).build(rows, "label", ["a"]), Leaf)

    def test_zero_gain_gives_leaf(self):
        rows = [
            {"a": "k", "label": "yes"},
            {"a": "k", "label": "no"},
            {"a": "k", "label": "yes"},
        ]
        assert ID3Builder().build(rows, "label", ["a"]) == Leaf(value="yes", sample_size=3)

    def test_missing_values_form_their_own_branch(self):
        rows = [
            {"a": "x", "label": "yes"},
            {"label": "no"},
            {"a": None, "label": "no"},
        ]
        root = ID3Builder().build(rows, "label", ["a"])
        assert [b.value for b in root.branches] == ["x", None]
        assert root.branches[1].sample_size == 2

    def test_dataframe_missing_values_share_one_branch(self):
        df = pd.DataFrame({
            "c": [1.0, np.nan, np.nan, np.nan, 2.0, 2.0],
            "label": ["a", "b", "b", "b", "a", "a"],
        })
        root = ID3Builder().build(as_records(df), "label", ["c"])

        assert [b.value for b in root.branches] == [1.0, None, 2.0]
        assert [b.sample_size for b in root.branches] == [1, 3, 2]
        assert predict_tree(root, {"c": np.nan}) == "b"

    def test_nan_and_none_group_together(self):
        rows = [
            {"a": "x", "label": "yes"},
            {"a": float("nan"), "label": "no"},
            {"a": None, "label": "no"},
            {"a": float("nan"), "label": "no"},
        ]
        root = ID3Builder().build(rows, "label", ["a"])
        assert len(root.branches) == 2
        assert root.branches[1].sample_size == 3


# =========================
# CART
# =========================

class TestCART:

    def test_threshold_between_classes(self):
        root = CARTBuilder().build(LO_HI_ROWS, "y", ["x"], {"x": "continuous"})

        assert isinstance(root, BinarySplit)
        assert 3 < root.threshold < 4
        assert root.left == Leaf(value="lo", sample_size=3)
        assert root.right == Leaf(value="hi", sample_size=3)

    def test_entropy_criterion_same_threshold(self):
        root = CARTBuilder(criterion="entropy").build(LO_HI_ROWS, "y", ["x"], {"x": "continuous"})
        assert root.threshold == pytest.approx(3.5)
        assert root.gain == pytest.approx(1.0)

    def test_regression_leaves_hold_means(self):
        rows = [{"x": x, "y": y} for x, y in zip(range(1, 7), [1, 1, 1, 10, 10, 10])]
        root = CARTBuilder(criterion="mse").build(rows, "y", ["x"], {"x": "continuous"})

        assert root.threshold == pytest.approx(3.5)
        assert root.left.value == pytest.approx(1.0)
        assert root.right.value == pytest.approx(10.0)

    def test_regression_leaf_mean_at_depth_limit(self):
        rows = [{"x": x, "y": float(x)} for x in range(1, 5)]
        root = CARTBuilder(criterion="mae", max_depth=0).build(rows, "y", ["x"], {"x": "continuous"})
        assert root == Leaf(value=2.5, sample_size=4)

    def test_min_samples_leaf_rejects_all_thresholds(self):
        root = CARTBuilder(min_samples_leaf=4).build(LO_HI_ROWS, "y", ["x"], {"x": "continuous"})
        assert root == Leaf(value="lo", sample_size=6)

    def test_discrete_attribute_emits_multiway_split(self):
        rows = [
            {"color": "red", "label": "a"},
            {"color": "red", "label": "a"},
            {"color": "blue", "label": "b"},
            {"color": "blue", "label": "b"},
        ]
        root = CARTBuilder().build(rows, "label", ["color"], {"color": "discrete"})

        assert isinstance(root, MultiwaySplit)
        assert [b.value for b in root.branches] == ["red", "blue"]
        assert [b.child.value for b in root.branches] == ["a", "b"]

    def test_mixed_attributes(self):
        rows = [
            {"x": 1.0, "color": "red", "label": "a"},
            {"x": 2.0, "color": "red", "label": "a"},
            {"x": 3.0, "color": "red", "label": "b"},
            {"x": 4.0, "color": "blue", "label": "b"},
        ]
        types = {"x": "continuous", "color": "discrete"}
        root = CARTBuilder().build(rows, "label", ["color", "x"], types)

        assert isinstance(root, BinarySplit)
        assert root.attribute == "x"
        for row in rows:
            assert predict_tree(root, row) == row["label"]

    def test_non_numeric_values_go_left(self):
        rows = [
            {"x": "n/a", "y": "lo"},
            {"x": 1, "y": "lo"},
            {"x": 8, "y": "hi"},
            {"x": 9, "y": "hi"},
        ]
        root = CARTBuilder().build(rows, "y", ["x"], {"x": "continuous"})
        assert root.threshold == pytest.approx(4.5)
        assert root.left.sample_size == 2

    def test_empty_rows_raise(self):
        with pytest.raises(ValueError, match="empty"):
            CARTBuilder().build([], "y", ["x"], {"x": "continuous"})

    def test_unknown_criterion(self):
        with pytest.raises(ValueError):
            CARTBuilder(criterion="variance")

    def test_never_selects_non_positive_gain(self):
        rows = [{"x": x, "y": label} for x, label in zip(range(8), "abababab")]
        root = CARTBuilder(max_depth=3).build(rows, "y", ["x"], {"x": "continuous"})
        for split in iter_splits(root):
            assert split.gain > 0


# =========================
# Weighted builder
# =========================

class TestWeightedBuilder:

    def _rows(self):
        return [{"x": x} for x in (1, 2, 3, 4)]

    def test_split_gain_and_newton_leaves(self):
        y = np.array([1.0, 1.0, 5.0, 5.0])
        gradients = -y          # squared error at F = 0
        hessians = np.ones(4)

        builder = WeightedTreeBuilder(reg_lambda=0.0)
        root = builder.build(self._rows(), gradients, hessians, ["x"], {"x": "continuous"})

        assert isinstance(root, BinarySplit)
        assert root.threshold == pytest.approx(2.5)
        # 0.5 * (2²/2 + 10²/2 - 12²/4)
        assert root.gain == pytest.approx(8.0)
        assert root.left == Leaf(value=pytest.approx(1.0), sample_size=2)
        assert root.right == Leaf(value=pytest.approx(5.0), sample_size=2)

    def test_regularised_single_leaf(self):
        builder = WeightedTreeBuilder(max_depth=0, reg_lambda=2.0)
        root = builder.build(self._rows()[:2], [-2.0, -2.0], [1.0, 1.0], ["x"], {"x": "continuous"})
        assert isinstance(root, Leaf)
        assert root.value == pytest.approx(1.0)

    def test_min_child_weight_blocks_split(self):
        builder = WeightedTreeBuilder(min_child_weight=3.0, reg_lambda=1.0)
        root = builder.build(self._rows(), [-1.0, -1.0, -5.0, -5.0], np.ones(4), ["x"], {"x": "continuous"})
        assert isinstance(root, Leaf)
        assert root.value == pytest.approx(12.0 / 5.0)

    def test_discrete_multiway_split(self):
        rows = [{"c": "u"}, {"c": "u"}, {"c": "v"}, {"c": "v"}]
        builder = WeightedTreeBuilder(reg_lambda=0.0)
        root = builder.build(rows, [1.0, 1.0, -1.0, -1.0], np.ones(4), ["c"], {"c": "discrete"})

        assert isinstance(root, MultiwaySplit)
        assert [b.value for b in root.branches] == ["u", "v"]
        assert [b.child.value for b in root.branches] == [pytest.approx(-1.0), pytest.approx(1.0)]

    def test_constant_gradients_give_leaf(self):
        builder = WeightedTreeBuilder(reg_lambda=1.0)
        root = builder.build(self._rows(), np.full(4, 0.5), np.ones(4), ["x"], {"x": "continuous"})
        assert isinstance(root, Leaf)
        assert root.value == pytest.approx(-2.0 / 5.0)

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="equal length"):
            WeightedTreeBuilder().build(self._rows(), [1.0], [1.0], ["x"], {"x": "continuous"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
