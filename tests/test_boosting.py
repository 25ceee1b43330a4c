"""
Tests for gradient boosting.

Covers:
- Base score initialisation per objective
- Training loss decrease and prediction with best_iteration
- Early stopping bookkeeping
- Determinism with random_state under row/column subsampling
- Persistence and error handling
"""

import json
import math

import numpy as np
import pytest

import sys
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from treelearn import GradientBoosting, GradientBoostingClassifier, GradientBoostingRegressor
from treelearn.boosting import base_score, is_positive
from treelearn.sampling import SeededRandom


LINEAR_ROWS = [{"x": float(i), "noise": "k", "y": 2.0 * i} for i in range(30)]
STEP_ROWS = [{"x": float(i), "label": i >= 10} for i in range(20)]
CONTINUOUS = {"x": "continuous", "noise": "discrete"}


# =========================
# Helpers
# =========================

class TestHelpers:

    @pytest.mark.parametrize("value, expected", [
        (1, True), (1.0, True), (True, True),
        (0, False), (False, False), (2, False), ("1", False), (None, False),
        (np.True_, True), (np.False_, False), (np.int64(1), True), (np.float64(0.0), False),
    ])
    def test_is_positive(self, value, expected):
        assert is_positive(value) is expected

    def test_base_score_regression_is_mean(self):
        assert base_score(np.array([1.0, 2.0, 6.0]), "regression") == pytest.approx(3.0)

    def test_base_score_binary_is_log_odds(self):
        assert base_score(np.array([1.0, 1.0, 1.0, 0.0]), "binary") == pytest.approx(math.log(3.0))

    def test_base_score_binary_all_positive_is_finite(self):
        assert np.isfinite(base_score(np.ones(5), "binary"))

    def test_base_score_multiclass_is_zero(self):
        assert base_score(np.array([0.0, 1.0, 2.0]), "multiclass") == 0.0


# =========================
# Regression
# =========================

class TestRegression:

    def test_training_loss_decreases(self):
        model = GradientBoostingRegressor(
            "y", ["x", "noise"], n_estimators=40, learning_rate=0.3,
            feature_types=CONTINUOUS, random_state=0
        ).train(LINEAR_ROWS)

        history = model.get_boosting_history()
        assert history["iterations"] == list(range(1, 41))
        assert history["validation_loss"] == []
        assert history["train_loss"][-1] < history["train_loss"][0]
        assert np.all(np.diff(history["train_loss"]) <= 1e-9)

    def test_base_score_and_best_iteration(self):
        model = GradientBoostingRegressor(
            "y", ["x"], n_estimators=12, feature_types=CONTINUOUS
        ).train(LINEAR_ROWS)
        assert model.base_score_ == pytest.approx(29.0)
        assert model.get_best_iteration() == model.get_tree_count() == 12

    def test_predictions_track_target(self):
        model = GradientBoostingRegressor(
            "y", ["x"], n_estimators=100, learning_rate=0.5, feature_types=CONTINUOUS
        ).train(LINEAR_ROWS)
        predictions = np.array([model.predict(row) for row in LINEAR_ROWS])
        targets = np.array([row["y"] for row in LINEAR_ROWS])
        assert np.mean((predictions - targets) ** 2) < 0.1 * np.var(targets)

    def test_predict_uses_first_best_iteration_trees(self):
        model = GradientBoostingRegressor(
            "y", ["x"], n_estimators=10, learning_rate=0.2, feature_types=CONTINUOUS
        ).train(LINEAR_ROWS)
        sample = {"x": 3.0}
        full = model.predict_raw(sample)

        model.best_iteration_ = 0
        assert model.predict_raw(sample) == pytest.approx(model.base_score_)
        assert full != pytest.approx(model.base_score_)

    def test_feature_importance(self):
        model = GradientBoostingRegressor(
            "y", ["x", "noise"], n_estimators=5, feature_types=CONTINUOUS
        ).train(LINEAR_ROWS)
        importance = model.get_feature_importance()
        assert set(importance) == {"x", "noise"}
        assert importance["x"] > 0
        assert importance["noise"] == 0.0


# =========================
# Binary classification
# =========================

class TestBinary:

    def test_separates_step_function(self):
        model = GradientBoostingClassifier(
            "label", ["x"], n_estimators=20, learning_rate=0.5, feature_types={"x": "continuous"}
        ).train(STEP_ROWS)

        assert model.objective == "binary"
        assert model.base_score_ == pytest.approx(0.0, abs=1e-9)
        assert model.evaluate(STEP_ROWS) == 1.0
        assert model.predict({"x": 2.0}) is False
        assert model.predict({"x": 18.0}) is True

    def test_numpy_boolean_labels(self):
        labels = np.arange(20) >= 10
        rows = [{"x": float(i), "label": labels[i]} for i in range(20)]
        model = GradientBoostingClassifier(
            "label", ["x"], n_estimators=20, learning_rate=0.5, feature_types={"x": "continuous"}
        ).train(rows)

        assert model.base_score_ == pytest.approx(0.0, abs=1e-9)
        assert model.predict({"x": 2.0}) is False
        assert model.predict({"x": 15.0}) is True

    def test_predict_proba(self):
        model = GradientBoostingClassifier(
            "label", ["x"], n_estimators=10, feature_types={"x": "continuous"}
        ).train(STEP_ROWS)
        low = model.predict_proba({"x": 0.0})
        high = model.predict_proba({"x": 19.0})
        assert 0.0 < low < 0.5 < high < 1.0

    def test_predict_proba_requires_binary(self):
        model = GradientBoostingRegressor("y", ["x"], n_estimators=2).train(LINEAR_ROWS)
        with pytest.raises(ValueError, match="binary"):
            model.predict_proba({"x": 1.0})

    def test_objective_fixed_by_subclass(self):
        assert GradientBoostingRegressor("y", ["x"], objective="binary").objective == "regression"
        assert GradientBoostingClassifier("y", ["x"], objective="regression").objective == "binary"


def test_multiclass_returns_raw_score():
    rows = [{"x": float(i), "cls": i % 3} for i in range(15)]
    model = GradientBoosting(
        "cls", ["x"], objective="multiclass", n_estimators=5, feature_types={"x": "continuous"}
    ).train(rows)
    prediction = model.predict({"x": 4.0})
    assert isinstance(prediction, float)
    assert all(loss >= 0 for loss in model.get_boosting_history()["train_loss"])


# =========================
# Early stopping
# =========================

class TestEarlyStopping:

    def _noisy_rows(self):
        rng = np.random.default_rng(0)
        return [
            {"x": float(x), "y": float(np.sin(x / 5.0) + rng.normal(scale=0.5))}
            for x in range(80)
        ]

    def test_best_iteration_is_minimum_validation_loss(self):
        model = GradientBoostingRegressor(
            "y", ["x"], n_estimators=200, learning_rate=0.5, max_depth=None,
            min_child_weight=0.0, reg_lambda=0.0,
            early_stopping_rounds=3, validation_fraction=0.25, random_state=1,
            feature_types={"x": "continuous"}
        ).train(self._noisy_rows())

        history = model.get_boosting_history()
        val_loss = history["validation_loss"]
        assert len(val_loss) == model.get_tree_count()
        assert model.get_best_iteration() == int(np.argmin(val_loss)) + 1
        assert model.get_tree_count() - model.get_best_iteration() <= 3

    def test_stops_after_rounds_without_improvement(self):
        # Every row shares one x value, so each tree is a single leaf that
        # keeps shifting predictions towards the training mean.
        rows = [{"x": 1.0, "y": float(v)} for v in [0, 0, 0, 0, 0, 0, 0, 0, 10, 10]]
        model = GradientBoostingRegressor(
            "y", ["x"], n_estimators=100, learning_rate=1.0, reg_lambda=0.0,
            early_stopping_rounds=2, validation_fraction=0.2, random_state=4,
            feature_types={"x": "continuous"}
        ).train(rows)

        val_loss = model.get_boosting_history()["validation_loss"]
        assert model.get_tree_count() < 100
        assert model.get_tree_count() - model.get_best_iteration() == 2
        assert model.get_best_iteration() == int(np.argmin(val_loss)) + 1

    def test_validation_split_size(self):
        rows = [{"x": float(i), "y": float(i)} for i in range(10)]
        model = GradientBoostingRegressor(
            "y", ["x"], n_estimators=3, early_stopping_rounds=50, validation_fraction=0.3,
            random_state=2, feature_types={"x": "continuous"}
        )
        train_idx, val_idx = model._split_validation(len(rows), SeededRandom(2))
        assert len(val_idx) == 3
        assert sorted(train_idx + val_idx) == list(range(10))

    def test_full_validation_fraction_keeps_one_training_row(self, caplog):
        rows = [{"x": float(i), "y": float(i)} for i in range(5)]
        with caplog.at_level("WARNING"):
            model = GradientBoostingRegressor(
                "y", ["x"], n_estimators=2, early_stopping_rounds=1, validation_fraction=1.0,
                random_state=2, feature_types={"x": "continuous"}
            ).train(rows)
        assert "validation_fraction" in caplog.text
        assert model.get_tree_count() >= 1

    def test_no_validation_without_early_stopping(self):
        model = GradientBoostingRegressor(
            "y", ["x"], n_estimators=4, validation_fraction=0.5, feature_types=CONTINUOUS
        ).train(LINEAR_ROWS)
        assert model.get_boosting_history()["validation_loss"] == []
        assert model.get_best_iteration() == 4


# =========================
# Determinism
# =========================

def test_same_seed_same_model():
    kwargs = dict(
        n_estimators=15, subsample=0.7, colsample_bytree=0.5, random_state=11,
        early_stopping_rounds=5, feature_types=CONTINUOUS
    )
    first = GradientBoostingRegressor("y", ["x", "noise"], **kwargs).train(LINEAR_ROWS)
    second = GradientBoostingRegressor("y", ["x", "noise"], **kwargs).train(LINEAR_ROWS)

    assert first.to_dict()["trees"] == second.to_dict()["trees"]
    assert first.get_boosting_history() == second.get_boosting_history()
    for row in LINEAR_ROWS:
        assert first.predict(row) == second.predict(row)


# =========================
# Errors
# =========================

class TestErrors:

    def test_empty_data(self):
        with pytest.raises(ValueError, match="empty"):
            GradientBoosting("y", ["x"]).train([])

    def test_invalid_data(self):
        with pytest.raises(ValueError, match="sequence of mappings"):
            GradientBoosting("y", ["x"]).train("not rows")

    def test_invalid_objective(self):
        with pytest.raises(ValueError, match="objective"):
            GradientBoosting("y", ["x"], objective="ranking")

    def test_invalid_learning_rate(self):
        with pytest.raises(ValueError, match="learning_rate"):
            GradientBoosting("y", ["x"], learning_rate="fast")

    def test_predict_before_training(self):
        with pytest.raises(RuntimeError, match="trained"):
            GradientBoosting("y", ["x"]).predict({"x": 1.0})

    def test_non_mapping_sample(self):
        model = GradientBoostingRegressor("y", ["x"], n_estimators=2).train(LINEAR_ROWS)
        with pytest.raises(TypeError):
            model.predict([1.0])
        with pytest.raises(TypeError):
            model.predict_raw("x=1")


# =========================
# Persistence
# =========================

class TestPersistence:

    def _model(self):
        return GradientBoostingClassifier(
            "label", ["x"], n_estimators=6, early_stopping_rounds=2, validation_fraction=0.25,
            random_state=3, feature_types={"x": "continuous"}
        ).train(STEP_ROWS)

    def test_round_trip(self, tmp_path):
        model = self._model()
        filepath = tmp_path / "boosting.json"
        model.save(str(filepath))
        loaded = GradientBoostingClassifier.load(str(filepath))

        assert loaded.get_best_iteration() == model.get_best_iteration()
        assert loaded.get_boosting_history() == model.get_boosting_history()
        assert loaded.get_config() == model.get_config()
        for row in STEP_ROWS + [{"x": "missing"}, {}]:
            assert loaded.predict_raw(row) == model.predict_raw(row)
            assert loaded.predict(row) == model.predict(row)

    def test_engine_loads_classifier_record(self):
        model = self._model()
        restored = GradientBoosting.from_dict(json.loads(json.dumps(model.to_dict())))
        assert restored.objective == "binary"
        assert restored.predict({"x": 15.0}) == model.predict({"x": 15.0})

    @pytest.mark.parametrize("missing", [
        "trees", "target_name", "attributes", "config",
        "base_score", "best_iteration", "boosting_history",
    ])
    def test_missing_property(self, missing):
        record = self._model().to_dict()
        del record[missing]
        with pytest.raises(ValueError, match=missing):
            GradientBoosting.from_dict(record)

    def test_config_defaults(self):
        config = GradientBoosting("y", ["x"]).get_config()
        assert config == {
            "n_estimators": 100,
            "learning_rate": 0.1,
            "max_depth": 6,
            "min_child_weight": 1.0,
            "min_samples_split": 2,
            "subsample": 1.0,
            "colsample_bytree": 1.0,
            "reg_alpha": 0.0,
            "reg_lambda": 1.0,
            "objective": "regression",
            "early_stopping_rounds": None,
            "validation_fraction": 0.2,
            "random_state": None,
        }


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
