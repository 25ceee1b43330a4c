"""
Gradient boosting experiments on scikit-learn synthetic data.

Trains a regressor on ``make_friedman1`` and a binary classifier on
``make_classification`` with early stopping, plots train/validation loss
curves and marks the best iteration.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.datasets import make_classification, make_friedman1
from sklearn.model_selection import train_test_split

from treelearn import GradientBoostingClassifier, GradientBoostingRegressor
from treelearn.utils import compute_metrics_classification, compute_metrics_regression

OUTPUT_DIR = Path(__file__).parent

# Set style
plt.style.use('seaborn-v0_8-darkgrid')


def to_frame(X: np.ndarray, y: np.ndarray, target: str):
    """Wrap a feature matrix as a DataFrame with named columns."""
    columns = [f"x{i}" for i in range(X.shape[1])]
    df = pd.DataFrame(X, columns=columns)
    df[target] = y
    return df, columns


def plot_history(model, title: str, ylabel: str, filename: str):
    """Plot train/validation loss and mark the best iteration."""
    history = model.get_boosting_history()

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(history["iterations"], history["train_loss"], label="Train", linewidth=2)
    if history["validation_loss"]:
        ax.plot(history["iterations"], history["validation_loss"], label="Validation", linewidth=2)
    ax.axvline(model.get_best_iteration(), color="k", linestyle="--", label="Best iteration")
    ax.set_xlabel("Iteration")
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / filename, dpi=150)
    print(f"Saved plot: {filename}")


def regression_experiment():
    """Squared-error boosting on Friedman #1."""
    print("\n" + "="*60)
    print("Experiment 1: Regression (Friedman #1)")
    print("="*60)

    X, y = make_friedman1(n_samples=400, noise=1.0, random_state=42)
    df, columns = to_frame(X, y, "y")
    train_df, test_df = train_test_split(df, test_size=0.25, random_state=42)

    model = GradientBoostingRegressor(
        "y", columns,
        n_estimators=200,
        learning_rate=0.1,
        max_depth=4,
        subsample=0.8,
        early_stopping_rounds=15,
        validation_fraction=0.2,
        random_state=42,
        feature_types={column: "continuous" for column in columns},
        verbose=True,
    ).train(train_df)

    predictions = np.array([model.predict(row) for row in test_df.to_dict("records")])
    metrics = compute_metrics_regression(test_df["y"].to_numpy(), predictions)
    print(f"Trees built: {model.get_tree_count()}, best iteration: {model.get_best_iteration()}")
    print(f"Test MSE:  {metrics['mse']:.4f}")
    print(f"Test RMSE: {metrics['rmse']:.4f}")
    print(f"Test MAE:  {metrics['mae']:.4f}")

    importance = pd.Series(model.get_feature_importance()).sort_values(ascending=False)
    print("\nFeature importance:")
    print(importance.to_string())

    plot_history(model, "Regression: squared error", "MSE", "boosting_regression_loss.png")
    return metrics


def classification_experiment():
    """Logistic boosting on a binary make_classification problem."""
    print("\n" + "="*60)
    print("Experiment 2: Binary classification")
    print("="*60)

    X, y = make_classification(
        n_samples=500, n_features=6, n_informative=4, n_redundant=0, random_state=42
    )
    df, columns = to_frame(X, y, "label")
    train_df, test_df = train_test_split(df, test_size=0.25, random_state=42, stratify=y)

    model = GradientBoostingClassifier(
        "label", columns,
        n_estimators=150,
        learning_rate=0.2,
        max_depth=3,
        colsample_bytree=0.8,
        early_stopping_rounds=10,
        validation_fraction=0.2,
        random_state=42,
        feature_types={column: "continuous" for column in columns},
        verbose=True,
    ).train(train_df)

    test_rows = test_df.to_dict("records")
    proba = np.array([model.predict_proba(row) for row in test_rows])
    predictions = (proba > 0.5).astype(int)
    metrics = compute_metrics_classification(test_df["label"].to_numpy(), predictions, proba)
    print(f"Trees built: {model.get_tree_count()}, best iteration: {model.get_best_iteration()}")
    print(f"Test Accuracy: {metrics['accuracy']:.4f}")
    print(f"Test ROC AUC:  {metrics['roc_auc']:.4f}")
    print(f"Test Log Loss: {metrics['log_loss']:.6f}")

    plot_history(model, "Binary classification: logistic loss", "Log Loss", "boosting_binary_loss.png")
    return metrics


def main():
    regression_metrics = regression_experiment()
    classification_metrics = classification_experiment()

    summary = pd.DataFrame([
        {"task": "regression", "metric": "rmse", "value": regression_metrics["rmse"]},
        {"task": "binary", "metric": "accuracy", "value": classification_metrics["accuracy"]},
        {"task": "binary", "metric": "roc_auc", "value": classification_metrics["roc_auc"]},
    ])
    print("\n" + "="*60)
    print("Summary")
    print("="*60)
    print(summary.to_string(index=False))


if __name__ == "__main__":
    main()
