"""
Random forest experiment on a synthetic categorical dataset.

Grows forests of increasing size, compares them with a single ID3 tree and
reports held-out accuracy and feature importance.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from treelearn import DecisionTree, RandomForest
from treelearn.utils import compute_metrics_classification

OUTPUT_DIR = Path(__file__).parent

# Set style
plt.style.use('seaborn-v0_8-darkgrid')


def make_dataset(n_samples: int = 600, noise: float = 0.1, seed: int = 42) -> pd.DataFrame:
    """
    Categorical rows whose label depends on ``outlook`` and ``windy``.

    ``humidity`` is weakly informative, ``day`` is pure noise, and a fraction
    ``noise`` of the labels is flipped.
    """
    rng = np.random.default_rng(seed)
    outlook = rng.choice(["sunny", "overcast", "rainy"], size=n_samples)
    windy = rng.choice([True, False], size=n_samples)
    humidity = rng.choice(["high", "normal"], size=n_samples)
    day = rng.choice(["mon", "tue", "wed", "thu", "fri", "sat", "sun"], size=n_samples)

    play = (outlook == "overcast") | ((outlook == "rainy") & ~windy) | (
        (outlook == "sunny") & (humidity == "normal")
    )
    flip = rng.random(n_samples) < noise
    play = np.where(flip, ~play, play)

    return pd.DataFrame({
        "outlook": outlook,
        "windy": windy.astype(bool),
        "humidity": humidity,
        "day": day,
        "play": np.where(play, "yes", "no"),
    })


def load_and_prepare_data():
    """Build the dataset and split 75/25."""
    print("Building synthetic weather dataset...")
    df = make_dataset()
    split = int(0.75 * len(df))
    train_df, test_df = df.iloc[:split], df.iloc[split:]
    print(f"Train: {train_df.shape}, Test: {test_df.shape}")
    print(f"Class distribution - Train: {train_df['play'].value_counts().to_dict()}")
    return train_df, test_df


def baseline_comparison(train_df, test_df, attributes):
    """Baseline: single ID3 tree."""
    print("\n" + "="*60)
    print("Baseline: Single Decision Tree (ID3)")
    print("="*60)

    tree = DecisionTree("play", attributes, algorithm="id3").train(train_df)
    test_rows = test_df.to_dict("records")
    predictions = [tree.predict(row) for row in test_rows]
    metrics = compute_metrics_classification(test_df["play"], predictions)

    print(f"Depth: {tree.get_depth()}, nodes: {tree.get_node_count()}")
    print(f"Test Accuracy: {metrics['accuracy']:.4f}")
    return metrics["accuracy"]


def experiment_n_estimators(train_df, test_df, attributes):
    """Experiment: effect of forest size."""
    print("\n" + "="*60)
    print("Experiment 1: Effect of n_estimators")
    print("="*60)

    results = []
    for n_est in [1, 5, 10, 25, 50]:
        forest = RandomForest(
            "play", attributes,
            n_estimators=n_est,
            max_features=2,
            random_state=42,
        ).train(train_df)

        test_rows = test_df.to_dict("records")
        predictions = [forest.predict(row) for row in test_rows]
        metrics = compute_metrics_classification(test_df["play"], predictions)
        print(f"n_estimators={n_est:3d}: test accuracy = {metrics['accuracy']:.4f}")

        results.append({"n_estimators": n_est, "test_acc": metrics["accuracy"]})

    results_df = pd.DataFrame(results)

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(results_df["n_estimators"], results_df["test_acc"], marker="o", linewidth=2)
    ax.set_xlabel("n_estimators")
    ax.set_ylabel("Test Accuracy")
    ax.set_title("Random forest accuracy vs. forest size")
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / "forest_n_estimators.png", dpi=150)
    print("\nSaved plot: forest_n_estimators.png")

    return results_df


def experiment_feature_importance(train_df, attributes):
    """Experiment: gain-weighted feature importance of a 50-tree forest."""
    print("\n" + "="*60)
    print("Experiment 2: Feature importance")
    print("="*60)

    forest = RandomForest("play", attributes, n_estimators=50, random_state=7).train(train_df)
    importance = pd.Series(forest.get_feature_importance()).sort_values(ascending=False)
    print(importance.to_string())

    fig, ax = plt.subplots(figsize=(8, 5))
    importance.plot.bar(ax=ax)
    ax.set_ylabel("Mean gain x samples")
    ax.set_title("Random forest feature importance")
    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / "forest_importance.png", dpi=150)
    print("\nSaved plot: forest_importance.png")

    return importance


def main():
    attributes = ["outlook", "windy", "humidity", "day"]
    train_df, test_df = load_and_prepare_data()

    baseline_acc = baseline_comparison(train_df, test_df, attributes)
    results_df = experiment_n_estimators(train_df, test_df, attributes)
    experiment_feature_importance(train_df, attributes)

    print("\n" + "="*60)
    print("Summary")
    print("="*60)
    print(f"Single tree accuracy: {baseline_acc:.4f}")
    print(results_df.to_string(index=False))


if __name__ == "__main__":
    main()
