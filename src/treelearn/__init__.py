"""
Decision trees, random forests and gradient boosted trees from scratch.

Models train on rows of attribute -> value mappings (or pandas DataFrames)
and predict one sample at a time. Single trees use ID3 (discrete attributes)
or CART (continuous and mixed attributes); forests bag trees and vote;
gradient boosting fits second-order weighted trees to loss gradients.
"""

from .boosting import GradientBoosting, GradientBoostingClassifier, GradientBoostingRegressor
from .caching import NullCache, PredictionCache
from .feature_types import detect_feature_types, recommend_algorithm
from .forest import RandomForest
from .tree import DecisionTree

__version__ = "0.1.0"
__all__ = [
    "DecisionTree",
    "RandomForest",
    "GradientBoosting",
    "GradientBoostingRegressor",
    "GradientBoostingClassifier",
    "PredictionCache",
    "NullCache",
    "detect_feature_types",
    "recommend_algorithm",
]
