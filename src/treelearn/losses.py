"""
Loss functions for gradient boosting: gradients, Hessians and aggregate loss.

Every objective works on raw scores (margins). ``gradient`` and ``hessian``
accept scalars or numpy arrays; ``gradients_and_hessians`` is the batch form
used by the boosting loop.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
- Friedman, J., Hastie, T., & Tibshirani, R. (2000). Additive logistic regression:
  a statistical view of boosting (LogitBoost).
- Chen, T., & Guestrin, C. (2016). XGBoost: A scalable tree boosting system.
"""

from abc import ABC, abstractmethod
from typing import Dict, Sequence, Tuple, Type, Union

import numpy as np

ArrayLike = Union[float, Sequence[float], np.ndarray]

EPSILON = 1e-15
SIGMOID_CLAMP = 500.0


def sigmoid(x: ArrayLike) -> np.ndarray:
    """Logistic function with the input clamped to [-500, 500]."""
    clamped = np.clip(np.asarray(x, dtype=np.float64), -SIGMOID_CLAMP, SIGMOID_CLAMP)
    return 1.0 / (1.0 + np.exp(-clamped))


def softmax(scores: ArrayLike) -> np.ndarray:
    """Softmax with max-subtraction for numerical stability."""
    scores = np.asarray(scores, dtype=np.float64)
    shifted = np.exp(scores - np.max(scores))
    return shifted / np.sum(shifted)


class LossFunction(ABC):
    """Abstract base class for boosting objectives."""

    name: str = ""

    @abstractmethod
    def gradient(self, prediction: ArrayLike, actual: ArrayLike) -> np.ndarray:
        """First derivative of the loss w.r.t. the raw prediction."""
        pass

    @abstractmethod
    def hessian(self, prediction: ArrayLike, actual: ArrayLike) -> np.ndarray:
        """Second derivative of the loss w.r.t. the raw prediction."""
        pass

    @abstractmethod
    def loss(self, predictions: ArrayLike, actuals: ArrayLike) -> float:
        """Mean loss over a batch."""
        pass

    def gradients_and_hessians(
        self,
        predictions: ArrayLike,
        actuals: ArrayLike
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Per-row gradients and Hessians for a batch."""
        predictions = np.asarray(predictions, dtype=np.float64)
        actuals = np.asarray(actuals, dtype=np.float64)
        return self.gradient(predictions, actuals), self.hessian(predictions, actuals)


class SquaredErrorLoss(LossFunction):
    """
    Squared error for regression: L(y, f) = (f - y)².

    Gradient is the residual f - y, Hessian is 1, and the reported loss is
    the mean squared error.
    """

    name = "regression"

    def gradient(self, prediction, actual):
        return np.asarray(prediction, dtype=np.float64) - np.asarray(actual, dtype=np.float64)

    def hessian(self, prediction, actual):
        return np.ones_like(np.asarray(prediction, dtype=np.float64))

    def loss(self, predictions, actuals):
        predictions = np.asarray(predictions, dtype=np.float64)
        actuals = np.asarray(actuals, dtype=np.float64)
        if predictions.size == 0:
            return 0.0
        return float(np.mean((predictions - actuals) ** 2))


class LogisticLoss(LossFunction):
    """
    Binomial deviance for binary classification with y ∈ {0, 1}.

    For p = sigmoid(F): gradient p - y, Hessian p(1 - p), loss is the mean
    negative log-likelihood with probabilities clipped to [ε, 1 - ε].
    """

    name = "binary"

    def gradient(self, prediction, actual):
        return sigmoid(prediction) - np.asarray(actual, dtype=np.float64)

    def hessian(self, prediction, actual):
        p = sigmoid(prediction)
        return p * (1.0 - p)

    def loss(self, predictions, actuals):
        actuals = np.asarray(actuals, dtype=np.float64)
        if actuals.size == 0:
            return 0.0
        p = np.clip(sigmoid(predictions), EPSILON, 1 - EPSILON)
        return float(-np.mean(actuals * np.log(p) + (1 - actuals) * np.log(1 - p)))


class SoftmaxCrossEntropyLoss(LossFunction):
    """
    Cross-entropy for multiclass classification.

    ``class_gradients``/``class_hessians`` give the softmax derivatives for a
    vector of per-class scores. The boosting loop fits a single score per
    row, so the scalar interface reduces each score to the binary logistic
    form (gradient sigmoid(F) - y, Hessian p(1 - p)); this is not full
    multinomial boosting.
    """

    name = "multiclass"

    def class_gradients(self, scores: ArrayLike, actual_class: int) -> np.ndarray:
        """Softmax probabilities minus the one-hot encoding of ``actual_class``."""
        probs = softmax(scores)
        one_hot = np.zeros_like(probs)
        one_hot[int(actual_class)] = 1.0
        return probs - one_hot

    def class_hessians(self, scores: ArrayLike) -> np.ndarray:
        """Full softmax Hessian diag(p) - p pᵀ."""
        probs = softmax(scores)
        return np.diag(probs) - np.outer(probs, probs)

    def gradient(self, prediction, actual):
        return sigmoid(prediction) - np.asarray(actual, dtype=np.float64)

    def hessian(self, prediction, actual):
        p = sigmoid(prediction)
        return p * (1.0 - p)

    def loss(self, predictions, actuals):
        actuals = np.asarray(actuals, dtype=np.float64)
        if actuals.size == 0:
            return 0.0
        p = np.clip(sigmoid(predictions), EPSILON, 1 - EPSILON)
        value = -np.mean(actuals * np.log(p) + (1 - actuals) * np.log(1 - p))
        return float(max(0.0, value))


LOSSES: Dict[str, Type[LossFunction]] = {
    "regression": SquaredErrorLoss,
    "binary": LogisticLoss,
    "multiclass": SoftmaxCrossEntropyLoss,
}


def get_loss(objective: str) -> LossFunction:
    """Instantiate the loss function for an objective name."""
    try:
        return LOSSES[objective]()
    except (KeyError, TypeError):
        raise ValueError(
            f"objective must be one of {sorted(LOSSES)}, got {objective!r}"
        ) from None
