"""
Shared behaviour for the tree models: argument validation, configuration
round-trips, cached prediction, evaluation, and JSON persistence.
"""

import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .caching import NullCache
from .utils import accuracy

logger = logging.getLogger(__name__)


def validate_target(target: Any) -> str:
    if not isinstance(target, str) or not target:
        raise ValueError(f"`target` must be a non-empty string, got {target!r}")
    return target


def validate_attributes(attributes: Any) -> List[str]:
    if isinstance(attributes, (str, bytes)) or not isinstance(attributes, Sequence):
        raise ValueError(f"`attributes` must be a list of attribute names, got {attributes!r}")
    attributes = list(attributes)
    for attribute in attributes:
        if not isinstance(attribute, str):
            raise ValueError(f"attribute names must be strings, got {attribute!r}")
    return attributes


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def require(record: Mapping, key: str, kind: Tuple[type, ...], description: str) -> Any:
    """Fetch ``record[key]`` for deserialisation, checking its type."""
    value = record.get(key) if isinstance(record, Mapping) else None
    if not isinstance(value, kind) or (isinstance(value, bool) and bool not in kind):
        raise ValueError(
            f"Invalid model: `{key}` property is required and must be {description}"
        )
    return value


class TreeModel:
    """
    Base class for models trained on rows of attribute -> value mappings.

    Subclasses list their keyword options in ``config_keys``, implement
    ``train``, ``_predict_uncached``, ``is_trained``, ``to_dict`` and
    ``from_dict``.
    """

    config_keys: Tuple[str, ...] = ()

    def __init__(
        self,
        target: str,
        attributes: Sequence[str],
        feature_types: Optional[Dict[str, str]] = None,
        cache: Optional[NullCache] = None,
        verbose: bool = False
    ):
        self.target = validate_target(target)
        self.attributes = validate_attributes(attributes)
        self.feature_types = dict(feature_types) if feature_types is not None else None
        self.cache = cache if cache is not None else NullCache()
        self.verbose = verbose

        self.model_id_: Optional[str] = None

        if self.verbose:
            logging.getLogger("treelearn").setLevel(logging.INFO)

    # ===========================
    # Configuration
    # ===========================

    def get_config(self) -> Dict[str, Any]:
        """Copy of the keyword configuration this model was built with."""
        return {key: getattr(self, key) for key in self.config_keys}

    @classmethod
    def from_config(cls, target: str, attributes: Sequence[str], config: Optional[Mapping] = None):
        """Untrained model built from a ``get_config()``-style dict."""
        if config is not None and not isinstance(config, Mapping):
            raise ValueError("`config` must be a mapping of option names to values")
        return cls(target, attributes, **dict(config or {}))

    @classmethod
    def train_new(cls, rows, target: str, attributes: Sequence[str], **config):
        """Build a model and train it on ``rows`` in one call."""
        model = cls(target, attributes, **config)
        model.train(rows)
        return model

    # ===========================
    # Prediction
    # ===========================

    @property
    def is_trained(self) -> bool:
        raise NotImplementedError

    def _check_trained(self) -> None:
        if not self.is_trained:
            raise RuntimeError(f"{type(self).__name__} must be trained before prediction")

    def _predict_uncached(self, sample: Mapping) -> Any:
        raise NotImplementedError

    def predict(self, sample: Mapping) -> Any:
        """Predict the target for one sample (attribute -> value mapping)."""
        self._check_trained()
        if not isinstance(sample, Mapping):
            raise TypeError(
                f"sample must be a mapping of attribute names to values, got {type(sample).__name__}"
            )
        cached = self.cache.get(self.model_id_, sample, default=_NOT_CACHED)
        if cached is not _NOT_CACHED:
            return cached
        prediction = self._predict_uncached(sample)
        self.cache.set(self.model_id_, sample, prediction)
        return prediction

    def evaluate(self, samples: Sequence[Mapping]) -> float:
        """Fraction of ``samples`` whose prediction equals their target value."""
        predictions = [self.predict(sample) for sample in samples]
        actuals = [sample.get(self.target) for sample in samples]
        return accuracy(predictions, actuals)

    def _new_model_id(self) -> None:
        self.model_id_ = uuid.uuid4().hex

    # ===========================
    # Persistence
    # ===========================

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, record: Mapping, **kwargs):
        raise NotImplementedError

    def save(self, filepath: str) -> None:
        """Save the trained model as JSON."""
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=_json_default)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str, **kwargs):
        """Load a model written by :meth:`save`."""
        with open(filepath, "r") as f:
            record = json.load(f)
        model = cls.from_dict(record, **kwargs)
        logger.info(f"Model loaded from {filepath}")
        return model


_NOT_CACHED = object()
