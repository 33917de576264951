"""scikit-learn wrappers for binforest."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin, RegressorMixin

from .config import Strategy
from .core.dataset import PartitionedDataset
from .forest import RandomForest
from .model import RandomForestModel


def _check_X(X: np.ndarray) -> np.ndarray:
    X_np = np.asarray(X, dtype=np.float64)
    if X_np.ndim != 2:
        raise ValueError("X must be a 2D array")
    return X_np


class _BinForestBase(BaseEstimator):
    _algo = "classification"
    _default_impurity = "gini"

    def __init__(
        self,
        *,
        num_trees: int = 10,
        max_depth: int = 5,
        max_bins: int = 32,
        impurity: Optional[str] = None,
        feature_subset_strategy: str = "auto",
        categorical_features_info: Optional[Mapping[int, int]] = None,
        min_instances_per_node: int = 1,
        min_info_gain: float = 0.0,
        subsampling_rate: float = 1.0,
        max_memory_in_mb: int = 256,
        num_partitions: int = 4,
        num_workers: int = 1,
        random_state: Optional[int] = None,
    ) -> None:
        self.num_trees = num_trees
        self.max_depth = max_depth
        self.max_bins = max_bins
        self.impurity = impurity
        self.feature_subset_strategy = feature_subset_strategy
        self.categorical_features_info = categorical_features_info
        self.min_instances_per_node = min_instances_per_node
        self.min_info_gain = min_info_gain
        self.subsampling_rate = subsampling_rate
        self.max_memory_in_mb = max_memory_in_mb
        self.num_partitions = num_partitions
        self.num_workers = num_workers
        self.random_state = random_state

    def _strategy(self, num_classes: int) -> Strategy:
        info: Dict[int, int] = dict(self.categorical_features_info or {})
        return Strategy(
            algo=self._algo,
            impurity=self.impurity or self._default_impurity,
            max_depth=self.max_depth,
            num_classes=num_classes,
            max_bins=self.max_bins,
            categorical_features_info=info,
            min_instances_per_node=self.min_instances_per_node,
            min_info_gain=self.min_info_gain,
            max_memory_in_mb=self.max_memory_in_mb,
            subsampling_rate=self.subsampling_rate,
        )

    def _fit_forest(self, X: np.ndarray, y: np.ndarray, num_classes: int) -> RandomForestModel:
        dataset = PartitionedDataset.from_arrays(
            X, y, self.num_partitions, num_workers=self.num_workers
        )
        forest = RandomForest(
            self._strategy(num_classes),
            num_trees=self.num_trees,
            feature_subset_strategy=self.feature_subset_strategy,
            seed=self.random_state,
        )
        model = forest.train(dataset)
        self.forest_ = forest
        self.model_ = model
        self.n_features_in_ = X.shape[1]
        return model

    def _predict_raw(self, X: np.ndarray) -> np.ndarray:
        model = getattr(self, "model_", None)
        if model is None:
            raise RuntimeError("Estimator has not been fitted")
        X_np = _check_X(X)
        if X_np.shape[1] != self.n_features_in_:
            raise ValueError(
                f"X has {X_np.shape[1]} features, but the estimator was fitted with "
                f"{self.n_features_in_}"
            )
        return model.predict_many(X_np)

    def get_model(self) -> RandomForestModel:
        model = getattr(self, "model_", None)
        if model is None:
            raise RuntimeError("Estimator has not been fitted")
        return model


class BinForestClassifier(ClassifierMixin, _BinForestBase):
    """scikit-learn classifier wrapping :class:`~binforest.forest.RandomForest`.

    Arbitrary labels are encoded to ``0 .. n_classes - 1`` for training;
    predictions are mapped back through ``classes_``.
    """

    _algo = "classification"
    _default_impurity = "gini"

    def fit(self, X: np.ndarray, y: np.ndarray) -> "BinForestClassifier":
        X_np = _check_X(X)
        y_np = np.asarray(y)
        if y_np.ndim != 1:
            raise ValueError("y must be 1-D")
        classes, encoded = np.unique(y_np, return_inverse=True)
        if classes.shape[0] < 2:
            raise ValueError("BinForestClassifier needs at least two classes in y")
        self.classes_ = classes
        self._fit_forest(X_np, encoded.astype(np.float64), int(classes.shape[0]))
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        encoded = self._predict_raw(X).astype(np.int64)
        return self.classes_[encoded]


class BinForestRegressor(RegressorMixin, _BinForestBase):
    """scikit-learn regressor wrapping :class:`~binforest.forest.RandomForest`."""

    _algo = "regression"
    _default_impurity = "variance"

    def fit(self, X: np.ndarray, y: np.ndarray) -> "BinForestRegressor":
        X_np = _check_X(X)
        y_np = np.asarray(y, dtype=np.float64)
        if y_np.ndim != 1:
            raise ValueError("y must be 1-D")
        self._fit_forest(X_np, y_np, num_classes=2)
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        return self._predict_raw(X)


__all__ = ["BinForestClassifier", "BinForestRegressor"]
