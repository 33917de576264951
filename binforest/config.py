"""Configuration objects for binforest."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

Algo = Literal["classification", "regression"]
QuantileStrategy = Literal["sort", "minmax", "approx_hist"]

_CLASSIFICATION_IMPURITIES = frozenset({"gini", "entropy"})
_REGRESSION_IMPURITIES = frozenset({"variance"})

# Node ids are 1-based positions in a complete binary tree.
MAX_SUPPORTED_DEPTH = 30


@dataclass(frozen=True, slots=True)
class Strategy:
    """Parameters steering tree growth.

    Parameters
    ----------
    algo:
        ``"classification"`` or ``"regression"``.
    impurity:
        Split criterion: ``"gini"`` or ``"entropy"`` for classification,
        ``"variance"`` for regression.
    max_depth:
        Maximum depth of each tree. Depth 0 means a single leaf; depth 1 means
        one internal node and two leaves.
    num_classes:
        Number of label classes for classification. Labels must take values
        ``{0, 1, ..., num_classes - 1}``. Ignored for regression.
    max_bins:
        Maximum number of bins used for discretising continuous features.
    quantile_strategy:
        How continuous thresholds are computed. Only ``"sort"`` (sample and
        sort) is implemented.
    categorical_features_info:
        Map from feature index to arity. An entry ``n -> k`` means feature
        ``n`` is categorical with categories ``{0, ..., k - 1}``.
    min_instances_per_node:
        Splits leaving fewer instances than this on either side are discarded.
    min_info_gain:
        Splits with a lower information gain are discarded.
    max_memory_in_mb:
        Upper bound on the statistics histogram built per data pass. Larger
        values let more frontier nodes share one pass.
    subsampling_rate:
        Fraction of the training data used to grow each tree.
    """

    algo: Algo = "classification"
    impurity: str = "gini"
    max_depth: int = 5
    num_classes: int = 2
    max_bins: int = 32
    quantile_strategy: QuantileStrategy = "sort"
    categorical_features_info: Mapping[int, int] = field(default_factory=dict)
    min_instances_per_node: int = 1
    min_info_gain: float = 0.0
    max_memory_in_mb: int = 256
    subsampling_rate: float = 1.0

    @property
    def is_classification(self) -> bool:
        return self.algo == "classification"

    @property
    def is_multiclass_classification(self) -> bool:
        return self.is_classification and self.num_classes > 2

    @property
    def is_multiclass_with_categorical_features(self) -> bool:
        return self.is_multiclass_classification and len(self.categorical_features_info) > 0

    def assert_valid(self) -> None:
        """Raise ``ValueError`` when the parameters are inconsistent."""
        if self.algo == "classification":
            if self.num_classes < 2:
                raise ValueError(
                    f"num_classes must be >= 2 for classification, got {self.num_classes}"
                )
            if self.impurity not in _CLASSIFICATION_IMPURITIES:
                raise ValueError(
                    f"impurity '{self.impurity}' is not valid for classification; "
                    f"use one of {sorted(_CLASSIFICATION_IMPURITIES)}"
                )
        elif self.algo == "regression":
            if self.impurity not in _REGRESSION_IMPURITIES:
                raise ValueError(
                    f"impurity '{self.impurity}' is not valid for regression; use 'variance'"
                )
        else:
            raise ValueError(f"Unsupported algo: {self.algo}")

        if not 0 <= self.max_depth <= MAX_SUPPORTED_DEPTH:
            raise ValueError(
                f"max_depth must be in [0, {MAX_SUPPORTED_DEPTH}], got {self.max_depth}"
            )
        if self.max_bins < 2:
            raise ValueError(f"max_bins must be >= 2, got {self.max_bins}")
        if self.quantile_strategy not in ("sort", "minmax", "approx_hist"):
            raise ValueError(f"Unknown quantile_strategy: {self.quantile_strategy}")
        for feature, arity in self.categorical_features_info.items():
            if feature < 0:
                raise ValueError(f"categorical feature index must be >= 0, got {feature}")
            if arity < 2:
                raise ValueError(
                    f"categorical feature {feature} has {arity} categories; "
                    "the number of categories should be >= 2"
                )
        if self.min_instances_per_node < 1:
            raise ValueError(
                f"min_instances_per_node must be >= 1, got {self.min_instances_per_node}"
            )
        if self.max_memory_in_mb <= 0:
            raise ValueError(f"max_memory_in_mb must be positive, got {self.max_memory_in_mb}")
        if not 0.0 < self.subsampling_rate <= 1.0:
            raise ValueError(
                f"subsampling_rate must be in (0, 1], got {self.subsampling_rate}"
            )
