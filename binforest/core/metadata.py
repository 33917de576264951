"""Read-only per-feature layout facts computed once per training run."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import FrozenSet, Mapping, Tuple

from ..config import Strategy
from ..impurity import ImpurityAggregator, get_impurity
from .dataset import PartitionedDataset

logger = logging.getLogger(__name__)

FEATURE_SUBSET_STRATEGIES = ("auto", "all", "sqrt", "log2", "onethird")


def num_unordered_bins(arity: int) -> int:
    """Bins used by an unordered feature: a left and a right slot per subset split."""
    return 2 * ((1 << (arity - 1)) - 1)


@dataclass(frozen=True)
class DecisionTreeMetadata:
    num_features: int
    num_examples: int
    num_classes: int
    max_bins: int
    feature_arity: Mapping[int, int]
    unordered_features: FrozenSet[int]
    num_bins: Tuple[int, ...]
    impurity: str
    quantile_strategy: str
    max_depth: int
    min_instances_per_node: int
    min_info_gain: float
    num_trees: int
    num_features_per_node: int

    def is_unordered(self, feature: int) -> bool:
        return feature in self.unordered_features

    @property
    def is_classification(self) -> bool:
        return self.num_classes >= 2

    @property
    def is_multiclass(self) -> bool:
        return self.num_classes > 2

    @property
    def is_multiclass_with_categorical_features(self) -> bool:
        return self.is_multiclass and len(self.feature_arity) > 0

    def is_categorical(self, feature: int) -> bool:
        return feature in self.feature_arity

    def is_continuous(self, feature: int) -> bool:
        return feature not in self.feature_arity

    def num_splits(self, feature: int) -> int:
        if self.is_unordered(feature):
            return self.num_bins[feature] >> 1
        return self.num_bins[feature] - 1

    @property
    def subsampling_features(self) -> bool:
        return self.num_features != self.num_features_per_node

    def make_impurity_aggregator(self) -> ImpurityAggregator:
        return get_impurity(self.impurity, self.num_classes)

    @property
    def stats_size(self) -> int:
        return self.num_classes if self.is_classification else 3


def _resolve_features_per_node(
    num_features: int, num_trees: int, algo: str, feature_subset_strategy: str
) -> int:
    if feature_subset_strategy not in FEATURE_SUBSET_STRATEGIES:
        raise ValueError(
            f"Unsupported feature_subset_strategy: {feature_subset_strategy}; "
            f"expected one of {FEATURE_SUBSET_STRATEGIES}"
        )
    resolved = feature_subset_strategy
    if resolved == "auto":
        if num_trees == 1:
            resolved = "all"
        elif algo == "classification":
            resolved = "sqrt"
        else:
            resolved = "onethird"
    if resolved == "all":
        return num_features
    if resolved == "sqrt":
        return int(math.ceil(math.sqrt(num_features)))
    if resolved == "log2":
        return max(1, int(math.ceil(math.log2(num_features))))
    return int(math.ceil(num_features / 3.0))


def build_metadata(
    dataset: PartitionedDataset,
    strategy: Strategy,
    num_trees: int = 1,
    feature_subset_strategy: str = "all",
) -> DecisionTreeMetadata:
    """Derive bin counts, unordered features and feature subset size."""
    num_examples = dataset.count()
    if num_examples == 0:
        raise ValueError("training dataset is empty")
    if num_examples < 2:
        raise ValueError("training requires at least two examples")
    num_features = len(dataset.first().features)
    if num_features == 0:
        raise ValueError("training examples have no features")

    num_classes = strategy.num_classes if strategy.is_classification else 0
    max_possible_bins = min(strategy.max_bins, num_examples)

    arity = dict(strategy.categorical_features_info)
    for feature, categories in arity.items():
        if feature >= num_features:
            raise ValueError(
                f"categorical feature {feature} is out of range for {num_features} features"
            )
        if categories > max_possible_bins:
            raise ValueError(
                f"max_bins (= {max_possible_bins}, limited by the number of examples) "
                f"must be >= the arity of every categorical feature; "
                f"feature {feature} has {categories} categories"
            )

    num_bins = [max_possible_bins] * num_features
    unordered = set()
    if num_classes > 2:
        max_categories_unordered = int(math.floor(math.log2(max_possible_bins / 2 + 1) + 1))
        for feature, categories in arity.items():
            if categories <= max_categories_unordered:
                unordered.add(feature)
                num_bins[feature] = num_unordered_bins(categories)
            else:
                num_bins[feature] = categories
    else:
        for feature, categories in arity.items():
            num_bins[feature] = categories

    features_per_node = _resolve_features_per_node(
        num_features, num_trees, strategy.algo, feature_subset_strategy
    )

    metadata = DecisionTreeMetadata(
        num_features=num_features,
        num_examples=num_examples,
        num_classes=num_classes,
        max_bins=max_possible_bins,
        feature_arity=arity,
        unordered_features=frozenset(unordered),
        num_bins=tuple(num_bins),
        impurity=strategy.impurity,
        quantile_strategy=strategy.quantile_strategy,
        max_depth=strategy.max_depth,
        min_instances_per_node=strategy.min_instances_per_node,
        min_info_gain=strategy.min_info_gain,
        num_trees=num_trees,
        num_features_per_node=features_per_node,
    )
    logger.debug(
        "metadata: features=%d examples=%d classes=%d unordered=%s features_per_node=%d",
        num_features,
        num_examples,
        num_classes,
        sorted(unordered),
        features_per_node,
    )
    return metadata
