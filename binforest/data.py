"""Training examples and their discretised / bagged forms."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence

import numpy as np
import torch

if TYPE_CHECKING:
    from .core.dataset import PartitionedDataset
    from .core.metadata import DecisionTreeMetadata
    from .core.splits import SplitBinCatalog


@dataclass(slots=True)
class LabeledPoint:
    """Raw example: label plus feature vector."""

    label: float
    features: np.ndarray


@dataclass(frozen=True, slots=True)
class TreePoint:
    """Example reduced to per-feature bin indices."""

    label: float
    binned_features: np.ndarray


@dataclass(frozen=True, slots=True)
class BaggedPoint:
    """A tree point with one subsample weight per tree grown in the same pass."""

    datum: TreePoint
    subsample_weights: np.ndarray


def _bin_matrix(
    X: np.ndarray, catalog: "SplitBinCatalog", metadata: "DecisionTreeMetadata"
) -> np.ndarray:
    binned = np.empty(X.shape, dtype=np.int32)
    for feature in range(metadata.num_features):
        column = X[:, feature]
        if metadata.is_continuous(feature):
            # bin k covers (t[k-1], t[k]]
            binned[:, feature] = np.searchsorted(
                catalog.thresholds[feature], column, side="left"
            )
            continue
        arity = metadata.feature_arity[feature]
        categories = column.astype(np.int64)
        if np.any(categories != column) or np.any(categories < 0) or np.any(categories >= arity):
            raise ValueError(
                f"categorical feature {feature} must take integer values in [0, {arity})"
            )
        binned[:, feature] = categories
    return binned


def find_bins(
    features: Sequence[float], catalog: "SplitBinCatalog", metadata: "DecisionTreeMetadata"
) -> np.ndarray:
    """Bin indices for a single raw feature vector."""
    row = np.asarray(features, dtype=np.float64).reshape(1, -1)
    return _bin_matrix(row, catalog, metadata)[0]


def _convert_partition(
    part: List[LabeledPoint], catalog: "SplitBinCatalog", metadata: "DecisionTreeMetadata"
) -> List[TreePoint]:
    if not part:
        return []
    X = np.asarray([lp.features for lp in part], dtype=np.float64)
    if metadata.is_classification:
        labels = np.asarray([lp.label for lp in part], dtype=np.float64)
        if np.any(labels != np.floor(labels)) or np.any(labels < 0) or np.any(labels >= metadata.num_classes):
            raise ValueError(
                f"classification labels must be integers in [0, {metadata.num_classes})"
            )
    binned = _bin_matrix(X, catalog, metadata)
    return [TreePoint(lp.label, binned[i]) for i, lp in enumerate(part)]


def convert_to_tree_points(
    dataset: "PartitionedDataset",
    catalog: "SplitBinCatalog",
    metadata: "DecisionTreeMetadata",
) -> "PartitionedDataset":
    """Discretise every labeled point, partition by partition."""
    return dataset.map_partitions(lambda part: _convert_partition(part, catalog, metadata))


def convert_to_bagged_points(
    dataset: "PartitionedDataset",
    subsampling_rate: float,
    num_trees: int,
    with_replacement: bool,
    generator: torch.Generator | None = None,
) -> "PartitionedDataset":
    """Attach per-tree subsample weights to every tree point.

    With replacement the weights are Poisson(``subsampling_rate``) draws,
    without replacement they are Bernoulli(``subsampling_rate``) draws. A
    single tree trained on the full data gets weight 1 everywhere.
    """
    if num_trees < 1:
        raise ValueError("num_trees must be >= 1")
    plain = num_trees == 1 and subsampling_rate == 1.0

    def bag(part: List[TreePoint]) -> List[BaggedPoint]:
        n = len(part)
        if n == 0:
            return []
        if plain:
            weights = np.ones((n, 1), dtype=np.float64)
        else:
            rates = torch.full((n, num_trees), float(subsampling_rate), dtype=torch.float64)
            if with_replacement:
                draws = torch.poisson(rates, generator=generator)
            else:
                draws = torch.bernoulli(rates, generator=generator)
            weights = draws.numpy()
        return [BaggedPoint(point, weights[i]) for i, point in enumerate(part)]

    return dataset.map_partitions(bag)


__all__ = [
    "BaggedPoint",
    "LabeledPoint",
    "TreePoint",
    "convert_to_bagged_points",
    "convert_to_tree_points",
    "find_bins",
]
