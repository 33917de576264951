"""Candidate splits and bins per feature, built once per training run.

Continuous features:
    ``num_bins - 1`` thresholds are placed at equal strides over a sorted
    sample of the feature values; each threshold is the midpoint between two
    adjacent sampled values. Bin ``k`` covers ``(threshold[k-1], threshold[k]]``
    with infinite outer bounds.

Unordered categorical features (multiclass, low arity):
    every non-empty proper subset of categories is a split. Split ``s`` holds
    the categories whose bit is set in ``s + 1``.

Ordered categorical features:
    one bin per category; splits are derived while selecting (categories are
    ordered by centroid), so nothing is precomputed here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from ..model import Bin, Split
from .dataset import PartitionedDataset
from .metadata import DecisionTreeMetadata

logger = logging.getLogger(__name__)

MIN_QUANTILE_SAMPLES = 10_000


@dataclass(frozen=True)
class SplitBinCatalog:
    """``splits[feature][split_index]`` and ``bins[feature][bin_index]``."""

    splits: Tuple[Tuple[Split, ...], ...]
    bins: Tuple[Tuple[Bin, ...], ...]
    thresholds: Dict[int, np.ndarray]

    @property
    def num_features(self) -> int:
        return len(self.splits)


def extract_multiclass_categories(input_index: int, max_feature_value: int) -> frozenset[int]:
    """Bit positions (from the least significant) set in ``input_index``.

    Only the ``max_feature_value`` rightmost bits are inspected, e.g.
    ``13 = 0b01101`` gives ``{0, 2, 3}``.
    """
    categories = set()
    shifted = int(input_index)
    for position in range(max_feature_value):
        if shifted & 1:
            categories.add(position)
        shifted >>= 1
    return frozenset(categories)


def _continuous_splits(
    feature: int, samples: np.ndarray, num_bins: int
) -> Tuple[List[Split], List[Bin], np.ndarray]:
    num_splits = num_bins - 1
    num_samples = samples.shape[0]
    if num_samples < 2:
        raise ValueError(
            f"cannot place thresholds for feature {feature}: need at least 2 sampled values"
        )
    stride = int(num_samples / num_bins)
    logger.debug("feature %d: stride = %d over %d samples", feature, stride, num_samples)
    thresholds = np.empty(num_splits, dtype=np.float64)
    for split_index in range(num_splits):
        sample_index = min(split_index * stride, num_samples - 2)
        thresholds[split_index] = (samples[sample_index] + samples[sample_index + 1]) / 2.0
    splits = [Split(feature, float(t), "continuous") for t in thresholds]

    bins = [Bin(Split.dummy_low(feature, "continuous"), splits[0], "continuous")]
    for split_index in range(1, num_splits):
        bins.append(Bin(splits[split_index - 1], splits[split_index], "continuous"))
    bins.append(Bin(splits[num_splits - 1], Split.dummy_high(feature, "continuous"), "continuous"))
    return splits, bins, thresholds


def _unordered_splits(feature: int, arity: int, num_splits: int) -> Tuple[List[Split], List[Bin]]:
    splits: List[Split] = []
    bins: List[Bin] = []
    for split_index in range(num_splits):
        categories = extract_multiclass_categories(split_index + 1, arity)
        split = Split(feature, -np.inf, "categorical", categories)
        low = splits[-1] if splits else Split.dummy_low(feature, "categorical")
        splits.append(split)
        bins.append(Bin(low, split, "categorical"))
    return splits, bins


def find_splits_bins(
    dataset: PartitionedDataset,
    metadata: DecisionTreeMetadata,
    seed: int | None = None,
) -> SplitBinCatalog:
    """Compute splits and bins for every feature.

    ``dataset`` holds raw :class:`~binforest.data.LabeledPoint` rows; it is
    only sampled when at least one feature is continuous.
    """
    if metadata.quantile_strategy == "minmax":
        raise NotImplementedError("minmax not supported yet.")
    if metadata.quantile_strategy == "approx_hist":
        raise NotImplementedError("approximate histogram not supported yet.")
    if metadata.quantile_strategy != "sort":
        raise NotImplementedError(f"{metadata.quantile_strategy} not supported.")

    num_features = metadata.num_features
    has_continuous = any(metadata.is_continuous(f) for f in range(num_features))
    if has_continuous:
        required = max(metadata.max_bins * metadata.max_bins, MIN_QUANTILE_SAMPLES)
        fraction = required / metadata.num_examples if required < metadata.num_examples else 1.0
        logger.debug("fraction of data used for calculating quantiles = %s", fraction)
        sampled = dataset.sample(fraction, seed)
        sample_matrix = np.asarray(
            [lp.features for lp in sampled], dtype=np.float64
        ).reshape(-1, num_features)
    else:
        sample_matrix = np.empty((0, num_features), dtype=np.float64)

    splits: List[Tuple[Split, ...]] = []
    bins: List[Tuple[Bin, ...]] = []
    thresholds: Dict[int, np.ndarray] = {}
    for feature in range(num_features):
        if metadata.is_continuous(feature):
            samples = np.sort(sample_matrix[:, feature])
            f_splits, f_bins, f_thresholds = _continuous_splits(
                feature, samples, metadata.num_bins[feature]
            )
            thresholds[feature] = f_thresholds
        elif metadata.is_unordered(feature):
            f_splits, f_bins = _unordered_splits(
                feature, metadata.feature_arity[feature], metadata.num_splits(feature)
            )
        else:
            f_splits, f_bins = [], []
        splits.append(tuple(f_splits))
        bins.append(tuple(f_bins))
    return SplitBinCatalog(splits=tuple(splits), bins=tuple(bins), thresholds=thresholds)


__all__ = ["SplitBinCatalog", "extract_multiclass_categories", "find_splits_bins"]
