"""Best-split search over a completed group histogram."""

from __future__ import annotations

import logging
import sys
from typing import List, Optional, Sequence, Tuple

from ..impurity import ImpurityCalculator
from ..model import INVALID_GAIN_STATS, InformationGainStats, Predict, Split
from .aggregator import StatsAggregator
from .metadata import DecisionTreeMetadata
from .splits import SplitBinCatalog

logger = logging.getLogger(__name__)

# empty categories sort after every populated one
EMPTY_CATEGORY_CENTROID = sys.float_info.max


def calculate_gain_for_split(
    left: ImpurityCalculator,
    right: ImpurityCalculator,
    metadata: DecisionTreeMetadata,
) -> InformationGainStats:
    """Information gain of splitting ``left + right`` into its two sides.

    Returns :data:`INVALID_GAIN_STATS` when either side holds fewer than
    ``min_instances_per_node`` examples or the gain is below ``min_info_gain``.
    """
    left_count = left.count
    right_count = right.count
    if (
        left_count < metadata.min_instances_per_node
        or right_count < metadata.min_instances_per_node
    ):
        return INVALID_GAIN_STATS

    total_count = left_count + right_count
    impurity = left.copy().add(right).calculate()
    left_impurity = left.calculate()
    right_impurity = right.calculate()
    left_weight = left_count / total_count
    right_weight = right_count / total_count
    gain = impurity - left_weight * left_impurity - right_weight * right_impurity
    if gain < metadata.min_info_gain:
        return INVALID_GAIN_STATS
    return InformationGainStats(gain, impurity, left_impurity, right_impurity)


def calculate_predict(left: ImpurityCalculator, right: ImpurityCalculator) -> Predict:
    """Node prediction from the statistics of any one of its candidate splits."""
    parent = left.copy().add(right)
    predict = parent.predict
    return Predict(predict, parent.prob(predict))


def _best_of(candidates: List[Tuple[int, InformationGainStats]]) -> Tuple[int, InformationGainStats]:
    best_index, best_stats = candidates[0]
    for index, stats in candidates[1:]:
        if stats.gain > best_stats.gain:
            best_index, best_stats = index, stats
    return best_index, best_stats


def bins_to_best_split(
    agg: StatsAggregator,
    node_index: int,
    catalog: SplitBinCatalog,
    features_for_node: Optional[Sequence[int]],
) -> Tuple[Split, InformationGainStats, Predict]:
    """Pick the best (feature, split) for one node of the group.

    Continuous and ordered categorical blocks are prefix-summed in place, so
    each node may be searched only once per aggregator.
    """
    metadata = agg.metadata
    splits = catalog.splits
    predict: Optional[Predict] = None
    best_split: Optional[Split] = None
    best_stats: Optional[InformationGainStats] = None

    for feature_index_idx in range(metadata.num_features_per_node):
        feature = (
            features_for_node[feature_index_idx]
            if features_for_node is not None
            else feature_index_idx
        )
        num_splits = metadata.num_splits(feature)
        if num_splits <= 0:
            continue
        candidates: List[Tuple[int, InformationGainStats]] = []

        if metadata.is_continuous(feature):
            offset = agg.get_node_feature_offset(node_index, feature_index_idx)
            for split_index in range(num_splits):
                agg.merge_for_node_feature(offset, split_index + 1, split_index)
            for split_index in range(num_splits):
                left = agg.get_impurity_calculator(offset, split_index)
                right = agg.get_impurity_calculator(offset, num_splits).subtract(left)
                if predict is None:
                    predict = calculate_predict(left, right)
                candidates.append((split_index, calculate_gain_for_split(left, right, metadata)))
            best_index, feature_stats = _best_of(candidates)
            feature_split = splits[feature][best_index]

        elif metadata.is_unordered(feature):
            left_offset, right_offset = agg.get_left_right_node_feature_offsets(
                node_index, feature_index_idx
            )
            for split_index in range(num_splits):
                left = agg.get_impurity_calculator(left_offset, split_index)
                right = agg.get_impurity_calculator(right_offset, split_index)
                if predict is None:
                    predict = calculate_predict(left, right)
                candidates.append((split_index, calculate_gain_for_split(left, right, metadata)))
            best_index, feature_stats = _best_of(candidates)
            feature_split = splits[feature][best_index]

        else:
            offset = agg.get_node_feature_offset(node_index, feature_index_idx)
            num_bins = metadata.num_bins[feature]
            centroids = []
            for category in range(num_bins):
                category_stats = agg.get_impurity_calculator(offset, category)
                if category_stats.count != 0:
                    if metadata.is_multiclass:
                        centroid = category_stats.calculate()
                    else:
                        centroid = category_stats.predict
                else:
                    centroid = EMPTY_CATEGORY_CENTROID
                centroids.append((category, centroid))
            logger.debug("centroids for categorical feature %d: %s", feature, centroids)
            # stable: equal centroids keep ascending category order
            ordered = sorted(centroids, key=lambda item: item[1])
            logger.debug("sorted centroids for categorical feature %d: %s", feature, ordered)

            for split_index in range(num_splits):
                agg.merge_for_node_feature(
                    offset, ordered[split_index + 1][0], ordered[split_index][0]
                )
            last_category = ordered[-1][0]
            for split_index in range(num_splits):
                left = agg.get_impurity_calculator(offset, ordered[split_index][0])
                right = agg.get_impurity_calculator(offset, last_category).subtract(left)
                if predict is None:
                    predict = calculate_predict(left, right)
                candidates.append((split_index, calculate_gain_for_split(left, right, metadata)))
            best_index, feature_stats = _best_of(candidates)
            feature_split = Split(
                feature,
                -sys.float_info.max,
                "categorical",
                frozenset(category for category, _ in ordered[: best_index + 1]),
            )

        if best_stats is None or feature_stats.gain > best_stats.gain:
            best_split, best_stats = feature_split, feature_stats

    if predict is None or best_split is None or best_stats is None:
        raise RuntimeError(
            f"no split candidate was evaluated for node {node_index}; "
            "predict must be calculated for each node"
        )
    return best_split, best_stats, predict


__all__ = [
    "EMPTY_CATEGORY_CENTROID",
    "bins_to_best_split",
    "calculate_gain_for_split",
    "calculate_predict",
]
