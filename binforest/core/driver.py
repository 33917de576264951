"""One data pass: route every example to its frontier node and fold it into the histogram."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Mapping, Optional, Sequence

import numpy as np

from ..data import BaggedPoint, TreePoint
from ..model import Bin, Node, Split, SplitState
from .aggregator import StatsAggregator, combine, new_aggregator
from .dataset import PartitionedDataset
from .metadata import DecisionTreeMetadata
from .splits import SplitBinCatalog

if TYPE_CHECKING:
    from .frontier import NodeIndexInfo


def predict_node_index(
    node: Node,
    binned_features: np.ndarray,
    bins: Sequence[Sequence[Bin]],
) -> int:
    """Global id of the node an example currently reaches.

    Walks from ``node`` through decided splits only and stops at the first
    leaf or pending node, mirroring prediction on binned features.
    """
    while True:
        state = node.state
        if not isinstance(state, SplitState):
            return node.id
        split = state.split
        feature = split.feature
        if split.feature_type == "continuous":
            # bin b covers (low, high]; bins never straddle a split threshold
            upper = bins[feature][int(binned_features[feature])].high_split.threshold
            go_left = upper <= split.threshold
        else:
            go_left = int(binned_features[feature]) in split.categories
        node = state.left if go_left else state.right


def ordered_bin_seq_op(
    agg: StatsAggregator,
    tree_point: TreePoint,
    node_index: int,
    instance_weight: float,
    features_for_node: Optional[Sequence[int]],
) -> None:
    """Bump one bin per assigned feature (no unordered features present)."""
    label = tree_point.label
    binned = tree_point.binned_features
    node_offset = agg.get_node_offset(node_index)
    if features_for_node is not None:
        for feature_index_idx, feature in enumerate(features_for_node):
            agg.node_update(
                node_offset, node_index, feature_index_idx, int(binned[feature]), label, instance_weight
            )
    else:
        for feature in range(agg.metadata.num_features):
            agg.node_update(node_offset, node_index, feature, int(binned[feature]), label, instance_weight)


def mixed_bin_seq_op(
    agg: StatsAggregator,
    tree_point: TreePoint,
    node_index: int,
    splits: Sequence[Sequence[Split]],
    unordered_features: frozenset[int],
    instance_weight: float,
    features_for_node: Optional[Sequence[int]],
) -> None:
    """Fold an example when some features are unordered categorical.

    Ordered features bump a single bin. Unordered features update, for every
    subset split, either its left or its right statistics vector.
    """
    label = tree_point.label
    binned = tree_point.binned_features
    metadata = agg.metadata
    num_features_for_node = (
        len(features_for_node) if features_for_node is not None else metadata.num_features
    )
    node_offset = agg.get_node_offset(node_index)
    for feature_index_idx in range(num_features_for_node):
        feature = (
            features_for_node[feature_index_idx]
            if features_for_node is not None
            else feature_index_idx
        )
        value = int(binned[feature])
        if feature in unordered_features:
            left_offset, right_offset = agg.get_left_right_node_feature_offsets(
                node_index, feature_index_idx
            )
            for split_index, split in enumerate(splits[feature]):
                if value in split.categories:
                    agg.node_feature_update(left_offset, split_index, label, instance_weight)
                else:
                    agg.node_feature_update(right_offset, split_index, label, instance_weight)
        else:
            agg.node_update(node_offset, node_index, feature_index_idx, value, label, instance_weight)


def make_bin_seq_op(
    metadata: DecisionTreeMetadata,
    top_nodes: Sequence[Node],
    tree_to_node_to_index_info: Mapping[int, Mapping[int, "NodeIndexInfo"]],
    catalog: SplitBinCatalog,
) -> Callable[[StatsAggregator, BaggedPoint], StatsAggregator]:
    """Per-example fold step for one group."""
    unordered = metadata.unordered_features
    bins = catalog.bins
    splits = catalog.splits

    def bin_seq_op(agg: StatsAggregator, bagged_point: BaggedPoint) -> StatsAggregator:
        datum = bagged_point.datum
        for tree_index, node_to_info in tree_to_node_to_index_info.items():
            node_index = predict_node_index(top_nodes[tree_index], datum.binned_features, bins)
            node_info = node_to_info.get(node_index)
            # examples reaching nodes outside this group belong to another pass
            if node_info is None:
                continue
            instance_weight = float(bagged_point.subsample_weights[tree_index])
            if instance_weight == 0.0:
                continue
            if not unordered:
                ordered_bin_seq_op(
                    agg, datum, node_info.node_index_in_group, instance_weight, node_info.feature_subset
                )
            else:
                mixed_bin_seq_op(
                    agg,
                    datum,
                    node_info.node_index_in_group,
                    splits,
                    unordered,
                    instance_weight,
                    node_info.feature_subset,
                )
        return agg

    return bin_seq_op


def aggregate_group(
    dataset: PartitionedDataset,
    metadata: DecisionTreeMetadata,
    top_nodes: Sequence[Node],
    tree_to_node_to_index_info: Mapping[int, Mapping[int, "NodeIndexInfo"]],
    catalog: SplitBinCatalog,
) -> StatsAggregator:
    """Run the full pass for one group and return the merged histogram."""
    zero = new_aggregator(metadata, tree_to_node_to_index_info)
    seq_op = make_bin_seq_op(metadata, top_nodes, tree_to_node_to_index_info, catalog)
    return dataset.tree_aggregate(zero, seq_op, combine)


__all__ = [
    "aggregate_group",
    "make_bin_seq_op",
    "mixed_bin_seq_op",
    "ordered_bin_seq_op",
    "predict_node_index",
]
