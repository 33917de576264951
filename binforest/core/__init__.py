"""Core data structures and algorithms for group-wise tree growth."""

from .aggregator import (
    FixedFeaturesAggregator,
    StatsAggregator,
    SubsampledFeaturesAggregator,
    combine,
    new_aggregator,
)
from .dataset import PartitionedDataset
from .driver import (
    aggregate_group,
    make_bin_seq_op,
    mixed_bin_seq_op,
    ordered_bin_seq_op,
    predict_node_index,
)
from .frontier import (
    GroupInstrumentation,
    NodeGroup,
    NodeIndexInfo,
    aggregate_size_for_node,
    find_best_splits,
    new_node_queue,
    select_nodes_to_split,
)
from .metadata import DecisionTreeMetadata, build_metadata, num_unordered_bins
from .selector import bins_to_best_split, calculate_gain_for_split, calculate_predict
from .splits import SplitBinCatalog, extract_multiclass_categories, find_splits_bins

__all__ = [
    "DecisionTreeMetadata",
    "FixedFeaturesAggregator",
    "GroupInstrumentation",
    "NodeGroup",
    "NodeIndexInfo",
    "PartitionedDataset",
    "SplitBinCatalog",
    "StatsAggregator",
    "SubsampledFeaturesAggregator",
    "aggregate_group",
    "aggregate_size_for_node",
    "bins_to_best_split",
    "build_metadata",
    "calculate_gain_for_split",
    "calculate_predict",
    "combine",
    "extract_multiclass_categories",
    "find_best_splits",
    "find_splits_bins",
    "make_bin_seq_op",
    "mixed_bin_seq_op",
    "new_aggregator",
    "new_node_queue",
    "num_unordered_bins",
    "ordered_bin_seq_op",
    "predict_node_index",
    "select_nodes_to_split",
]
