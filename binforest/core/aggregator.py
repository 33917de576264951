"""Per-(node, feature, bin) sufficient-statistics histogram.

All statistics for one growth group live in a single flat ``float64`` array.
A statistics vector occupies ``stats_size`` consecutive slots; a feature
block occupies ``num_bins[feature]`` vectors; a node block is the
concatenation of its feature blocks.

Two layouts share the interface:

* :class:`FixedFeaturesAggregator` -- every node uses every feature, so the
  offset of a (node, feature, bin) triple is pure arithmetic;
* :class:`SubsampledFeaturesAggregator` -- every node carries its own feature
  subset, so node and feature offsets are looked up per node.

Unordered features use the first half of their block for "left" statistics
and the second half for "right" statistics, one vector per subset split.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from itertools import accumulate
from typing import TYPE_CHECKING, List, Mapping, Sequence, Tuple

import numpy as np

from ..impurity import ImpurityCalculator
from .metadata import DecisionTreeMetadata

if TYPE_CHECKING:
    from .frontier import NodeIndexInfo


class StatsAggregator(ABC):
    """Mutable histogram owned by one partition fold until combined."""

    def __init__(self, metadata: DecisionTreeMetadata) -> None:
        self.metadata = metadata
        self.impurity_aggregator = metadata.make_impurity_aggregator()
        self.stats_size = self.impurity_aggregator.stats_size
        self.num_bins = metadata.num_bins
        self.all_stats = np.zeros(0, dtype=np.float64)

    # --- layout ---

    @property
    def num_nodes(self) -> int:
        return self._num_nodes

    @abstractmethod
    def get_node_offset(self, node_index: int) -> int:
        """Start of the node block for ``node_index`` (dense index in the group)."""

    @abstractmethod
    def get_node_feature_offset(self, node_index: int, feature_index_idx: int) -> int:
        """Start of the feature block at position ``feature_index_idx`` of the node's features."""

    @abstractmethod
    def _feature_for(self, node_index: int, feature_index_idx: int) -> int:
        """Global feature index at position ``feature_index_idx`` for the node."""

    def get_left_right_node_feature_offsets(
        self, node_index: int, feature_index_idx: int
    ) -> Tuple[int, int]:
        """Left/right halves of an unordered feature block."""
        feature = self._feature_for(node_index, feature_index_idx)
        left = self.get_node_feature_offset(node_index, feature_index_idx)
        right = left + (self.num_bins[feature] >> 1) * self.stats_size
        return left, right

    # --- updates ---

    @abstractmethod
    def node_update(
        self,
        node_offset: int,
        node_index: int,
        feature_index_idx: int,
        bin_index: int,
        label: float,
        weight: float,
    ) -> None:
        """Add one weighted observation to an ordered-feature bin."""

    def node_feature_update(
        self, node_feature_offset: int, bin_index: int, label: float, weight: float
    ) -> None:
        self.impurity_aggregator.update(
            self.all_stats, node_feature_offset + bin_index * self.stats_size, label, weight
        )

    def merge_for_node_feature(
        self, node_feature_offset: int, bin_index: int, other_bin_index: int
    ) -> None:
        """``bin[bin_index] += bin[other_bin_index]`` within one feature block."""
        size = self.stats_size
        dst = node_feature_offset + bin_index * size
        src = node_feature_offset + other_bin_index * size
        self.all_stats[dst : dst + size] += self.all_stats[src : src + size]

    def get_impurity_calculator(self, offset: int, bin_index: int) -> ImpurityCalculator:
        return self.impurity_aggregator.get_calculator(
            self.all_stats, offset + bin_index * self.stats_size
        )

    def merge(self, other: "StatsAggregator") -> "StatsAggregator":
        """Add ``other`` into this aggregator (disjoint example sets)."""
        if self.all_stats.shape != other.all_stats.shape:
            raise ValueError(
                "cannot merge aggregators with different layouts: "
                f"{self.all_stats.shape[0]} vs {other.all_stats.shape[0]} slots"
            )
        self.all_stats += other.all_stats
        return self

    @property
    def size_in_bytes(self) -> int:
        return int(self.all_stats.nbytes)

    def __deepcopy__(self, memo: dict) -> "StatsAggregator":
        clone = copy.copy(self)
        clone.all_stats = self.all_stats.copy()
        return clone


class FixedFeaturesAggregator(StatsAggregator):
    """Layout for groups where every node uses all features."""

    def __init__(self, metadata: DecisionTreeMetadata, num_nodes: int) -> None:
        super().__init__(metadata)
        self._num_nodes = int(num_nodes)
        self.feature_offsets: List[int] = [0] + list(
            accumulate(self.stats_size * b for b in self.num_bins)
        )
        self.node_stride = self.feature_offsets[-1]
        self.all_stats = np.zeros(self._num_nodes * self.node_stride, dtype=np.float64)

    def get_node_offset(self, node_index: int) -> int:
        return node_index * self.node_stride

    def get_node_feature_offset(self, node_index: int, feature_index_idx: int) -> int:
        return node_index * self.node_stride + self.feature_offsets[feature_index_idx]

    def _feature_for(self, node_index: int, feature_index_idx: int) -> int:
        return feature_index_idx

    def node_update(
        self,
        node_offset: int,
        node_index: int,
        feature_index_idx: int,
        bin_index: int,
        label: float,
        weight: float,
    ) -> None:
        offset = node_offset + self.feature_offsets[feature_index_idx] + bin_index * self.stats_size
        self.impurity_aggregator.update(self.all_stats, offset, label, weight)


class SubsampledFeaturesAggregator(StatsAggregator):
    """Layout for groups where nodes carry heterogeneous feature subsets."""

    def __init__(
        self,
        metadata: DecisionTreeMetadata,
        tree_to_node_to_index_info: Mapping[int, Mapping[int, "NodeIndexInfo"]],
    ) -> None:
        super().__init__(metadata)
        infos = [info for node_map in tree_to_node_to_index_info.values() for info in node_map.values()]
        self._num_nodes = len(infos)
        self.feature_subsets: List[Sequence[int]] = [()] * self._num_nodes
        self.feature_offsets: List[List[int]] = [[0]] * self._num_nodes
        for info in infos:
            subset = (
                tuple(info.feature_subset)
                if info.feature_subset is not None
                else tuple(range(metadata.num_features))
            )
            self.feature_subsets[info.node_index_in_group] = subset
            self.feature_offsets[info.node_index_in_group] = [0] + list(
                accumulate(self.stats_size * self.num_bins[f] for f in subset)
            )
        self.node_offsets: List[int] = [0] + list(
            accumulate(offsets[-1] for offsets in self.feature_offsets)
        )
        self.all_stats = np.zeros(self.node_offsets[-1], dtype=np.float64)

    def get_node_offset(self, node_index: int) -> int:
        return self.node_offsets[node_index]

    def get_node_feature_offset(self, node_index: int, feature_index_idx: int) -> int:
        return self.node_offsets[node_index] + self.feature_offsets[node_index][feature_index_idx]

    def _feature_for(self, node_index: int, feature_index_idx: int) -> int:
        return self.feature_subsets[node_index][feature_index_idx]

    def node_update(
        self,
        node_offset: int,
        node_index: int,
        feature_index_idx: int,
        bin_index: int,
        label: float,
        weight: float,
    ) -> None:
        offset = (
            node_offset
            + self.feature_offsets[node_index][feature_index_idx]
            + bin_index * self.stats_size
        )
        self.impurity_aggregator.update(self.all_stats, offset, label, weight)


def combine(agg1: StatsAggregator, agg2: StatsAggregator) -> StatsAggregator:
    """Associative, commutative merge used by the cross-partition reduce."""
    return agg1.merge(agg2)


def new_aggregator(
    metadata: DecisionTreeMetadata,
    tree_to_node_to_index_info: Mapping[int, Mapping[int, "NodeIndexInfo"]],
) -> StatsAggregator:
    """Pick the layout for a group: subsampled when nodes carry feature subsets."""
    if metadata.subsampling_features:
        return SubsampledFeaturesAggregator(metadata, tree_to_node_to_index_info)
    num_nodes = sum(len(node_map) for node_map in tree_to_node_to_index_info.values())
    return FixedFeaturesAggregator(metadata, num_nodes)


__all__ = [
    "FixedFeaturesAggregator",
    "StatsAggregator",
    "SubsampledFeaturesAggregator",
    "combine",
    "new_aggregator",
]
