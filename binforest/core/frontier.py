"""Group-wise frontier scheduling: pick nodes under a memory ceiling, then decide them."""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from time import perf_counter
from typing import Deque, Dict, List, Optional, Sequence, Tuple

import torch

from ..model import Node
from .dataset import PartitionedDataset
from .driver import aggregate_group
from .metadata import DecisionTreeMetadata
from .selector import bins_to_best_split
from .splits import SplitBinCatalog

logger = logging.getLogger(__name__)

BYTES_PER_STAT = 8

NodeQueue = Deque[Tuple[int, Node]]


@dataclass(frozen=True, slots=True)
class NodeIndexInfo:
    """Position of a frontier node inside its group's histogram.

    ``feature_subset`` is ``None`` when the node uses every feature.
    """

    node_index_in_group: int
    feature_subset: Optional[Tuple[int, ...]] = None


@dataclass(slots=True)
class NodeGroup:
    """Frontier nodes processed together in one data pass."""

    nodes_for_group: Dict[int, List[Node]] = field(default_factory=dict)
    tree_to_node_to_index_info: Dict[int, Dict[int, NodeIndexInfo]] = field(default_factory=dict)
    memory_bytes: int = 0

    @property
    def num_nodes(self) -> int:
        return sum(len(nodes) for nodes in self.nodes_for_group.values())

    @property
    def num_trees(self) -> int:
        return len(self.nodes_for_group)

    def add(self, tree_index: int, node: Node, feature_subset: Optional[Tuple[int, ...]], size: int) -> None:
        info = NodeIndexInfo(self.num_nodes, feature_subset)
        self.nodes_for_group.setdefault(tree_index, []).append(node)
        self.tree_to_node_to_index_info.setdefault(tree_index, {})[node.id] = info
        self.memory_bytes += size


@dataclass(slots=True)
class GroupInstrumentation:
    group: int = 0
    nodes: int = 0
    trees: int = 0
    histogram_bytes: int = 0
    aggregation_ms: float = 0.0
    choose_splits_ms: float = 0.0
    leaves: int = 0
    splits: int = 0

    def __iadd__(self, other: "GroupInstrumentation") -> "GroupInstrumentation":
        self.group = max(self.group, other.group)
        self.nodes += other.nodes
        self.trees = max(self.trees, other.trees)
        self.histogram_bytes = max(self.histogram_bytes, other.histogram_bytes)
        self.aggregation_ms += other.aggregation_ms
        self.choose_splits_ms += other.choose_splits_ms
        self.leaves += other.leaves
        self.splits += other.splits
        return self

    def to_dict(self) -> Dict[str, int | float]:
        return {
            "group": self.group,
            "nodes": self.nodes,
            "trees": self.trees,
            "histogram_bytes": self.histogram_bytes,
            "aggregation_ms": self.aggregation_ms,
            "choose_splits_ms": self.choose_splits_ms,
            "leaves": self.leaves,
            "splits": self.splits,
        }


def aggregate_size_for_node(
    metadata: DecisionTreeMetadata, feature_subset: Optional[Sequence[int]]
) -> int:
    """Number of statistics slots a node needs in the histogram."""
    if feature_subset is not None:
        total_bins = sum(metadata.num_bins[f] for f in feature_subset)
    else:
        total_bins = sum(metadata.num_bins)
    return total_bins * metadata.stats_size


def _sample_feature_subset(
    metadata: DecisionTreeMetadata, generator: Optional[torch.Generator]
) -> Tuple[int, ...]:
    perm = torch.randperm(metadata.num_features, generator=generator)
    chosen = perm[: metadata.num_features_per_node].tolist()
    return tuple(sorted(int(f) for f in chosen))


def select_nodes_to_split(
    node_queue: NodeQueue,
    max_memory_bytes: int,
    metadata: DecisionTreeMetadata,
    generator: Optional[torch.Generator] = None,
) -> NodeGroup:
    """Pop frontier nodes while their histograms fit in ``max_memory_bytes``.

    The head of the queue is always taken, so a non-empty queue never yields
    an empty group even when a single node exceeds the ceiling.
    """
    group = NodeGroup()
    while node_queue:
        tree_index, node = node_queue[0]
        feature_subset = (
            _sample_feature_subset(metadata, generator) if metadata.subsampling_features else None
        )
        node_bytes = aggregate_size_for_node(metadata, feature_subset) * BYTES_PER_STAT
        if group.num_nodes > 0 and group.memory_bytes + node_bytes > max_memory_bytes:
            break
        node_queue.popleft()
        group.add(tree_index, node, feature_subset, node_bytes)
    if group.num_nodes > 0 and group.memory_bytes > max_memory_bytes:
        logger.warning(
            "node %d alone needs %d histogram bytes, above the %d byte ceiling",
            group.nodes_for_group[next(iter(group.nodes_for_group))][0].id,
            group.memory_bytes,
            max_memory_bytes,
        )
    return group


def find_best_splits(
    dataset: PartitionedDataset,
    metadata: DecisionTreeMetadata,
    top_nodes: Sequence[Node],
    group: NodeGroup,
    catalog: SplitBinCatalog,
    node_queue: NodeQueue,
    group_index: int = 0,
) -> GroupInstrumentation:
    """One growth step: aggregate the group, decide every node, enqueue new children."""
    if group.num_nodes == 0:
        raise RuntimeError("cannot grow an empty node group")
    stats = GroupInstrumentation(
        group=group_index, nodes=group.num_nodes, trees=group.num_trees
    )

    start = perf_counter()
    agg = aggregate_group(
        dataset, metadata, top_nodes, group.tree_to_node_to_index_info, catalog
    )
    stats.aggregation_ms = (perf_counter() - start) * 1000.0
    stats.histogram_bytes = agg.size_in_bytes

    start = perf_counter()
    for tree_index, nodes_for_tree in group.nodes_for_group.items():
        node_to_info = group.tree_to_node_to_index_info[tree_index]
        for node in nodes_for_tree:
            info = node_to_info[node.id]
            split, gain_stats, predict = bins_to_best_split(
                agg, info.node_index_in_group, catalog, info.feature_subset
            )
            logger.debug("best split = %s", split)
            is_leaf = gain_stats.gain <= 0 or Node.index_to_level(node.id) == metadata.max_depth
            if is_leaf:
                node.decide(predict, gain_stats)
                stats.leaves += 1
                logger.debug("node %d is a leaf, predict = %s", node.id, predict.predict)
                continue
            left, right = node.decide(predict, gain_stats, split)
            node_queue.append((tree_index, left))
            node_queue.append((tree_index, right))
            stats.splits += 1
            logger.debug(
                "left child %d impurity = %s, right child %d impurity = %s",
                left.id,
                gain_stats.left_impurity,
                right.id,
                gain_stats.right_impurity,
            )
    stats.choose_splits_ms = (perf_counter() - start) * 1000.0

    if logger.isEnabledFor(logging.INFO):
        logger.info(json.dumps(stats.to_dict()))
    return stats


def new_node_queue(top_nodes: Sequence[Node]) -> NodeQueue:
    """Frontier queue seeded with every tree's root."""
    return deque((tree_index, node) for tree_index, node in enumerate(top_nodes))


__all__ = [
    "GroupInstrumentation",
    "NodeGroup",
    "NodeIndexInfo",
    "aggregate_size_for_node",
    "find_best_splits",
    "new_node_queue",
    "select_nodes_to_split",
]
