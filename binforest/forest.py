"""Group-wise decision tree and random forest trainers."""

from __future__ import annotations

import json
import logging
import os
from time import perf_counter
from typing import Dict, List, Mapping, Optional

import torch

from .config import Strategy
from .core.dataset import PartitionedDataset
from .core.frontier import (
    GroupInstrumentation,
    find_best_splits,
    new_node_queue,
    select_nodes_to_split,
)
from .core.metadata import FEATURE_SUBSET_STRATEGIES, DecisionTreeMetadata, build_metadata
from .core.splits import SplitBinCatalog, find_splits_bins
from .data import convert_to_bagged_points, convert_to_tree_points
from .model import DecisionTreeModel, Node, RandomForestModel


class RandomForest:
    """Grows ``num_trees`` trees together, one node group per data pass.

    Every pass aggregates statistics for as many frontier nodes (across all
    trees) as fit in ``strategy.max_memory_in_mb``; the environment variable
    ``BINFOREST_MAX_MEMORY_MB`` overrides that ceiling.
    Without a ``seed`` the torch generator is seeded from fresh entropy.
    """

    def __init__(
        self,
        strategy: Strategy,
        num_trees: int = 1,
        feature_subset_strategy: str = "auto",
        seed: Optional[int] = None,
    ) -> None:
        strategy.assert_valid()
        if num_trees < 1:
            raise ValueError(f"num_trees must be >= 1, got {num_trees}")
        if feature_subset_strategy not in FEATURE_SUBSET_STRATEGIES:
            raise ValueError(
                f"Unsupported feature_subset_strategy: {feature_subset_strategy}; "
                f"expected one of {FEATURE_SUBSET_STRATEGIES}"
            )
        self.strategy = strategy
        self.num_trees = int(num_trees)
        self.feature_subset_strategy = feature_subset_strategy
        self.seed = seed
        self._rng = torch.Generator(device="cpu")
        if seed is not None:
            self._rng.manual_seed(int(seed))
        else:
            self._rng.seed()
        env_memory = os.getenv("BINFOREST_MAX_MEMORY_MB")
        memory_mb = int(env_memory) if env_memory else strategy.max_memory_in_mb
        if memory_mb <= 0:
            raise ValueError(f"max memory must be positive, got {memory_mb} MB")
        self.max_memory_in_mb = memory_mb
        self._logger = logging.getLogger(__name__)

        # Runtime state
        self.group_logs: List[Dict[str, object]] = []
        self.timings: Dict[str, float] = {}
        self.run_stats = GroupInstrumentation()
        self.metadata_: Optional[DecisionTreeMetadata] = None
        self.catalog_: Optional[SplitBinCatalog] = None

    def train(self, dataset: PartitionedDataset) -> RandomForestModel:
        """Train on a dataset of :class:`~binforest.data.LabeledPoint` rows."""
        total_start = perf_counter()
        self.group_logs = []
        self.timings = {}
        self.run_stats = GroupInstrumentation()

        init_start = perf_counter()
        metadata = build_metadata(
            dataset, self.strategy, self.num_trees, self.feature_subset_strategy
        )

        splits_start = perf_counter()
        catalog = find_splits_bins(dataset, metadata, seed=self.seed)
        self.timings["find_splits_bins_ms"] = (perf_counter() - splits_start) * 1000.0

        tree_points = convert_to_tree_points(dataset, catalog, metadata)
        bagged = convert_to_bagged_points(
            tree_points,
            self.strategy.subsampling_rate,
            self.num_trees,
            with_replacement=self.num_trees > 1,
            generator=self._rng,
        )
        self.timings["init_ms"] = (perf_counter() - init_start) * 1000.0
        self.metadata_ = metadata
        self.catalog_ = catalog

        top_nodes = [Node(1) for _ in range(self.num_trees)]
        node_queue = new_node_queue(top_nodes)
        max_memory_bytes = self.max_memory_in_mb * 1024 * 1024

        group_index = 0
        while node_queue:
            group = select_nodes_to_split(node_queue, max_memory_bytes, metadata, self._rng)
            stats = find_best_splits(
                bagged, metadata, top_nodes, group, catalog, node_queue, group_index
            )
            self.group_logs.append(stats.to_dict())
            self.run_stats += stats
            group_index += 1

        self.timings["total_ms"] = (perf_counter() - total_start) * 1000.0
        if self._logger.isEnabledFor(logging.INFO):
            summary: Dict[str, object] = dict(self.timings)
            summary.update({
                "num_trees": self.num_trees,
                "num_groups": group_index,
                "num_features_per_node": metadata.num_features_per_node,
                "max_memory_in_mb": self.max_memory_in_mb,
                "seed": self.seed,
                "generator_seed": self._rng.initial_seed(),
                "run": self.run_stats.to_dict(),
            })
            self._logger.info(json.dumps(summary))

        algo = self.strategy.algo
        return RandomForestModel(algo, [DecisionTreeModel(node, algo) for node in top_nodes])

    # --- convenience constructors ---

    @classmethod
    def train_classifier(
        cls,
        dataset: PartitionedDataset,
        num_classes: int,
        categorical_features_info: Mapping[int, int],
        num_trees: int,
        feature_subset_strategy: str = "auto",
        impurity: str = "gini",
        max_depth: int = 4,
        max_bins: int = 100,
        seed: Optional[int] = None,
    ) -> RandomForestModel:
        strategy = Strategy(
            algo="classification",
            impurity=impurity,
            max_depth=max_depth,
            num_classes=num_classes,
            max_bins=max_bins,
            categorical_features_info=dict(categorical_features_info),
        )
        return cls(strategy, num_trees, feature_subset_strategy, seed).train(dataset)

    @classmethod
    def train_regressor(
        cls,
        dataset: PartitionedDataset,
        categorical_features_info: Mapping[int, int],
        num_trees: int,
        feature_subset_strategy: str = "auto",
        impurity: str = "variance",
        max_depth: int = 4,
        max_bins: int = 100,
        seed: Optional[int] = None,
    ) -> RandomForestModel:
        strategy = Strategy(
            algo="regression",
            impurity=impurity,
            max_depth=max_depth,
            max_bins=max_bins,
            categorical_features_info=dict(categorical_features_info),
        )
        return cls(strategy, num_trees, feature_subset_strategy, seed).train(dataset)


class DecisionTree:
    """A single tree: a one-tree forest using every feature at every node."""

    def __init__(self, strategy: Strategy) -> None:
        strategy.assert_valid()
        self.strategy = strategy
        self.forest_: Optional[RandomForest] = None

    def train(self, dataset: PartitionedDataset) -> DecisionTreeModel:
        # the seed is unused with one tree and every feature
        forest = RandomForest(self.strategy, num_trees=1, feature_subset_strategy="all", seed=0)
        model = forest.train(dataset)
        self.forest_ = forest
        return model.trees[0]


def train_classifier(
    dataset: PartitionedDataset,
    num_classes: int,
    categorical_features_info: Mapping[int, int],
    impurity: str = "gini",
    max_depth: int = 5,
    max_bins: int = 32,
) -> DecisionTreeModel:
    """Train a binary or multiclass tree; labels must be ``0 .. num_classes - 1``."""
    strategy = Strategy(
        algo="classification",
        impurity=impurity,
        max_depth=max_depth,
        num_classes=num_classes,
        max_bins=max_bins,
        categorical_features_info=dict(categorical_features_info),
    )
    return DecisionTree(strategy).train(dataset)


def train_regressor(
    dataset: PartitionedDataset,
    categorical_features_info: Mapping[int, int],
    impurity: str = "variance",
    max_depth: int = 5,
    max_bins: int = 32,
) -> DecisionTreeModel:
    strategy = Strategy(
        algo="regression",
        impurity=impurity,
        max_depth=max_depth,
        max_bins=max_bins,
        categorical_features_info=dict(categorical_features_info),
    )
    return DecisionTree(strategy).train(dataset)


__all__ = ["DecisionTree", "RandomForest", "train_classifier", "train_regressor"]
