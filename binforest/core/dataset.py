"""In-process partitioned collection with a fold/reduce primitive."""

from __future__ import annotations

import copy
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Generic, List, Sequence, TypeVar

import numpy as np

T = TypeVar("T")
U = TypeVar("U")
V = TypeVar("V")


class PartitionedDataset(Generic[T]):
    """Elements split into independent partitions.

    Partitions are folded independently (optionally on a thread pool) and the
    per-partition results are merged with a pairwise, tree-shaped reduction.
    """

    def __init__(self, partitions: Sequence[Sequence[T]], *, num_workers: int = 1) -> None:
        if num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        self._partitions: List[List[T]] = [list(part) for part in partitions]
        self.num_workers = int(num_workers)

    @classmethod
    def from_items(
        cls, items: Sequence[T], num_partitions: int = 1, *, num_workers: int = 1
    ) -> "PartitionedDataset[T]":
        if num_partitions < 1:
            raise ValueError("num_partitions must be >= 1")
        items = list(items)
        bounds = np.linspace(0, len(items), num_partitions + 1).astype(np.int64)
        parts = [items[int(bounds[i]) : int(bounds[i + 1])] for i in range(num_partitions)]
        return cls(parts, num_workers=num_workers)

    @classmethod
    def from_arrays(
        cls,
        X: np.ndarray,
        y: np.ndarray,
        num_partitions: int = 4,
        *,
        num_workers: int = 1,
    ) -> "PartitionedDataset":
        """Build labeled points from a feature matrix (or DataFrame) and labels."""
        from ..data import LabeledPoint

        X_np = np.asarray(X, dtype=np.float64)
        y_np = np.asarray(y, dtype=np.float64)
        if X_np.ndim != 2:
            raise ValueError("X must be a 2D array")
        if y_np.ndim != 1:
            raise ValueError("y must be 1-D")
        if X_np.shape[0] != y_np.shape[0]:
            raise ValueError("X and y row mismatch")
        points = [LabeledPoint(float(label), row) for label, row in zip(y_np, X_np)]
        return cls.from_items(points, num_partitions, num_workers=num_workers)

    # --- inspection ---

    @property
    def partitions(self) -> List[List[T]]:
        return self._partitions

    @property
    def num_partitions(self) -> int:
        return len(self._partitions)

    def count(self) -> int:
        return int(sum(len(part) for part in self._partitions))

    def first(self) -> T:
        for part in self._partitions:
            if part:
                return part[0]
        raise ValueError("dataset is empty")

    def collect(self) -> List[T]:
        return [item for part in self._partitions for item in part]

    # --- transformations ---

    def sample(self, fraction: float, seed: int | None = None) -> List[T]:
        """Bernoulli sample without replacement, collected to a list."""
        if fraction >= 1.0:
            return self.collect()
        rng = np.random.default_rng(seed)
        out: List[T] = []
        for part in self._partitions:
            if not part:
                continue
            keep = rng.random(len(part)) < fraction
            out.extend(item for item, flag in zip(part, keep) if flag)
        return out

    def map_partitions(self, fn: Callable[[List[T]], Sequence[V]]) -> "PartitionedDataset[V]":
        return PartitionedDataset(
            [fn(part) for part in self._partitions], num_workers=self.num_workers
        )

    # --- aggregation ---

    def tree_aggregate(
        self,
        zero_value: U,
        seq_op: Callable[[U, T], U],
        comb_op: Callable[[U, U], U],
    ) -> U:
        """Fold each partition into its own copy of ``zero_value``, then merge pairwise."""

        def fold(part: List[T]) -> U:
            acc = copy.deepcopy(zero_value)
            for item in part:
                acc = seq_op(acc, item)
            return acc

        if self.num_workers > 1 and self.num_partitions > 1:
            with ThreadPoolExecutor(max_workers=self.num_workers) as pool:
                partials = list(pool.map(fold, self._partitions))
        else:
            partials = [fold(part) for part in self._partitions]

        if not partials:
            return copy.deepcopy(zero_value)
        while len(partials) > 1:
            merged = [
                comb_op(partials[i], partials[i + 1]) for i in range(0, len(partials) - 1, 2)
            ]
            if len(partials) % 2:
                merged.append(partials[-1])
            partials = merged
        return partials[0]
