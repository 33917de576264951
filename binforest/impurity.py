"""Impurity measures over flat sufficient-statistics arrays.

Each measure comes in two halves:

* an :class:`ImpurityAggregator`, which knows how many ``float64`` slots one
  statistics vector occupies (``stats_size``) and how to fold a weighted
  label into such a vector stored inside a larger array;
* an :class:`ImpurityCalculator`, a detached copy of one statistics vector
  that can be added, subtracted and turned into an impurity or a prediction.

Statistics are additive: the vector for the union of two disjoint example
sets is the element-wise sum of their vectors.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod

import numpy as np

VARIANCE_RTOL = 1e-12


class ImpurityCalculator(ABC):
    """Sufficient statistics for one set of examples."""

    __slots__ = ("stats",)

    def __init__(self, stats: np.ndarray) -> None:
        self.stats = stats

    def copy(self) -> "ImpurityCalculator":
        return type(self)(self.stats.copy())

    def add(self, other: "ImpurityCalculator") -> "ImpurityCalculator":
        if self.stats.shape != other.stats.shape:
            raise ValueError("cannot add calculators with different statistics sizes")
        self.stats += other.stats
        return self

    def subtract(self, other: "ImpurityCalculator") -> "ImpurityCalculator":
        if self.stats.shape != other.stats.shape:
            raise ValueError("cannot subtract calculators with different statistics sizes")
        self.stats -= other.stats
        return self

    @property
    @abstractmethod
    def count(self) -> float:
        """Weighted number of examples."""

    @abstractmethod
    def calculate(self) -> float:
        """Impurity of the example set (0 for an empty set)."""

    @property
    @abstractmethod
    def predict(self) -> float:
        """Point prediction for the example set."""

    def prob(self, label: float) -> float:
        return 0.0

    def __repr__(self) -> str:
        return f"{type(self).__name__}(stats={self.stats.tolist()})"


class _ClassCountCalculator(ImpurityCalculator):
    __slots__ = ()

    @property
    def count(self) -> float:
        return float(self.stats.sum())

    @property
    def predict(self) -> float:
        if self.count == 0:
            return 0.0
        # argmax keeps the first maximal class
        return float(np.argmax(self.stats))

    def prob(self, label: float) -> float:
        total = self.count
        if total == 0:
            return 0.0
        return float(self.stats[int(label)] / total)


class GiniCalculator(_ClassCountCalculator):
    __slots__ = ()

    def calculate(self) -> float:
        total = self.count
        if total == 0:
            return 0.0
        freq = self.stats / total
        return float(1.0 - np.dot(freq, freq))


class EntropyCalculator(_ClassCountCalculator):
    __slots__ = ()

    def calculate(self) -> float:
        total = self.count
        if total == 0:
            return 0.0
        impurity = 0.0
        for class_count in self.stats:
            if class_count == 0:
                continue
            freq = class_count / total
            impurity -= freq * math.log2(freq)
        return float(impurity)


class VarianceCalculator(ImpurityCalculator):
    """Statistics layout: ``[sum(w), sum(w * y), sum(w * y^2)]``."""

    __slots__ = ()

    @property
    def count(self) -> float:
        return float(self.stats[0])

    def calculate(self) -> float:
        count = self.stats[0]
        if count == 0:
            return 0.0
        total, total_sq = self.stats[1], self.stats[2]
        mean_sq = total_sq / count
        variance = mean_sq - (total / count) ** 2
        # cancellation leaves ~1e-16 relative noise on constant labels
        if variance <= VARIANCE_RTOL * mean_sq:
            return 0.0
        return float(variance)

    @property
    def predict(self) -> float:
        count = self.stats[0]
        if count == 0:
            return 0.0
        return float(self.stats[1] / count)


class ImpurityAggregator(ABC):
    """Folds weighted labels into statistics vectors embedded in a flat array."""

    name: str = ""
    stats_size: int = 0

    @abstractmethod
    def update(self, all_stats: np.ndarray, offset: int, label: float, weight: float) -> None:
        """Add one weighted label to the vector starting at ``offset``."""

    @abstractmethod
    def get_calculator(self, all_stats: np.ndarray, offset: int) -> ImpurityCalculator:
        """Return a detached calculator for the vector starting at ``offset``."""


class _ClassCountAggregator(ImpurityAggregator):
    calculator_cls: type[ImpurityCalculator] = GiniCalculator

    def __init__(self, num_classes: int) -> None:
        if num_classes < 2:
            raise ValueError(f"{self.name} impurity needs num_classes >= 2, got {num_classes}")
        self.stats_size = int(num_classes)

    def update(self, all_stats: np.ndarray, offset: int, label: float, weight: float) -> None:
        all_stats[offset + int(label)] += weight

    def get_calculator(self, all_stats: np.ndarray, offset: int) -> ImpurityCalculator:
        return self.calculator_cls(all_stats[offset : offset + self.stats_size].copy())


class Gini(_ClassCountAggregator):
    name = "gini"
    calculator_cls = GiniCalculator


class Entropy(_ClassCountAggregator):
    name = "entropy"
    calculator_cls = EntropyCalculator


class Variance(ImpurityAggregator):
    name = "variance"
    stats_size = 3

    def update(self, all_stats: np.ndarray, offset: int, label: float, weight: float) -> None:
        all_stats[offset] += weight
        all_stats[offset + 1] += weight * label
        all_stats[offset + 2] += weight * label * label

    def get_calculator(self, all_stats: np.ndarray, offset: int) -> ImpurityCalculator:
        return VarianceCalculator(all_stats[offset : offset + 3].copy())


def get_impurity(name: str, num_classes: int = 0) -> ImpurityAggregator:
    """Return the aggregator for impurity ``name``."""
    key = name.lower()
    if key == "gini":
        return Gini(num_classes)
    if key == "entropy":
        return Entropy(num_classes)
    if key == "variance":
        return Variance()
    raise ValueError(f"Unsupported impurity: {name}")


__all__ = [
    "Entropy",
    "EntropyCalculator",
    "Gini",
    "GiniCalculator",
    "ImpurityAggregator",
    "ImpurityCalculator",
    "Variance",
    "VarianceCalculator",
    "get_impurity",
]
