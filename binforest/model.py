"""Tree structures produced by training, and the models wrapping them."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np

from .config import Algo

FeatureType = Literal["continuous", "categorical"]


@dataclass(frozen=True, slots=True)
class Split:
    """A binary decision rule on one feature.

    Continuous splits send ``x <= threshold`` left. Categorical splits send
    ``x in categories`` left and carry no meaningful threshold.
    """

    feature: int
    threshold: float
    feature_type: FeatureType
    categories: frozenset[int] = frozenset()

    @classmethod
    def dummy_low(cls, feature: int, feature_type: FeatureType) -> "Split":
        return cls(feature, -math.inf, feature_type)

    @classmethod
    def dummy_high(cls, feature: int, feature_type: FeatureType) -> "Split":
        return cls(feature, math.inf, feature_type)

    def goes_left(self, value: float) -> bool:
        if self.feature_type == "continuous":
            return value <= self.threshold
        return int(value) in self.categories

    def to_dict(self) -> Dict[str, object]:
        return {
            "feature": self.feature,
            "threshold": self.threshold,
            "feature_type": self.feature_type,
            "categories": sorted(self.categories),
        }


@dataclass(frozen=True, slots=True)
class Bin:
    """Statistics slot bounded by two splits: ``(low.threshold, high.threshold]``."""

    low_split: Split
    high_split: Split
    feature_type: FeatureType
    category: float = -math.inf


@dataclass(frozen=True, slots=True)
class Predict:
    predict: float
    prob: float = 0.0


@dataclass(frozen=True, slots=True)
class InformationGainStats:
    gain: float
    impurity: float
    left_impurity: float
    right_impurity: float

    @property
    def is_valid(self) -> bool:
        return self.gain != -math.inf


INVALID_GAIN_STATS = InformationGainStats(-math.inf, -1.0, -1.0, -1.0)


# --- node state -------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Pending:
    """Node created, waiting for its statistics pass."""


@dataclass(frozen=True, slots=True)
class Decided:
    """Terminal leaf."""

    predict: Predict
    stats: Optional[InformationGainStats] = None


@dataclass(frozen=True, slots=True)
class SplitState:
    """Internal node owning two children."""

    predict: Predict
    stats: InformationGainStats
    split: Split
    left: "Node"
    right: "Node"


NodeState = Union[Pending, Decided, SplitState]


@dataclass(slots=True, eq=False)
class Node:
    """Tree node addressed by its position in a complete binary tree (root = 1)."""

    id: int
    state: NodeState = field(default_factory=Pending)

    # --- id arithmetic ---

    @staticmethod
    def left_child_index(node_id: int) -> int:
        return node_id << 1

    @staticmethod
    def right_child_index(node_id: int) -> int:
        return (node_id << 1) + 1

    @staticmethod
    def parent_index(node_id: int) -> int:
        return node_id >> 1

    @staticmethod
    def index_to_level(node_id: int) -> int:
        if node_id <= 0:
            raise ValueError(f"node id must be >= 1, got {node_id}")
        return node_id.bit_length() - 1

    @staticmethod
    def is_left_child(node_id: int) -> bool:
        return node_id > 1 and node_id % 2 == 0

    @staticmethod
    def start_index_in_level(level: int) -> int:
        return 1 << level

    @staticmethod
    def max_nodes_in_level(level: int) -> int:
        return 1 << level

    # --- state accessors ---

    @property
    def is_pending(self) -> bool:
        return isinstance(self.state, Pending)

    @property
    def is_leaf(self) -> bool:
        return isinstance(self.state, Decided)

    @property
    def predict(self) -> Optional[Predict]:
        if isinstance(self.state, Pending):
            return None
        return self.state.predict

    @property
    def stats(self) -> Optional[InformationGainStats]:
        if isinstance(self.state, Pending):
            return None
        return self.state.stats

    @property
    def split(self) -> Optional[Split]:
        return self.state.split if isinstance(self.state, SplitState) else None

    @property
    def left_node(self) -> Optional["Node"]:
        return self.state.left if isinstance(self.state, SplitState) else None

    @property
    def right_node(self) -> Optional["Node"]:
        return self.state.right if isinstance(self.state, SplitState) else None

    def decide(
        self,
        predict: Predict,
        stats: Optional[InformationGainStats],
        split: Optional[Split] = None,
    ) -> Optional[Tuple["Node", "Node"]]:
        """Finalize this node once: a leaf, or a split with two pending children."""
        if not isinstance(self.state, Pending):
            raise RuntimeError(f"node {self.id} has already been decided")
        if split is None:
            self.state = Decided(predict=predict, stats=stats)
            return None
        if stats is None:
            raise RuntimeError(f"split node {self.id} requires gain statistics")
        left = Node(Node.left_child_index(self.id))
        right = Node(Node.right_child_index(self.id))
        self.state = SplitState(predict=predict, stats=stats, split=split, left=left, right=right)
        return left, right

    # --- traversal ---

    def predict_value(self, features: Sequence[float]) -> float:
        node = self
        while isinstance(node.state, SplitState):
            state = node.state
            node = state.left if state.split.goes_left(features[state.split.feature]) else state.right
        if isinstance(node.state, Pending):
            raise RuntimeError(f"node {node.id} was never trained")
        return node.state.predict.predict

    def num_descendants(self) -> int:
        count = 0
        stack = [self]
        while stack:
            node = stack.pop()
            if isinstance(node.state, SplitState):
                count += 2
                stack.append(node.state.left)
                stack.append(node.state.right)
        return count

    def subtree_depth(self) -> int:
        depth = 0
        stack = [(self, 0)]
        while stack:
            node, level = stack.pop()
            depth = max(depth, level)
            if isinstance(node.state, SplitState):
                stack.append((node.state.left, level + 1))
                stack.append((node.state.right, level + 1))
        return depth

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"id": self.id, "is_leaf": self.is_leaf}
        predict = self.predict
        if predict is not None:
            payload["predict"] = predict.predict
            payload["prob"] = predict.prob
        stats = self.stats
        if stats is not None:
            payload["gain"] = stats.gain
            payload["impurity"] = stats.impurity
        if isinstance(self.state, SplitState):
            payload["split"] = self.state.split.to_dict()
            payload["left"] = self.state.left.to_dict()
            payload["right"] = self.state.right.to_dict()
        return payload

    def __repr__(self) -> str:
        return f"Node(id={self.id}, state={type(self.state).__name__})"


# --- models -----------------------------------------------------------------


@dataclass
class DecisionTreeModel:
    """A single trained tree."""

    top_node: Node
    algo: Algo

    def predict(self, features: Sequence[float]) -> float:
        return self.top_node.predict_value(features)

    def predict_many(self, X: np.ndarray) -> np.ndarray:
        X_arr = np.asarray(X, dtype=np.float64)
        if X_arr.ndim != 2:
            raise ValueError("X must be 2D")
        return np.array([self.top_node.predict_value(row) for row in X_arr], dtype=np.float64)

    @property
    def num_nodes(self) -> int:
        return 1 + self.top_node.num_descendants()

    @property
    def depth(self) -> int:
        return self.top_node.subtree_depth()

    def to_dict(self) -> Dict[str, object]:
        return {"algo": self.algo, "tree": self.top_node.to_dict()}

    def __repr__(self) -> str:
        return f"DecisionTreeModel(algo={self.algo}, depth={self.depth}, num_nodes={self.num_nodes})"


@dataclass
class RandomForestModel:
    """Ensemble of independently grown trees."""

    algo: Algo
    trees: List[DecisionTreeModel]

    def predict(self, features: Sequence[float]) -> float:
        if not self.trees:
            raise RuntimeError("RandomForestModel has no trees")
        votes = [tree.predict(features) for tree in self.trees]
        if self.algo == "classification":
            counts = Counter(votes)
            best = max(counts.values())
            return min(label for label, count in counts.items() if count == best)
        return float(sum(votes) / len(votes))

    def predict_many(self, X: np.ndarray) -> np.ndarray:
        X_arr = np.asarray(X, dtype=np.float64)
        if X_arr.ndim != 2:
            raise ValueError("X must be 2D")
        return np.array([self.predict(row) for row in X_arr], dtype=np.float64)

    @property
    def num_trees(self) -> int:
        return len(self.trees)

    @property
    def total_num_nodes(self) -> int:
        return int(sum(tree.num_nodes for tree in self.trees))

    def to_dict(self) -> Dict[str, object]:
        return {"algo": self.algo, "trees": [tree.to_dict()["tree"] for tree in self.trees]}


__all__ = [
    "Bin",
    "Decided",
    "DecisionTreeModel",
    "FeatureType",
    "INVALID_GAIN_STATS",
    "InformationGainStats",
    "Node",
    "NodeState",
    "Pending",
    "Predict",
    "RandomForestModel",
    "Split",
    "SplitState",
]
