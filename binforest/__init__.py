"""binforest: group-wise histogram decision trees and random forests."""

from .config import Strategy
from .core.dataset import PartitionedDataset
from .data import LabeledPoint
from .forest import DecisionTree, RandomForest, train_classifier, train_regressor
from .model import DecisionTreeModel, RandomForestModel
from .wrapper import BinForestClassifier, BinForestRegressor

__version__ = "0.1.0"

__all__ = [
    "BinForestClassifier",
    "BinForestRegressor",
    "DecisionTree",
    "DecisionTreeModel",
    "LabeledPoint",
    "PartitionedDataset",
    "RandomForest",
    "RandomForestModel",
    "Strategy",
    "train_classifier",
    "train_regressor",
]
