import json
import math

import numpy as np
import pytest

from binforest.model import (
    INVALID_GAIN_STATS,
    DecisionTreeModel,
    InformationGainStats,
    Node,
    Predict,
    RandomForestModel,
    Split,
)


def leaf(node_id: int, value: float) -> Node:
    node = Node(node_id)
    node.decide(Predict(value), INVALID_GAIN_STATS)
    return node


def stump(threshold: float, left_value: float, right_value: float) -> Node:
    root = Node(1)
    left, right = root.decide(
        Predict(left_value),
        InformationGainStats(0.5, 0.5, 0.0, 0.0),
        Split(0, threshold, "continuous"),
    )
    left.decide(Predict(left_value), INVALID_GAIN_STATS)
    right.decide(Predict(right_value), INVALID_GAIN_STATS)
    return root


def test_node_id_arithmetic():
    assert Node.left_child_index(5) == 10
    assert Node.right_child_index(5) == 11
    assert Node.parent_index(11) == 5
    assert Node.index_to_level(1) == 0
    assert Node.index_to_level(2) == 1
    assert Node.index_to_level(7) == 2
    assert Node.index_to_level(8) == 3
    assert Node.is_left_child(6)
    assert not Node.is_left_child(7)
    assert not Node.is_left_child(1)
    assert Node.start_index_in_level(3) == 8
    assert Node.max_nodes_in_level(3) == 8
    with pytest.raises(ValueError):
        Node.index_to_level(0)


def test_decide_creates_pending_children_once():
    root = Node(1)
    assert root.is_pending
    children = root.decide(
        Predict(1.0), InformationGainStats(0.2, 0.4, 0.1, 0.1), Split(0, 0.5, "continuous")
    )
    assert children is not None
    left, right = children
    assert (left.id, right.id) == (2, 3)
    assert left.is_pending and right.is_pending
    assert root.left_node is left and root.right_node is right
    assert not root.is_leaf
    with pytest.raises(RuntimeError):
        root.decide(Predict(0.0), None)


def test_split_requires_gain_statistics():
    with pytest.raises(RuntimeError):
        Node(1).decide(Predict(0.0), None, Split(0, 0.5, "continuous"))


def test_predict_value_routes_continuous_and_categorical():
    root = stump(0.5, 0.0, 1.0)
    assert root.predict_value([0.5]) == 0.0
    assert root.predict_value([0.6]) == 1.0

    cat_root = Node(1)
    left, right = cat_root.decide(
        Predict(0.0),
        InformationGainStats(0.1, 0.2, 0.0, 0.0),
        Split(1, -math.inf, "categorical", frozenset({0, 2})),
    )
    left.decide(Predict(7.0), INVALID_GAIN_STATS)
    right.decide(Predict(9.0), INVALID_GAIN_STATS)
    assert cat_root.predict_value([0.0, 2.0]) == 7.0
    assert cat_root.predict_value([0.0, 1.0]) == 9.0


def test_untrained_node_cannot_predict():
    with pytest.raises(RuntimeError):
        Node(1).predict_value([0.0])


def test_tree_model_shape_and_serialization():
    model = DecisionTreeModel(stump(0.5, 0.0, 1.0), "classification")
    assert model.num_nodes == 3
    assert model.depth == 1
    np.testing.assert_allclose(model.predict_many(np.array([[0.0], [1.0]])), [0.0, 1.0])
    payload = model.to_dict()
    assert payload["tree"]["split"]["threshold"] == 0.5
    json.dumps(payload)
    with pytest.raises(ValueError):
        model.predict_many(np.zeros(3))


def test_forest_majority_vote_breaks_ties_to_smallest_label():
    trees = [
        DecisionTreeModel(leaf(1, 1.0), "classification"),
        DecisionTreeModel(leaf(1, 0.0), "classification"),
    ]
    forest = RandomForestModel("classification", trees)
    assert forest.predict([0.0]) == 0.0

    trees.append(DecisionTreeModel(leaf(1, 1.0), "classification"))
    assert forest.predict([0.0]) == 1.0
    assert forest.num_trees == 3
    assert forest.total_num_nodes == 3


def test_forest_regression_averages():
    trees = [
        DecisionTreeModel(leaf(1, 1.0), "regression"),
        DecisionTreeModel(stump(0.5, 2.0, 4.0), "regression"),
    ]
    forest = RandomForestModel("regression", trees)
    np.testing.assert_allclose(forest.predict_many(np.array([[0.0], [1.0]])), [1.5, 2.5])


def test_empty_forest_cannot_predict():
    with pytest.raises(RuntimeError):
        RandomForestModel("regression", []).predict([0.0])
