import copy

import numpy as np
import pytest

from binforest.config import Strategy
from binforest.core.aggregator import (
    FixedFeaturesAggregator,
    SubsampledFeaturesAggregator,
    combine,
    new_aggregator,
)
from binforest.core.dataset import PartitionedDataset
from binforest.core.driver import make_bin_seq_op
from binforest.core.frontier import NodeIndexInfo
from binforest.core.metadata import build_metadata
from binforest.core.splits import find_splits_bins
from binforest.data import convert_to_bagged_points, convert_to_tree_points
from binforest.model import Node


def mixed_problem(n_rows: int = 60, seed: int = 0, num_trees: int = 1, feature_subset_strategy: str = "all"):
    """Multiclass data with continuous, unordered and ordered categorical features."""
    rng = np.random.default_rng(seed)
    X = np.column_stack(
        [
            rng.normal(size=n_rows),
            rng.integers(0, 3, size=n_rows),
            rng.integers(0, 8, size=n_rows),
        ]
    ).astype(np.float64)
    y = rng.integers(0, 3, size=n_rows).astype(np.float64)
    ds = PartitionedDataset.from_arrays(X, y, num_partitions=3)
    strategy = Strategy(num_classes=3, categorical_features_info={1: 3, 2: 8})
    md = build_metadata(ds, strategy, num_trees, feature_subset_strategy)
    catalog = find_splits_bins(ds, md, seed=0)
    points = convert_to_bagged_points(convert_to_tree_points(ds, catalog, md), 1.0, num_trees, False)
    return md, catalog, points


ROOT_ONLY = {0: {1: NodeIndexInfo(0)}}
TWO_TREE_SUBSETS = {
    0: {1: NodeIndexInfo(0, (0, 2))},
    1: {1: NodeIndexInfo(1, (1, 2))},
}
LAYOUTS = {
    "fixed": (1, "all", ROOT_ONLY),
    "subsampled": (2, "sqrt", TWO_TREE_SUBSETS),
}


def fold(md, catalog, points, infos=ROOT_ONLY):
    seq_op = make_bin_seq_op(md, [Node(1) for _ in infos], infos, catalog)
    agg = new_aggregator(md, infos)
    for point in points:
        agg = seq_op(agg, point)
    return agg


def test_mixed_problem_layout():
    md, _, _ = mixed_problem()
    assert md.unordered_features == frozenset({1})
    assert md.is_continuous(0)
    assert md.is_categorical(2) and not md.is_unordered(2)


@pytest.mark.parametrize("layout", sorted(LAYOUTS))
@pytest.mark.parametrize("cut", [0, 1, 17, 59, 60])
def test_combine_of_disjoint_subsets_equals_full_aggregate(layout, cut):
    num_trees, subset_strategy, infos = LAYOUTS[layout]
    md, catalog, bagged = mixed_problem(num_trees=num_trees, feature_subset_strategy=subset_strategy)
    points = bagged.collect()
    full = fold(md, catalog, points, infos)
    expected = SubsampledFeaturesAggregator if layout == "subsampled" else FixedFeaturesAggregator
    assert isinstance(full, expected)
    assert full.all_stats.sum() > 0
    merged = combine(
        fold(md, catalog, points[:cut], infos), fold(md, catalog, points[cut:], infos)
    )
    np.testing.assert_array_equal(merged.all_stats, full.all_stats)


def test_combine_is_commutative():
    md, catalog, bagged = mixed_problem()
    points = bagged.collect()
    a1, b1 = fold(md, catalog, points[:20]), fold(md, catalog, points[20:])
    a2, b2 = copy.deepcopy(a1), copy.deepcopy(b1)
    np.testing.assert_array_equal(combine(a1, b1).all_stats, combine(b2, a2).all_stats)


def test_fixed_layout_offsets():
    md, _, _ = mixed_problem()
    agg = FixedFeaturesAggregator(md, num_nodes=2)
    stride = sum(md.num_bins) * md.stats_size
    assert agg.num_nodes == 2
    assert agg.all_stats.shape == (2 * stride,)
    assert agg.get_node_offset(1) == stride
    assert agg.get_node_feature_offset(1, 2) == stride + (md.num_bins[0] + md.num_bins[1]) * 3
    left, right = agg.get_left_right_node_feature_offsets(0, 1)
    assert right - left == (md.num_bins[1] // 2) * md.stats_size
    assert agg.size_in_bytes == 2 * stride * 8


def test_subsampled_layout_offsets():
    md, _, _ = mixed_problem()
    infos = {
        0: {1: NodeIndexInfo(0, (0, 2))},
        1: {1: NodeIndexInfo(1, (1,))},
    }
    agg = SubsampledFeaturesAggregator(md, infos)
    s = md.stats_size
    node0 = (md.num_bins[0] + md.num_bins[2]) * s
    node1 = md.num_bins[1] * s
    assert agg.num_nodes == 2
    assert agg.all_stats.shape == (node0 + node1,)
    assert agg.get_node_offset(1) == node0
    assert agg.get_node_feature_offset(0, 1) == md.num_bins[0] * s
    left, right = agg.get_left_right_node_feature_offsets(1, 0)
    assert left == node0
    assert right == node0 + (md.num_bins[1] // 2) * s


def test_new_aggregator_picks_layout():
    md, _, _ = mixed_problem()
    assert isinstance(new_aggregator(md, ROOT_ONLY), FixedFeaturesAggregator)

    ds = PartitionedDataset.from_arrays(np.zeros((10, 4)), np.zeros(10), num_partitions=1)
    sub_md = build_metadata(ds, Strategy(), num_trees=3, feature_subset_strategy="sqrt")
    infos = {0: {1: NodeIndexInfo(0, (0, 3))}}
    assert isinstance(new_aggregator(sub_md, infos), SubsampledFeaturesAggregator)


def test_merge_rejects_mismatched_layouts():
    md, _, _ = mixed_problem()
    with pytest.raises(ValueError):
        FixedFeaturesAggregator(md, 1).merge(FixedFeaturesAggregator(md, 2))


def test_deepcopy_detaches_statistics():
    md, _, _ = mixed_problem()
    agg = FixedFeaturesAggregator(md, 1)
    clone = copy.deepcopy(agg)
    clone.node_feature_update(0, 0, 1.0, 2.0)
    assert agg.all_stats.sum() == 0.0
    assert clone.all_stats.sum() == 2.0
    assert clone.metadata is agg.metadata


def test_merge_for_node_feature_adds_bins():
    md, _, _ = mixed_problem()
    agg = FixedFeaturesAggregator(md, 1)
    agg.node_feature_update(0, 0, 0.0, 1.0)
    agg.node_feature_update(0, 1, 2.0, 3.0)
    agg.merge_for_node_feature(0, 1, 0)
    np.testing.assert_allclose(agg.get_impurity_calculator(0, 1).stats, [1.0, 0.0, 3.0])
    np.testing.assert_allclose(agg.get_impurity_calculator(0, 0).stats, [1.0, 0.0, 0.0])
