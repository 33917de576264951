import math

import numpy as np
import pytest

from binforest.config import Strategy
from binforest.core.dataset import PartitionedDataset
from binforest.core.metadata import build_metadata
from binforest.core.splits import extract_multiclass_categories, find_splits_bins
from binforest.data import convert_to_tree_points, find_bins


def ramp_dataset(n_rows: int = 100) -> PartitionedDataset:
    X = np.arange(n_rows, dtype=np.float64).reshape(-1, 1)
    y = (X[:, 0] >= n_rows / 2).astype(np.float64)
    return PartitionedDataset.from_arrays(X, y, num_partitions=4)


def test_extract_multiclass_categories_reads_bit_positions():
    assert extract_multiclass_categories(13, 5) == frozenset({0, 2, 3})
    for arity in range(1, 7):
        assert extract_multiclass_categories(1, arity) == frozenset({0})


def test_extract_multiclass_categories_ignores_bits_beyond_arity():
    assert extract_multiclass_categories(0b1111, 2) == frozenset({0, 1})


def test_continuous_thresholds_are_midpoints_at_equal_strides():
    ds = ramp_dataset()
    md = build_metadata(ds, Strategy(max_bins=4))
    catalog = find_splits_bins(ds, md, seed=1)
    thresholds = [split.threshold for split in catalog.splits[0]]
    assert thresholds == [0.5, 25.5, 50.5]
    bins = catalog.bins[0]
    assert len(bins) == 4
    assert bins[0].low_split.threshold == -math.inf
    assert bins[-1].high_split.threshold == math.inf
    for left, right in zip(bins, bins[1:]):
        assert left.high_split == right.low_split


def test_find_bins_maps_values_to_half_open_bins():
    ds = ramp_dataset()
    md = build_metadata(ds, Strategy(max_bins=4))
    catalog = find_splits_bins(ds, md)
    assert find_bins([0.0], catalog, md)[0] == 0
    assert find_bins([0.5], catalog, md)[0] == 0
    assert find_bins([1.0], catalog, md)[0] == 1
    assert find_bins([50.5], catalog, md)[0] == 2
    assert find_bins([99.0], catalog, md)[0] == 3
    assert find_bins([-1e9], catalog, md)[0] == 0


def test_unordered_splits_enumerate_category_subsets():
    X = np.array([[0.0], [1.0], [2.0], [0.0], [1.0], [2.0]])
    y = np.array([0.0, 1.0, 2.0, 0.0, 1.0, 2.0])
    ds = PartitionedDataset.from_arrays(X, y, num_partitions=2)
    md = build_metadata(ds, Strategy(num_classes=3, categorical_features_info={0: 3}))
    catalog = find_splits_bins(ds, md)
    categories = [split.categories for split in catalog.splits[0]]
    assert categories == [frozenset({0}), frozenset({1}), frozenset({0, 1})]
    assert all(split.feature_type == "categorical" for split in catalog.splits[0])


def test_ordered_categorical_splits_are_not_precomputed():
    X = np.array([[0.0, 1.0], [1.0, 2.0], [2.0, 3.0], [1.0, 4.0]])
    y = np.array([0.0, 1.0, 1.0, 0.0])
    ds = PartitionedDataset.from_arrays(X, y, num_partitions=1)
    md = build_metadata(ds, Strategy(categorical_features_info={0: 3}))
    catalog = find_splits_bins(ds, md)
    assert catalog.splits[0] == ()
    assert catalog.bins[0] == ()
    assert len(catalog.splits[1]) == 3
    assert catalog.num_features == 2


@pytest.mark.parametrize(
    "quantile_strategy,message",
    [("minmax", "minmax not supported yet."), ("approx_hist", "approximate histogram not supported yet.")],
)
def test_unsupported_quantile_strategies_fail_fast(quantile_strategy, message):
    ds = ramp_dataset()
    md = build_metadata(ds, Strategy(quantile_strategy=quantile_strategy))
    with pytest.raises(NotImplementedError, match=message):
        find_splits_bins(ds, md)


def test_invalid_category_value_is_rejected_when_binning():
    X = np.array([[0.0], [1.0], [3.0]])
    y = np.array([0.0, 1.0, 1.0])
    ds = PartitionedDataset.from_arrays(X, y, num_partitions=1)
    md = build_metadata(ds, Strategy(categorical_features_info={0: 3}))
    catalog = find_splits_bins(ds, md)
    with pytest.raises(ValueError):
        convert_to_tree_points(ds, catalog, md)


def test_out_of_range_label_is_rejected_when_binning():
    X = np.array([[0.0], [1.0], [2.0]])
    y = np.array([0.0, 1.0, 2.0])
    ds = PartitionedDataset.from_arrays(X, y, num_partitions=1)
    md = build_metadata(ds, Strategy())
    catalog = find_splits_bins(ds, md)
    with pytest.raises(ValueError):
        convert_to_tree_points(ds, catalog, md)
