import numpy as np
import pandas as pd
import pytest

from binforest.core.dataset import PartitionedDataset
from binforest.data import LabeledPoint


def _append(acc, item):
    acc.append(item)
    return acc


def _concat(a, b):
    return a + b


def test_from_items_preserves_order_across_partitions():
    ds = PartitionedDataset.from_items(range(10), num_partitions=3)
    assert ds.num_partitions == 3
    assert ds.count() == 10
    assert ds.collect() == list(range(10))
    assert ds.first() == 0


def test_first_on_empty_dataset_raises():
    ds = PartitionedDataset([[], []])
    assert ds.count() == 0
    with pytest.raises(ValueError):
        ds.first()


@pytest.mark.parametrize("num_partitions", [1, 2, 3, 7])
@pytest.mark.parametrize("num_workers", [1, 4])
def test_tree_aggregate_is_independent_of_partitioning(num_partitions, num_workers):
    values = np.arange(50, dtype=np.float64)
    ds = PartitionedDataset.from_items(values, num_partitions, num_workers=num_workers)
    total = ds.tree_aggregate(0.0, lambda acc, v: acc + v, lambda a, b: a + b)
    assert total == pytest.approx(values.sum())


def test_tree_aggregate_copies_zero_value_per_partition():
    zero: list = []
    ds = PartitionedDataset.from_items(range(6), num_partitions=3)
    result = ds.tree_aggregate(zero, _append, _concat)
    assert zero == []
    assert sorted(result) == list(range(6))


def test_tree_aggregate_on_no_partitions_returns_zero_copy():
    zero = [1]
    result = PartitionedDataset([]).tree_aggregate(zero, _append, _concat)
    assert result == [1]
    assert result is not zero


def test_sample_is_seeded_subset():
    ds = PartitionedDataset.from_items(range(1000), num_partitions=4)
    first = ds.sample(0.1, seed=3)
    second = ds.sample(0.1, seed=3)
    assert first == second
    assert set(first) <= set(range(1000))
    assert 0 < len(first) < 1000
    assert ds.sample(1.0) == list(range(1000))


def test_map_partitions_keeps_partition_boundaries():
    ds = PartitionedDataset.from_items(range(8), num_partitions=2, num_workers=2)
    doubled = ds.map_partitions(lambda part: [2 * v for v in part])
    assert doubled.partitions == [[0, 2, 4, 6], [8, 10, 12, 14]]
    assert doubled.num_workers == 2


def test_from_arrays_accepts_dataframe():
    X = np.arange(12, dtype=np.float64).reshape(6, 2)
    df = pd.DataFrame(X, columns=["a", "b"])
    y = np.array([0, 1, 0, 1, 0, 1])
    ds = PartitionedDataset.from_arrays(df, y, num_partitions=2)
    points = ds.collect()
    assert len(points) == 6
    assert isinstance(points[0], LabeledPoint)
    np.testing.assert_allclose(points[3].features, [6.0, 7.0])
    assert points[3].label == 1.0


def test_from_arrays_validates_shapes():
    with pytest.raises(ValueError):
        PartitionedDataset.from_arrays(np.zeros(4), np.zeros(4))
    with pytest.raises(ValueError):
        PartitionedDataset.from_arrays(np.zeros((4, 2)), np.zeros(3))
    with pytest.raises(ValueError):
        PartitionedDataset.from_items([1, 2], num_partitions=0)
