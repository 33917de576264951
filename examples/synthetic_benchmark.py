"""Benchmark binforest against scikit-learn forests on synthetic data."""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List

import numpy as np
from sklearn.datasets import make_classification
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score
from sklearn.model_selection import train_test_split

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from binforest.config import Strategy
from binforest.core.dataset import PartitionedDataset
from binforest.forest import RandomForest


N_SAMPLES = 4000
N_FEATURES = 20
N_CLASSES = 3
SEED = 123

N_TREES = 20
MAX_DEPTH = 6
MAX_BINS = 32
N_PARTITIONS = 8
N_WORKERS = 4


@dataclass
class BenchmarkResult:
    name: str
    fit_time: float
    predict_time: float
    accuracy: float
    groups: int = 0


def generate_data() -> tuple[np.ndarray, np.ndarray]:
    X, y = make_classification(
        n_samples=N_SAMPLES,
        n_features=N_FEATURES,
        n_informative=8,
        n_classes=N_CLASSES,
        random_state=SEED,
    )
    return X.astype(np.float64), y.astype(np.float64)


def benchmark(
    name: str,
    fit_fn: Callable[[], int],
    predict_fn: Callable[[], np.ndarray],
    y_true: np.ndarray,
) -> BenchmarkResult:
    """Measure fit/predict time and compute accuracy."""
    t0 = time.perf_counter()
    groups = fit_fn()
    fit_time = time.perf_counter() - t0

    t1 = time.perf_counter()
    preds = predict_fn()
    predict_time = time.perf_counter() - t1
    return BenchmarkResult(name, fit_time, predict_time, accuracy_score(y_true, preds), groups)


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    X, y = generate_data()
    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.25, random_state=SEED)
    dataset = PartitionedDataset.from_arrays(
        X_train, y_train, N_PARTITIONS, num_workers=N_WORKERS
    )

    results: List[BenchmarkResult] = []
    for memory_mb in (1, 256):
        strategy = Strategy(
            num_classes=N_CLASSES,
            max_depth=MAX_DEPTH,
            max_bins=MAX_BINS,
            max_memory_in_mb=memory_mb,
        )
        forest = RandomForest(strategy, num_trees=N_TREES, seed=SEED)
        holder = {}

        def fit_binforest() -> int:
            holder["model"] = forest.train(dataset)
            return len(forest.group_logs)

        results.append(
            benchmark(
                f"binforest ({memory_mb} MB)",
                fit_binforest,
                lambda: holder["model"].predict_many(X_test),
                y_test,
            )
        )

    sk_model = RandomForestClassifier(
        n_estimators=N_TREES, max_depth=MAX_DEPTH, max_features="sqrt", random_state=SEED
    )

    def fit_sklearn() -> int:
        sk_model.fit(X_train, y_train)
        return 0

    results.append(benchmark("sklearn", fit_sklearn, lambda: sk_model.predict(X_test), y_test))

    print(f"{'model':<22}{'fit s':>10}{'predict s':>12}{'accuracy':>10}{'groups':>8}")
    for res in results:
        print(
            f"{res.name:<22}{res.fit_time:>10.2f}{res.predict_time:>12.2f}"
            f"{res.accuracy:>10.3f}{res.groups:>8}"
        )


if __name__ == "__main__":
    main()
