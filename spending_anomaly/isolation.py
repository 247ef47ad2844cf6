"""
Isolation Forest built from scratch on numpy.

Trees are stored as flat node arenas (parallel arrays indexed by node id)
and built with an explicit work stack.  Features are addressed by column
index into a fixed-order feature matrix (see :class:`spending_anomaly.features.Feature`).

Scores follow Liu, Ting & Zhou (2008)::

    s(x, n) = 2 ** (-E[h(x)] / c(n))

where ``h(x)`` is the path length of ``x`` in a tree and ``c(n)`` the
average path length of an unsuccessful BST search over ``n`` points.
Scores near 1 are strong outliers, around 0.5 typical, well below 0.5
very normal.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Optional

import numpy as np

from spending_anomaly.errors import InsufficientDataError, ModelNotTrainedError
from spending_anomaly.features import SpendingDataPoint

logger = logging.getLogger("isolation")

EULER_GAMMA = 0.5772156649
LEAF = -1


def expected_path_length(n: int) -> float:
    """c(n): expected path length of a BST built from ``n`` unsorted points."""
    if n <= 1:
        return 0.0
    if n == 2:
        return 1.0
    return 2.0 * (math.log(n - 1) + EULER_GAMMA) - 2.0 * (n - 1) / n


class IsolationTree:
    """A single randomized partition tree.

    Node ``i`` is internal when ``feature[i] >= 0``; it routes a point left
    when ``point[feature[i]] < threshold[i]`` and right otherwise.  Leaves keep
    the number of training points that reached them and their depth.
    """

    def __init__(self, max_depth: int = 10):
        self.max_depth = max_depth
        self._reset()

    def _reset(self) -> None:
        self.feature = np.empty(0, dtype=np.int64)
        self.threshold = np.empty(0, dtype=np.float64)
        self.left = np.empty(0, dtype=np.int64)
        self.right = np.empty(0, dtype=np.int64)
        self.size = np.empty(0, dtype=np.int64)
        self.depth = np.empty(0, dtype=np.int64)
        self._leaf_path = np.empty(0, dtype=np.float64)

    @property
    def node_count(self) -> int:
        return len(self.feature)

    @property
    def is_built(self) -> bool:
        return self.node_count > 0

    def fit(self, data: np.ndarray, rng: np.random.Generator) -> "IsolationTree":
        """Build the tree over the rows of ``data``."""
        data = np.asarray(data, dtype=np.float64)
        n_features = data.shape[1]

        feature: list[int] = []
        threshold: list[float] = []
        left: list[int] = []
        right: list[int] = []
        size: list[int] = []
        depth: list[int] = []

        def add_node(n_rows: int, node_depth: int) -> int:
            feature.append(LEAF)
            threshold.append(0.0)
            left.append(LEAF)
            right.append(LEAF)
            size.append(n_rows)
            depth.append(node_depth)
            return len(feature) - 1

        root = add_node(len(data), 0)
        stack = [(root, np.arange(len(data)))]
        while stack:
            node, rows = stack.pop()
            node_depth = depth[node]
            if len(rows) <= 1 or node_depth >= self.max_depth:
                continue

            column = int(rng.integers(n_features))
            values = data[rows, column]
            lo, hi = values.min(), values.max()
            if lo == hi:
                # Chosen feature cannot separate these rows
                continue

            split = float(rng.uniform(lo, hi))
            goes_left = values < split
            left_rows, right_rows = rows[goes_left], rows[~goes_left]

            feature[node] = column
            threshold[node] = split
            left[node] = add_node(len(left_rows), node_depth + 1)
            right[node] = add_node(len(right_rows), node_depth + 1)
            stack.append((right[node], right_rows))
            stack.append((left[node], left_rows))

        self.feature = np.asarray(feature, dtype=np.int64)
        self.threshold = np.asarray(threshold, dtype=np.float64)
        self.left = np.asarray(left, dtype=np.int64)
        self.right = np.asarray(right, dtype=np.int64)
        self.size = np.asarray(size, dtype=np.int64)
        self.depth = np.asarray(depth, dtype=np.int64)
        # depth + c(size), only meaningful on leaves
        self._leaf_path = self.depth + np.array(
            [expected_path_length(int(n)) for n in self.size], dtype=np.float64
        )
        return self

    def path_length(self, point) -> float:
        """Edges from the root to ``point``'s leaf, plus ``c(leaf size)``."""
        if not self.is_built:
            raise ModelNotTrainedError("isolation tree has not been built")
        point = np.asarray(point, dtype=np.float64)
        node = 0
        while self.feature[node] != LEAF:
            if point[self.feature[node]] < self.threshold[node]:
                node = self.left[node]
            else:
                node = self.right[node]
        return float(self._leaf_path[node])

    def path_lengths(self, points: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`path_length` over the rows of ``points``."""
        if not self.is_built:
            raise ModelNotTrainedError("isolation tree has not been built")
        points = np.asarray(points, dtype=np.float64)
        nodes = np.zeros(len(points), dtype=np.int64)
        rows = np.arange(len(points))
        for _ in range(self.max_depth):
            active = self.feature[nodes] != LEAF
            if not active.any():
                break
            current = nodes[active]
            columns = self.feature[current]
            goes_left = points[rows[active], columns] < self.threshold[current]
            nodes[active] = np.where(goes_left, self.left[current], self.right[current])
        return self._leaf_path[nodes]


class IsolationForest:
    """Ensemble of :class:`IsolationTree` trained on bootstrap samples.

    ``fit`` builds a complete new ensemble and swaps it in under a lock, so
    scoring calls always see either the old or the new ensemble, never a
    partial one.

    Args:
        num_trees: Number of trees in the ensemble.
        sample_size: Rows drawn (with replacement) per tree; capped at the
            size of the training data.
        max_depth: Depth at which tree growth stops.
    """

    def __init__(self, num_trees: int = 100, sample_size: int = 256, max_depth: int = 10):
        if num_trees < 1:
            raise ValueError("num_trees must be >= 1")
        if sample_size < 2:
            raise ValueError("sample_size must be >= 2")
        self.num_trees = num_trees
        self.sample_size = sample_size
        self.max_depth = max_depth
        self._lock = threading.Lock()
        self._trees: tuple[IsolationTree, ...] = ()
        self._fitted_sample_size = 0

    @property
    def is_fitted(self) -> bool:
        return len(self._trees) > 0

    @property
    def n_trees(self) -> int:
        return len(self._trees)

    @property
    def fitted_sample_size(self) -> int:
        return self._fitted_sample_size

    def fit(self, data, rng: Optional[np.random.Generator] = None) -> "IsolationForest":
        """Replace the ensemble with ``num_trees`` trees built on ``data``.

        Args:
            data: ``(n_samples, n_features)`` matrix.
            rng: Random source for bootstrap sampling, feature and threshold
                choice.  Defaults to a fresh, OS-seeded generator.

        Raises:
            InsufficientDataError: fewer than two rows.
            ValueError: ``data`` is not a 2-D matrix or holds non-finite values.
        """
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2:
            raise ValueError(f"expected a 2-D feature matrix, got shape {data.shape}")
        if not np.isfinite(data).all():
            raise ValueError("feature matrix contains NaN or infinite values")
        if len(data) < 2:
            raise InsufficientDataError(available=len(data), required=2)

        rng = rng if rng is not None else np.random.default_rng()
        sample_size = min(self.sample_size, len(data))

        trees = []
        for _ in range(self.num_trees):
            rows = rng.integers(0, len(data), size=sample_size)
            trees.append(IsolationTree(self.max_depth).fit(data[rows], rng))

        with self._lock:
            self._trees = tuple(trees)
            self._fitted_sample_size = sample_size

        logger.debug(
            "Fitted %d trees on %d rows (sample_size=%d)",
            len(trees), len(data), sample_size,
        )
        return self

    def _snapshot(self) -> tuple[tuple[IsolationTree, ...], int]:
        with self._lock:
            trees, sample_size = self._trees, self._fitted_sample_size
        if not trees:
            raise ModelNotTrainedError("isolation forest has not been fitted")
        return trees, sample_size

    def score_samples(self, points) -> np.ndarray:
        """Anomaly scores in ``(0, 1]`` for each row of ``points``.

        Raises:
            ModelNotTrainedError: ``fit`` has not completed yet.
        """
        trees, sample_size = self._snapshot()
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        mean_path = np.mean([tree.path_lengths(points) for tree in trees], axis=0)
        return np.power(2.0, -mean_path / expected_path_length(sample_size))

    def anomaly_score(self, point) -> float:
        """Anomaly score of a single feature vector or :class:`SpendingDataPoint`."""
        if isinstance(point, SpendingDataPoint):
            point = point.as_vector()
        return float(self.score_samples(point)[0])
