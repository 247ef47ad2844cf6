"""Tests for the from-scratch Isolation Forest."""

import math
import threading
from datetime import datetime, timezone

import numpy as np
import pytest

from spending_anomaly.errors import InsufficientDataError, ModelNotTrainedError
from spending_anomaly.features import SpendingDataPoint
from spending_anomaly.isolation import (
    LEAF,
    IsolationForest,
    IsolationTree,
    expected_path_length,
)


# ── Fixtures ──────────────────────────────────────────────────────

CLUSTER_CENTER = np.array([500.0, 3.0, 13.0, 20.0, 40.0])
CLUSTER_SCALE = np.array([50.0, 1.0, 2.0, 3.0, 5.0])


def _make_cluster(n: int = 256, seed: int = 42) -> np.ndarray:
    """Normally distributed 5-feature sample."""
    rng = np.random.default_rng(seed)
    return rng.normal(loc=CLUSTER_CENTER, scale=CLUSTER_SCALE, size=(n, 5))


def _make_outlier(sigmas: float = 10.0) -> np.ndarray:
    return CLUSTER_CENTER + sigmas * CLUSTER_SCALE


# ── c(n) ─────────────────────────────────────────────────────────


class TestExpectedPathLength:
    def test_trivial_sizes(self):
        assert expected_path_length(0) == 0.0
        assert expected_path_length(1) == 0.0

    def test_two_points(self):
        assert expected_path_length(2) == pytest.approx(1.0)

    def test_known_value_256(self):
        expected = 2 * (math.log(255) + 0.5772156649) - 2 * 255 / 256
        assert expected_path_length(256) == pytest.approx(expected)
        assert expected_path_length(256) == pytest.approx(10.2448, abs=1e-3)

    def test_monotonic(self):
        values = [expected_path_length(n) for n in range(2, 2000)]
        assert all(b > a for a, b in zip(values, values[1:]))


# ── IsolationTree ────────────────────────────────────────────────


class TestIsolationTree:
    def test_identical_rows_make_single_leaf(self):
        data = np.tile([100.0, 1.0, 12.0, 5.0, 5.0], (20, 1))
        tree = IsolationTree().fit(data, np.random.default_rng(0))

        assert tree.node_count == 1
        assert tree.feature[0] == LEAF
        assert tree.size[0] == 20
        assert tree.path_length(data[0]) == pytest.approx(expected_path_length(20))

    def test_single_row_is_leaf(self):
        tree = IsolationTree().fit(np.array([[1.0, 2.0, 3.0, 4.0, 5.0]]), np.random.default_rng(0))
        assert tree.node_count == 1
        assert tree.path_length([9.0, 9.0, 9.0, 9.0, 9.0]) == 0.0

    def test_depth_is_bounded(self):
        tree = IsolationTree(max_depth=4).fit(_make_cluster(), np.random.default_rng(1))
        assert tree.depth.max() <= 4
        leaves = tree.feature == LEAF
        assert (tree.depth[~leaves] < 4).all()

    def test_children_partition_parent(self):
        tree = IsolationTree().fit(_make_cluster(), np.random.default_rng(2))
        internal = np.flatnonzero(tree.feature != LEAF)
        assert len(internal) > 0
        for node in internal:
            assert tree.size[tree.left[node]] + tree.size[tree.right[node]] == tree.size[node]
            assert tree.depth[tree.left[node]] == tree.depth[node] + 1

    def test_leaf_sizes_cover_sample(self):
        data = _make_cluster(100)
        tree = IsolationTree().fit(data, np.random.default_rng(3))
        assert tree.size[tree.feature == LEAF].sum() == 100

    def test_vectorised_path_lengths_match_single(self):
        data = _make_cluster(128)
        tree = IsolationTree().fit(data, np.random.default_rng(4))
        probes = np.vstack([data[:10], _make_outlier()])
        batch = tree.path_lengths(probes)
        single = [tree.path_length(p) for p in probes]
        assert batch == pytest.approx(single)

    def test_unbuilt_tree_raises(self):
        with pytest.raises(ModelNotTrainedError):
            IsolationTree().path_length([0.0] * 5)


# ── IsolationForest ──────────────────────────────────────────────


class TestIsolationForest:
    def test_scoring_before_fit_raises(self):
        forest = IsolationForest()
        assert not forest.is_fitted
        with pytest.raises(ModelNotTrainedError):
            forest.anomaly_score(CLUSTER_CENTER)

    def test_fit_builds_requested_trees(self):
        forest = IsolationForest(num_trees=25, sample_size=64)
        forest.fit(_make_cluster(300), rng=np.random.default_rng(0))
        assert forest.is_fitted
        assert forest.n_trees == 25
        assert forest.fitted_sample_size == 64

    def test_sample_size_capped_at_data_size(self):
        forest = IsolationForest(num_trees=10)
        forest.fit(_make_cluster(40), rng=np.random.default_rng(0))
        assert forest.fitted_sample_size == 40

    def test_refit_replaces_trees(self):
        forest = IsolationForest(num_trees=10)
        forest.fit(_make_cluster(50), rng=np.random.default_rng(0))
        first = forest._trees
        forest.fit(_make_cluster(50, seed=1), rng=np.random.default_rng(1))
        assert forest.n_trees == 10
        assert all(a is not b for a, b in zip(first, forest._trees))

    def test_too_little_data(self):
        with pytest.raises(InsufficientDataError):
            IsolationForest().fit(np.array([[1.0, 2.0, 3.0, 4.0, 5.0]]))

    def test_rejects_non_matrix(self):
        with pytest.raises(ValueError):
            IsolationForest().fit(np.arange(10.0))

    def test_rejects_non_finite_values(self):
        data = _make_cluster(20)
        data[3, 0] = np.inf
        with pytest.raises(ValueError):
            IsolationForest(num_trees=5).fit(data, rng=np.random.default_rng(0))

    def test_scores_are_bounded(self):
        data = _make_cluster()
        forest = IsolationForest().fit(data, rng=np.random.default_rng(0))
        probes = np.vstack([data, _make_outlier(), _make_outlier(-10), CLUSTER_CENTER])
        scores = forest.score_samples(probes)
        assert (scores > 0).all()
        assert (scores <= 1).all()

    def test_centroid_scores_below_half(self):
        data = _make_cluster()
        forest = IsolationForest().fit(data, rng=np.random.default_rng(0))
        assert forest.anomaly_score(np.median(data, axis=0)) < 0.5

    def test_injected_outlier_scores_high(self):
        data = np.vstack([_make_cluster(255), _make_outlier()])
        forest = IsolationForest().fit(data, rng=np.random.default_rng(0))
        assert forest.anomaly_score(data[-1]) > 0.6
        assert forest.anomaly_score(data[-1]) > forest.anomaly_score(np.median(data, axis=0))

    def test_held_out_outlier_stable_across_retraining(self):
        data = _make_cluster()
        outlier = _make_outlier()
        forest = IsolationForest()
        above = 0
        trials = 20
        for seed in range(trials):
            forest.fit(data, rng=np.random.default_rng(seed))
            if forest.anomaly_score(outlier) > 0.6:
                above += 1
        assert above / trials >= 0.95

    def test_same_seed_is_reproducible(self):
        data = _make_cluster()
        a = IsolationForest(num_trees=30).fit(data, rng=np.random.default_rng(7))
        b = IsolationForest(num_trees=30).fit(data, rng=np.random.default_rng(7))
        np.testing.assert_allclose(a.score_samples(data[:20]), b.score_samples(data[:20]))

    def test_accepts_data_point(self):
        data = _make_cluster()
        forest = IsolationForest(num_trees=20).fit(data, rng=np.random.default_rng(0))
        point = SpendingDataPoint(
            amount=500.0,
            category="Food",
            timestamp=datetime(2026, 3, 4, 13, 0, tzinfo=timezone.utc),
            day_of_week=3,
            hour_of_day=13,
            merchant_frequency=20,
            category_frequency=40,
        )
        assert forest.anomaly_score(point) == pytest.approx(
            forest.anomaly_score(point.as_vector())
        )


# ── Concurrent fit / score ───────────────────────────────────────


class TestConcurrentFitAndScore:
    def test_scoring_sees_complete_ensembles_while_refitting(self):
        data = _make_cluster(128)
        probes = np.vstack([data[:10], _make_outlier()])
        forest = IsolationForest(num_trees=20, sample_size=64)
        forest.fit(data, rng=np.random.default_rng(0))

        stop = threading.Event()
        errors = []

        def refit():
            seed = 1
            try:
                while not stop.is_set():
                    forest.fit(data, rng=np.random.default_rng(seed))
                    seed += 1
            except Exception as exc:
                errors.append(exc)

        trainer = threading.Thread(target=refit)
        trainer.start()
        try:
            for _ in range(200):
                scores = forest.score_samples(probes)
                assert forest.n_trees == 20
                assert scores.shape == (len(probes),)
                assert ((scores > 0) & (scores <= 1)).all()
        finally:
            stop.set()
            trainer.join(timeout=30)

        assert not trainer.is_alive()
        assert errors == []
