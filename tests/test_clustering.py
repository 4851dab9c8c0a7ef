"""Tests for the constrained k-means engine."""

import numpy as np
import pytest

from hicdoc.clustering import ClusteringResult, constrained_kmeans
from hicdoc.errors import ClusteringFailure, InputError


KMEANS = dict(delta=1e-4, max_iterations=50, restarts=10)


def _blocks(n_per=5, n_replicates=2, gap=4.0, noise=0.3, seed=0):
    """Two well-separated row populations, stacked per replicate."""
    rng = np.random.default_rng(seed)
    n = 2 * n_per
    profile = np.zeros((n, n))
    profile[:n_per, :n_per] = gap
    profile[n_per:, n_per:] = gap
    rows = [profile + rng.normal(0, noise, size=profile.shape)
            for _ in range(n_replicates)]
    matrix = np.vstack(rows)
    must_link = [np.arange(n_replicates) * n + i for i in range(n)]
    return matrix, must_link


# ═══════════════════════════════════════════════════════════════════
# Clustering behaviour
# ═══════════════════════════════════════════════════════════════════

class TestConstrainedKMeans:

    def test_recovers_blocks(self):
        matrix, must_link = _blocks()
        result = constrained_kmeans(matrix, must_link, seed=1, **KMEANS)
        g = result.group_labels
        assert len(set(g[:5])) == 1
        assert len(set(g[5:])) == 1
        assert g[0] != g[5]
        assert result.converged

    def test_labels_are_one_based(self):
        matrix, must_link = _blocks()
        result = constrained_kmeans(matrix, must_link, seed=1, **KMEANS)
        assert set(np.unique(result.labels)) == {1, 2}
        assert result.centroids.shape == (2, matrix.shape[1])
        assert result.n_clusters == 2

    def test_must_link_never_split(self):
        rng = np.random.default_rng(7)
        matrix = rng.normal(size=(30, 6))
        must_link = [np.array([i, i + 10, i + 20]) for i in range(10)]
        result = constrained_kmeans(matrix, must_link, seed=3, **KMEANS)
        for g, members in enumerate(must_link):
            assert set(result.labels[members]) == {result.group_labels[g]}

    def test_same_seed_bit_identical(self):
        rng = np.random.default_rng(11)
        matrix = rng.normal(size=(24, 8))
        must_link = [np.array([i, i + 12]) for i in range(12)]
        a = constrained_kmeans(matrix, must_link, seed=42, **KMEANS)
        b = constrained_kmeans(matrix, must_link, seed=42, **KMEANS)
        np.testing.assert_array_equal(a.labels, b.labels)
        np.testing.assert_array_equal(a.centroids, b.centroids)
        assert a.inertia == b.inertia
        assert a.restart == b.restart

    def test_inertia_is_within_cluster_sum_of_squares(self):
        matrix, must_link = _blocks()
        result = constrained_kmeans(matrix, must_link, seed=5, **KMEANS)
        expected = sum(
            np.sum((matrix[result.labels == c] - result.centroids[c - 1]) ** 2)
            for c in (1, 2))
        assert result.inertia == pytest.approx(expected)

    def test_centroids_are_member_means(self):
        matrix, must_link = _blocks()
        result = constrained_kmeans(matrix, must_link, seed=5, **KMEANS)
        for c in (1, 2):
            np.testing.assert_allclose(
                result.centroids[c - 1], matrix[result.labels == c].mean(axis=0))

    def test_more_restarts_never_worse(self):
        rng = np.random.default_rng(2)
        matrix = rng.normal(size=(20, 5))
        must_link = [[i] for i in range(20)]
        one = constrained_kmeans(matrix, must_link, seed=9, delta=1e-4,
                                 max_iterations=50, restarts=1)
        many = constrained_kmeans(matrix, must_link, seed=9, delta=1e-4,
                                  max_iterations=50, restarts=15)
        assert many.inertia <= one.inertia

    def test_iteration_cap(self):
        matrix, must_link = _blocks(noise=2.0)
        result = constrained_kmeans(matrix, must_link, seed=1, delta=1e-12,
                                    max_iterations=1, restarts=2)
        assert result.iterations == 1
        assert not result.converged

    def test_summary(self):
        matrix, must_link = _blocks()
        result = constrained_kmeans(matrix, must_link, seed=1, **KMEANS)
        assert isinstance(result, ClusteringResult)
        assert "k=2" in result.summary()
        assert sum(result.cluster_sizes()) == matrix.shape[0]


# ═══════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════

class TestFailures:

    def test_identical_rows_fail(self):
        matrix = np.ones((6, 3))
        must_link = [[i] for i in range(6)]
        with pytest.raises(ClusteringFailure, match="empty"):
            constrained_kmeans(matrix, must_link, seed=0, max_attempts=3,
                               chromosome="chr1", condition="C1", **KMEANS)

    def test_nan_rejected(self):
        matrix = np.ones((4, 2))
        matrix[1, 1] = np.nan
        with pytest.raises(InputError, match="NaN"):
            constrained_kmeans(matrix, [[i] for i in range(4)], seed=0, **KMEANS)

    def test_overlapping_groups_rejected(self):
        matrix = np.eye(4)
        with pytest.raises(InputError, match="overlaps"):
            constrained_kmeans(matrix, [[0, 1], [1, 2], [3]], seed=0, **KMEANS)

    def test_uncovered_rows_rejected(self):
        matrix = np.eye(4)
        with pytest.raises(InputError, match="no must-link group"):
            constrained_kmeans(matrix, [[0, 1], [2]], seed=0, **KMEANS)

    def test_out_of_range_group_rejected(self):
        matrix = np.eye(3)
        with pytest.raises(InputError, match="outside"):
            constrained_kmeans(matrix, [[0], [1], [2, 5]], seed=0, **KMEANS)

    def test_fewer_groups_than_clusters(self):
        matrix = np.eye(4)
        with pytest.raises(InputError, match="1 must-link groups"):
            constrained_kmeans(matrix, [[0, 1, 2, 3]], seed=0, **KMEANS)

    def test_error_carries_unit(self):
        with pytest.raises(InputError) as info:
            constrained_kmeans(np.eye(2), [[0, 1]], seed=0,
                               chromosome="chr3", condition="WT", **KMEANS)
        assert info.value.chromosome == "chr3"
        assert str(info.value).startswith("chromosome chr3, condition WT")
