"""Constrained k-means over replicate interaction profiles.

Plain k-means assigns rows independently.  Here rows come in *must-link
groups* (the same genomic position seen in several replicates) and each
group is assigned as a whole: for every cluster the group's cost is the
sum of its members' squared distances to the centroid, and the whole
group goes to the cheapest cluster.  Centroids are then the mean of all
rows assigned to them, exactly as in Lloyd's algorithm.

The objective is non-convex, so the engine runs several independent
restarts and keeps the one with the smallest inertia (total
within-cluster squared distance).

Randomness
----------
Every restart draws from its own generator spawned from a single
:class:`numpy.random.SeedSequence`.  A restart that ends an assignment
step with an empty cluster is re-initialised from a further spawned
generator, up to ``max_attempts`` times.  Results therefore depend only
on ``seed``.

Usage
-----
>>> result = constrained_kmeans(unit.matrix, unit.must_link,
...                             delta=1e-4, max_iterations=50,
...                             restarts=20, seed=42)
>>> result.labels          # 1-based cluster id per row
>>> result.centroids       # (2, n_columns)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from .errors import ClusteringFailure, InputError

logger = logging.getLogger(__name__)

__all__ = [
    "ClusteringResult",
    "constrained_kmeans",
]


# ═══════════════════════════════════════════════════════════════════
# ClusteringResult
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class ClusteringResult:
    """Best restart of a constrained k-means run.

    Attributes
    ----------
    labels : np.ndarray
        1-based cluster id of every row.
    group_labels : np.ndarray
        1-based cluster id of every must-link group, in input order.
    centroids : np.ndarray
        ``(n_clusters, n_columns)`` mean profiles.
    inertia : float
        Sum of squared distances of rows to their cluster centroid.
    restart : int
        Index of the selected restart.
    iterations : int
        Assignment/update rounds run by the selected restart.
    converged : bool
        False if the selected restart stopped on ``max_iterations``.
    """

    labels: np.ndarray = field(repr=False)
    group_labels: np.ndarray = field(repr=False)
    centroids: np.ndarray = field(repr=False)
    inertia: float
    restart: int
    iterations: int
    converged: bool

    @property
    def n_clusters(self) -> int:
        return int(self.centroids.shape[0])

    def cluster_sizes(self) -> Tuple[int, ...]:
        """Number of rows in each cluster (1..k)."""
        return tuple(
            int(np.sum(self.labels == c)) for c in range(1, self.n_clusters + 1)
        )

    def summary(self) -> str:
        sizes = "/".join(str(s) for s in self.cluster_sizes())
        state = "converged" if self.converged else "max-iter"
        return (
            f"ClusteringResult(k={self.n_clusters}, sizes={sizes}, "
            f"inertia={self.inertia:.4g}, restart={self.restart}, "
            f"iterations={self.iterations}, {state})"
        )


@dataclass
class _Run:
    labels: np.ndarray
    group_labels: np.ndarray
    centroids: np.ndarray
    inertia: float
    iterations: int
    converged: bool


# ═══════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════

def constrained_kmeans(
    matrix: np.ndarray,
    must_link: Sequence[Sequence[int]],
    *,
    delta: float,
    max_iterations: int,
    restarts: int,
    seed: int,
    n_clusters: int = 2,
    max_attempts: int = 10,
    chromosome: Any = None,
    condition: Any = None,
) -> ClusteringResult:
    """Cluster rows into *n_clusters* groups without splitting must-links.

    Parameters
    ----------
    matrix : array-like, shape (N, M)
        Finite values only.
    must_link : sequence of index sequences
        Must partition ``range(N)``: every row in exactly one group.
    delta : float
        Stop once no centroid moves further than this (euclidean).
    max_iterations : int
        Hard cap on assignment/update rounds per restart.
    restarts : int
        Independent initialisations; the lowest-inertia one wins,
        the earliest on ties.
    seed : int
        Root of every random draw.
    n_clusters : int
    max_attempts : int
        Re-initialisations allowed per restart after an empty cluster.
    chromosome, condition : optional
        Unit identity, used only in error messages and logs.

    Raises
    ------
    InputError
        Non-finite values, bad shapes, groups that do not partition the
        rows, or fewer groups than clusters.
    ClusteringFailure
        A restart still left a cluster empty after ``max_attempts``.
    """
    where = dict(chromosome=chromosome, condition=condition)
    x = np.asarray(matrix, dtype=np.float64)
    if x.ndim != 2 or x.shape[0] == 0:
        raise InputError(f"expected a non-empty 2-D matrix, got shape {x.shape}",
                         **where)
    if not np.all(np.isfinite(x)):
        raise InputError("matrix contains NaN or infinite values", **where)
    if n_clusters < 1:
        raise InputError(f"n_clusters must be positive, got {n_clusters}",
                         **where)
    if restarts < 1 or max_iterations < 1 or max_attempts < 1:
        raise InputError("restarts, max_iterations and max_attempts "
                         "must be positive", **where)

    row_group = _row_groups(must_link, x.shape[0], where)
    n_groups = int(row_group.max()) + 1
    if n_groups < n_clusters:
        raise InputError(
            f"{n_groups} must-link groups for {n_clusters} clusters", **where)

    group_means = np.zeros((n_groups, x.shape[1]))
    np.add.at(group_means, row_group, x)
    group_means /= np.bincount(row_group, minlength=n_groups)[:, None]

    best: Optional[_Run] = None
    best_restart = -1
    for r, restart_seq in enumerate(np.random.SeedSequence(seed).spawn(restarts)):
        run = None
        for attempt_seq in restart_seq.spawn(max_attempts):
            rng = np.random.default_rng(attempt_seq)
            run = _single_run(x, row_group, group_means, n_clusters,
                              delta, max_iterations, rng)
            if run is not None:
                break
        if run is None:
            raise ClusteringFailure(
                f"restart {r} left a cluster empty after "
                f"{max_attempts} attempts", **where)
        logger.debug(
            "restart %d: inertia=%.6g iterations=%d converged=%s",
            r, run.inertia, run.iterations, run.converged)
        if best is None or run.inertia < best.inertia:
            best = run
            best_restart = r

    return ClusteringResult(
        labels=best.labels + 1,
        group_labels=best.group_labels + 1,
        centroids=best.centroids,
        inertia=float(best.inertia),
        restart=best_restart,
        iterations=best.iterations,
        converged=best.converged,
    )


def _row_groups(must_link, n_rows: int, where) -> np.ndarray:
    """Map each row to its group index, checking the partition."""
    row_group = np.full(n_rows, -1, dtype=np.int64)
    for g, members in enumerate(must_link):
        idx = np.asarray(members, dtype=np.int64).ravel()
        if idx.size == 0:
            raise InputError(f"must-link group {g} is empty", **where)
        if idx.min() < 0 or idx.max() >= n_rows:
            raise InputError(
                f"must-link group {g} refers to rows outside 0..{n_rows - 1}",
                **where)
        if np.any(row_group[idx] != -1) or len(np.unique(idx)) != idx.size:
            raise InputError(
                f"must-link group {g} overlaps another group", **where)
        row_group[idx] = g
    if np.any(row_group == -1):
        raise InputError(
            f"{int(np.sum(row_group == -1))} rows belong to no must-link group",
            **where)
    return row_group


def _initial_centroids(
    group_means: np.ndarray, k: int, rng: np.random.Generator,
) -> np.ndarray:
    """k-means++ seeding over group mean profiles."""
    n = group_means.shape[0]
    chosen = [int(rng.integers(n))]
    while len(chosen) < k:
        d2 = cdist(group_means, group_means[chosen], "sqeuclidean").min(axis=1)
        d2[chosen] = 0.0
        total = d2.sum()
        if total > 0:
            nxt = int(rng.choice(n, p=d2 / total))
        else:
            remaining = np.setdiff1d(np.arange(n), chosen)
            nxt = int(rng.choice(remaining))
        chosen.append(nxt)
    return group_means[chosen].copy()


def _assign(
    x: np.ndarray, row_group: np.ndarray, n_groups: int, centroids: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    row_cost = cdist(x, centroids, "sqeuclidean")
    group_cost = np.zeros((n_groups, centroids.shape[0]))
    np.add.at(group_cost, row_group, row_cost)
    # argmin keeps the first minimum: ties go to the lower cluster id
    group_labels = np.argmin(group_cost, axis=1)
    return group_labels, group_labels[row_group]


def _single_run(
    x: np.ndarray,
    row_group: np.ndarray,
    group_means: np.ndarray,
    k: int,
    delta: float,
    max_iterations: int,
    rng: np.random.Generator,
) -> Optional[_Run]:
    """One restart.  Returns None when a cluster empties out."""
    n_groups = group_means.shape[0]
    centroids = _initial_centroids(group_means, k, rng)
    converged = False
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        group_labels, labels = _assign(x, row_group, n_groups, centroids)
        counts = np.bincount(labels, minlength=k)
        if np.any(counts == 0):
            return None
        updated = np.vstack([x[labels == c].mean(axis=0) for c in range(k)])
        shift = np.max(np.linalg.norm(updated - centroids, axis=1))
        centroids = updated
        if shift < delta:
            converged = True
            break

    inertia = float(np.sum((x - centroids[labels]) ** 2))
    return _Run(
        labels=labels,
        group_labels=group_labels,
        centroids=centroids,
        inertia=inertia,
        iterations=iterations,
        converged=converged,
    )
