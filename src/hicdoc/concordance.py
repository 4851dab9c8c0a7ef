"""Concordance: bounded confidence of a row in its closer centroid.

For a row *v* and centroids *c1*, *c2* the log distance ratio

    ratio(v) = log((‖v − c1‖ + ε) / (‖v − c2‖ + ε)),   ε = ‖c1 − c2‖ · 1e-10

is most negative at *c1* and most positive at *c2*.  Rescaling it
linearly so that ``ratio(c1) → −1`` and ``ratio(c2) → +1`` gives the
concordance.  Rows far beyond either centroid are clipped to ±1.

The raw sign says nothing about which cluster id is "right"; the
harmonizer and classifier flip it later so that, in the final tables,
positive means "closer to the A centroid".
"""

from __future__ import annotations

import numpy as np
from scipy.spatial.distance import cdist

__all__ = [
    "centroid_distances",
    "distance_ratio",
    "concordance_scores",
]

EPSILON_SCALE: float = 1e-10


def centroid_distances(matrix: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Euclidean distance of every row to every centroid, shape (N, k)."""
    x = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    return cdist(x, np.asarray(centroids, dtype=np.float64), "euclidean")


def distance_ratio(vectors: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Log ratio of distances to the first and second centroid."""
    c = np.asarray(centroids, dtype=np.float64)
    eps = float(np.linalg.norm(c[0] - c[1])) * EPSILON_SCALE
    d = centroid_distances(vectors, c[:2])
    return np.log((d[:, 0] + eps) / (d[:, 1] + eps))


def concordance_scores(matrix: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Concordance of every row, in [-1, 1].

    Identical (or numerically indistinguishable) centroids carry no
    information; every row then scores 0.
    """
    c = np.asarray(centroids, dtype=np.float64)
    x = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    if not np.any(c[0] != c[1]):
        return np.zeros(x.shape[0])
    low, high = distance_ratio(c[:2], c)
    if not np.isfinite(high - low) or high <= low:
        return np.zeros(x.shape[0])
    scores = 2.0 * (distance_ratio(x, c) - low) / (high - low) - 1.0
    return np.clip(scores, -1.0, 1.0)
