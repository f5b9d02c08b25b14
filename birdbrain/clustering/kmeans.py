"""
k-means clustering over post embeddings.

Lloyd's algorithm with k-means++ seeding and Euclidean distance. Randomness
(seeding and empty-cluster reseeding) is drawn from an injectable
``numpy.random.Generator`` so tests can pin a seed; production code shares
one process-wide generator.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from birdbrain.exceptions import DimensionMismatchError

logger = logging.getLogger(__name__)

PointsLike = Union[np.ndarray, Sequence[Sequence[float]]]

_DEFAULT_RNG = np.random.default_rng()


@dataclass
class ClusterResult:
    """
    Outcome of one clustering run.

    Attributes:
        assignments: Cluster id per input point, shape (N,)
        centroids: One centroid per cluster id, shape (k, D). Holds only N
            rows when fewer points than clusters were supplied.
        iterations: Lloyd iterations executed (0 for empty input)
    """

    assignments: np.ndarray
    centroids: np.ndarray
    iterations: int

    @property
    def k(self) -> int:
        return int(self.centroids.shape[0])

    def members(self, cluster_id: int) -> np.ndarray:
        """Indices of the points assigned to ``cluster_id``, in input order."""
        return np.flatnonzero(self.assignments == cluster_id)


def as_matrix(points: PointsLike) -> np.ndarray:
    """
    Stack points into an (N, D) float matrix.

    Raises:
        DimensionMismatchError: If the points do not all share one dimension
    """
    if isinstance(points, np.ndarray):
        if points.ndim >= 1 and points.shape[0] == 0:
            return np.zeros((0, 0), dtype=np.float64)
        if points.ndim != 2:
            raise ValueError(f"Expected a 2-D array of points, got {points.ndim}-D")
        return points.astype(np.float64, copy=False)

    if len(points) == 0:
        return np.zeros((0, 0), dtype=np.float64)

    expected = len(points[0])
    for i, point in enumerate(points):
        if len(point) != expected:
            raise DimensionMismatchError(expected, len(point), context=f"point {i}")
    return np.asarray(points, dtype=np.float64)


def squared_distances(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Squared Euclidean distance from every point to every centroid, shape (N, k)."""
    diff = points[:, None, :] - centroids[None, :, :]
    return np.einsum("nkd,nkd->nk", diff, diff)


def _init_centroids(points: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """k-means++ seeding: sample each new centroid proportionally to D(x)^2."""
    n_samples = points.shape[0]
    centroids = np.empty((k, points.shape[1]), dtype=np.float64)
    centroids[0] = points[rng.integers(0, n_samples)]

    closest = np.sum((points - centroids[0]) ** 2, axis=1)
    for c in range(1, k):
        idx = None
        total = float(closest.sum())
        if total > 0:
            r = rng.random() * total
            hits = np.flatnonzero(np.cumsum(closest) > r)
            if hits.size:
                idx = int(hits[0])
        if idx is None:
            # Rounding left the wheel without a winner
            idx = int(rng.integers(0, n_samples))
        centroids[c] = points[idx]
        closest = np.minimum(closest, np.sum((points - centroids[c]) ** 2, axis=1))

    return centroids


def cluster(
    points: PointsLike,
    k: int,
    max_iterations: int = 100,
    rng: Optional[np.random.Generator] = None,
) -> ClusterResult:
    """
    Partition points into k clusters.

    Args:
        points: N vectors sharing one dimension D (may be empty)
        k: Number of clusters, >= 1
        max_iterations: Upper bound on Lloyd iterations
        rng: Random source for seeding and reseeding

    Returns:
        ClusterResult. With k >= N every point is its own cluster.

    Raises:
        ValueError: If k or max_iterations is below 1
        DimensionMismatchError: If the points disagree on dimension
    """
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

    rng = rng if rng is not None else _DEFAULT_RNG
    X = as_matrix(points)
    n_samples = X.shape[0]

    if n_samples == 0:
        return ClusterResult(
            assignments=np.zeros(0, dtype=int),
            centroids=np.zeros((0, 0), dtype=np.float64),
            iterations=0,
        )

    if k >= n_samples:
        logger.debug(f"k={k} >= {n_samples} points, using singleton clusters")
        return ClusterResult(
            assignments=np.arange(n_samples, dtype=int),
            centroids=X.copy(),
            iterations=1,
        )

    centroids = _init_centroids(X, k, rng)
    assignments = np.full(n_samples, -1, dtype=int)

    iterations = 0
    for iterations in range(1, max_iterations + 1):
        # argmin keeps the lowest cluster id on ties
        new_assignments = np.argmin(squared_distances(X, centroids), axis=1)
        changed = not np.array_equal(new_assignments, assignments)
        assignments = new_assignments

        for c in range(k):
            mask = assignments == c
            if np.any(mask):
                centroids[c] = X[mask].mean(axis=0)
            else:
                centroids[c] = X[rng.integers(0, n_samples)]
                logger.debug(f"Iteration {iterations}: reseeded empty cluster {c}")

        if not changed:
            break

    logger.debug(f"k-means finished: k={k}, n={n_samples}, iterations={iterations}")

    return ClusterResult(assignments=assignments, centroids=centroids, iterations=iterations)


def inertia(points: PointsLike, result: ClusterResult) -> float:
    """Sum of squared distances from each point to its assigned centroid."""
    X = as_matrix(points)
    if X.shape[0] == 0:
        return 0.0
    diff = X - result.centroids[result.assignments]
    return float(np.sum(diff * diff))
