"""
Automatic choice of k via the elbow of the inertia curve.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from birdbrain.clustering.kmeans import PointsLike, as_matrix, cluster, inertia

logger = logging.getLogger(__name__)

DEFAULT_K = 2


def inertia_curve(
    points: PointsLike,
    max_k: int,
    max_iterations: int = 50,
    rng: Optional[np.random.Generator] = None,
) -> List[float]:
    """Inertia of a clustering run for every k in 1..max_k."""
    X = as_matrix(points)
    curve = []
    for k in range(1, max_k + 1):
        result = cluster(X, k, max_iterations=max_iterations, rng=rng)
        curve.append(inertia(X, result))
    return curve


def elbow_k(inertias: Sequence[float]) -> int:
    """
    Pick k at the sharpest bend of an inertia curve.

    ``inertias[i]`` is the inertia for k = i + 1. The bend is the largest
    positive discrete second derivative over interior indices; when none is
    positive, DEFAULT_K is returned.
    """
    best_k = DEFAULT_K
    best_bend = 0.0
    for i in range(1, len(inertias) - 1):
        bend = inertias[i - 1] - 2 * inertias[i] + inertias[i + 1]
        if bend > best_bend:
            best_bend = bend
            best_k = i + 1
    return best_k


def suggest_k(
    points: PointsLike,
    max_k: int = 10,
    max_iterations: int = 50,
    rng: Optional[np.random.Generator] = None,
) -> int:
    """
    Suggest a cluster count for the given points.

    Up to three points get max(1, N) directly. Otherwise k = 1..min(max_k, N // 2)
    is scanned and the elbow of the inertia curve is returned.

    Raises:
        ValueError: If max_k is below 1
    """
    if max_k < 1:
        raise ValueError(f"max_k must be >= 1, got {max_k}")

    X = as_matrix(points)
    n_samples = X.shape[0]
    if n_samples <= 3:
        return max(1, n_samples)

    bound = min(max_k, n_samples // 2)
    curve = inertia_curve(X, bound, max_iterations=max_iterations, rng=rng)
    k = elbow_k(curve)

    logger.info(f"Suggested k={k} for {n_samples} points (scanned k=1..{bound})")
    logger.debug(f"Inertia curve: {[round(v, 4) for v in curve]}")
    return k
