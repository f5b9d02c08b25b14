"""
Human-readable cluster labels taken from each cluster's most central post.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from birdbrain.clustering.kmeans import PointsLike, as_matrix
from birdbrain.utils.text_helpers import clean_label_text

logger = logging.getLogger(__name__)

EMPTY_CLUSTER_LABEL = "Empty cluster"


def _placeholder(cluster_id: int) -> str:
    return f"Cluster {cluster_id + 1}"


def find_representative(
    points: np.ndarray,
    members: np.ndarray,
    centroid: Optional[np.ndarray],
) -> int:
    """Index of the member nearest the centroid, or the first member without one."""
    if centroid is None or points.shape[0] == 0:
        return int(members[0])
    diff = points[members] - centroid
    distances = np.einsum("nd,nd->n", diff, diff)
    return int(members[int(np.argmin(distances))])


def label_clusters(
    points: PointsLike,
    texts: Sequence[Optional[str]],
    assignments: Sequence[int],
    k: int,
    centroids: Optional[PointsLike] = None,
    max_length: int = 60,
) -> List[str]:
    """
    Derive one label per cluster id in 0..k-1.

    Args:
        points: Vectors that were clustered (N x D)
        texts: Raw text per point
        assignments: Cluster id per point
        k: Number of cluster ids to label
        centroids: Optional centroids used to pick the representative post
        max_length: Label length before an ellipsis is appended

    Returns:
        List of k labels; never contains an empty string
    """
    if len(texts) != len(assignments):
        raise ValueError(
            f"texts and assignments must have same length, got {len(texts)} and {len(assignments)}"
        )

    X = as_matrix(points) if centroids is not None else np.zeros((0, 0))
    C = as_matrix(centroids) if centroids is not None else None
    assignment_array = np.asarray(assignments, dtype=int)

    labels = []
    for c in range(k):
        members = np.flatnonzero(assignment_array == c)
        if members.size == 0:
            labels.append(EMPTY_CLUSTER_LABEL)
            continue

        centroid = C[c] if C is not None and c < C.shape[0] else None
        idx = find_representative(X, members, centroid)
        label = clean_label_text(texts[idx], max_length=max_length)
        labels.append(label or _placeholder(c))

    logger.debug(f"Labeled {k} clusters")
    return labels
