"""
Unsupervised topic clustering.

cluster() partitions embeddings with k-means, suggest_k() picks k from the
elbow of the inertia curve and label_clusters() names each cluster after its
most central post.
"""

from .kmeans import ClusterResult, cluster, inertia
from .k_selector import suggest_k
from .labeler import label_clusters

__all__ = [
    "ClusterResult",
    "cluster",
    "inertia",
    "suggest_k",
    "label_clusters",
]
