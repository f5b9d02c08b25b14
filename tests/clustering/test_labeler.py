"""Tests for cluster labeling."""

import numpy as np

from birdbrain.clustering.labeler import EMPTY_CLUSTER_LABEL, label_clusters


POINTS = [[0.0, 0.0], [1.0, 0.0], [10.0, 10.0], [11.0, 11.0]]


def test_picks_post_nearest_centroid():
    texts = ["far from center", "closest to center", "other a", "other b"]
    centroids = [[0.9, 0.0], [10.5, 10.5]]

    labels = label_clusters(POINTS, texts, [0, 0, 1, 1], 2, centroids=centroids)

    assert labels[0] == "closest to center"
    assert labels[1] in ("other a", "other b")


def test_without_centroids_uses_first_member():
    texts = ["first", "second", "third", "fourth"]

    labels = label_clusters(POINTS, texts, [1, 0, 0, 1], 2)

    assert labels == ["second", "first"]


def test_empty_cluster_placeholder():
    labels = label_clusters(POINTS, ["a", "b", "c", "d"], [0, 0, 0, 0], 3)

    assert labels[1] == EMPTY_CLUSTER_LABEL
    assert labels[2] == EMPTY_CLUSTER_LABEL


def test_strips_urls_and_whitespace():
    texts = ["Check   this\n out https://t.co/abc123  now", "b", "c", "d"]

    labels = label_clusters(POINTS, texts, [0, 1, 1, 1], 2)

    assert labels[0] == "Check this out now"


def test_truncates_long_text():
    long_text = "word " * 40
    labels = label_clusters(POINTS, [long_text, "b", "c", "d"], [0, 1, 1, 1], 2)

    assert labels[0].endswith("...")
    assert len(labels[0]) <= 63


def test_url_only_text_gets_numbered_placeholder():
    texts = ["a", "https://example.com/only-a-link", "c", "d"]

    labels = label_clusters(POINTS, texts, [0, 1, 0, 0], 2)

    assert labels[1] == "Cluster 2"


def test_missing_text_gets_numbered_placeholder():
    labels = label_clusters(POINTS, [None, "b", "", "d"], [0, 1, 2, 1], 3)

    assert labels[0] == "Cluster 1"
    assert labels[2] == "Cluster 3"
    assert all(labels)


def test_accepts_numpy_inputs():
    points = np.array(POINTS)
    centroids = np.array([[0.0, 0.0], [11.0, 11.0]])

    labels = label_clusters(points, ["a", "b", "c", "d"], np.array([0, 0, 1, 1]), 2, centroids=centroids)

    assert labels == ["a", "d"]
