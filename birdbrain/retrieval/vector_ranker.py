"""
Cosine-similarity ranking of stored post vectors against a query vector.
"""

import logging
from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np

from birdbrain.exceptions import DimensionMismatchError
from birdbrain.models import SearchResult

logger = logging.getLogger(__name__)

VectorLike = Union[np.ndarray, Sequence[float]]


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """
    Cosine similarity of two vectors; 0.0 when either has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.shape[0], vb.shape[0], context="cosine similarity")

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def rank_by_similarity(
    query: VectorLike,
    candidates: Iterable[Tuple[int, VectorLike]],
    limit: int,
) -> List[SearchResult]:
    """
    Rank (id, vector) candidates by cosine similarity to the query.

    Args:
        query: Query vector
        candidates: Pairs of document id and vector
        limit: Maximum number of results

    Returns:
        SearchResults sorted by descending similarity, at most ``limit`` long

    Raises:
        ValueError: If limit is negative
        DimensionMismatchError: If any candidate differs in dimension from the query
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")

    results = [
        SearchResult(document_id=doc_id, score=cosine_similarity(query, vector))
        for doc_id, vector in candidates
    ]
    results.sort(key=lambda r: r.score, reverse=True)

    logger.debug(f"Ranked {len(results)} candidates, returning top {limit}")
    return results[:limit]
