"""Vector, lexical and hybrid ranking of stored posts."""

from .vector_ranker import cosine_similarity, rank_by_similarity
from .lexical_index import LexicalIndex, BM25LexicalIndex
from .hybrid import HybridSearcher, HybridOutcome, LexicalOutcome, merge_results

__all__ = [
    "cosine_similarity",
    "rank_by_similarity",
    "LexicalIndex",
    "BM25LexicalIndex",
    "HybridSearcher",
    "HybridOutcome",
    "LexicalOutcome",
    "merge_results",
]
