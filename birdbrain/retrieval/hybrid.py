"""
Hybrid search: vector similarity fused with lexical relevance.

Fusion rules:
- every vector hit is kept; hits the lexical ranker also found are boosted (x1.2)
- lexical-only hits are added down-weighted (x0.5), using the absolute
  lexical score since full-text rankers may report negative relevance
- the combined list is sorted by score and truncated

A failing lexical ranker never fails the query. Its failure is reported on
the outcome objects so callers can tell "no matches" from "ranker down".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from birdbrain.models import SearchResult
from birdbrain.retrieval.vector_ranker import rank_by_similarity

if TYPE_CHECKING:
    from birdbrain.context import BirdbrainContext

logger = logging.getLogger(__name__)

VECTOR_BOOST = 1.2
LEXICAL_ONLY_WEIGHT = 0.5


@dataclass
class LexicalOutcome:
    """Lexical ranker output; ``failed`` is set when the ranker raised."""

    results: List[SearchResult] = field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None


@dataclass
class HybridOutcome:
    results: List[SearchResult]
    lexical_failed: bool = False
    lexical_error: Optional[str] = None


def merge_results(
    vector_results: Sequence[SearchResult],
    lexical_results: Sequence[SearchResult],
    limit: int,
    vector_boost: float = VECTOR_BOOST,
    lexical_only_weight: float = LEXICAL_ONLY_WEIGHT,
) -> List[SearchResult]:
    """
    Fuse vector and lexical rankings into one list.

    Args:
        vector_results: Vector ranker hits
        lexical_results: Lexical ranker hits (may be empty)
        limit: Maximum number of merged results
        vector_boost: Multiplier for vector hits the lexical ranker also found
        lexical_only_weight: Multiplier for lexical hits missing from the vector pass

    Returns:
        Merged results, deduplicated by document id, best first
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")

    lexical_ids = {r.document_id for r in lexical_results}
    seen = set()
    merged: List[SearchResult] = []

    for result in vector_results:
        seen.add(result.document_id)
        score = result.score * vector_boost if result.document_id in lexical_ids else result.score
        merged.append(SearchResult(result.document_id, score, result.bookmark))

    for result in lexical_results:
        if result.document_id in seen:
            continue
        seen.add(result.document_id)
        merged.append(
            SearchResult(result.document_id, abs(result.score) * lexical_only_weight, result.bookmark)
        )

    # sort is stable, equal scores keep vector-first order
    merged.sort(key=lambda r: r.score, reverse=True)
    return merged[:limit]


class HybridSearcher:
    """Search over stored posts using the context's embedder, store and lexical index."""

    def __init__(self, ctx: "BirdbrainContext"):
        self.ctx = ctx
        self.config = ctx.search_config

    def _limit(self, limit: Optional[int]) -> int:
        return self.config.default_limit if limit is None else limit

    async def vector_search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        """Embed the query and rank every stored vector by cosine similarity."""
        limit = self._limit(limit)
        query_vector = await self.ctx.embedder.embed(query)
        embedded = await self.ctx.store.get_embedded_bookmarks()

        by_id = {row.id: row.bookmark for row in embedded}
        ranked = rank_by_similarity(
            query_vector,
            ((row.id, row.embedding) for row in embedded),
            limit,
        )
        for result in ranked:
            result.bookmark = by_id.get(result.document_id)

        logger.debug(f"Vector search returned {len(ranked)} results")
        return ranked

    async def lexical_search(self, query: str, limit: Optional[int] = None) -> LexicalOutcome:
        """Query the lexical index. Never raises; failures are reported on the outcome."""
        limit = self._limit(limit)
        try:
            hits = await self.ctx.lexical_index.search(query, limit)
            bookmarks = await self.ctx.store.get_bookmarks_by_ids([doc_id for doc_id, _ in hits])
        except Exception as e:
            logger.warning(f"Lexical search failed: {e}. Using vector-only.")
            return LexicalOutcome(failed=True, error=str(e))

        # Ids missing from the store are stale index entries
        results = [
            SearchResult(doc_id, score, bookmarks[doc_id])
            for doc_id, score in hits
            if doc_id in bookmarks
        ]
        return LexicalOutcome(results=results)

    async def hybrid_search(self, query: str, limit: Optional[int] = None) -> HybridOutcome:
        """Run vector and lexical search concurrently and fuse the rankings."""
        limit = self._limit(limit)
        vector_results, lexical = await asyncio.gather(
            self.vector_search(query, limit),
            self.lexical_search(query, limit),
        )

        merged = merge_results(
            vector_results,
            lexical.results,
            limit,
            vector_boost=self.config.vector_boost,
            lexical_only_weight=self.config.lexical_only_weight,
        )
        logger.info(
            f"Hybrid search: {len(vector_results)} vector + {len(lexical.results)} lexical "
            f"-> {len(merged)} results"
            + (" (lexical failed)" if lexical.failed else "")
        )
        return HybridOutcome(
            results=merged,
            lexical_failed=lexical.failed,
            lexical_error=lexical.error,
        )
