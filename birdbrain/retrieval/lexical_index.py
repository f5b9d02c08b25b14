"""
Lexical (full-text) ranking of posts.

LexicalIndex is the interface hybrid search depends on; BM25LexicalIndex is
the in-memory implementation backed by rank_bm25. BM25 is built with
default parameters (k1=1.5, b=0.75) and rebuilt lazily on the first search
after the indexed corpus changed.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from rank_bm25 import BM25Okapi

logger = logging.getLogger(__name__)

# Characters with special meaning in full-text query syntax
_QUERY_SPECIAL_CHARS = re.compile(r"['\"*()]")
_TOKEN = re.compile(r"\w+", re.UNICODE)


def sanitize_query(query_text: str) -> str:
    """Replace quote, star and parenthesis characters in a query with spaces."""
    return _QUERY_SPECIAL_CHARS.sub(" ", query_text).strip()


def tokenize(text: str) -> List[str]:
    """Lowercased word tokens."""
    return _TOKEN.findall(text.lower())


class LexicalIndex(ABC):
    """Relevance-scoring full-text index over (id, text) documents."""

    @abstractmethod
    async def search(self, query_text: str, limit: int) -> List[Tuple[int, float]]:
        """Return (id, score) pairs, best first by absolute score. Score scale is index-defined."""

    @abstractmethod
    async def reindex(self, doc_id: int, text: str) -> None:
        """Insert or replace the text indexed for doc_id."""

    @abstractmethod
    async def remove(self, doc_id: int) -> None:
        """Drop doc_id from the index; unknown ids are ignored."""

    @abstractmethod
    async def rebuild(self, items: Iterable[Tuple[int, str]]) -> int:
        """Replace the whole index with the given documents, returning the count."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of indexed documents."""


class BM25LexicalIndex(LexicalIndex):
    """In-memory BM25Okapi index keyed by post id."""

    def __init__(self):
        self._tokens: Dict[int, List[str]] = {}
        self._ids: List[int] = []
        self._bm25: Optional[BM25Okapi] = None
        self._dirty = False

    def __len__(self) -> int:
        return len(self._tokens)

    def _ensure_built(self) -> Optional[BM25Okapi]:
        if self._dirty or self._bm25 is None:
            self._ids = list(self._tokens.keys())
            corpus = [self._tokens[doc_id] for doc_id in self._ids]
            # BM25Okapi divides by the average document length
            if any(corpus):
                self._bm25 = BM25Okapi(corpus)
                logger.debug(f"BM25 index rebuilt: {len(corpus)} documents")
            else:
                self._bm25 = None
            self._dirty = False
        return self._bm25

    async def search(self, query_text: str, limit: int) -> List[Tuple[int, float]]:
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        query_tokens = tokenize(sanitize_query(query_text))
        if not query_tokens or limit == 0:
            return []

        bm25 = self._ensure_built()
        if bm25 is None:
            logger.debug("BM25 index is empty")
            return []

        scores = bm25.get_scores(query_tokens)
        query_set = set(query_tokens)

        matches = [
            (self._ids[i], float(score))
            for i, score in enumerate(scores)
            if query_set.intersection(self._tokens[self._ids[i]])
        ]
        # BM25Okapi goes negative for terms present in most documents; rank by
        # magnitude like the hybrid merge does
        matches.sort(key=lambda m: abs(m[1]), reverse=True)
        return matches[:limit]

    async def reindex(self, doc_id: int, text: str) -> None:
        self._tokens[doc_id] = tokenize(text or "")
        self._dirty = True

    async def remove(self, doc_id: int) -> None:
        if self._tokens.pop(doc_id, None) is not None:
            self._dirty = True

    async def rebuild(self, items: Iterable[Tuple[int, str]]) -> int:
        self._tokens = {doc_id: tokenize(text or "") for doc_id, text in items}
        self._dirty = True
        logger.info(f"BM25 index reset with {len(self._tokens)} documents")
        return len(self._tokens)
