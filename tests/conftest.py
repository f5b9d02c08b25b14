"""Shared fixtures: seeded randomness, sample posts and a context with mocked collaborators."""

from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from birdbrain.config_schema import RootConfig
from birdbrain.context import BirdbrainContext
from birdbrain.embedding_generator import EmbeddingProvider
from birdbrain.llm.claude_client import ClaudeClient
from birdbrain.models import Bookmark, EmbeddedBookmark
from birdbrain.retrieval.lexical_index import BM25LexicalIndex
from birdbrain.storage.postgres_store import BookmarkStore


def make_bookmark(bookmark_id: int, content: str, tweet_id: str = None, username: str = "alice") -> Bookmark:
    return Bookmark(
        id=bookmark_id,
        tweet_id=tweet_id or f"t{bookmark_id}",
        content=content,
        created_at="2024-01-01T00:00:00Z",
        bookmarked_at=f"2024-01-{bookmark_id % 28 + 1:02d}T00:00:00Z",
        synced_at="2024-02-01T00:00:00Z",
        author_id=1,
        username=username,
    )


def make_embedded(bookmark_id: int, content: str, vector) -> EmbeddedBookmark:
    return EmbeddedBookmark(bookmark=make_bookmark(bookmark_id, content), embedding=list(vector))


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def blobs():
    """Three well-separated 2-D blobs of 10 points each."""
    gen = np.random.default_rng(7)
    centers = np.array([[0.0, 0.0], [10.0, 10.0], [-10.0, 10.0]])
    points = np.vstack([center + gen.normal(scale=0.3, size=(10, 2)) for center in centers])
    return points


@pytest.fixture
def test_config():
    """Defaults with pacing disabled."""
    return RootConfig.from_dict(
        {
            "analysis": {"classify_delay_seconds": 0.0, "extract_delay_seconds": 0.0},
            "embedding": {"batch_size": 2},
        }
    )


@pytest.fixture
def mock_store():
    return AsyncMock(spec=BookmarkStore)


@pytest.fixture
def mock_embedder():
    embedder = MagicMock(spec=EmbeddingProvider)
    embedder.embed = AsyncMock()
    embedder.embed_batch = AsyncMock()
    return embedder


@pytest.fixture
def mock_llm():
    llm = MagicMock(spec=ClaudeClient)
    llm.analyze_text_as_json = AsyncMock()
    return llm


@pytest.fixture
def ctx(test_config, mock_store, mock_embedder, mock_llm, rng):
    return BirdbrainContext(
        config=test_config,
        store=mock_store,
        lexical_index=BM25LexicalIndex(),
        rng=rng,
        embedder=mock_embedder,
        llm=mock_llm,
    )
