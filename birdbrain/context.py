"""
Application context: the long-lived handles one birdbrain session works with.

The embedding provider and the Claude client are created on first access and
reused for the lifetime of the context. Separate contexts never share them.

Usage:
    async with await create_context() as ctx:
        await run_full_analysis(ctx)
        outcome = await HybridSearcher(ctx).hybrid_search("rust async")
"""

import logging
from typing import Optional

import numpy as np

from birdbrain.config import AnalysisConfig, ClusteringConfig, SearchConfig, get_config
from birdbrain.config_schema import RootConfig
from birdbrain.embedding_generator import EmbeddingProvider
from birdbrain.llm.claude_client import ClaudeClient
from birdbrain.retrieval.lexical_index import BM25LexicalIndex, LexicalIndex
from birdbrain.storage.postgres_store import BookmarkStore
from birdbrain.utils.logger import setup_logger

logger = logging.getLogger(__name__)


class BirdbrainContext:
    def __init__(
        self,
        config: RootConfig,
        store: BookmarkStore,
        lexical_index: Optional[LexicalIndex] = None,
        rng: Optional[np.random.Generator] = None,
        embedder: Optional[EmbeddingProvider] = None,
        llm: Optional[ClaudeClient] = None,
    ):
        self.config = config
        self.store = store
        self.lexical_index = lexical_index if lexical_index is not None else BM25LexicalIndex()
        self.rng = rng if rng is not None else np.random.default_rng()

        self.clustering_config = ClusteringConfig.from_config(config.clustering)
        self.search_config = SearchConfig.from_config(config.search)
        self.analysis_config = AnalysisConfig.from_config(config.analysis)

        self._embedder = embedder
        self._llm = llm

    @property
    def embedder(self) -> EmbeddingProvider:
        if self._embedder is None:
            self._embedder = EmbeddingProvider.from_config(self.config.embedding)
        return self._embedder

    @property
    def llm(self) -> ClaudeClient:
        if self._llm is None:
            self._llm = ClaudeClient.from_config(self.config)
        return self._llm

    async def load_lexical_index(self) -> int:
        """Rebuild the lexical index from every stored post."""
        texts = await self.store.get_all_texts()
        return await self.lexical_index.rebuild(texts)

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> "BirdbrainContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def create_context(
    config: Optional[RootConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> BirdbrainContext:
    """
    Build a ready-to-use context.

    Connects the store, creates the schema if needed and loads the lexical
    index from stored posts.

    Args:
        config: Validated configuration (default: get_config())
        rng: Random source for clustering (default: fresh generator)
    """
    config = config if config is not None else get_config()
    setup_logger("birdbrain", log_level=config.logging.level, log_file=config.logging.file)

    store = BookmarkStore.from_config(config.database)
    await store.initialize()
    ctx = BirdbrainContext(config=config, store=store, rng=rng)
    try:
        await store.init_schema()
        indexed = await ctx.load_lexical_index()
    except Exception:
        await store.close()
        raise

    logger.info(f"Context ready ({indexed} posts in lexical index)")
    return ctx
