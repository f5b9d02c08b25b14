"""
Analysis pipeline: embeddings, topic clustering and lexical indexing.

run_full_analysis() runs the three passes in order. Embedding progress is
written per batch, so a provider failure (which propagates) leaves earlier
batches stored and a re-run only embeds what is still missing.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np

from birdbrain.analysis.progress import ProgressCallback, notify
from birdbrain.clustering.k_selector import suggest_k
from birdbrain.clustering.kmeans import ClusterResult, as_matrix, cluster
from birdbrain.clustering.labeler import label_clusters
from birdbrain.models import ClusterAssignment

if TYPE_CHECKING:
    from birdbrain.context import BirdbrainContext

logger = logging.getLogger(__name__)


@dataclass
class ClusteringOutcome:
    clusters_created: int
    labels: List[str] = field(default_factory=list)
    iterations: int = 0


@dataclass
class AnalysisResult:
    embeddings_generated: int
    clusters_created: int
    lexical_indexed: int


async def generate_embeddings(
    ctx: "BirdbrainContext",
    on_progress: Optional[ProgressCallback] = None,
) -> int:
    """
    Embed every post that has no vector yet.

    Each batch's vectors are stored and its posts reindexed lexically as soon
    as the batch returns.

    Returns:
        Number of posts embedded
    """
    bookmarks = await ctx.store.get_unembedded_bookmarks()
    total = len(bookmarks)
    if total == 0:
        logger.info("All posts already embedded")
        return 0

    batch_size = ctx.config.embedding.batch_size
    processed = 0
    logger.info(f"Embedding {total} posts (batch_size={batch_size})")

    for start in range(0, total, batch_size):
        batch = bookmarks[start:start + batch_size]
        notify(on_progress, "embedding", processed, total)

        vectors = await ctx.embedder.embed_batch([b.content for b in batch])
        for bookmark, vector in zip(batch, vectors):
            await ctx.store.set_embedding(bookmark.id, vector)
            await ctx.lexical_index.reindex(bookmark.id, bookmark.content)

        processed += len(batch)
        logger.debug(f"Embedded {processed}/{total}")

    notify(on_progress, "embedding", processed, total)
    logger.info(f"Embeddings generated: {processed}")
    return processed


def _cluster_points(
    points: np.ndarray,
    k: Optional[int],
    ctx: "BirdbrainContext",
) -> Tuple[ClusterResult, int]:
    config = ctx.clustering_config
    if k is None:
        k = suggest_k(
            points,
            max_k=config.max_k,
            max_iterations=config.selection_iterations,
            rng=ctx.rng,
        )
    return cluster(points, k, max_iterations=config.max_iterations, rng=ctx.rng), k


async def run_clustering(
    ctx: "BirdbrainContext",
    k: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ClusteringOutcome:
    """
    Cluster all embedded posts and replace the stored topics.

    Args:
        ctx: Application context
        k: Number of clusters (default: chosen by suggest_k)
        on_progress: Optional progress sink

    Returns:
        ClusteringOutcome; clusters_created counts non-empty clusters persisted as topics
    """
    notify(on_progress, "clustering", 0, 1)

    embedded = await ctx.store.get_embedded_bookmarks()
    if len(embedded) < 2:
        logger.info(f"Not enough embedded posts to cluster ({len(embedded)})")
        return ClusteringOutcome(clusters_created=0)

    points = as_matrix([row.embedding for row in embedded])
    texts = [row.content for row in embedded]

    # k-means is CPU-bound, keep it off the event loop
    result, k = await asyncio.to_thread(_cluster_points, points, k, ctx)

    labels = label_clusters(
        points,
        texts,
        result.assignments,
        k,
        centroids=result.centroids,
        max_length=ctx.clustering_config.label_max_length,
    )

    clusters = []
    for c in range(k):
        members = result.members(c)
        if members.size == 0:
            continue
        clusters.append(
            ClusterAssignment(
                name=labels[c],
                description=f"{members.size} bookmarks",
                bookmark_ids=[embedded[i].id for i in members],
                cluster_id=c,
            )
        )

    topic_ids = await ctx.store.replace_topics(clusters)
    notify(on_progress, "clustering", 1, 1)

    logger.info(
        f"Clustering complete: {len(embedded)} posts, k={k}, "
        f"{len(topic_ids)} topics, {result.iterations} iterations"
    )
    return ClusteringOutcome(
        clusters_created=len(topic_ids),
        labels=labels,
        iterations=result.iterations,
    )


async def run_full_analysis(
    ctx: "BirdbrainContext",
    on_progress: Optional[ProgressCallback] = None,
) -> AnalysisResult:
    """Embed new posts, recluster everything and rebuild the lexical index."""
    embeddings_generated = await generate_embeddings(ctx, on_progress)
    clustering = await run_clustering(ctx, on_progress=on_progress)

    notify(on_progress, "indexing", 0, 1)
    lexical_indexed = await ctx.load_lexical_index()
    notify(on_progress, "indexing", 1, 1)

    notify(on_progress, "complete", 1, 1)

    return AnalysisResult(
        embeddings_generated=embeddings_generated,
        clusters_created=clustering.clusters_created,
        lexical_indexed=lexical_indexed,
    )
