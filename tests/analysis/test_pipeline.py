"""
Tests for the analysis pipeline (embeddings, clustering, lexical rebuild).

The store, embedder and lexical index are mocked; clustering runs for real
on small seeded inputs.
"""

from unittest.mock import MagicMock

import pytest

from birdbrain.analysis.pipeline import (
    AnalysisResult,
    ClusteringOutcome,
    generate_embeddings,
    run_clustering,
    run_full_analysis,
)
from birdbrain.analysis.progress import Progress, notify
from birdbrain.exceptions import DimensionMismatchError

from conftest import make_bookmark, make_embedded


def _two_groups():
    return [
        make_embedded(1, "Rust async runtimes https://t.co/x", [1.0, 0.0]),
        make_embedded(2, "Tokio deep dive", [0.98, 0.05]),
        make_embedded(3, "Sourdough starter tips", [0.0, 1.0]),
        make_embedded(4, "Bread baking temperatures", [0.05, 0.97]),
    ]


# ============================================================================
# Progress
# ============================================================================


def test_notify_ignores_missing_callback():
    notify(None, "embedding", 0, 1)


def test_notify_swallows_callback_errors():
    callback = MagicMock(side_effect=RuntimeError("ui crashed"))

    notify(callback, "embedding", 1, 2)

    callback.assert_called_once_with(Progress(phase="embedding", current=1, total=2))


# ============================================================================
# generate_embeddings
# ============================================================================


@pytest.mark.asyncio
async def test_generate_embeddings_nothing_to_do(ctx, mock_store, mock_embedder):
    mock_store.get_unembedded_bookmarks.return_value = []

    assert await generate_embeddings(ctx) == 0
    mock_embedder.embed_batch.assert_not_called()


@pytest.mark.asyncio
async def test_generate_embeddings_stores_and_indexes(ctx, mock_store, mock_embedder):
    bookmarks = [make_bookmark(i, f"post number {i}") for i in (1, 2, 3)]
    mock_store.get_unembedded_bookmarks.return_value = bookmarks
    mock_embedder.embed_batch.side_effect = lambda texts: [[0.1, 0.2] for _ in texts]
    events = []

    count = await generate_embeddings(ctx, on_progress=events.append)

    assert count == 3
    # batch_size=2 in the test config
    assert mock_embedder.embed_batch.await_count == 2
    assert mock_store.set_embedding.await_count == 3
    assert len(ctx.lexical_index) == 3
    assert events[0] == Progress("embedding", 0, 3)
    assert events[-1] == Progress("embedding", 3, 3)


@pytest.mark.asyncio
async def test_generate_embeddings_keeps_partial_progress(ctx, mock_store, mock_embedder):
    bookmarks = [make_bookmark(i, f"post {i}") for i in (1, 2, 3, 4)]
    mock_store.get_unembedded_bookmarks.return_value = bookmarks
    mock_embedder.embed_batch.side_effect = [[[0.1], [0.2]], RuntimeError("provider down")]

    with pytest.raises(RuntimeError, match="provider down"):
        await generate_embeddings(ctx)

    stored = [call.args[0] for call in mock_store.set_embedding.await_args_list]
    assert stored == [1, 2]


@pytest.mark.asyncio
async def test_progress_callback_errors_do_not_abort(ctx, mock_store, mock_embedder):
    mock_store.get_unembedded_bookmarks.return_value = [make_bookmark(1, "x")]
    mock_embedder.embed_batch.return_value = [[1.0]]

    def broken(progress):
        raise ValueError("bad sink")

    assert await generate_embeddings(ctx, on_progress=broken) == 1


# ============================================================================
# run_clustering
# ============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [0, 1])
async def test_clustering_needs_two_posts(ctx, mock_store, count):
    mock_store.get_embedded_bookmarks.return_value = _two_groups()[:count]

    outcome = await run_clustering(ctx)

    assert outcome == ClusteringOutcome(clusters_created=0, labels=[], iterations=0)
    mock_store.replace_topics.assert_not_called()


@pytest.mark.asyncio
async def test_clustering_replaces_topics(ctx, mock_store):
    mock_store.get_embedded_bookmarks.return_value = _two_groups()
    mock_store.replace_topics.side_effect = lambda clusters: list(range(len(clusters)))
    events = []

    outcome = await run_clustering(ctx, k=2, on_progress=events.append)

    assert outcome.clusters_created == 2
    assert len(outcome.labels) == 2
    assert outcome.iterations >= 1

    clusters = mock_store.replace_topics.await_args.args[0]
    groups = sorted(sorted(c.bookmark_ids) for c in clusters)
    assert groups == [[1, 2], [3, 4]]
    assert all(c.description == "2 bookmarks" for c in clusters)
    assert all("https://" not in c.name for c in clusters)
    assert events[0] == Progress("clustering", 0, 1)
    assert events[-1] == Progress("clustering", 1, 1)


@pytest.mark.asyncio
async def test_clustering_skips_empty_clusters(ctx, mock_store):
    # k larger than the number of posts: singletons for 4 posts, clusters 4..5 empty
    mock_store.get_embedded_bookmarks.return_value = _two_groups()
    mock_store.replace_topics.side_effect = lambda clusters: list(range(len(clusters)))

    outcome = await run_clustering(ctx, k=6)

    assert outcome.clusters_created == 4
    assert outcome.labels[4:] == ["Empty cluster", "Empty cluster"]
    cluster_ids = [c.cluster_id for c in mock_store.replace_topics.await_args.args[0]]
    assert cluster_ids == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_clustering_suggests_k_when_missing(ctx, mock_store, monkeypatch):
    mock_store.get_embedded_bookmarks.return_value = _two_groups()
    mock_store.replace_topics.side_effect = lambda clusters: list(range(len(clusters)))
    suggest = MagicMock(return_value=2)
    monkeypatch.setattr("birdbrain.analysis.pipeline.suggest_k", suggest)

    outcome = await run_clustering(ctx)

    assert outcome.clusters_created == 2
    assert suggest.call_args.kwargs["max_k"] == 10
    assert suggest.call_args.kwargs["max_iterations"] == 50


@pytest.mark.asyncio
async def test_clustering_rejects_mixed_dimensions(ctx, mock_store):
    mock_store.get_embedded_bookmarks.return_value = [
        make_embedded(1, "a", [1.0, 0.0]),
        make_embedded(2, "b", [1.0, 0.0, 0.0]),
    ]

    with pytest.raises(DimensionMismatchError):
        await run_clustering(ctx, k=2)


# ============================================================================
# run_full_analysis
# ============================================================================


@pytest.mark.asyncio
async def test_full_analysis_runs_all_phases(ctx, mock_store, mock_embedder):
    mock_store.get_unembedded_bookmarks.return_value = [make_bookmark(5, "new post")]
    mock_embedder.embed_batch.return_value = [[0.5, 0.5]]
    mock_store.get_embedded_bookmarks.return_value = _two_groups()
    mock_store.replace_topics.side_effect = lambda clusters: list(range(len(clusters)))
    mock_store.get_all_texts.return_value = [(1, "a"), (2, "b"), (3, "c")]
    events = []

    result = await run_full_analysis(ctx, on_progress=events.append)

    assert isinstance(result, AnalysisResult)
    assert result.embeddings_generated == 1
    assert result.clusters_created >= 1
    assert result.lexical_indexed == 3
    phases = [e.phase for e in events]
    assert phases.index("embedding") < phases.index("clustering") < phases.index("indexing")
    assert events[-1] == Progress("complete", 1, 1)


@pytest.mark.asyncio
async def test_full_analysis_propagates_embedding_failure(ctx, mock_store, mock_embedder):
    mock_store.get_unembedded_bookmarks.return_value = [make_bookmark(1, "x")]
    mock_embedder.embed_batch.side_effect = RuntimeError("no model")

    with pytest.raises(RuntimeError):
        await run_full_analysis(ctx)

    mock_store.replace_topics.assert_not_called()
