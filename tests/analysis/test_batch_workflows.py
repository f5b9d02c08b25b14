"""
Tests for the paced batch loop and the LLM classification / extraction workflows.

The LLM and the store are mocked; asyncio.sleep is patched where pacing matters.
"""

from unittest.mock import AsyncMock, patch

import pytest

from birdbrain.analysis.batching import BatchFailure, run_in_batches
from birdbrain.analysis.classifier import (
    ClassificationResult,
    classify_bookmark_batch,
    classify_unanalyzed_bookmarks,
    coerce_confidence,
    format_post_list,
)
from birdbrain.analysis.extractor import (
    extract_from_all_bookmarks,
    extract_from_bookmark_batch,
    extract_from_new_bookmarks,
)
from birdbrain.analysis.progress import Progress
from birdbrain.exceptions import APIKeyError, ProviderError, ResponseParseError

from conftest import make_bookmark


# ============================================================================
# run_in_batches
# ============================================================================


async def _echo(batch):
    return list(batch)


async def _count(batch, response):
    return len(response)


@pytest.mark.asyncio
async def test_batches_cover_all_items():
    seen = []

    async def request(batch):
        seen.append(list(batch))
        return batch

    run = await run_in_batches(list(range(5)), 2, 0, request, _count)

    assert seen == [[0, 1], [2, 3], [4]]
    assert run.processed == 5
    assert run.failed_batches == []


@pytest.mark.asyncio
async def test_sleeps_between_batches_only():
    with patch("birdbrain.analysis.batching.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await run_in_batches(list(range(5)), 2, 1.5, _echo, _count)

    assert sleep.await_count == 2
    sleep.assert_awaited_with(1.5)


@pytest.mark.asyncio
async def test_failed_batch_is_recorded_and_skipped():
    async def request(batch):
        if batch[0] == 2:
            raise ProviderError("overloaded")
        return batch

    run = await run_in_batches(list(range(6)), 2, 0, request, _count)

    assert run.processed == 4
    assert run.failed_batches == [BatchFailure(batch_index=1, size=2, error="overloaded")]


@pytest.mark.asyncio
async def test_save_failure_is_recorded():
    async def save(batch, response):
        raise RuntimeError("db locked")

    run = await run_in_batches([1, 2, 3], 3, 0, _echo, save)

    assert run.processed == 0
    assert len(run.failed_batches) == 1
    assert run.failed_batches[0].error == "db locked"


@pytest.mark.asyncio
async def test_unrecoverable_error_propagates():
    async def request(batch):
        raise APIKeyError("ANTHROPIC_API_KEY not set")

    with pytest.raises(APIKeyError):
        await run_in_batches([1, 2, 3], 1, 0, request, _count)


@pytest.mark.asyncio
async def test_progress_phases():
    events = []

    await run_in_batches([1, 2, 3], 2, 0, _echo, _count, on_progress=events.append)

    assert [e.phase for e in events] == ["analyzing", "saving", "analyzing", "saving", "complete"]
    assert events[-1] == Progress("complete", 3, 3)


@pytest.mark.asyncio
async def test_empty_input_completes_immediately():
    request = AsyncMock()

    run = await run_in_batches([], 5, 0, request, _count)

    assert run.processed == 0
    request.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_batch_size():
    with pytest.raises(ValueError):
        await run_in_batches([1], 0, 0, _echo, _count)


# ============================================================================
# Classification
# ============================================================================


def test_format_post_list_truncates():
    posts = [make_bookmark(1, "x" * 250, tweet_id="111"), make_bookmark(2, "short", tweet_id="222", username="bob")]

    text = format_post_list(posts, 200)

    lines = text.split("\n\n")
    assert lines[0].startswith('1. [111] @alice: "')
    assert "x" * 201 not in lines[0]
    assert lines[0].endswith('..."')
    assert lines[1] == '2. [222] @bob: "short"'


@pytest.mark.asyncio
async def test_classify_batch_empty_skips_llm(mock_llm):
    assert await classify_bookmark_batch(mock_llm, []) == {"bookmarks": [], "topic_descriptions": {}}
    mock_llm.analyze_text_as_json.assert_not_called()


@pytest.mark.asyncio
async def test_classify_batch_prompt_lists_posts(mock_llm):
    mock_llm.analyze_text_as_json.return_value = {"bookmarks": []}

    result = await classify_bookmark_batch(mock_llm, [make_bookmark(1, "Rust tips", tweet_id="42")])

    prompt = mock_llm.analyze_text_as_json.await_args.args[0]
    assert "Classify these 1 tweets" in prompt
    assert '[42] @alice: "Rust tips"' in prompt
    assert result == {"bookmarks": [], "topic_descriptions": {}}


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [["not", "an", "object"], {"bookmarks": {"oops": 1}}])
async def test_classify_batch_rejects_bad_shape(mock_llm, reply):
    mock_llm.analyze_text_as_json.return_value = reply

    with pytest.raises(ResponseParseError):
        await classify_bookmark_batch(mock_llm, [make_bookmark(1, "x")])


@pytest.mark.asyncio
async def test_classify_unanalyzed_creates_and_links(ctx, mock_store, mock_llm):
    mock_store.get_unanalyzed_bookmarks.return_value = [
        make_bookmark(1, "Rust async", tweet_id="101"),
        make_bookmark(2, "Hiring tips", tweet_id="102"),
    ]
    mock_llm.analyze_text_as_json.return_value = {
        "bookmarks": [
            {"tweet_id": "101", "topics": [{"name": "Rust", "confidence": 0.9}]},
            {"tweet_id": 102, "topics": [{"name": "Career Advice"}, {"name": "Rust", "confidence": 0.2}]},
            {"tweet_id": "999", "topics": [{"name": "Ghost"}]},
        ],
        "topic_descriptions": {"Rust": "Rust programming", "Career Advice": "Jobs and hiring"},
    }
    ids = {"Rust": (10, True), "Career Advice": (11, False)}
    mock_store.get_or_create_topic.side_effect = lambda name, description=None: ids[name]

    result = await classify_unanalyzed_bookmarks(ctx)

    assert isinstance(result, ClassificationResult)
    assert result.processed == 2
    assert result.topics_created == 1
    assert result.topics_assigned == 3
    assert result.failed_batches == []
    # each topic is resolved once per run
    assert mock_store.get_or_create_topic.await_count == 2
    mock_store.link_bookmark_to_topic.assert_any_await(1, 10, 0.9)
    mock_store.link_bookmark_to_topic.assert_any_await(2, 11, 1.0)
    mock_store.get_unanalyzed_bookmarks.assert_awaited_once_with(100)


@pytest.mark.asyncio
async def test_classify_continues_after_failed_batch(ctx, mock_store, mock_llm):
    mock_store.get_unanalyzed_bookmarks.return_value = [
        make_bookmark(i, f"post {i}", tweet_id=str(i)) for i in (1, 2, 3)
    ]
    mock_llm.analyze_text_as_json.side_effect = [
        ProviderError("overloaded"),
        {"bookmarks": [{"tweet_id": "3", "topics": []}], "topic_descriptions": {}},
    ]

    result = await classify_unanalyzed_bookmarks(ctx, batch_size=2)

    assert result.processed == 1
    assert len(result.failed_batches) == 1
    assert result.failed_batches[0].size == 2


@pytest.mark.asyncio
async def test_classify_missing_api_key_aborts(ctx, mock_store, mock_llm):
    mock_store.get_unanalyzed_bookmarks.return_value = [make_bookmark(1, "x")]
    mock_llm.analyze_text_as_json.side_effect = APIKeyError("ANTHROPIC_API_KEY not set")

    with pytest.raises(APIKeyError):
        await classify_unanalyzed_bookmarks(ctx)


@pytest.mark.parametrize(
    "value, expected",
    [(0.4, 0.4), ("0.7", 0.7), (None, 1.0), ("high", 1.0), ([0.3], 1.0), (float("nan"), 1.0)],
)
def test_coerce_confidence(value, expected):
    assert coerce_confidence(value) == expected


@pytest.mark.asyncio
async def test_classify_skips_malformed_entries_without_failing_batch(ctx, mock_store, mock_llm):
    mock_store.get_unanalyzed_bookmarks.return_value = [
        make_bookmark(1, "Rust async", tweet_id="101"),
        make_bookmark(2, "More Rust", tweet_id="102"),
    ]
    mock_llm.analyze_text_as_json.return_value = {
        "bookmarks": [
            {"tweet_id": "101", "topics": [{"name": "Rust", "confidence": 0.9}]},
            {"tweet_id": "102", "topics": [{"name": "Rust", "confidence": None}, "Rust", {"confidence": 0.5}]},
            "101: Rust",
        ],
        "topic_descriptions": {"Rust": ["not", "text"]},
    }
    mock_store.get_or_create_topic.return_value = (10, True)

    result = await classify_unanalyzed_bookmarks(ctx)

    assert result.failed_batches == []
    assert result.processed == 2
    assert result.topics_assigned == 2
    assert result.skipped_entries == 3
    mock_store.get_or_create_topic.assert_awaited_once_with("Rust", None)
    mock_store.link_bookmark_to_topic.assert_any_await(1, 10, 0.9)
    mock_store.link_bookmark_to_topic.assert_any_await(2, 10, 1.0)


# ============================================================================
# Extraction
# ============================================================================


@pytest.mark.asyncio
async def test_extract_batch_rejects_bad_shape(mock_llm):
    mock_llm.analyze_text_as_json.return_value = {"extractions": "nope"}

    with pytest.raises(ResponseParseError):
        await extract_from_bookmark_batch(mock_llm, [make_bookmark(1, "x")])


@pytest.mark.asyncio
async def test_extract_all_creates_items(ctx, mock_store, mock_llm):
    mock_store.get_bookmarks.return_value = [
        make_bookmark(1, "Try the new uv resolver", tweet_id="201"),
        make_bookmark(2, "Hot take about tabs", tweet_id="202"),
    ]
    mock_llm.analyze_text_as_json.return_value = {
        "extractions": [
            {
                "tweet_id": "201",
                "items": [
                    {"type": "task", "title": "Try uv resolver", "description": "Benchmark it"},
                    {"type": "resource", "title": "uv docs"},
                    {"type": "idea", "title": "Resolver-as-a-service"},
                    {"type": "reminder", "title": "Unknown type"},
                    {"type": "task"},
                ],
            }
        ]
    }

    result = await extract_from_all_bookmarks(ctx)

    assert (result.tasks_created, result.ideas_created, result.resources_created) == (1, 1, 1)
    assert result.skipped_items == 2
    assert result.processed == 1
    mock_store.get_bookmarks.assert_awaited_once_with(200, 0)

    items = [call.args[0] for call in mock_store.create_item.await_args_list]
    assert [i.type for i in items] == ["task", "resource", "idea"]
    assert all(i.bookmark_id == 1 and i.status == "pending" for i in items)
    assert items[0].description == "Benchmark it"
    assert items[1].description is None


@pytest.mark.asyncio
async def test_extract_new_uses_unanalyzed_posts(ctx, mock_store, mock_llm):
    mock_store.get_unanalyzed_bookmarks.return_value = [make_bookmark(1, "x", tweet_id="1")]
    mock_llm.analyze_text_as_json.return_value = {"extractions": []}

    result = await extract_from_new_bookmarks(ctx)

    mock_store.get_unanalyzed_bookmarks.assert_awaited_once_with(100)
    assert result.processed == 0
    mock_store.create_item.assert_not_called()


@pytest.mark.asyncio
async def test_extract_prompt_uses_longer_excerpt(ctx, mock_store, mock_llm):
    mock_store.get_bookmarks.return_value = [make_bookmark(1, "y" * 280, tweet_id="1")]
    mock_llm.analyze_text_as_json.return_value = {"extractions": []}

    await extract_from_all_bookmarks(ctx)

    prompt = mock_llm.analyze_text_as_json.await_args.args[0]
    assert "y" * 280 in prompt


@pytest.mark.asyncio
async def test_extract_skips_malformed_entries_without_failing_batch(ctx, mock_store, mock_llm):
    mock_store.get_bookmarks.return_value = [
        make_bookmark(1, "Try the new uv resolver", tweet_id="101"),
        make_bookmark(2, "Read this thread", tweet_id="102"),
        make_bookmark(3, "Bread recipe", tweet_id="103"),
    ]
    mock_llm.analyze_text_as_json.return_value = {
        "extractions": [
            {"tweet_id": "101", "items": [{"type": "task", "title": "Try uv resolver"}]},
            {"tweet_id": "102", "items": ["read this"]},
            {"tweet_id": "103", "items": {"type": "resource", "title": "Sourdough guide", "description": 7}},
            "103: idea",
        ]
    }

    result = await extract_from_all_bookmarks(ctx)

    assert result.failed_batches == []
    assert result.processed == 3
    assert (result.tasks_created, result.resources_created) == (1, 1)
    assert result.skipped_items == 2
    items = [call.args[0] for call in mock_store.create_item.await_args_list]
    assert [(i.bookmark_id, i.title) for i in items] == [(1, "Try uv resolver"), (3, "Sourdough guide")]
    assert items[1].description is None
