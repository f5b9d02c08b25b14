"""
LLM topic classification of posts that have no topic yet.

Posts are sent to Claude in batches; the model names topics (with short
descriptions) and assigns each post to one or more of them with a confidence.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from birdbrain.analysis.batching import BatchFailure, run_in_batches
from birdbrain.analysis.progress import ProgressCallback
from birdbrain.exceptions import ResponseParseError
from birdbrain.llm.claude_client import ClaudeClient
from birdbrain.models import Bookmark
from birdbrain.utils.text_helpers import truncate

if TYPE_CHECKING:
    from birdbrain.context import BirdbrainContext

logger = logging.getLogger(__name__)

CONTENT_MAX_CHARS = 200

TOPIC_SYSTEM_PROMPT = """You are an expert at analyzing tweets and categorizing them into meaningful topics.
Given a set of bookmarked tweets, identify the main topics they cover.

Rules:
- Use concise, descriptive topic names (2-4 words max)
- Common topics include: Tech News, AI/ML, Web Development, Career Advice, Startup Ideas, Productivity, Design, Finance, etc.
- Each tweet can belong to multiple topics
- Provide a confidence score (0-1) for each topic assignment
- Create new topics as needed, but try to consolidate similar concepts

Respond with valid JSON only, no markdown code blocks or explanation."""

CLASSIFY_PROMPT_TEMPLATE = """Classify these {count} tweets into topics:

{post_list}

Respond with JSON in this format:
{{
  "bookmarks": [
    {{"tweet_id": "123", "topics": [{{"name": "Topic Name", "confidence": 0.9}}]}}
  ],
  "topic_descriptions": {{
    "Topic Name": "Brief description of this topic"
  }}
}}"""


@dataclass
class ClassificationResult:
    processed: int = 0
    topics_created: int = 0
    topics_assigned: int = 0
    skipped_entries: int = 0
    failed_batches: List[BatchFailure] = field(default_factory=list)


def coerce_confidence(value: Any, default: float = 1.0) -> float:
    """Model-supplied confidence as a float, or default when missing or not a number."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    return confidence if math.isfinite(confidence) else default


def format_post_list(bookmarks: Sequence[Bookmark], max_chars: int) -> str:
    """Numbered post list for a batch prompt."""
    return "\n\n".join(
        f'{i + 1}. [{b.tweet_id}] @{b.username}: "{truncate(b.content, max_chars)}"'
        for i, b in enumerate(bookmarks)
    )


async def classify_bookmark_batch(llm: ClaudeClient, bookmarks: Sequence[Bookmark]) -> Dict[str, Any]:
    """
    Ask the model to classify one batch of posts.

    Returns:
        {"bookmarks": [...], "topic_descriptions": {...}}

    Raises:
        ResponseParseError: If the reply does not have that shape
    """
    if not bookmarks:
        return {"bookmarks": [], "topic_descriptions": {}}

    prompt = CLASSIFY_PROMPT_TEMPLATE.format(
        count=len(bookmarks),
        post_list=format_post_list(bookmarks, CONTENT_MAX_CHARS),
    )
    response = await llm.analyze_text_as_json(prompt, TOPIC_SYSTEM_PROMPT)

    if not isinstance(response, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(response).__name__}")
    classifications = response.get("bookmarks") or []
    descriptions = response.get("topic_descriptions") or {}
    if not isinstance(classifications, list) or not isinstance(descriptions, dict):
        raise ResponseParseError("Classification response has unexpected structure")

    return {"bookmarks": classifications, "topic_descriptions": descriptions}


async def classify_unanalyzed_bookmarks(
    ctx: "BirdbrainContext",
    on_progress: Optional[ProgressCallback] = None,
    batch_size: Optional[int] = None,
) -> ClassificationResult:
    """
    Classify posts without topics, creating topics and links as the model suggests.

    Failed batches are skipped and reported in ``failed_batches``.
    """
    config = ctx.analysis_config
    batch_size = batch_size or config.classify_batch_size

    unanalyzed = await ctx.store.get_unanalyzed_bookmarks(config.classify_limit)
    logger.info(f"Classifying {len(unanalyzed)} unanalyzed posts (batch_size={batch_size})")

    result = ClassificationResult()
    topic_ids: Dict[str, int] = {}

    async def topic_id_for(name: str, description: Optional[str] = None) -> int:
        if name not in topic_ids:
            topic_id, created = await ctx.store.get_or_create_topic(name, description)
            topic_ids[name] = topic_id
            if created:
                result.topics_created += 1
        return topic_ids[name]

    async def request(batch: Sequence[Bookmark]) -> Dict[str, Any]:
        return await classify_bookmark_batch(ctx.llm, batch)

    async def save(batch: Sequence[Bookmark], response: Dict[str, Any]) -> int:
        for name, description in response["topic_descriptions"].items():
            if not name:
                continue
            await topic_id_for(name, description if isinstance(description, str) else None)

        by_tweet = {b.tweet_id: b for b in batch}
        processed = 0
        for classification in response["bookmarks"]:
            if not isinstance(classification, dict):
                logger.warning(f"Skipping classification that is not an object: {classification!r}")
                result.skipped_entries += 1
                continue
            bookmark = by_tweet.get(str(classification.get("tweet_id")))
            if bookmark is None:
                continue

            topics = classification.get("topics") or []
            if not isinstance(topics, list):
                topics = [topics]
            for topic in topics:
                name = topic.get("name") if isinstance(topic, dict) else None
                if not name or not isinstance(name, str):
                    logger.warning(f"Skipping topic assignment for {bookmark.tweet_id}: {topic!r}")
                    result.skipped_entries += 1
                    continue
                topic_id = await topic_id_for(name)
                await ctx.store.link_bookmark_to_topic(
                    bookmark.id, topic_id, coerce_confidence(topic.get("confidence"))
                )
                result.topics_assigned += 1

            processed += 1
        return processed

    run = await run_in_batches(
        unanalyzed,
        batch_size,
        config.classify_delay_seconds,
        request,
        save,
        on_progress,
    )
    result.processed = run.processed
    result.failed_batches = run.failed_batches

    logger.info(
        f"Classification complete: {result.processed} posts, {result.topics_created} new topics, "
        f"{result.topics_assigned} assignments"
    )
    return result
