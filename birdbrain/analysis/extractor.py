"""
LLM extraction of actionable items (tasks, ideas, resources) from posts.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from birdbrain.analysis.batching import BatchFailure, run_in_batches
from birdbrain.analysis.classifier import format_post_list
from birdbrain.analysis.progress import ProgressCallback
from birdbrain.exceptions import ResponseParseError
from birdbrain.llm.claude_client import ClaudeClient
from birdbrain.models import ITEM_TYPES, Bookmark, Item

if TYPE_CHECKING:
    from birdbrain.context import BirdbrainContext

logger = logging.getLogger(__name__)

CONTENT_MAX_CHARS = 300

EXTRACTION_SYSTEM_PROMPT = """You are an expert at extracting actionable items from tweets.
Analyze bookmarked tweets to identify:

1. TASKS - Things to try, learn, build, or do
   Examples: "try this new library", "read this article", "implement this pattern"

2. IDEAS - Business ideas, project concepts, or creative insights
   Examples: "SaaS idea for X", "product opportunity", "market gap"

3. RESOURCES - Valuable links, tools, or references to save
   Examples: "useful tool for Y", "great tutorial on Z"

Rules:
- Only extract genuinely actionable or valuable items
- Be concise but specific in titles (5-10 words)
- Include relevant context in descriptions
- Skip tweets that are just commentary or opinions without actionable content
- A single tweet may have multiple items or none

Respond with valid JSON only, no markdown code blocks."""

EXTRACT_PROMPT_TEMPLATE = """Extract actionable items from these tweets:

{post_list}

Respond with JSON:
{{
  "extractions": [
    {{
      "tweet_id": "123",
      "items": [
        {{"type": "task", "title": "Brief title", "description": "Details"}}
      ]
    }}
  ]
}}

Include a tweet in extractions only if it has actionable items."""


@dataclass
class ExtractionResult:
    processed: int = 0
    tasks_created: int = 0
    ideas_created: int = 0
    resources_created: int = 0
    skipped_items: int = 0
    failed_batches: List[BatchFailure] = field(default_factory=list)

    def count(self, item_type: str) -> None:
        if item_type == "task":
            self.tasks_created += 1
        elif item_type == "idea":
            self.ideas_created += 1
        elif item_type == "resource":
            self.resources_created += 1


async def extract_from_bookmark_batch(llm: ClaudeClient, bookmarks: Sequence[Bookmark]) -> Dict[str, Any]:
    """
    Ask the model for actionable items in one batch of posts.

    Returns:
        {"extractions": [{"tweet_id": ..., "items": [...]}, ...]}

    Raises:
        ResponseParseError: If the reply does not have that shape
    """
    if not bookmarks:
        return {"extractions": []}

    prompt = EXTRACT_PROMPT_TEMPLATE.format(post_list=format_post_list(bookmarks, CONTENT_MAX_CHARS))
    response = await llm.analyze_text_as_json(prompt, EXTRACTION_SYSTEM_PROMPT)

    if not isinstance(response, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(response).__name__}")
    extractions = response.get("extractions") or []
    if not isinstance(extractions, list):
        raise ResponseParseError("Extraction response has unexpected structure")
    return {"extractions": extractions}


async def _extract(
    ctx: "BirdbrainContext",
    bookmarks: Sequence[Bookmark],
    on_progress: Optional[ProgressCallback],
    batch_size: Optional[int],
) -> ExtractionResult:
    config = ctx.analysis_config
    batch_size = batch_size or config.extract_batch_size
    result = ExtractionResult()

    async def request(batch: Sequence[Bookmark]) -> Dict[str, Any]:
        return await extract_from_bookmark_batch(ctx.llm, batch)

    async def save(batch: Sequence[Bookmark], response: Dict[str, Any]) -> int:
        by_tweet = {b.tweet_id: b for b in batch}
        processed = 0
        for extraction in response["extractions"]:
            if not isinstance(extraction, dict):
                logger.warning(f"Skipping extraction that is not an object: {extraction!r}")
                result.skipped_items += 1
                continue
            bookmark = by_tweet.get(str(extraction.get("tweet_id")))
            if bookmark is None:
                continue

            raw_items = extraction.get("items") or []
            if not isinstance(raw_items, list):
                raw_items = [raw_items]
            for raw in raw_items:
                if not isinstance(raw, dict):
                    logger.warning(f"Skipping extracted item that is not an object: {raw!r}")
                    result.skipped_items += 1
                    continue
                item_type = raw.get("type")
                title = raw.get("title")
                if item_type not in ITEM_TYPES or not title or not isinstance(title, str):
                    logger.warning(f"Skipping extracted item with type={item_type!r} title={title!r}")
                    result.skipped_items += 1
                    continue

                description = raw.get("description")
                await ctx.store.create_item(
                    Item(
                        bookmark_id=bookmark.id,
                        type=item_type,
                        title=title,
                        description=description if isinstance(description, str) else None,
                        status="pending",
                    )
                )
                result.count(item_type)

            processed += 1
        return processed

    logger.info(f"Extracting items from {len(bookmarks)} posts (batch_size={batch_size})")
    run = await run_in_batches(
        bookmarks,
        batch_size,
        config.extract_delay_seconds,
        request,
        save,
        on_progress,
    )
    result.processed = run.processed
    result.failed_batches = run.failed_batches

    logger.info(
        f"Extraction complete: {result.tasks_created} tasks, {result.ideas_created} ideas, "
        f"{result.resources_created} resources"
    )
    return result


async def extract_from_all_bookmarks(
    ctx: "BirdbrainContext",
    on_progress: Optional[ProgressCallback] = None,
    batch_size: Optional[int] = None,
) -> ExtractionResult:
    """Extract items from the most recently bookmarked posts."""
    bookmarks = await ctx.store.get_bookmarks(ctx.analysis_config.extract_limit, 0)
    return await _extract(ctx, bookmarks, on_progress, batch_size)


async def extract_from_new_bookmarks(
    ctx: "BirdbrainContext",
    on_progress: Optional[ProgressCallback] = None,
    batch_size: Optional[int] = None,
) -> ExtractionResult:
    """Extract items only from posts that have not been classified yet."""
    bookmarks = await ctx.store.get_unanalyzed_bookmarks(ctx.analysis_config.extract_new_limit)
    return await _extract(ctx, bookmarks, on_progress, batch_size)
