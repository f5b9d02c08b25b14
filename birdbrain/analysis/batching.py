"""
Paced batch loop shared by the LLM classification and extraction workflows.

Each batch is sent to the model, then saved. A batch that fails is logged,
recorded as a BatchFailure and skipped; the loop continues with the next one.
Unrecoverable errors (missing API key, bad configuration) still propagate.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from birdbrain.analysis.progress import ProgressCallback, notify
from birdbrain.exceptions import is_recoverable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BatchFailure:
    batch_index: int
    size: int
    error: str


@dataclass
class BatchRun:
    processed: int = 0
    failed_batches: List[BatchFailure] = field(default_factory=list)


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    delay_seconds: float,
    request: Callable[[Sequence[T]], Awaitable[Any]],
    save: Callable[[Sequence[T], Any], Awaitable[int]],
    on_progress: Optional[ProgressCallback] = None,
) -> BatchRun:
    """
    Run request/save over consecutive batches of items.

    Args:
        items: Work items
        batch_size: Items per batch
        delay_seconds: Pause between batches (not after the last one)
        request: Sends one batch to the model and returns its response
        save: Persists a response and returns how many items it processed
        on_progress: Optional sink for analyzing/saving/complete progress

    Returns:
        BatchRun with the processed count and the failed batches
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    total = len(items)
    run = BatchRun()

    for index, start in enumerate(range(0, total, batch_size)):
        batch = items[start:start + batch_size]
        notify(on_progress, "analyzing", run.processed, total)

        try:
            response = await request(batch)
            notify(on_progress, "saving", run.processed, total)
            run.processed += await save(batch, response)
        except Exception as e:
            if not is_recoverable(e):
                raise
            logger.error(f"Error processing batch {index} ({len(batch)} items): {e}", exc_info=True)
            run.failed_batches.append(BatchFailure(batch_index=index, size=len(batch), error=str(e)))

        if start + batch_size < total:
            await asyncio.sleep(delay_seconds)

    notify(on_progress, "complete", run.processed, total)

    if run.failed_batches:
        logger.warning(f"{len(run.failed_batches)} batch(es) failed and were skipped")
    return run
