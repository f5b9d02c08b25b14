"""Progress reporting for long-running analysis workflows."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Progress:
    phase: str  # "embedding" | "clustering" | "indexing" | "analyzing" | "saving" | "complete"
    current: int
    total: int


ProgressCallback = Callable[[Progress], None]


def notify(on_progress: Optional[ProgressCallback], phase: str, current: int, total: int) -> None:
    """Call the progress sink, if any. Errors raised by the sink are logged and dropped."""
    if on_progress is None:
        return
    try:
        on_progress(Progress(phase=phase, current=current, total=total))
    except Exception as e:
        logger.warning(f"Progress callback failed during '{phase}': {e}")
