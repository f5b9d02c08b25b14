"""Analysis workflows: embeddings, clustering, LLM classification and extraction."""

from .progress import Progress
from .batching import BatchFailure
from .pipeline import (
    AnalysisResult,
    ClusteringOutcome,
    generate_embeddings,
    run_clustering,
    run_full_analysis,
)
from .classifier import ClassificationResult, classify_bookmark_batch, classify_unanalyzed_bookmarks
from .extractor import (
    ExtractionResult,
    extract_from_all_bookmarks,
    extract_from_bookmark_batch,
    extract_from_new_bookmarks,
)

__all__ = [
    "Progress",
    "BatchFailure",
    "AnalysisResult",
    "ClusteringOutcome",
    "generate_embeddings",
    "run_clustering",
    "run_full_analysis",
    "ClassificationResult",
    "classify_bookmark_batch",
    "classify_unanalyzed_bookmarks",
    "ExtractionResult",
    "extract_from_all_bookmarks",
    "extract_from_bookmark_batch",
    "extract_from_new_bookmarks",
]
