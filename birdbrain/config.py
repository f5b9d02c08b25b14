"""
Runtime configuration for birdbrain.

config.json is validated by the pydantic models in ``config_schema``; this
module caches the validated tree and turns its sections into the plain
dataclasses the clustering, search and analysis code take as arguments.

Usage:
    from birdbrain.config import get_config, ClusteringConfig

    config = get_config()
    clustering = ClusteringConfig.from_config(config.clustering)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from birdbrain.config_schema import (
    RootConfig,
    load_config as load_json_config,
    ClusteringSchema,
    SearchSchema,
    AnalysisSchema,
)

logger = logging.getLogger(__name__)

# Global config instance - loaded on first get_config() call
_CONFIG: Optional[RootConfig] = None


def get_config(reload: bool = False, config_path: Optional[Path] = None) -> RootConfig:
    """
    Get validated configuration from config.json.

    This function loads and validates config.json on first call,
    then caches the result for subsequent calls.

    Args:
        reload: Force reload config.json (default: False)
        config_path: Optional path to config.json (default: ./config.json)

    Returns:
        Validated RootConfig instance

    Raises:
        FileNotFoundError: If config.json does not exist
        ConfigurationError: If validation fails
    """
    global _CONFIG

    if _CONFIG is None or reload:
        try:
            _CONFIG = load_json_config(config_path)
            logger.info("Configuration loaded and validated successfully from config.json")
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise

    return _CONFIG


@dataclass
class ClusteringConfig:
    """Topic clustering parameters."""

    max_k: int = 10
    max_iterations: int = 100
    selection_iterations: int = 50
    label_max_length: int = 60

    def __post_init__(self):
        if self.max_k < 1:
            raise ValueError(f"max_k must be >= 1, got {self.max_k}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")

    @classmethod
    def from_config(cls, clustering_config: ClusteringSchema) -> "ClusteringConfig":
        """
        Load configuration from validated ClusteringSchema.

        Args:
            clustering_config: Validated ClusteringSchema from RootConfig

        Returns:
            ClusteringConfig instance
        """
        return cls(
            max_k=clustering_config.max_k,
            max_iterations=clustering_config.max_iterations,
            selection_iterations=clustering_config.selection_iterations,
            label_max_length=clustering_config.label_max_length,
        )


@dataclass
class SearchConfig:
    """Hybrid search fusion weights."""

    default_limit: int = 20
    vector_boost: float = 1.2
    lexical_only_weight: float = 0.5

    @classmethod
    def from_config(cls, search_config: SearchSchema) -> "SearchConfig":
        return cls(
            default_limit=search_config.default_limit,
            vector_boost=search_config.vector_boost,
            lexical_only_weight=search_config.lexical_only_weight,
        )


@dataclass
class AnalysisConfig:
    """Batch sizes, limits and pacing for the LLM workflows."""

    classify_batch_size: int = 20
    classify_delay_seconds: float = 1.0
    classify_limit: int = 100
    extract_batch_size: int = 15
    extract_delay_seconds: float = 1.5
    extract_limit: int = 200
    extract_new_limit: int = 100

    @classmethod
    def from_config(cls, analysis_config: AnalysisSchema) -> "AnalysisConfig":
        return cls(
            classify_batch_size=analysis_config.classify_batch_size,
            classify_delay_seconds=analysis_config.classify_delay_seconds,
            classify_limit=analysis_config.classify_limit,
            extract_batch_size=analysis_config.extract_batch_size,
            extract_delay_seconds=analysis_config.extract_delay_seconds,
            extract_limit=analysis_config.extract_limit,
            extract_new_limit=analysis_config.extract_new_limit,
        )
