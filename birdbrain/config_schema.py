"""
JSON Configuration Schema for birdbrain.

This module defines the configuration schema using Pydantic models.
Every field carries a default, so an empty ``{}`` config.json is valid;
values that are present are validated strictly.

Secrets belong in the environment (.env is read via python-dotenv):
- ANTHROPIC_API_KEY, when set, overrides api_keys.anthropic_api_key
- DATABASE_URL, when set, overrides database.dsn
"""

import json
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from birdbrain.exceptions import ConfigurationError


class APIKeysConfig(BaseModel):
    """
    Credentials for the Claude collaborator.

    The key normally comes from ANTHROPIC_API_KEY (environment or .env),
    which takes precedence over a value in config.json.
    """

    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Claude API key, normally supplied via ANTHROPIC_API_KEY"
    )

    @model_validator(mode="after")
    def load_from_env(self):
        """Prefer ANTHROPIC_API_KEY from the environment or .env."""
        load_dotenv()
        self.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY") or self.anthropic_api_key
        return self


class DatabaseConfig(BaseModel):
    """PostgreSQL connection settings."""

    dsn: str = Field(
        default="postgresql://localhost:5432/birdbrain",
        description="PostgreSQL DSN (overridden by DATABASE_URL env var)"
    )
    pool_size: int = Field(default=10, description="Connection pool size", ge=1)
    connect_retries: int = Field(default=5, description="Connection attempts before giving up", ge=1)
    retry_delay: float = Field(
        default=2.0, description="Seconds before the first reconnect; doubles per attempt", gt=0
    )

    @model_validator(mode="after")
    def load_from_env(self):
        load_dotenv()
        self.dsn = os.getenv("DATABASE_URL") or self.dsn
        return self


class EmbeddingConfig(BaseModel):
    """Embedding provider settings."""

    model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="SentenceTransformer model name"
    )
    batch_size: int = Field(default=32, description="Texts per encode call", ge=1)
    device: Optional[Literal["cpu", "cuda", "mps"]] = Field(
        default=None,
        description="Force a torch device (auto-detected when unset)"
    )


class LLMConfig(BaseModel):
    """Claude settings for topic classification and item extraction."""

    model: str = Field(default="claude-sonnet-4-20250514", description="Claude model name")
    max_tokens: int = Field(default=4096, description="Maximum tokens per response", ge=1)
    max_retries: int = Field(default=3, description="Retries on rate limit", ge=0)
    retry_delay: float = Field(default=1.0, description="Initial retry delay (seconds)", ge=0.0)


class ClusteringSchema(BaseModel):
    """k-means topic clustering."""

    max_k: int = Field(default=10, description="Upper bound for automatic k selection", ge=1)
    max_iterations: int = Field(default=100, description="Lloyd iterations per run", ge=1)
    selection_iterations: int = Field(
        default=50,
        description="Lloyd iterations per candidate k during elbow search",
        ge=1
    )
    label_max_length: int = Field(default=60, description="Cluster label length", ge=1)


class SearchSchema(BaseModel):
    """Hybrid search fusion weights."""

    default_limit: int = Field(default=20, description="Results per query", ge=1)
    vector_boost: float = Field(
        default=1.2,
        description="Multiplier for vector hits also found lexically",
        gt=0.0
    )
    lexical_only_weight: float = Field(
        default=0.5,
        description="Multiplier for lexical-only hits",
        gt=0.0
    )


class AnalysisSchema(BaseModel):
    """Batch sizes and pacing for LLM workflows."""

    classify_batch_size: int = Field(default=20, ge=1)
    classify_delay_seconds: float = Field(default=1.0, ge=0.0)
    classify_limit: int = Field(default=100, description="Unanalyzed posts per run", ge=1)
    extract_batch_size: int = Field(default=15, ge=1)
    extract_delay_seconds: float = Field(default=1.5, ge=0.0)
    extract_limit: int = Field(default=200, description="Posts scanned by full extraction", ge=1)
    extract_new_limit: int = Field(default=100, description="Posts scanned by incremental extraction", ge=1)


class LoggingSchema(BaseModel):
    """Logging output."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None, description="Optional log file path")


class RootConfig(BaseModel):
    """Root configuration."""

    model_config = ConfigDict(extra="forbid")

    api_keys: APIKeysConfig = Field(default_factory=APIKeysConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    clustering: ClusteringSchema = Field(default_factory=ClusteringSchema)
    search: SearchSchema = Field(default_factory=SearchSchema)
    analysis: AnalysisSchema = Field(default_factory=AnalysisSchema)
    logging: LoggingSchema = Field(default_factory=LoggingSchema)

    @classmethod
    def from_dict(cls, data: dict) -> "RootConfig":
        """
        Validate a parsed config mapping.

        Raises:
            ConfigurationError: If validation fails
        """
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed:\n{e}",
                cause=e,
            ) from e

    @classmethod
    def from_json_file(cls, path: Path) -> "RootConfig":
        """
        Load configuration from JSON file with strict validation.

        Args:
            path: Path to config.json

        Returns:
            Validated RootConfig instance

        Raises:
            FileNotFoundError: If config.json does not exist
            ConfigurationError: If JSON is malformed or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {path}\n"
                f"Create it with at least '{{}}' to use the defaults."
            )

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in {path}: {e}",
                cause=e,
            ) from e

        return cls.from_dict(data)


def load_config(config_path: Optional[Path] = None) -> RootConfig:
    """
    Load and validate configuration from config.json.

    Args:
        config_path: Optional path to config.json (default: ./config.json)

    Returns:
        Validated RootConfig instance
    """
    if config_path is None:
        config_path = Path.cwd() / "config.json"

    return RootConfig.from_json_file(Path(config_path))
