"""
Typed errors raised by birdbrain.

Each carries a human message, optional structured ``details`` and the
library exception it replaced (``cause``).

Exception Hierarchy:
    BirdbrainError (base)
    ├── ValidationError → ConfigurationError, DimensionMismatchError
    ├── ProviderError → APIKeyError, RateLimitError, ResponseParseError
    ├── StorageError → DatabaseConnectionError
    └── RetrievalError → EmbeddingError

Usage:
    from birdbrain.exceptions import DimensionMismatchError, ProviderError

    try:
        score = cosine_similarity(query, vector)
    except DimensionMismatchError as e:
        logger.error(f"Vector dimensions disagree: {e}")
        raise
"""

from typing import Any, Dict, Optional


class BirdbrainError(Exception):
    """Base exception for all birdbrain errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {type(self.cause).__name__}: {self.cause})"
        return self.message


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(BirdbrainError):
    """Error validating input data or configuration."""
    pass


class ConfigurationError(ValidationError):
    """Error in configuration (missing keys, invalid values)."""
    pass


class DimensionMismatchError(ValidationError):
    """Vectors compared to each other do not share the same dimension."""

    def __init__(self, expected: int, actual: int, context: str = "vector"):
        super().__init__(
            f"Dimension mismatch in {context}: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual, "context": context},
        )
        self.expected = expected
        self.actual = actual


# =============================================================================
# Provider Errors (LLM API)
# =============================================================================

class ProviderError(BirdbrainError):
    """Error from LLM provider (API error, rate limit, etc.)."""
    pass


class APIKeyError(ProviderError):
    """Missing or invalid API key."""
    pass


class RateLimitError(ProviderError):
    """API rate limit exceeded."""
    pass


class ResponseParseError(ProviderError):
    """LLM response could not be parsed into the expected structure."""
    pass


# =============================================================================
# Storage Errors
# =============================================================================

class StorageError(BirdbrainError):
    """Error in storage layer (database)."""
    pass


class DatabaseConnectionError(StorageError):
    """Failed to connect to database."""
    pass


# =============================================================================
# Retrieval Errors
# =============================================================================

class RetrievalError(BirdbrainError):
    """Error in retrieval pipeline."""
    pass


class EmbeddingError(RetrievalError):
    """Embedding model could not be loaded."""
    pass


# =============================================================================
# Helper functions
# =============================================================================

# Errors that would repeat on every following batch; fix the setup and re-run
UNRECOVERABLE_ERRORS = (
    MemoryError,
    RecursionError,
    ConfigurationError,
    APIKeyError,
    DatabaseConnectionError,
)


def wrap_exception(
    exception: Exception,
    target_type: type = BirdbrainError,
    message: Optional[str] = None
) -> BirdbrainError:
    """
    Re-type a library exception as a birdbrain error, keeping it as ``cause``.

    Example:
        except OSError as e:
            raise wrap_exception(e, EmbeddingError, "Model download failed") from e
    """
    return target_type(
        message=message or str(exception),
        details={"original_type": type(exception).__name__},
        cause=exception
    )


def is_recoverable(exception: BaseException) -> bool:
    """
    Whether a batch workflow may log this error and move on to the next batch.

    Returns False for UNRECOVERABLE_ERRORS and for anything that is not an
    Exception (KeyboardInterrupt, SystemExit).
    """
    if not isinstance(exception, Exception):
        return False
    return not isinstance(exception, UNRECOVERABLE_ERRORS)
