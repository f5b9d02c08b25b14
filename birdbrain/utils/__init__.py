"""Shared utilities for birdbrain."""

from .logger import setup_logger
from .text_helpers import strip_code_fences, clean_label_text, truncate

__all__ = [
    "setup_logger",
    "strip_code_fences",
    "clean_label_text",
    "truncate",
]
