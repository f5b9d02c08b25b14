"""
Shared text processing utilities.
"""

import re
from typing import Optional

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_URL = re.compile(r"https?://\S+")
_WHITESPACE = re.compile(r"\s+")

ELLIPSIS = "..."


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code fence, or the trimmed text."""
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def clean_label_text(text: Optional[str], max_length: int = 60) -> str:
    """
    Turn a raw post into a short single-line label.

    URLs are removed, whitespace runs collapse to one space and the result
    is cut to ``max_length`` characters with an ellipsis appended when cut.
    Returns an empty string when nothing is left.
    """
    if not text:
        return ""
    cleaned = _URL.sub("", text)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if len(cleaned) > max_length:
        return cleaned[:max_length].rstrip() + ELLIPSIS
    return cleaned


def truncate(text: str, max_chars: int) -> str:
    """Cut text to max_chars, marking the cut with an ellipsis."""
    if len(text) > max_chars:
        return text[:max_chars] + ELLIPSIS
    return text
