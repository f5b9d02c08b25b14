"""LLM collaborator used by the classification and extraction workflows."""

from .claude_client import ClaudeClient

__all__ = ["ClaudeClient"]
