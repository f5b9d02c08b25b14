"""PostgreSQL persistence."""

from .postgres_store import BookmarkStore, SCHEMA_SQL

__all__ = ["BookmarkStore", "SCHEMA_SQL"]
