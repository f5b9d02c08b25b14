"""
Row types shared by the store, the analysis workflows and search.

Records coming out of asyncpg are mapping-like, so every type offers a
``from_record`` constructor that ignores columns it does not model.
"""

from dataclasses import dataclass, field, fields
from typing import Any, List, Literal, Mapping, Optional, get_args

ItemType = Literal["task", "idea", "resource"]
ItemStatus = Literal["pending", "done", "archived"]

ITEM_TYPES = get_args(ItemType)
ITEM_STATUSES = get_args(ItemStatus)


def _pick(cls, record: Mapping[str, Any]) -> dict:
    names = {f.name for f in fields(cls)}
    return {key: record[key] for key in record.keys() if key in names}


@dataclass
class Author:
    twitter_id: str
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Author":
        return cls(**_pick(cls, record))


@dataclass
class Bookmark:
    """A bookmarked post, joined with its author's names when read back."""

    tweet_id: str
    content: str
    created_at: str
    bookmarked_at: str
    synced_at: str
    author_id: Optional[int] = None
    like_count: int = 0
    retweet_count: int = 0
    id: Optional[int] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    cluster_id: Optional[int] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Bookmark":
        return cls(**_pick(cls, record))


@dataclass
class EmbeddedBookmark:
    """A post together with its stored embedding."""

    bookmark: Bookmark
    embedding: List[float]

    @property
    def id(self) -> int:
        return self.bookmark.id

    @property
    def content(self) -> str:
        return self.bookmark.content


@dataclass
class Topic:
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Topic":
        data = _pick(cls, record)
        if data.get("created_at") is not None:
            data["created_at"] = str(data["created_at"])
        return cls(**data)


@dataclass
class TopicWithBookmarks:
    topic: Topic
    bookmarks: List[Bookmark] = field(default_factory=list)


@dataclass
class Item:
    """An actionable task, idea or resource extracted from a post."""

    bookmark_id: int
    type: ItemType
    title: str
    description: Optional[str] = None
    status: ItemStatus = "pending"
    id: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Item":
        data = _pick(cls, record)
        if data.get("created_at") is not None:
            data["created_at"] = str(data["created_at"])
        return cls(**data)


@dataclass
class ClusterAssignment:
    """One labeled cluster ready to be persisted as a topic."""

    name: str
    description: str
    bookmark_ids: List[int]
    cluster_id: int


@dataclass
class Stats:
    total_bookmarks: int = 0
    total_topics: int = 0
    pending_tasks: int = 0
    total_ideas: int = 0


@dataclass
class SearchResult:
    """A ranked document. Scores are comparable only within one ranking call."""

    document_id: int
    score: float
    bookmark: Optional[Bookmark] = None
