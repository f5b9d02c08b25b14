"""
PostgreSQL persistence for bookmarks, embeddings, topics and extracted items.

Embeddings are stored as REAL[] on the bookmark row; clustering rewrites the
topic tables wholesale inside one transaction.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import asyncpg

from birdbrain.config_schema import DatabaseConfig
from birdbrain.exceptions import DatabaseConnectionError, StorageError
from birdbrain.models import (
    ITEM_STATUSES,
    ITEM_TYPES,
    Author,
    Bookmark,
    ClusterAssignment,
    EmbeddedBookmark,
    Item,
    ItemStatus,
    ItemType,
    Stats,
    Topic,
    TopicWithBookmarks,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS authors (
    id SERIAL PRIMARY KEY,
    twitter_id TEXT UNIQUE NOT NULL,
    username TEXT NOT NULL,
    display_name TEXT,
    avatar_url TEXT
);

CREATE TABLE IF NOT EXISTS bookmarks (
    id SERIAL PRIMARY KEY,
    tweet_id TEXT UNIQUE NOT NULL,
    author_id INTEGER REFERENCES authors(id),
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    bookmarked_at TEXT NOT NULL,
    like_count INTEGER DEFAULT 0,
    retweet_count INTEGER DEFAULT 0,
    synced_at TEXT NOT NULL,
    embedding REAL[],
    cluster_id INTEGER
);

CREATE TABLE IF NOT EXISTS topics (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS bookmark_topics (
    bookmark_id INTEGER REFERENCES bookmarks(id) ON DELETE CASCADE,
    topic_id INTEGER REFERENCES topics(id) ON DELETE CASCADE,
    confidence REAL,
    PRIMARY KEY (bookmark_id, topic_id)
);

CREATE TABLE IF NOT EXISTS items (
    id SERIAL PRIMARY KEY,
    bookmark_id INTEGER REFERENCES bookmarks(id) ON DELETE CASCADE,
    type TEXT NOT NULL CHECK (type IN ('task', 'idea', 'resource')),
    title TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'done', 'archived')),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_bookmarks_synced_at ON bookmarks(synced_at);
CREATE INDEX IF NOT EXISTS idx_bookmarks_bookmarked_at ON bookmarks(bookmarked_at);
CREATE INDEX IF NOT EXISTS idx_items_type ON items(type);
CREATE INDEX IF NOT EXISTS idx_items_status ON items(status);
"""

_BOOKMARK_SELECT = """
    SELECT b.id, b.tweet_id, b.author_id, b.content, b.created_at, b.bookmarked_at,
           b.like_count, b.retweet_count, b.synced_at, b.cluster_id,
           a.username, a.display_name
    FROM bookmarks b
    LEFT JOIN authors a ON b.author_id = a.id
"""


class BookmarkStore:
    """
    asyncpg-backed store.

    Call initialize() before use and close() when done; init_schema() creates
    the tables if they are missing.
    """

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        connect_retries: int = 5,
        retry_delay: float = 2.0,
    ):
        self.dsn = dsn
        self.pool_size = pool_size
        self.connect_retries = connect_retries
        self.retry_delay = retry_delay
        self.pool: Optional[asyncpg.Pool] = None
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "BookmarkStore":
        return cls(
            dsn=config.dsn,
            pool_size=config.pool_size,
            connect_retries=config.connect_retries,
            retry_delay=config.retry_delay,
        )

    async def initialize(self) -> None:
        """Create the connection pool (no-op if already created)."""
        async with self._init_lock:
            if self.pool is None:
                await self._initialize_pool()

    async def _initialize_pool(self) -> None:
        """Create asyncpg connection pool with retry logic."""
        retry_delay = self.retry_delay

        for attempt in range(1, self.connect_retries + 1):
            try:
                logger.info(
                    f"Attempting to connect to PostgreSQL (attempt {attempt}/{self.connect_retries})..."
                )
                self.pool = await asyncpg.create_pool(
                    dsn=self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=60,
                )
                logger.info(f"PostgreSQL connection pool created (size={self.pool_size})")
                return

            except (OSError, asyncpg.PostgresError) as e:
                if attempt < self.connect_retries:
                    logger.warning(f"Connection attempt {attempt} failed: {e}. Retrying in {retry_delay}s...")
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2  # Exponential backoff
                else:
                    logger.error(
                        f"Failed to initialize PostgreSQL pool after {self.connect_retries} attempts: {e}"
                    )
                    raise DatabaseConnectionError(
                        f"PostgreSQL connection failed after {self.connect_retries} attempts",
                        cause=e,
                    ) from e

    async def close(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("PostgreSQL connection pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise StorageError("BookmarkStore is not initialized; call initialize() first")
        return self.pool

    async def init_schema(self) -> None:
        async with self._require_pool().acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Database schema ready")

    # ============================================================================
    # Authors and bookmarks
    # ============================================================================

    async def upsert_author(self, author: Author) -> int:
        async with self._require_pool().acquire() as conn:
            author_id = await conn.fetchval(
                """
                INSERT INTO authors (twitter_id, username, display_name, avatar_url)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (twitter_id) DO UPDATE SET
                    username = EXCLUDED.username,
                    display_name = EXCLUDED.display_name,
                    avatar_url = EXCLUDED.avatar_url
                RETURNING id
                """,
                author.twitter_id, author.username, author.display_name, author.avatar_url,
            )
        if author_id is None:
            raise StorageError(f"Failed to upsert author {author.twitter_id}")
        return author_id

    async def upsert_bookmark(self, bookmark: Bookmark) -> int:
        async with self._require_pool().acquire() as conn:
            bookmark_id = await conn.fetchval(
                """
                INSERT INTO bookmarks (tweet_id, author_id, content, created_at, bookmarked_at,
                                       like_count, retweet_count, synced_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                ON CONFLICT (tweet_id) DO UPDATE SET
                    content = EXCLUDED.content,
                    like_count = EXCLUDED.like_count,
                    retweet_count = EXCLUDED.retweet_count,
                    synced_at = EXCLUDED.synced_at
                RETURNING id
                """,
                bookmark.tweet_id, bookmark.author_id, bookmark.content, bookmark.created_at,
                bookmark.bookmarked_at, bookmark.like_count, bookmark.retweet_count, bookmark.synced_at,
            )
        if bookmark_id is None:
            raise StorageError(f"Failed to upsert bookmark {bookmark.tweet_id}")
        return bookmark_id

    async def get_bookmarks(self, limit: int = 100, offset: int = 0) -> List[Bookmark]:
        """Most recently bookmarked posts first."""
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(
                _BOOKMARK_SELECT + " ORDER BY b.bookmarked_at DESC LIMIT $1 OFFSET $2",
                limit, offset,
            )
        return [Bookmark.from_record(row) for row in rows]

    async def get_bookmarks_by_ids(self, ids: Sequence[int]) -> Dict[int, Bookmark]:
        if not ids:
            return {}
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(_BOOKMARK_SELECT + " WHERE b.id = ANY($1::int[])", list(ids))
        return {row["id"]: Bookmark.from_record(row) for row in rows}

    async def get_bookmark(self, bookmark_id: int) -> Optional[Bookmark]:
        return (await self.get_bookmarks_by_ids([bookmark_id])).get(bookmark_id)

    async def get_bookmark_count(self) -> int:
        async with self._require_pool().acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM bookmarks") or 0

    # ============================================================================
    # Embeddings
    # ============================================================================

    async def get_unembedded_bookmarks(self) -> List[Bookmark]:
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(
                _BOOKMARK_SELECT + " WHERE b.embedding IS NULL ORDER BY b.bookmarked_at DESC"
            )
        return [Bookmark.from_record(row) for row in rows]

    async def get_embedded_bookmarks(self) -> List[EmbeddedBookmark]:
        """Posts with a stored vector, in id order."""
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT b.id, b.tweet_id, b.author_id, b.content, b.created_at, b.bookmarked_at,
                       b.like_count, b.retweet_count, b.synced_at, b.cluster_id,
                       a.username, a.display_name, b.embedding
                FROM bookmarks b
                LEFT JOIN authors a ON b.author_id = a.id
                WHERE b.embedding IS NOT NULL
                ORDER BY b.id
                """
            )
        return [
            EmbeddedBookmark(bookmark=Bookmark.from_record(row), embedding=list(row["embedding"]))
            for row in rows
        ]

    async def set_embedding(self, bookmark_id: int, vector: Sequence[float]) -> None:
        async with self._require_pool().acquire() as conn:
            await conn.execute(
                "UPDATE bookmarks SET embedding = $1 WHERE id = $2",
                [float(v) for v in vector], bookmark_id,
            )

    async def has_embeddings(self) -> bool:
        async with self._require_pool().acquire() as conn:
            count = await conn.fetchval("SELECT COUNT(*) FROM bookmarks WHERE embedding IS NOT NULL")
        return bool(count)

    async def get_all_texts(self) -> List[Tuple[int, str]]:
        """(id, content) for every post, used to rebuild the lexical index."""
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch("SELECT id, content FROM bookmarks ORDER BY id")
        return [(row["id"], row["content"]) for row in rows if row["content"]]

    # ============================================================================
    # Topics
    # ============================================================================

    async def replace_topics(self, clusters: Iterable[ClusterAssignment]) -> List[int]:
        """
        Replace all topics and topic links with the given clusters.

        Runs in a single transaction: links and topics are deleted, one topic
        is inserted per cluster, its posts are linked with confidence 1.0 and
        their cluster_id is updated.

        Returns:
            Ids of the created topics, in input order
        """
        topic_ids = []
        async with self._require_pool().acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM bookmark_topics")
                await conn.execute("DELETE FROM topics")

                for cluster in clusters:
                    topic_id = await conn.fetchval(
                        "INSERT INTO topics (name, description) VALUES ($1, $2) RETURNING id",
                        cluster.name, cluster.description,
                    )
                    await conn.executemany(
                        "INSERT INTO bookmark_topics (bookmark_id, topic_id, confidence) VALUES ($1, $2, 1.0)",
                        [(bookmark_id, topic_id) for bookmark_id in cluster.bookmark_ids],
                    )
                    await conn.execute(
                        "UPDATE bookmarks SET cluster_id = $1 WHERE id = ANY($2::int[])",
                        cluster.cluster_id, list(cluster.bookmark_ids),
                    )
                    topic_ids.append(topic_id)

        logger.info(f"Replaced topics: {len(topic_ids)} created")
        return topic_ids

    async def get_topics(self) -> List[Topic]:
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch("SELECT id, name, description, created_at FROM topics ORDER BY name")
        return [Topic.from_record(row) for row in rows]

    async def get_topic_with_bookmarks(self, topic_id: int) -> Optional[TopicWithBookmarks]:
        async with self._require_pool().acquire() as conn:
            topic_row = await conn.fetchrow(
                "SELECT id, name, description, created_at FROM topics WHERE id = $1", topic_id
            )
            if topic_row is None:
                return None
            rows = await conn.fetch(
                _BOOKMARK_SELECT
                + """
                INNER JOIN bookmark_topics bt ON b.id = bt.bookmark_id
                WHERE bt.topic_id = $1
                ORDER BY bt.confidence DESC
                """,
                topic_id,
            )
        return TopicWithBookmarks(
            topic=Topic.from_record(topic_row),
            bookmarks=[Bookmark.from_record(row) for row in rows],
        )

    async def get_unanalyzed_bookmarks(self, limit: int = 50) -> List[Bookmark]:
        """Posts not linked to any topic, most recent first."""
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(
                _BOOKMARK_SELECT
                + """
                WHERE NOT EXISTS (SELECT 1 FROM bookmark_topics bt WHERE bt.bookmark_id = b.id)
                ORDER BY b.bookmarked_at DESC
                LIMIT $1
                """,
                limit,
            )
        return [Bookmark.from_record(row) for row in rows]

    async def get_or_create_topic(self, name: str, description: Optional[str] = None) -> Tuple[int, bool]:
        """
        Look a topic up by name, creating it when missing.

        Returns:
            (topic_id, created)
        """
        async with self._require_pool().acquire() as conn:
            existing = await conn.fetchval("SELECT id FROM topics WHERE name = $1", name)
            if existing is not None:
                return existing, False
            topic_id = await conn.fetchval(
                "INSERT INTO topics (name, description) VALUES ($1, $2) RETURNING id",
                name, description,
            )
        return topic_id, True

    async def link_bookmark_to_topic(self, bookmark_id: int, topic_id: int, confidence: float) -> None:
        async with self._require_pool().acquire() as conn:
            await conn.execute(
                """
                INSERT INTO bookmark_topics (bookmark_id, topic_id, confidence)
                VALUES ($1, $2, $3)
                ON CONFLICT (bookmark_id, topic_id) DO UPDATE SET confidence = EXCLUDED.confidence
                """,
                bookmark_id, topic_id, confidence,
            )

    # ============================================================================
    # Items
    # ============================================================================

    async def create_item(self, item: Item) -> int:
        if item.type not in ITEM_TYPES:
            raise ValueError(f"Unknown item type: {item.type}")
        if item.status not in ITEM_STATUSES:
            raise ValueError(f"Unknown item status: {item.status}")
        async with self._require_pool().acquire() as conn:
            item_id = await conn.fetchval(
                """
                INSERT INTO items (bookmark_id, type, title, description, status)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                item.bookmark_id, item.type, item.title, item.description, item.status,
            )
        if item_id is None:
            raise StorageError(f"Failed to create item for bookmark {item.bookmark_id}")
        return item_id

    async def get_items_by_type(self, item_type: ItemType) -> List[Item]:
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM items WHERE type = $1 ORDER BY created_at DESC", item_type
            )
        return [Item.from_record(row) for row in rows]

    async def get_items_by_status(self, status: ItemStatus) -> List[Item]:
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM items WHERE status = $1 ORDER BY created_at DESC", status
            )
        return [Item.from_record(row) for row in rows]

    async def update_item_status(self, item_id: int, status: ItemStatus) -> bool:
        """Returns False when no item has that id."""
        if status not in ITEM_STATUSES:
            raise ValueError(f"Unknown item status: {status}")
        async with self._require_pool().acquire() as conn:
            result = await conn.execute("UPDATE items SET status = $1 WHERE id = $2", status, item_id)
        # result is like "UPDATE 1" or "UPDATE 0"
        return result.split()[-1] != "0"

    async def get_stats(self) -> Stats:
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    (SELECT COUNT(*) FROM bookmarks) AS total_bookmarks,
                    (SELECT COUNT(*) FROM topics) AS total_topics,
                    (SELECT COUNT(*) FROM items WHERE type = 'task' AND status = 'pending') AS pending_tasks,
                    (SELECT COUNT(*) FROM items WHERE type = 'idea') AS total_ideas
                """
            )
        if row is None:
            return Stats()
        return Stats(
            total_bookmarks=row["total_bookmarks"] or 0,
            total_topics=row["total_topics"] or 0,
            pending_tasks=row["pending_tasks"] or 0,
            total_ideas=row["total_ideas"] or 0,
        )
