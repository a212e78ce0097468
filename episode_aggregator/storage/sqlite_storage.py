"""SQLite storage for sources, posts, tags and the media catalog."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import structlog

from episode_aggregator.config import StorageConfig
from episode_aggregator.core.errors import PersistenceError
from episode_aggregator.core.models import MediaCatalogItem, Post, Source

logger = structlog.get_logger(__name__)


class SQLiteStorage:
    """SQLite storage for the aggregator.

    Every statement runs on its own short-lived connection and commits on
    success; ``sqlite3`` errors surface as ``PersistenceError``.
    """

    def __init__(self, config: StorageConfig):
        """Initialize SQLite storage.

        Args:
            config: SQLite configuration
        """
        self.db_path = Path(config.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def initialize(self) -> None:
        """Create the schema if it does not exist yet."""
        with open(Path(__file__).parent / "schema.sql") as f:
            script = f.read()
        with self._get_connection() as conn:
            conn.executescript(script)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection with row factory, committing and closing it afterwards."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open database: {e}", details={"db_path": str(self.db_path)})
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e), details={"db_path": str(self.db_path)}) from e
        finally:
            conn.close()

    def ping(self) -> None:
        """Check that the database answers a trivial query."""
        with self._get_connection() as conn:
            conn.execute("SELECT 1").fetchone()

    def get_active_sources(self) -> List[Source]:
        """Return every source flagged active, in id order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM sources WHERE active = 1 ORDER BY source_id"
            ).fetchall()
        return [Source.from_row(row) for row in rows]

    def count_posts_with_link(self, link: str) -> int:
        """Count stored posts with the given link."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS ttl FROM posts WHERE link = ?", (link,)).fetchone()
        return row["ttl"]

    def update_source_info(self, source_id: int, feed_name: str, checked_at: str) -> int:
        """Store a source's feed name and last-checked time.

        Returns:
            Number of rows affected
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sources SET feed_name = ?, last_checked = ? WHERE source_id = ?",
                (feed_name, checked_at, source_id),
            )
            return cursor.rowcount

    def insert_post(self, source_id: int, post: Post) -> int:
        """Insert a post row and return its id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO posts (source_id, post_title, pub_date, link, description, content)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    source_id,
                    post.title,
                    post.pub_date,
                    post.link,
                    post.description,
                    post.content,
                ),
            )
            return cursor.lastrowid

    def find_tag(self, tag: str) -> Optional[int]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT tag_id FROM tags WHERE tag = ? ORDER BY tag_id LIMIT 1", (tag,)
            ).fetchone()
        return row["tag_id"] if row else None

    def create_tag(self, tag: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute("INSERT INTO tags (tag) VALUES (?)", (tag,))
            return cursor.lastrowid

    def find_or_create_tag(self, tag: str) -> int:
        """Return the id of ``tag``, creating the row when missing.

        Not guarded against a concurrent writer creating the same tag; rounds
        run one at a time.
        """
        tag_id = self.find_tag(tag)
        if tag_id is None:
            tag_id = self.create_tag(tag)
        return tag_id

    def link_post_tag(self, post_id: int, tag_id: int) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO post_tags (post_id, tag_id) VALUES (?, ?)", (post_id, tag_id)
            )

    def link_post_media(self, post_id: int, media_id: int) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO post_media (post_id, media_id) VALUES (?, ?)", (post_id, media_id)
            )

    def latest_post_date(self, source_id: int) -> Optional[str]:
        """Return the newest stored publish date for a source, if any."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT pub_date FROM posts WHERE source_id = ? ORDER BY pub_date DESC LIMIT 1",
                (source_id,),
            ).fetchone()
        return row["pub_date"] if row else None

    def update_days_since_last_post(self, source_id: int, days: int) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sources SET days_since_last_post = ? WHERE source_id = ?",
                (days, source_id),
            )
            return cursor.rowcount

    def count_media_titles(self) -> int:
        with self._get_connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS ttl FROM media_titles").fetchone()
        return row["ttl"]

    def get_catalog(self) -> List[MediaCatalogItem]:
        """Return the titles of auto-indexed media, ordered by title."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT media_titles.media_id, media_titles.title
                FROM media_titles
                JOIN media ON media.media_id = media_titles.media_id
                WHERE media.auto_index = 1
                ORDER BY media_titles.title ASC
                """
            ).fetchall()
        return [MediaCatalogItem(media_id=row["media_id"], title=row["title"]) for row in rows]

    def add_source(
        self,
        feed_url: str,
        dialect: str = "rss",
        alt_name: str = "",
        feed_name: str = "",
        active: bool = True,
    ) -> int:
        """Register a feed source and return its id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sources (feed_name, feed_url, dialect, active, alt_name)
                VALUES (?, ?, ?, ?, ?)
                """,
                (feed_name, feed_url, dialect, int(active), alt_name),
            )
            source_id = cursor.lastrowid
        logger.info("Registered source", source_id=source_id, feed_url=feed_url, dialect=dialect)
        return source_id

    def add_media(self, titles: Iterable[str], auto_index: bool = True) -> int:
        """Register a catalog entry with one or more titles and return its id."""
        with self._get_connection() as conn:
            cursor = conn.execute("INSERT INTO media (auto_index) VALUES (?)", (int(auto_index),))
            media_id = cursor.lastrowid
            conn.executemany(
                "INSERT INTO media_titles (media_id, title) VALUES (?, ?)",
                [(media_id, title) for title in titles],
            )
        logger.info("Registered media", media_id=media_id, auto_index=auto_index)
        return media_id
