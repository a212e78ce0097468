"""Data models shared by the round stages."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Set

if TYPE_CHECKING:
    from episode_aggregator.core.dialects import Dialect

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_utc(value: datetime) -> str:
    """Render a datetime in the store's UTC text form."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DATETIME_FORMAT)


def _new_post_key() -> str:
    return uuid.uuid4().hex


@dataclass
class Post:
    """A normalized feed entry.

    ``key`` is an opaque identifier assigned when the post is parsed; the
    matching stage uses it to find the post again when merging results.
    """

    title: str
    pub_date: str
    link: str
    description: str = ""
    content: str = ""
    categories: List[str] = field(default_factory=list)
    media_ids: Set[int] = field(default_factory=set)
    pub_date_fallback: bool = False
    key: str = field(default_factory=_new_post_key)


@dataclass
class Source:
    """A feed source as stored in the ``sources`` table."""

    source_id: int
    feed_name: str
    feed_url: str
    dialect_tag: str
    active: bool = True
    alt_name: str = ""
    created: Optional[str] = None
    modified: Optional[str] = None
    last_checked: Optional[str] = None
    days_since_last_post: int = 0
    dialect: Optional["Dialect"] = None
    posts: List[Post] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Source":
        """Build a source from a ``sources`` row."""
        return cls(
            source_id=row["source_id"],
            feed_name=row["feed_name"] or "",
            feed_url=row["feed_url"],
            dialect_tag=row["dialect"] or "",
            active=bool(row["active"]),
            alt_name=row["alt_name"] or "",
            created=row["created"],
            modified=row["modified"],
            last_checked=row["last_checked"],
            days_since_last_post=row["days_since_last_post"] or 0,
        )

    @property
    def display_name(self) -> str:
        return self.alt_name or self.feed_name or self.feed_url


@dataclass(frozen=True)
class MediaCatalogItem:
    """A catalog title used as a match pattern."""

    media_id: int
    title: str


@dataclass
class MatchResult:
    """Media matched for one post, keyed back to it by ``post_key``."""

    post_key: str
    source_id: int
    media: Dict[int, str] = field(default_factory=dict)


@dataclass
class FetchResult:
    """Outcome of fetching and parsing one source.

    ``has_document`` is only true when the feed was retrieved and parsed;
    content-absent results are skipped by the later stages.
    """

    source: Source
    has_document: bool = False
    error: Optional[str] = None


@dataclass
class OperationResult:
    """Success flag plus failure reason for a single operation."""

    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "OperationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "OperationResult":
        return cls(ok=False, reason=reason)


@dataclass
class SourceReport:
    """Per-source outcome of a round."""

    source_id: int
    feed_url: str
    fetched: bool = False
    fetch_error: Optional[str] = None
    info_updated: Optional[OperationResult] = None
    posts_inserted: int = 0
    posts_skipped: int = 0
    tags_linked: int = 0
    media_linked: int = 0
    days_since_updated: Optional[OperationResult] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class RoundReport:
    """Aggregated outcome of one round."""

    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    sources: List[SourceReport] = field(default_factory=list)
    posts_matched: int = 0
    index_refresh: Optional[OperationResult] = None
    fatal_error: Optional[str] = None
    skipped: bool = False

    @property
    def posts_inserted(self) -> int:
        return sum(report.posts_inserted for report in self.sources)

    @property
    def ok(self) -> bool:
        return self.fatal_error is None and not self.skipped

    def source_report(self, source_id: int) -> Optional[SourceReport]:
        for report in self.sources:
            if report.source_id == source_id:
                return report
        return None
