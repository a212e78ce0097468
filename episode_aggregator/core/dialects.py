"""Feed dialects: document family, post mapping and date normalization.

A source's dialect tag is resolved once into one of two closed variants:

* ``SyndicationDialect`` for RSS channels (titles, descriptions,
  ``content:encoded`` bodies, categories, RFC 822 style dates).
* ``VideoPlatformDialect`` for YouTube style Atom feeds (title, ISO 8601
  ``published`` date, alternate link, ``media:description``).
"""

import io
import re
import xml.sax
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_tz
from typing import Any, List, Mapping, Optional, Tuple

import feedparser
import structlog

from episode_aggregator.core.errors import ParseError
from episode_aggregator.core.models import Post, Source, format_utc, utc_now

logger = structlog.get_logger(__name__)

MAX_SYNDICATION_TITLE_LENGTH = 150

# strptime's %d accepts both "02" and "2", so this single pattern covers the
# padded and the single-digit day forms of the numeric offset layout.
NUMERIC_OFFSET_FORMAT = "%a, %d %b %Y %H:%M:%S %z"
NAMED_ZONE_FORMAT = "%a, %d %b %Y %H:%M:%S"
ISO_OFFSET_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_NAMED_ZONE_RE = re.compile(
    r"^(?P<stamp>[A-Za-z]{3}, \d{2} [A-Za-z]{3} \d{4} \d{2}:\d{2}:\d{2}) (?P<zone>[A-Za-z]{1,5})$"
)


def _parse_numeric_offset(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, NUMERIC_OFFSET_FORMAT)
    except ValueError:
        return None


def _parse_named_zone(value: str) -> Optional[datetime]:
    match = _NAMED_ZONE_RE.match(value)
    if not match:
        return None
    try:
        stamp = datetime.strptime(match.group("stamp"), NAMED_ZONE_FORMAT)
    except ValueError:
        return None
    parsed = parsedate_tz(value)
    # Unknown abbreviations carry no offset and are read as UTC.
    offset = parsed[9] if parsed and parsed[9] is not None else 0
    return stamp.replace(tzinfo=timezone.utc) - timedelta(seconds=offset)


def _parse_iso_offset(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, ISO_OFFSET_FORMAT)
    except ValueError:
        return None


def _is_syntax_error(document: Mapping[str, Any]) -> bool:
    """Whether the bozo flag comes from broken XML rather than a recoverable warning."""
    return isinstance(document.get("bozo_exception"), xml.sax.SAXException)


def parse_syndication_date(value: str) -> Optional[datetime]:
    """Parse an RSS ``pubDate``, trying numeric offsets before named zones."""
    value = (value or "").strip()
    for parser in (_parse_numeric_offset, _parse_named_zone):
        parsed = parser(value)
        if parsed is not None:
            return parsed
    return None


def parse_video_platform_date(value: str) -> Optional[datetime]:
    """Parse an Atom ``published`` timestamp with a numeric offset."""
    return _parse_iso_offset((value or "").strip())


class Dialect:
    """Base class for the feed dialects.

    Subclasses set ``name`` and ``document_family`` (the prefix of the
    feedparser version string the document must have) and implement
    ``parse_date`` and ``build_post``.
    """

    name = ""
    document_family = ""

    def parse_date(self, value: str) -> Optional[datetime]:
        raise NotImplementedError

    def build_post(self, entry: Mapping[str, Any]) -> Optional[Post]:
        raise NotImplementedError

    def normalize_date(self, value: str) -> Tuple[str, bool]:
        """Return the UTC text form of ``value`` and whether it fell back to now."""
        parsed = self.parse_date(value)
        if parsed is None:
            return format_utc(utc_now()), True
        return format_utc(parsed), False

    def parse(self, body: bytes, source: Source) -> List[Post]:
        """Parse ``body`` into posts and update ``source`` in place.

        Args:
            body: Raw feed document
            source: Source the document was fetched for

        Returns:
            Posts in document order

        Raises:
            ParseError: If the document is not a feed of this dialect's family
        """
        document = feedparser.parse(io.BytesIO(body))
        version = document.get("version", "") or ""
        if not version.startswith(self.document_family):
            raise ParseError(
                f"Expected a {self.document_family} document",
                details={
                    "feed_url": source.feed_url,
                    "version": version,
                    "reason": str(document.get("bozo_exception", "")),
                },
            )
        if document.get("bozo") and not document.entries and _is_syntax_error(document):
            raise ParseError(
                "Malformed feed document",
                details={
                    "feed_url": source.feed_url,
                    "reason": str(document.get("bozo_exception", "")),
                },
            )
        if document.get("bozo"):
            logger.warning(
                "Feed parsed with errors",
                feed_url=source.feed_url,
                reason=str(document.get("bozo_exception", "")),
            )

        title = document.feed.get("title", "")
        if title:
            source.feed_name = title

        posts = []
        for entry in document.entries:
            post = self.build_post(entry)
            if post is None:
                continue
            if post.pub_date_fallback:
                logger.warning(
                    "Unparseable publish date, using current time",
                    feed_url=source.feed_url,
                    link=post.link,
                    raw_date=entry.get("published", ""),
                )
            posts.append(post)

        source.posts = posts
        return posts

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SyndicationDialect(Dialect):
    """RSS channels."""

    name = "rss"
    document_family = "rss"

    def parse_date(self, value: str) -> Optional[datetime]:
        return parse_syndication_date(value)

    def build_post(self, entry: Mapping[str, Any]) -> Optional[Post]:
        title = entry.get("title", "")
        if len(title) > MAX_SYNDICATION_TITLE_LENGTH:
            logger.debug("Dropping item with long title", link=entry.get("link", ""))
            return None

        pub_date, fallback = self.normalize_date(entry.get("published", ""))
        content = ""
        if entry.get("content"):
            content = entry["content"][0].get("value", "")
        description = entry.get("summary", "")
        # feedparser fills summary from content:encoded when the item has no description.
        if content and description == content:
            description = ""

        return Post(
            title=title,
            pub_date=pub_date,
            link=entry.get("link", ""),
            description=description,
            content=content,
            categories=[tag.get("term") for tag in entry.get("tags", []) if tag.get("term")],
            pub_date_fallback=fallback,
        )


class VideoPlatformDialect(Dialect):
    """YouTube style Atom feeds."""

    name = "youtube"
    document_family = "atom"

    def parse_date(self, value: str) -> Optional[datetime]:
        return parse_video_platform_date(value)

    def build_post(self, entry: Mapping[str, Any]) -> Optional[Post]:
        pub_date, fallback = self.normalize_date(entry.get("published", ""))
        # feedparser exposes media:group/media:description as the summary.
        return Post(
            title=entry.get("title", ""),
            pub_date=pub_date,
            link=entry.get("link", ""),
            description=entry.get("summary", ""),
            pub_date_fallback=fallback,
        )


SYNDICATION = SyndicationDialect()
VIDEO_PLATFORM = VideoPlatformDialect()

VIDEO_PLATFORM_TAGS = frozenset({"youtube", "anitube"})


def resolve_dialect(tag: Optional[str]) -> Dialect:
    """Map a stored dialect tag onto its dialect; unknown tags are RSS."""
    if (tag or "").strip().lower() in VIDEO_PLATFORM_TAGS:
        return VIDEO_PLATFORM
    return SYNDICATION
