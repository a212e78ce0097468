"""Sequential persistence of a round's results."""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import structlog

from episode_aggregator.core.dedup import DedupFilter
from episode_aggregator.core.errors import PersistenceError
from episode_aggregator.core.models import (
    DATETIME_FORMAT,
    FetchResult,
    OperationResult,
    Post,
    SourceReport,
    format_utc,
    utc_now,
)
from episode_aggregator.metrics import POSTS_PERSISTED

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86400


def normalize_tag(category: str) -> str:
    return category.strip().lower()


def round_half_away_from_zero(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass
class _LinkOutcome:
    """Number of links written for a post and the error that stopped it, if any."""

    count: int = 0
    error: Optional[str] = None


class PersistenceWriter:
    """Writes source metadata, new posts, tags and media links, one source at a time.

    Statements are not wrapped in a transaction: a failure part way through a
    post leaves the post stored with whatever tags and media links were
    written before the failure.
    """

    def __init__(self, storage, dedup: Optional[DedupFilter] = None):
        self.storage = storage
        self.dedup = dedup or DedupFilter(storage)

    def persist_all(self, results: List[FetchResult]) -> List[SourceReport]:
        """Persist every result; content-absent results only get a report."""
        reports = []
        for result in results:
            if result.has_document:
                reports.append(self.persist(result))
            else:
                reports.append(
                    SourceReport(
                        source_id=result.source.source_id,
                        feed_url=result.source.feed_url,
                        fetched=False,
                        fetch_error=result.error,
                    )
                )
        return reports

    def persist(self, result: FetchResult) -> SourceReport:
        """Persist one content-bearing result."""
        source = result.source
        report = SourceReport(source_id=source.source_id, feed_url=source.feed_url, fetched=True)
        log = logger.bind(source_id=source.source_id, feed_url=source.feed_url)

        report.info_updated = self.update_source_info(result)
        if not report.info_updated.ok:
            report.errors.append(report.info_updated.reason)

        for post in source.posts:
            self._persist_post(source.source_id, post, report, log)

        report.days_since_updated = self.update_days_since_last_post(source.source_id)
        if not report.days_since_updated.ok:
            log.info("Days since last post unchanged", reason=report.days_since_updated.reason)

        log.info(
            "Persisted source",
            feed_name=source.feed_name,
            alt_name=source.alt_name,
            inserted=report.posts_inserted,
            skipped=report.posts_skipped,
        )
        return report

    def update_source_info(self, result: FetchResult) -> OperationResult:
        """Store the feed name and last-checked time; ok only if one row changed."""
        source = result.source
        try:
            affected = self.storage.update_source_info(
                source.source_id, source.feed_name, format_utc(utc_now())
            )
        except PersistenceError as e:
            logger.error("Could not update source", source_id=source.source_id, error=e.message)
            return OperationResult.failure(f"update source: {e.message}")
        if affected != 1:
            logger.warning("Unexpected rows affected updating source", source_id=source.source_id, rows=affected)
            return OperationResult.failure(f"update source affected {affected} rows")
        return OperationResult.success()

    def _persist_post(self, source_id: int, post: Post, report: SourceReport, log) -> None:
        if not self.dedup.is_new(post):
            report.posts_skipped += 1
            POSTS_PERSISTED.labels(status="skipped").inc()
            return

        try:
            post_id = self.storage.insert_post(source_id, post)
        except PersistenceError as e:
            log.error("Could not insert post", title=post.title, link=post.link, error=e.message)
            report.errors.append(f"insert post {post.link}: {e.message}")
            POSTS_PERSISTED.labels(status="error").inc()
            return

        report.posts_inserted += 1
        POSTS_PERSISTED.labels(status="inserted").inc()
        log.info("Added post", title=post.title, post_id=post_id)

        tags = self.insert_post_tags(post, post_id)
        report.tags_linked += tags.count
        if tags.error:
            report.errors.append(tags.error)

        media = self.insert_media_relations(post, post_id)
        report.media_linked += media.count
        if media.error:
            report.errors.append(media.error)

    def insert_post_tags(self, post: Post, post_id: int) -> _LinkOutcome:
        """Link each normalized category to the post, stopping at the first failure."""
        outcome = _LinkOutcome()
        tags = []
        for category in post.categories:
            tag = normalize_tag(category)
            if tag and tag not in tags:
                tags.append(tag)

        for tag in tags:
            try:
                tag_id = self.storage.find_or_create_tag(tag)
                self.storage.link_post_tag(post_id, tag_id)
            except PersistenceError as e:
                logger.error("Could not tag post", post_id=post_id, tag=tag, error=e.message)
                outcome.error = f"tag {tag!r} for post {post_id}: {e.message}"
                break
            outcome.count += 1
            logger.debug("Inserted tag", tag=tag, post_id=post_id)
        return outcome

    def insert_media_relations(self, post: Post, post_id: int) -> _LinkOutcome:
        """Link each associated media id to the post, stopping at the first failure."""
        outcome = _LinkOutcome()
        for media_id in sorted(post.media_ids):
            try:
                self.storage.link_post_media(post_id, media_id)
            except PersistenceError as e:
                logger.error("Could not link post media", post_id=post_id, media_id=media_id, error=e.message)
                outcome.error = f"media {media_id} for post {post_id}: {e.message}"
                break
            outcome.count += 1
        return outcome

    def update_days_since_last_post(self, source_id: int) -> OperationResult:
        """Recompute the days since the source's newest stored post.

        Leaves the statistic untouched when the source has no stored posts or
        the stored date cannot be parsed.
        """
        try:
            latest = self.storage.latest_post_date(source_id)
        except PersistenceError as e:
            return OperationResult.failure(f"latest post lookup: {e.message}")
        if latest is None:
            return OperationResult.failure("no stored posts")

        try:
            latest_date = datetime.strptime(latest, DATETIME_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            logger.warning("Could not parse stored date", source_id=source_id, pub_date=latest)
            return OperationResult.failure(f"unparseable date {latest!r}")

        elapsed = (utc_now() - latest_date).total_seconds()
        days = round_half_away_from_zero(elapsed / SECONDS_PER_DAY)
        try:
            self.storage.update_days_since_last_post(source_id, days)
        except PersistenceError as e:
            logger.error("Could not update days since last post", source_id=source_id, error=e.message)
            return OperationResult.failure(f"update days since last post: {e.message}")
        return OperationResult.success()
