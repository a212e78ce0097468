"""Fan-out/fan-in of feed fetch and parse tasks."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional

import structlog

from episode_aggregator.core.dialects import resolve_dialect
from episode_aggregator.core.errors import FetchError, ParseError
from episode_aggregator.core.fetcher import FeedFetcher
from episode_aggregator.core.models import FetchResult, Source
from episode_aggregator.metrics import FEEDS_FETCHED

logger = structlog.get_logger(__name__)


class FetchCoordinator:
    """Runs one fetch-and-parse task per source and collects every result.

    Each call builds its own executor with one worker per source, so a slow
    feed only holds up its own task, bounded by the fetch timeout.
    """

    def __init__(self, fetcher: Optional[FeedFetcher] = None):
        self.fetcher = fetcher or FeedFetcher()

    def fetch_source(self, source: Source) -> FetchResult:
        """Fetch and parse a single source; never raises for feed problems."""
        result = FetchResult(source=source)
        dialect = source.dialect or resolve_dialect(source.dialect_tag)
        try:
            body = self.fetcher.fetch(source)
        except FetchError as e:
            FEEDS_FETCHED.labels(status="fetch_error").inc()
            logger.error(
                "Could not fetch feed", feed_url=source.feed_url, error=e.message, details=e.details
            )
            result.error = e.message
            return result

        try:
            dialect.parse(body, source)
        except ParseError as e:
            FEEDS_FETCHED.labels(status="parse_error").inc()
            logger.error(
                "Could not parse feed", feed_url=source.feed_url, error=e.message, details=e.details
            )
            source.posts = []
            result.error = e.message
            return result

        FEEDS_FETCHED.labels(status="success").inc()
        logger.info(
            "Retrieved feed",
            feed_url=source.feed_url,
            dialect=dialect.name,
            posts=len(source.posts),
        )
        result.has_document = True
        return result

    def fetch_all(self, sources: List[Source]) -> List[FetchResult]:
        """Fetch every source concurrently and wait for all of them.

        Results are returned in completion order; the list is not reordered
        afterwards.
        """
        if not sources:
            return []

        results: List[FetchResult] = []
        with ThreadPoolExecutor(
            max_workers=len(sources), thread_name_prefix="feed-fetch"
        ) as executor:
            futures = {executor.submit(self.fetch_source, source): source for source in sources}
            for future in as_completed(futures):
                source = futures[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.exception("Fetch task failed", feed_url=source.feed_url)
                    results.append(FetchResult(source=source, error=str(e)))

        logger.info(
            "Finished fetching feeds",
            sources=len(sources),
            with_document=sum(1 for result in results if result.has_document),
        )
        return results
