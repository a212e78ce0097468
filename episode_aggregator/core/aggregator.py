"""Feed round orchestration and the periodic scheduler."""

import threading
import time
from typing import List, Optional

import structlog

from episode_aggregator.config import AggregatorConfig
from episode_aggregator.core.coordinator import FetchCoordinator
from episode_aggregator.core.dedup import DedupFilter
from episode_aggregator.core.errors import FatalError, PersistenceError
from episode_aggregator.core.fetcher import FeedFetcher
from episode_aggregator.core.matcher import MediaMatcher
from episode_aggregator.core.models import RoundReport, Source, utc_now
from episode_aggregator.core.notifier import IndexNotifier
from episode_aggregator.core.registry import SourceRegistry
from episode_aggregator.metrics import LAST_ROUND_SUCCESS, ROUND_DURATION
from episode_aggregator.storage.sqlite_storage import SQLiteStorage
from episode_aggregator.storage.writer import PersistenceWriter

logger = structlog.get_logger(__name__)


class FeedAggregator:
    """Runs feed rounds: fetch, match, persist, then refresh the search index."""

    def __init__(
        self,
        config: Optional[AggregatorConfig] = None,
        storage: Optional[SQLiteStorage] = None,
        fetcher: Optional[FeedFetcher] = None,
        notifier: Optional[IndexNotifier] = None,
    ):
        """Initialize the aggregator.

        Args:
            config: Aggregator configuration
            storage: Store to use instead of one built from ``config.storage``
            fetcher: Fetcher to use instead of one built from ``config.fetch``
            notifier: Notifier to use instead of one built from ``config.index``
        """
        self.config = config or AggregatorConfig()
        self.storage = storage or SQLiteStorage(self.config.storage)
        self.registry = SourceRegistry(self.storage)
        self.dedup = DedupFilter(self.storage)
        self.coordinator = FetchCoordinator(fetcher or FeedFetcher(self.config.fetch))
        self.matcher = MediaMatcher(self.storage, self.dedup)
        self.writer = PersistenceWriter(self.storage, self.dedup)
        self.notifier = notifier or IndexNotifier(self.config.index)

        self.running = False
        self._stop_event = threading.Event()
        self._round_lock = threading.Lock()

    def _load_sources(self) -> List[Source]:
        try:
            self.storage.ping()
            return self.registry.active_sources()
        except PersistenceError as e:
            raise FatalError(f"Could not load sources: {e.message}", details=e.details) from e

    def run_round(self) -> RoundReport:
        """Run one complete round.

        Per-source failures are recorded on the report. A store that cannot be
        reached ends the round early with ``fatal_error`` set. A call made
        while another round is running returns at once with ``skipped`` set.
        """
        report = RoundReport()
        if not self._round_lock.acquire(blocking=False):
            logger.warning("Round already in progress, skipping")
            report.skipped = True
            report.finished_at = utc_now()
            return report

        started = time.monotonic()
        try:
            self._run(report)
        except FatalError as e:
            report.fatal_error = e.message
            logger.critical("Round aborted", error=e.message, details=e.details)
        finally:
            report.finished_at = utc_now()
            ROUND_DURATION.observe(time.monotonic() - started)
            LAST_ROUND_SUCCESS.set(0 if report.fatal_error else 1)
            self._round_lock.release()
        return report

    def _run(self, report: RoundReport) -> None:
        logger.info("Starting feed round", started_at=report.started_at.isoformat())
        sources = self._load_sources()
        if not sources:
            logger.info("No active sources")
            return

        results = self.coordinator.fetch_all(sources)
        report.posts_matched = self.matcher.associate(results)
        report.sources = self.writer.persist_all(results)
        report.index_refresh = self.notifier.refresh()

        logger.info(
            "Finished feed round",
            sources=len(sources),
            posts_inserted=report.posts_inserted,
            posts_matched=report.posts_matched,
        )

    def start(self, interval: Optional[float] = None) -> None:
        """Run a round now and then once per ``interval`` seconds until stopped.

        When a round overruns its slot the missed slots are dropped, so rounds
        never queue up behind a slow one.
        """
        if self.running:
            logger.warning("Feed aggregator already running")
            return

        interval = interval or self.config.interval
        self._stop_event.clear()
        self.running = True
        logger.info("Starting feed aggregator", interval=interval)

        try:
            next_run = time.monotonic()
            while not self._stop_event.is_set():
                self.run_round()
                next_run += interval
                now = time.monotonic()
                if now >= next_run:
                    missed = int((now - next_run) // interval) + 1
                    next_run += missed * interval
                    logger.warning("Round overran its interval", missed_rounds=missed)
                if self._stop_event.wait(next_run - now):
                    break
        finally:
            self.running = False

    def stop(self) -> None:
        """Stop the scheduler after the current round."""
        logger.info("Stopping feed aggregator")
        self._stop_event.set()
