"""Search index refresh signal."""

from typing import Optional

import requests
import structlog

from episode_aggregator.config import IndexConfig
from episode_aggregator.core.errors import NotificationError
from episode_aggregator.core.models import OperationResult

logger = structlog.get_logger(__name__)


class IndexNotifier:
    """Asks the search index to pick up newly stored posts.

    One GET per call, bounded by ``IndexConfig.timeout``; failures are
    logged and reported, never retried.
    """

    def __init__(self, config: Optional[IndexConfig] = None):
        self.config = config or IndexConfig()

    def _request(self, url: str) -> None:
        try:
            response = requests.get(
                url, headers={"User-Agent": self.config.user_agent}, timeout=self.config.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NotificationError(
                "Index refresh failed", details={"url": url, "error": str(e)}
            ) from e

    def refresh(self) -> OperationResult:
        url = self.config.refresh_url
        if url is None:
            logger.info("No index URL configured, skipping refresh")
            return OperationResult.failure("index URL not configured")

        try:
            self._request(url)
        except NotificationError as e:
            logger.error("Could not refresh search index", url=url, error=e.details["error"])
            return OperationResult.failure(e.details["error"])

        logger.info("Search index refresh requested", url=url)
        return OperationResult.success()
