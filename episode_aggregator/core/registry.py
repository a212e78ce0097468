"""Active source lookup."""

from typing import List

import structlog

from episode_aggregator.core.dialects import resolve_dialect
from episode_aggregator.core.models import Source

logger = structlog.get_logger(__name__)


class SourceRegistry:
    """Supplies the sources to fetch in a round, with their dialect resolved."""

    def __init__(self, storage):
        self.storage = storage

    def active_sources(self) -> List[Source]:
        """Load active sources from the store.

        Raises:
            PersistenceError: If the sources cannot be read
        """
        sources = self.storage.get_active_sources()
        for source in sources:
            source.dialect = resolve_dialect(source.dialect_tag)
        logger.info("Loaded active sources", count=len(sources))
        return sources
