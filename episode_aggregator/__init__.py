"""Episode feed aggregator."""

from .config import AggregatorConfig
from .core.aggregator import FeedAggregator
from .core.models import Post, RoundReport, Source
from .storage.sqlite_storage import SQLiteStorage

__version__ = "1.0.0"

__all__ = ["AggregatorConfig", "FeedAggregator", "Post", "RoundReport", "SQLiteStorage", "Source"]
