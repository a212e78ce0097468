"""Prometheus metrics for feed rounds."""

from typing import Any, Dict, List, Optional, Type

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class RoundMetrics:
    """Named round metrics bound to one collector registry.

    A metric is created on first request and returned as-is afterwards, so
    aggregators built more than once in a process share their series. The
    same registry is what ``serve`` exposes over HTTP.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry
        self._metrics: Dict[str, Any] = {}

    def _metric(self, kind: Type, name: str, description: str, labels: Optional[List[str]]):
        if name not in self._metrics:
            self._metrics[name] = kind(name, description, labels or [], registry=self.registry)
        return self._metrics[name]

    def counter(self, name: str, description: str, labels: Optional[List[str]] = None) -> Counter:
        return self._metric(Counter, name, description, labels)

    def gauge(self, name: str, description: str) -> Gauge:
        return self._metric(Gauge, name, description, None)

    def histogram(self, name: str, description: str) -> Histogram:
        return self._metric(Histogram, name, description, None)

    def get(self, name: str) -> Optional[Any]:
        return self._metrics.get(name)

    def serve(self, port: int) -> None:
        """Expose this registry on ``port``."""
        start_http_server(port, registry=self.registry)


metrics = RoundMetrics()

FEEDS_FETCHED = metrics.counter(
    "episode_feeds_fetched_total", "Feed fetch attempts by outcome", ["status"]
)
POSTS_PERSISTED = metrics.counter(
    "episode_posts_persisted_total", "Posts seen by the writer by outcome", ["status"]
)
MEDIA_MATCHES = metrics.counter("episode_media_matches_total", "Media ids attached to new posts")
ROUND_DURATION = metrics.histogram(
    "episode_round_duration_seconds", "Duration of a complete feed round"
)
LAST_ROUND_SUCCESS = metrics.gauge(
    "episode_last_round_success", "Whether the last round completed without a fatal error"
)


def start_metrics_server(port: int) -> None:
    """Serve the round metrics for Prometheus scraping."""
    metrics.serve(port)
