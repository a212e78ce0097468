"""Configuration management for aggregator components."""

from .aggregator_config import AggregatorConfig, FetchConfig, IndexConfig, StorageConfig

__all__ = ["AggregatorConfig", "FetchConfig", "IndexConfig", "StorageConfig"]
