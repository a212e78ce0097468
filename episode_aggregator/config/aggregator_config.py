"""Configuration settings for the episode aggregator."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from episode_aggregator.core.errors import ConfigurationError

DEFAULT_USER_AGENT = "EpisodeAggregator/1.0"


class FetchConfig(BaseModel):
    """Configuration for feed retrieval.

    Attributes:
        timeout: Seconds allowed for each feed request
        user_agent: Identity sent to ordinary hosts
        crawler_user_agent: Identity sent to hosts that reject ``user_agent``
        crawler_domains: Domains (and their subdomains) given the crawler identity
    """

    timeout: float = Field(10.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    crawler_user_agent: str = "Baiduspider"
    crawler_domains: List[str] = Field(default_factory=lambda: ["tumblr.com"])


class IndexConfig(BaseModel):
    """Configuration for the search index refresh call."""

    base_url: Optional[str] = None
    refresh_path: str = "/dataimport?command=delta-import"
    timeout: float = Field(10.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def refresh_url(self) -> Optional[str]:
        if not self.base_url:
            return None
        return self.base_url.rstrip("/") + self.refresh_path


class StorageConfig(BaseModel):
    """Configuration for the SQLite store."""

    db_path: str = "./data/episodes.db"


class AggregatorConfig(BaseModel):
    """Top level configuration for a feed round and its scheduler."""

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    interval: float = Field(600.0, gt=0)  # seconds
    metrics_port: Optional[int] = None

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "AggregatorConfig":
        """Create a configuration from a dictionary, ignoring unknown keys.

        Raises:
            ConfigurationError: If a known key has an invalid value
        """
        known = {k: v for k, v in config_dict.items() if k in cls.model_fields}
        try:
            return cls.model_validate(known)
        except ValidationError as e:
            raise ConfigurationError("Invalid configuration", details={"errors": e.errors()})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AggregatorConfig":
        """Load a JSON configuration file.

        Raises:
            ConfigurationError: If the file cannot be read or is invalid
        """
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not load config file: {e}", details={"path": str(path)})
        if not isinstance(data, dict):
            raise ConfigurationError("Config file must hold a JSON object", details={"path": str(path)})
        return cls.from_dict(data)
