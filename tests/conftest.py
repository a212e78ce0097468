import pytest
import structlog

from episode_aggregator.config import StorageConfig
from episode_aggregator.storage.sqlite_storage import SQLiteStorage

ENV_VARS = (
    "AGGREGATOR_CONFIG",
    "DATABASE_PATH",
    "INDEX_URL",
    "LOG_LEVEL",
    "JSON_LOGS",
    "ROUND_INTERVAL",
    "METRICS_PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment settings out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    structlog.reset_defaults()


@pytest.fixture
def test_db_path(tmp_path):
    """Fixture providing a temporary database path."""
    return str(tmp_path / "episodes.db")


@pytest.fixture
def storage(test_db_path):
    """Fixture providing an initialized SQLiteStorage."""
    storage = SQLiteStorage(StorageConfig(db_path=test_db_path))
    storage.initialize()
    return storage
