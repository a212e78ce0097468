import threading
from unittest.mock import Mock, patch

import pytest

from episode_aggregator.config import AggregatorConfig, StorageConfig
from episode_aggregator.core.aggregator import FeedAggregator
from episode_aggregator.core.errors import PersistenceError
from episode_aggregator.core.models import OperationResult


@pytest.fixture
def notifier():
    notifier = Mock()
    notifier.refresh.return_value = OperationResult.success()
    return notifier


@pytest.fixture
def aggregator(storage, test_db_path, notifier):
    config = AggregatorConfig(storage=StorageConfig(db_path=test_db_path), interval=0.05)
    return FeedAggregator(config, storage=storage, notifier=notifier)


def test_round_without_sources(aggregator, notifier):
    """Test a round with no active sources does nothing and skips the refresh."""
    report = aggregator.run_round()

    assert report.ok is True
    assert report.sources == []
    assert report.index_refresh is None
    assert report.finished_at is not None
    notifier.refresh.assert_not_called()


def test_round_skipped_while_another_runs(aggregator):
    """Test a concurrent call returns at once instead of overlapping."""
    aggregator._round_lock.acquire()
    try:
        report = aggregator.run_round()
    finally:
        aggregator._round_lock.release()

    assert report.skipped is True
    assert report.ok is False


def test_round_fatal_when_store_unreachable(notifier):
    """Test an unreachable store aborts the round before fetching."""
    storage = Mock()
    storage.ping.side_effect = PersistenceError("unable to open database file")
    fetcher = Mock()

    report = FeedAggregator(storage=storage, fetcher=fetcher, notifier=notifier).run_round()

    assert report.fatal_error is not None
    assert "unable to open database file" in report.fatal_error
    fetcher.fetch.assert_not_called()
    notifier.refresh.assert_not_called()


def test_round_releases_lock_after_fatal_error(notifier):
    storage = Mock()
    storage.ping.side_effect = PersistenceError("locked")
    aggregator = FeedAggregator(storage=storage, notifier=notifier)

    aggregator.run_round()

    assert aggregator._round_lock.acquire(blocking=False)
    aggregator._round_lock.release()


def test_start_runs_rounds_until_stopped(aggregator):
    """Test the scheduler keeps running rounds until stop is called."""
    rounds = []

    def fake_round():
        rounds.append(1)
        if len(rounds) == 3:
            aggregator.stop()

    with patch.object(aggregator, "run_round", side_effect=fake_round):
        aggregator.start(interval=0.01)

    assert len(rounds) == 3
    assert aggregator.running is False


def test_start_when_already_running(aggregator):
    aggregator.running = True
    with patch.object(aggregator, "run_round") as mock_round:
        aggregator.start()
    mock_round.assert_not_called()


def test_stop_from_another_thread(aggregator):
    """Test stop ends the scheduler while it waits for the next slot."""
    thread = threading.Thread(target=aggregator.start, kwargs={"interval": 60})
    thread.start()
    try:
        for _ in range(100):
            if aggregator.running:
                break
            threading.Event().wait(0.01)
        aggregator.stop()
        thread.join(timeout=5)
    finally:
        aggregator.stop()

    assert not thread.is_alive()
    assert aggregator.running is False


def test_overrunning_round_drops_missed_slots(aggregator):
    """Test a slow round does not cause a burst of catch-up rounds."""
    clock = {"now": 0.0}
    rounds = []

    def fake_round():
        rounds.append(clock["now"])
        clock["now"] += 3.5
        if len(rounds) == 2:
            aggregator.stop()

    with patch("episode_aggregator.core.aggregator.time.monotonic", side_effect=lambda: clock["now"]):
        with patch.object(aggregator, "run_round", side_effect=fake_round):
            with patch.object(aggregator._stop_event, "wait", return_value=False) as mock_wait:
                aggregator.start(interval=1)

    assert rounds == [0.0, 3.5]
    first_wait = mock_wait.call_args_list[0].args[0]
    assert first_wait == pytest.approx(0.5)
