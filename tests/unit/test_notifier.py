from unittest.mock import patch

import requests

from episode_aggregator.config import IndexConfig
from episode_aggregator.core.notifier import IndexNotifier
from tests.feeds import http_response


def test_refresh_success():
    """Test a successful refresh issues one GET to the delta import URL."""
    notifier = IndexNotifier(IndexConfig(base_url="http://index:8983/solr/posts/", timeout=3))

    with patch("requests.get", return_value=http_response(200)) as mock_get:
        result = notifier.refresh()

    assert result.ok is True
    mock_get.assert_called_once()
    args, kwargs = mock_get.call_args
    assert args[0] == "http://index:8983/solr/posts/dataimport?command=delta-import"
    assert kwargs["timeout"] == 3


def test_refresh_without_url_is_skipped():
    with patch("requests.get") as mock_get:
        result = IndexNotifier(IndexConfig()).refresh()

    assert result.ok is False
    assert result.reason == "index URL not configured"
    mock_get.assert_not_called()


def test_refresh_http_error_is_reported():
    """Test an error status is reported as a failed refresh."""
    notifier = IndexNotifier(IndexConfig(base_url="http://index"))

    with patch("requests.get", return_value=http_response(500)) as mock_get:
        result = notifier.refresh()

    assert result.ok is False
    assert "500" in result.reason
    assert mock_get.call_count == 1


def test_refresh_connection_error_is_reported():
    notifier = IndexNotifier(IndexConfig(base_url="http://index"))

    with patch("requests.get", side_effect=requests.exceptions.ConnectionError("refused")):
        result = notifier.refresh()

    assert result.ok is False
    assert "refused" in result.reason
