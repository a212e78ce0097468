"""HTTP retrieval of feed documents."""

import threading
import time
from typing import Dict, Optional
from urllib.parse import urlparse

import requests
import structlog

from episode_aggregator.config import FetchConfig
from episode_aggregator.core.errors import FetchError
from episode_aggregator.core.models import Source

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 1024


class _Retrieval:
    """One in-flight download, run on its own daemon thread.

    ``cancelled`` is set by the waiting caller once the deadline passes; the
    read loop checks it between chunks and closes the response.
    """

    def __init__(self, url: str, headers: Dict[str, str], timeout: float, deadline: float):
        self.url = url
        self.headers = headers
        self.timeout = timeout
        self.deadline = deadline
        self.body: Optional[bytes] = None
        self.error: Optional[Exception] = None
        self.response = None
        self.done = threading.Event()
        self.cancelled = threading.Event()

    def start(self) -> None:
        threading.Thread(target=self._run, name="feed-download", daemon=True).start()

    def _run(self) -> None:
        try:
            self.body = self._download()
        except Exception as e:
            self.error = e
        finally:
            self.done.set()

    def timed_out(self, error: str = "") -> FetchError:
        return FetchError(
            "Timed out fetching feed",
            details={"feed_url": self.url, "timeout": self.timeout, "error": error},
        )

    def _download(self) -> bytes:
        try:
            response = requests.get(self.url, headers=self.headers, timeout=self.timeout, stream=True)
        except requests.exceptions.Timeout as e:
            raise self.timed_out(str(e))
        except requests.exceptions.RequestException as e:
            raise FetchError("Could not fetch feed", details={"feed_url": self.url, "error": str(e)})

        self.response = response
        try:
            if response.status_code != 200:
                raise FetchError(
                    f"Unexpected status {response.status_code}",
                    details={"feed_url": self.url, "status_code": response.status_code},
                )
            chunks = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if self.cancelled.is_set() or time.monotonic() > self.deadline:
                    raise self.timed_out("deadline passed while reading body")
                chunks.append(chunk)
            return b"".join(chunks)
        except requests.exceptions.RequestException as e:
            raise FetchError(
                "Could not read response body", details={"feed_url": self.url, "error": str(e)}
            )
        finally:
            response.close()


class FeedFetcher:
    """Fetch one feed document per call, bounded by an overall deadline and never retried.

    ``FetchConfig.timeout`` limits the whole retrieval (connect, headers and
    body), not just each socket read: a server that trickles bytes is
    abandoned once the deadline passes.
    """

    def __init__(self, config: Optional[FetchConfig] = None):
        self.config = config or FetchConfig()

    def user_agent_for(self, url: str) -> str:
        """Pick the identity header for ``url``.

        Hosts under one of ``crawler_domains`` reject ordinary clients and get
        the crawler identity instead.
        """
        host = (urlparse(url).hostname or "").lower()
        for domain in self.config.crawler_domains:
            domain = domain.lower().lstrip(".")
            if host == domain or host.endswith("." + domain):
                return self.config.crawler_user_agent
        return self.config.user_agent

    def fetch(self, source: Source) -> bytes:
        """Retrieve the raw document for ``source``.

        Raises:
            FetchError: On network errors, non-200 responses, unreadable bodies
                or when the deadline passes
        """
        headers = {"User-Agent": self.user_agent_for(source.feed_url)}
        deadline = time.monotonic() + self.config.timeout
        retrieval = _Retrieval(source.feed_url, headers, self.config.timeout, deadline)
        retrieval.start()

        if not retrieval.done.wait(max(deadline - time.monotonic(), 0)):
            retrieval.cancelled.set()
            if retrieval.response is not None:
                retrieval.response.close()
            logger.warning("Abandoned slow feed", feed_url=source.feed_url, timeout=self.config.timeout)
            raise retrieval.timed_out("deadline passed")

        if retrieval.error is not None:
            raise retrieval.error

        logger.debug("Retrieved feed", feed_url=source.feed_url, size=len(retrieval.body))
        return retrieval.body
