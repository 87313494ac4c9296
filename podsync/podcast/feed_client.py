"""HTTP client for fetching raw podcast feed documents.

Applies a connect and a read timeout to every attempt and retries
transport failures a bounded number of times through urllib3's Retry.
"""

import logging
import threading
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import FetchFailure, TransportError

logger = logging.getLogger(__name__)

# Every 4xx and 5xx response counts as a failed attempt
RETRY_STATUSES = frozenset(range(400, 600))


class FeedClient:
    """Fetches feed bytes over HTTP with bounded retries.

    A successful HTTP response is returned as-is; deciding whether the
    payload is a valid feed is the parser's job, so it is never retried.

    Example:
        client = FeedClient(max_retries=3)
        content = client.fetch("https://example.com/feed.xml")
    """

    DEFAULT_USER_AGENT = "Podsync/1.0 (+https://github.com/podsync)"
    DEFAULT_CONNECT_TIMEOUT = 5
    DEFAULT_READ_TIMEOUT = 20
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_BACKOFF_FACTOR = 0.5

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        user_agent: Optional[str] = None,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    ):
        """Initialize the feed client.

        Args:
            max_retries: Total number of attempts per fetch
            connect_timeout: Seconds to wait for the connection to open
            read_timeout: Seconds to wait between bytes of the response
            user_agent: Custom user agent string
            backoff_factor: urllib3 backoff factor between attempts
        """
        self.max_retries = max_retries
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.backoff_factor = backoff_factor

        # One session per attempt count, since the retry policy lives on the adapter
        self._sessions: Dict[int, requests.Session] = {}
        self._lock = threading.Lock()

    def _create_session(self, attempts: int) -> requests.Session:
        """Create a requests session that makes at most `attempts` attempts."""
        session = requests.Session()

        retries = attempts - 1
        retry_strategy = Retry(
            total=retries,
            connect=retries,
            read=retries,
            status=retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=["GET"],
            raise_on_status=True,
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": self.user_agent})

        return session

    def _get_session(self, attempts: int) -> requests.Session:
        with self._lock:
            session = self._sessions.get(attempts)
            if session is None:
                session = self._create_session(attempts)
                self._sessions[attempts] = session
            return session

    def fetch(self, url: str, max_retries: Optional[int] = None) -> bytes:
        """Download the feed document at `url`.

        Args:
            url: Feed URL
            max_retries: Override for the number of attempts

        Returns:
            Raw response body

        Raises:
            TransportError: If every attempt failed at the transport level
        """
        attempts = max(1, max_retries if max_retries is not None else self.max_retries)
        session = self._get_session(attempts)

        try:
            response = session.get(
                url,
                timeout=(self.connect_timeout, self.read_timeout),
                allow_redirects=True,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"No response from feed {url} after {attempts} attempts: {e}")
            raise TransportError(
                url,
                attempts=attempts,
                reason=FetchFailure.NO_RESPONSE,
                last_error=e,
            ) from e

        logger.debug(f"Fetched {len(response.content)} bytes from {url}")
        return response.content

    def close(self) -> None:
        """Close every HTTP session the client has opened."""
        with self._lock:
            for session in self._sessions.values():
                session.close()
            self._sessions.clear()
