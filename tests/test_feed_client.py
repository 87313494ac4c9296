"""Tests for the HTTP feed client."""

from unittest.mock import Mock, patch

import pytest
import requests
from urllib3.connectionpool import HTTPConnectionPool

from podsync.errors import FetchFailure, TransportError
from podsync.podcast.feed_client import FeedClient

FEED_URL = "https://example.com/feed.xml"


def _response(content=b"<rss/>", error=None):
    response = Mock()
    response.content = content
    response.raise_for_status = Mock(side_effect=error)
    return response


@pytest.fixture
def session():
    """Provide a mock requests session."""
    return Mock(spec=requests.Session)


@pytest.fixture
def client_with(session):
    """Build a FeedClient whose sessions are the mock session."""

    def factory(**kwargs):
        client = FeedClient(**kwargs)
        client._create_session = Mock(return_value=session)
        return client

    return factory


class TestFeedClientFetch:
    """Tests for FeedClient.fetch."""

    def test_returns_body_on_success(self, session, client_with):
        """Test a successful fetch returns the raw response body."""
        session.get.return_value = _response(b"<rss>ok</rss>")
        client = client_with()

        assert client.fetch(FEED_URL) == b"<rss>ok</rss>"
        session.get.assert_called_once_with(
            FEED_URL, timeout=(5, 20), allow_redirects=True
        )

    def test_applies_configured_timeouts(self, session, client_with):
        """Test connect and read timeouts are passed to the request."""
        session.get.return_value = _response()
        client = client_with(connect_timeout=2, read_timeout=9)

        client.fetch(FEED_URL)

        assert session.get.call_args.kwargs["timeout"] == (2, 9)

    def test_request_failure_raises_transport_error(self, session, client_with):
        """Test a failed request is reported as a NO_RESPONSE transport error."""
        session.get.side_effect = requests.ConnectionError("refused")
        client = client_with(max_retries=3)

        with pytest.raises(TransportError) as exc_info:
            client.fetch(FEED_URL)

        assert exc_info.value.reason == FetchFailure.NO_RESPONSE
        assert exc_info.value.attempts == 3
        assert exc_info.value.url == FEED_URL
        assert isinstance(exc_info.value.last_error, requests.ConnectionError)

    def test_http_error_status_raises_transport_error(self, session, client_with):
        """Test an HTTP error status counts as a transport failure."""
        session.get.return_value = _response(error=requests.HTTPError("404"))
        client = client_with(max_retries=2)

        with pytest.raises(TransportError):
            client.fetch(FEED_URL)

    def test_invalid_payload_is_returned(self, session, client_with):
        """Test a successful response is returned even when it is not a feed."""
        session.get.return_value = _response(b"<html>not a feed</html>")
        client = client_with(max_retries=3)

        assert client.fetch(FEED_URL) == b"<html>not a feed</html>"
        assert session.get.call_count == 1

    def test_max_retries_override(self, session, client_with):
        """Test the per-call override selects a session for that attempt count."""
        session.get.return_value = _response()
        client = client_with(max_retries=5)

        client.fetch(FEED_URL, max_retries=1)

        client._create_session.assert_called_once_with(1)

    def test_at_least_one_attempt(self, session, client_with):
        """Test zero retries still makes one attempt."""
        session.get.side_effect = requests.ConnectionError("down")
        client = client_with(max_retries=0)

        with pytest.raises(TransportError) as exc_info:
            client.fetch(FEED_URL)

        client._create_session.assert_called_once_with(1)
        assert exc_info.value.attempts == 1

    def test_session_reused_per_attempt_count(self, session, client_with):
        """Test repeated fetches share one session."""
        session.get.return_value = _response()
        client = client_with()

        client.fetch(FEED_URL)
        client.fetch(FEED_URL)

        client._create_session.assert_called_once_with(3)


class TestFeedClientRetries:
    """Tests for the retry policy mounted on the real session."""

    @pytest.fixture(autouse=True)
    def no_proxy(self, monkeypatch):
        for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
            monkeypatch.delenv(name, raising=False)

    def test_exhausts_retries_then_fails(self):
        """Test an always-failing transport is tried exactly max_retries times."""
        client = FeedClient(max_retries=3, backoff_factor=0)

        with patch.object(
            HTTPConnectionPool,
            "_make_request",
            side_effect=ConnectionRefusedError("refused"),
        ) as make_request:
            with pytest.raises(TransportError) as exc_info:
                client.fetch("http://feeds.invalid/feed.xml")

        assert make_request.call_count == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, requests.RequestException)
        client.close()

    def test_single_attempt_is_not_retried(self):
        """Test max_retries=1 makes one attempt only."""
        client = FeedClient(max_retries=1, backoff_factor=0)

        with patch.object(
            HTTPConnectionPool,
            "_make_request",
            side_effect=ConnectionRefusedError("refused"),
        ) as make_request:
            with pytest.raises(TransportError):
                client.fetch("http://feeds.invalid/feed.xml")

        assert make_request.call_count == 1
        client.close()

    def test_retry_policy(self):
        """Test the adapter retries connect, read and HTTP error statuses."""
        client = FeedClient(max_retries=4)

        retry = client._get_session(4).get_adapter(FEED_URL).max_retries

        assert retry.total == 3
        assert retry.connect == 3
        assert retry.read == 3
        assert 503 in retry.status_forcelist
        assert 404 in retry.status_forcelist
        assert 200 not in retry.status_forcelist
        client.close()


class TestFeedClientSession:
    """Tests for session setup and teardown."""

    def test_session_sets_user_agent(self):
        """Test the created session carries the user agent header."""
        client = FeedClient(user_agent="TestAgent/2.0")

        assert client._get_session(3).headers["User-Agent"] == "TestAgent/2.0"
        client.close()

    def test_default_user_agent(self):
        """Test the default user agent is used when none is given."""
        client = FeedClient()

        assert client.user_agent == FeedClient.DEFAULT_USER_AGENT
        client.close()

    def test_close_closes_sessions(self, session, client_with):
        """Test close releases every opened session."""
        session.get.return_value = _response()
        client = client_with()
        client.fetch(FEED_URL)

        client.close()

        session.close.assert_called_once()
