"""Tests for GmailClient with a mocked Gmail API service."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from inbox_tasker.core.exceptions import FetchError, RateLimitError
from inbox_tasker.core.gmail_client import GmailClient, _is_rate_limit_error


@pytest.fixture
def mock_service() -> MagicMock:
    """Create a fully-mocked Gmail API Resource."""
    return MagicMock()


@pytest.fixture
def client(mock_service: MagicMock) -> GmailClient:
    """Create a GmailClient wrapping the mocked service with fast retry settings."""
    return GmailClient(
        mock_service,
        user_id="me",
        max_retries=3,
        initial_backoff_seconds=0.01,
        max_backoff_seconds=0.05,
        num_retries=0,
    )


def _batch_factory(responses: list[tuple[str, Any, Exception | None]]) -> Any:
    """Build a new_batch_http_request side effect that replays callback calls."""

    def fake_new_batch(callback: Any) -> MagicMock:
        batch = MagicMock()

        def fake_execute() -> None:
            for request_id, response, exception in responses:
                callback(request_id, response, exception)

        batch.execute.side_effect = fake_execute
        return batch

    return fake_new_batch


# ---------- _is_rate_limit_error ----------


class TestIsRateLimitError:
    """Tests for the module-level rate limit detection helper."""

    def test_detects_http_error_429(self) -> None:
        from googleapiclient.errors import HttpError

        exc = HttpError(resp=MagicMock(status=429), content=b"rate limit")
        assert _is_rate_limit_error(exc) is True

    def test_detects_rate_limit_exceeded_in_string(self) -> None:
        assert _is_rate_limit_error(Exception("rateLimitExceeded")) is True

    def test_non_rate_limit_error(self) -> None:
        assert _is_rate_limit_error(Exception("Server error 500")) is False


# ---------- list_recent_message_ids ----------


class TestListRecentMessageIds:
    """Tests for GmailClient.list_recent_message_ids()."""

    def test_returns_ids_in_api_order(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().messages().list().execute.return_value = {
            "messages": [{"id": "m3", "threadId": "t"}, {"id": "m2", "threadId": "t"}]
        }

        assert client.list_recent_message_ids(10) == ["m3", "m2"]

    def test_passes_limit_and_query(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().messages().list().execute.return_value = {}

        client.list_recent_message_ids(5, query="in:inbox")

        mock_service.users().messages().list.assert_called_with(
            userId="me", maxResults=5, q="in:inbox"
        )

    def test_omits_empty_query(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().messages().list().execute.return_value = {}

        client.list_recent_message_ids(5)

        mock_service.users().messages().list.assert_called_with(userId="me", maxResults=5)

    def test_empty_mailbox(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().messages().list().execute.return_value = {"resultSizeEstimate": 0}

        assert client.list_recent_message_ids(10) == []

    def test_wraps_api_errors_in_fetch_error(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        mock_service.users().messages().list().execute.side_effect = Exception("API unavailable")

        with pytest.raises(FetchError, match="Failed to list recent messages"):
            client.list_recent_message_ids(10)

    def test_retries_on_429_then_succeeds(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        mock_exec = mock_service.users().messages().list().execute
        mock_exec.side_effect = [
            Exception("HttpError 429: rateLimitExceeded"),
            {"messages": [{"id": "m1", "threadId": "t1"}]},
        ]

        with patch("inbox_tasker.core.gmail_client.time.sleep"):
            assert client.list_recent_message_ids(1) == ["m1"]
        assert mock_exec.call_count == 2

    def test_raises_rate_limit_after_exhausting_retries(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        mock_service.users().messages().list().execute.side_effect = Exception("429")

        with patch("inbox_tasker.core.gmail_client.time.sleep"):
            with pytest.raises(RateLimitError):
                client.list_recent_message_ids(1)


# ---------- fetch_messages_batch ----------


class TestFetchMessagesBatch:
    """Tests for GmailClient.fetch_messages_batch()."""

    def test_preserves_requested_order(self, client: GmailClient, mock_service: MagicMock) -> None:
        msg1 = {"id": "msg1", "payload": {}}
        msg2 = {"id": "msg2", "payload": {}}
        # Batch callbacks can arrive in any order
        mock_service.new_batch_http_request.side_effect = _batch_factory(
            [("msg2", msg2, None), ("msg1", msg1, None)]
        )

        assert client.fetch_messages_batch(["msg1", "msg2"]) == [msg1, msg2]

    def test_empty_id_list_skips_request(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        assert client.fetch_messages_batch([]) == []
        mock_service.new_batch_http_request.assert_not_called()

    def test_drops_individual_failures(self, client: GmailClient, mock_service: MagicMock) -> None:
        msg1 = {"id": "msg1", "payload": {}}
        mock_service.new_batch_http_request.side_effect = _batch_factory(
            [("msg1", msg1, None), ("msg2", None, Exception("Not found"))]
        )

        assert client.fetch_messages_batch(["msg1", "msg2"]) == [msg1]

    def test_retries_batch_on_429_in_callback(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        msg1 = {"id": "msg1", "payload": {}}
        calls = 0

        def fake_new_batch(callback: Any) -> MagicMock:
            nonlocal calls
            calls += 1
            if calls == 1:
                return _batch_factory([("msg1", None, Exception("429 rateLimitExceeded"))])(callback)
            return _batch_factory([("msg1", msg1, None)])(callback)

        mock_service.new_batch_http_request.side_effect = fake_new_batch

        with patch("inbox_tasker.core.gmail_client.time.sleep"):
            result = client.fetch_messages_batch(["msg1"])

        assert result == [msg1]
        assert calls == 2

    def test_raises_rate_limit_after_exhausted_batch_retries(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        mock_service.new_batch_http_request.side_effect = _batch_factory(
            [("msg1", None, Exception("429 rateLimitExceeded"))]
        )

        with patch("inbox_tasker.core.gmail_client.time.sleep"):
            with pytest.raises(RateLimitError, match="Rate limited during batch fetch"):
                client.fetch_messages_batch(["msg1"])

    def test_raises_fetch_error_on_batch_execute_failure(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        def fake_new_batch(callback: Any) -> MagicMock:
            batch = MagicMock()
            batch.execute.side_effect = Exception("Network timeout")
            return batch

        mock_service.new_batch_http_request.side_effect = fake_new_batch

        with pytest.raises(FetchError, match="Batch request failed"):
            client.fetch_messages_batch(["msg1"])
