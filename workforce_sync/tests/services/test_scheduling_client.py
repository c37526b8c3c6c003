"""Tests for the scheduling platform API client."""

from datetime import date
from unittest.mock import MagicMock

import httpx
import pytest

from workforce_sync.services.scheduling_client import SchedulingApiClient, SchedulingApiConfig
from workforce_sync.utils.errors import (
    SchedulingApiError,
    SchedulingAuthError,
    SchedulingUnavailableError,
)


def make_client(handler, max_retries: int = 2, sleep=None) -> SchedulingApiClient:
    config = SchedulingApiConfig(
        base_url="https://planner.test",
        session_cookie="abc123",
        max_retries=max_retries,
        initial_retry_delay=1.0,
        retry_multiplier=2.0,
    )
    return SchedulingApiClient(
        config,
        transport=httpx.MockTransport(handler),
        sleep=sleep or MagicMock(),
    )


class TestRequests:
    """Tests for request building and response parsing."""

    def test_sends_session_cookie_and_params(self):
        """Test the session cookie and query parameters reach the platform."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["cookie"] = request.headers.get("Cookie")
            seen["params"] = dict(request.url.params)
            seen["path"] = request.url.path
            return httpx.Response(200, json=[{"id": 1}])

        with make_client(handler) as client:
            records = client.list_assignments(date(2026, 10, 1), date(2026, 10, 7), "S1")

        assert records == [{"id": 1}]
        assert seen["cookie"] == "JSESSIONID=abc123"
        assert seen["path"] == "/api/assignments"
        assert seen["params"] == {"startDate": "2026-10-01", "endDate": "2026-10-07", "serviceId": "S1"}

    def test_unwraps_enveloped_lists(self):
        """Test list payloads wrapped in a data envelope are unwrapped."""
        client = make_client(lambda request: httpx.Response(200, json={"data": [{"id": "E1"}], "total": 1}))

        assert client.list_employees("S1", "B1") == [{"id": "E1"}]

    def test_unexpected_shape(self):
        """Test a non-list payload is rejected."""
        client = make_client(lambda request: httpx.Response(200, json={"message": "ok"}))

        with pytest.raises(SchedulingApiError):
            client.list_services()


class TestRetries:
    """Tests for retry and failure classification."""

    def test_server_errors_are_retried_with_backoff(self):
        """Test 5xx responses are retried and the next success is returned."""
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json=[])])
        sleep = MagicMock()
        client = make_client(lambda request: next(responses), sleep=sleep)

        assert client.list_services() == []
        assert [call.args[0] for call in sleep.call_args_list] == [1.0, 2.0]

    def test_timeouts_exhaust_into_unavailable(self):
        """Test persistent timeouts end in SchedulingUnavailableError after max_retries + 1 attempts."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("read timed out", request=request)

        client = make_client(handler, max_retries=2)

        with pytest.raises(SchedulingUnavailableError) as exc_info:
            client.list_absences(date(2026, 10, 1), date(2026, 10, 7), "S1")

        assert len(calls) == 3
        assert "Timeout" in exc_info.value.message

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failures_are_not_retried(self, status):
        """Test rejected credentials fail immediately."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(status)

        client = make_client(handler)

        with pytest.raises(SchedulingAuthError) as exc_info:
            client.list_services()

        assert len(calls) == 1
        assert exc_info.value.status == status

    def test_other_client_errors_fail_without_retry(self):
        """Test 4xx responses other than auth raise SchedulingApiError at once."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404)

        client = make_client(handler)

        with pytest.raises(SchedulingApiError) as exc_info:
            client.list_services()

        assert not isinstance(exc_info.value, SchedulingAuthError)
        assert exc_info.value.status == 404
        assert len(calls) == 1
