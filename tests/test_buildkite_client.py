"""Tests for Buildkite API client behavior with mocked HTTP."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from buildstats.buildkite_client import BuildkiteClient
from buildstats.config import Config
from buildstats.errors import ApiError, AuthenticationError


def _build_client() -> BuildkiteClient:
    return BuildkiteClient(config=Config(organization="acme", token="bk-token"))


def _response(status_code: int, payload=None, text: str = "", headers: dict | None = None):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else []
    return response


def _build_item(number: int, pipeline: str = "svc-a", finished_at="2026-01-01T00:05:00Z") -> dict:
    return {
        "id": f"uuid-{number}",
        "number": number,
        "branch": "main",
        "state": "passed",
        "pipeline": {"slug": pipeline, "name": pipeline},
        "created_at": "2026-01-01T00:00:00Z",
        "scheduled_at": "2026-01-01T00:00:01Z",
        "started_at": "2026-01-01T00:00:30Z",
        "finished_at": finished_at,
    }


def test_session_sends_bearer_token():
    """Verify the session is authenticated with the configured API token."""
    client = _build_client()

    assert client._session.headers["Authorization"] == "Bearer bk-token"


def test_get_json_retries_on_429_and_succeeds():
    """Verify _get_json retries after HTTP 429 and eventually returns JSON payload."""
    client = _build_client()
    first = _response(429, headers={"Retry-After": "1"})
    second = _response(200, payload=[{"id": "1"}])

    client._session.get = Mock(side_effect=[first, second])

    with patch("buildstats.buildkite_client.time.sleep") as sleep_mock:
        payload = client._get_json("builds")

    assert payload == [{"id": "1"}]
    assert client._session.get.call_count == 2
    sleep_mock.assert_called_once_with(1)


def test_get_json_retries_on_5xx_and_raises_after_max_retries():
    """Verify _get_json retries retryable server errors and raises ApiError after limit."""
    client = _build_client()
    server_error = _response(503, text="service unavailable")
    client._session.get = Mock(side_effect=[server_error] * client._MAX_RETRIES)

    with patch("buildstats.buildkite_client.time.sleep") as sleep_mock:
        with pytest.raises(ApiError):
            client._get_json("builds")

    assert client._session.get.call_count == client._MAX_RETRIES
    assert sleep_mock.call_count == client._MAX_RETRIES - 1


def test_get_json_retries_connection_errors_then_raises():
    """Verify transport errors are retried and finally surfaced as ApiError."""
    client = _build_client()
    client._session.get = Mock(side_effect=requests.ConnectionError("reset"))

    with patch("buildstats.buildkite_client.time.sleep"):
        with pytest.raises(ApiError):
            client._get_json("builds")

    assert client._session.get.call_count == client._MAX_RETRIES


def test_get_json_passes_timeout_to_every_request():
    """Verify each request is bounded by the configured timeout."""
    client = BuildkiteClient(config=Config(organization="acme", token="t"), timeout_seconds=7)
    client._session.get = Mock(return_value=_response(200, payload=[]))

    client._get_json("builds")

    assert client._session.get.call_args.kwargs["timeout"] == 7


def test_get_json_unauthorized_raises_authentication_error():
    """Verify a rejected token is reported as an authentication failure."""
    client = _build_client()
    client._session.get = Mock(return_value=_response(401, text="unauthorized"))

    with pytest.raises(AuthenticationError):
        client._get_json("builds")


def test_get_json_non_list_payload_raises_api_error():
    """Verify unexpected payload shapes are rejected."""
    client = _build_client()
    client._session.get = Mock(return_value=_response(200, payload={"message": "nope"}))

    with pytest.raises(ApiError):
        client._get_json("builds")


def test_list_builds_uses_pagination_until_final_partial_page():
    """Verify build listing paginates using page/per_page and aggregates all pages."""
    client = _build_client()

    first_page = [_build_item(i) for i in range(1, 101)]
    second_page = [_build_item(101), _build_item(102, finished_at=None)]

    get_json_mock = Mock(side_effect=[first_page, second_page])
    client._get_json = get_json_mock

    builds = client.list_builds(
        created_from=datetime(2026, 1, 1, tzinfo=timezone.utc),
        created_to=datetime(2026, 1, 2, tzinfo=timezone.utc),
    )

    assert len(builds) == 102
    assert builds[0].id == "uuid-1"
    assert builds[0].pipeline.name == "svc-a"
    assert builds[0].started_at == datetime(2026, 1, 1, 0, 0, 30, tzinfo=timezone.utc)
    assert builds[-1].finished_at is None
    assert get_json_mock.call_count == 2

    first_params = get_json_mock.call_args_list[0].kwargs["params"]
    second_params = get_json_mock.call_args_list[1].kwargs["params"]
    assert first_params["page"] == 1
    assert second_params["page"] == 2
    assert first_params["per_page"] == client._BUILDS_PAGE_SIZE
    assert first_params["created_from"] == "2026-01-01T00:00:00Z"
    assert first_params["created_to"] == "2026-01-02T00:00:00Z"


def test_list_builds_without_upper_bound_omits_created_to():
    """Verify open-ended listing sends only created_from."""
    client = _build_client()
    client._get_json = Mock(return_value=[_build_item(1)])

    builds = client.list_builds(created_from=datetime(2026, 1, 1, tzinfo=timezone.utc))

    assert len(builds) == 1
    params = client._get_json.call_args.kwargs["params"]
    assert "created_to" not in params


def test_list_builds_malformed_payload_raises_api_error():
    """Verify builds without a pipeline name are rejected as API errors."""
    client = _build_client()
    item = _build_item(1)
    item["pipeline"] = {}
    client._get_json = Mock(return_value=[item])

    with pytest.raises(ApiError):
        client.list_builds(created_from=datetime(2026, 1, 1, tzinfo=timezone.utc))


def test_close_releases_session():
    """Verify leaving the client context closes its session."""
    client = _build_client()
    client._session = Mock()

    with client:
        pass

    client._session.close.assert_called_once_with()
