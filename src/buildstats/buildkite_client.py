"""Buildkite REST API client for build history retrieval."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import ApiError, AuthenticationError, DataValidationError
from .models import Build, format_datetime

logger = logging.getLogger(__name__)


class BuildkiteClient:
    """Small, typed client for the Buildkite organization builds API."""

    _BASE_URL = "https://api.buildkite.com/v2"
    _USER_AGENT = "buildkite-build-stats/0.1.0"
    _BUILDS_PAGE_SIZE = 100
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30

    def __init__(self, config: Config, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated Buildkite API client.

        Args:
            config: Validated runtime configuration including org and token.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._base_url = f"{self._BASE_URL}/organizations/{config.organization}"

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Authorization": f"Bearer {config.token}",
                "User-Agent": self._USER_AGENT,
            }
        )

    def close(self) -> None:
        """Release the pooled HTTP connections."""
        self._session.close()

    def __enter__(self) -> "BuildkiteClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a path below the organization."""
        return f"{self._base_url}/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring rate-limit headers when available."""
        for header in ("Retry-After", "RateLimit-Reset"):
            value = response.headers.get(header)
            if value:
                try:
                    return min(self._MAX_BACKOFF_SECONDS, max(1, int(value)))
                except ValueError:
                    continue

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Execute a GET request with retry logic for 429/5xx responses.

        Raises:
            AuthenticationError: If Buildkite rejects the API token.
            ApiError: If the request repeatedly fails, returns HTTP >= 400,
                or does not return a JSON list.
        """
        url = self._build_url(path)
        query = dict(params or {})

        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.get(url, params=query, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError(f"Buildkite request failed after retries: GET {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                backoff = self._extract_backoff_seconds(response, attempt)
                logger.info(
                    "Retrying Buildkite request",
                    extra={"url": url, "status_code": status_code, "backoff_seconds": backoff},
                )
                time.sleep(backoff)
                continue

            if status_code in (401, 403):
                raise AuthenticationError(
                    f"Buildkite rejected the API token ({status_code}). "
                    "The token requires the 'read_builds' scope."
                )

            if status_code >= 400:
                raise ApiError(
                    "Buildkite API request failed: "
                    f"GET {url} returned {status_code} - {response.text}"
                )

            try:
                payload = response.json()
            except ValueError as exc:
                raise ApiError(f"Buildkite API returned invalid JSON: GET {url}") from exc

            if not isinstance(payload, list):
                raise ApiError(f"Buildkite API returned unexpected payload shape: GET {url}")

            return payload

        raise ApiError(f"Buildkite request failed after retries: GET {url}") from last_error

    def list_builds(
        self,
        created_from: datetime,
        created_to: Optional[datetime] = None,
    ) -> List[Build]:
        """List builds of the organization created in ``[created_from, created_to)``.

        Uses ``page``/``per_page`` pagination and stops at the first partial
        page. When ``created_to`` is ``None`` the window is open-ended.

        Raises:
            ApiError: If any page fails or contains malformed builds.
        """
        builds: List[Build] = []
        page = 1

        while True:
            params: Dict[str, Any] = {
                "created_from": format_datetime(created_from),
                "per_page": self._BUILDS_PAGE_SIZE,
                "page": page,
            }
            if created_to is not None:
                params["created_to"] = format_datetime(created_to)

            page_items = self._get_json("builds", params=params)
            for item in page_items:
                try:
                    builds.append(Build.from_payload(item))
                except DataValidationError as exc:
                    raise ApiError(f"Buildkite build payload is invalid: {exc}") from exc

            if len(page_items) < self._BUILDS_PAGE_SIZE:
                break

            page += 1

        logger.debug(
            "Fetched builds",
            extra={
                "organization": self._config.organization,
                "created_from": format_datetime(created_from),
                "created_to": format_datetime(created_to),
                "builds": len(builds),
                "pages": page,
            },
        )
        return builds
