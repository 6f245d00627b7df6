"""Sportmonks v3 HTTP client for leagues, seasons, rounds and fixtures."""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

SPORTMONKS_BASE_URL = os.getenv(
    "SPORTMONKS_BASE_URL", "https://api.sportmonks.com/v3/football"
).rstrip("/")
SPORTMONKS_CONNECT_TIMEOUT_SECONDS = 10
DEFAULT_READ_TIMEOUT_SECONDS = 20
DEFAULT_REQUEST_DELAY_SECONDS = 0.2
MAX_ERROR_SNIPPET = 300
DEFAULT_USER_AGENT = "matchtv-sync/1.0"

ROUND_FIXTURE_INCLUDES = (
    "fixtures.participants;fixtures.tvstations.tvstation;fixtures.scores;fixtures.state"
)


class SportmonksClientError(RuntimeError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SportmonksAuthError(SportmonksClientError):
    pass


class SportmonksClient:
    """Thin synchronous client; one request at a time with a fixed delay between calls.

    Failed calls are not retried: re-running the sync is the retry mechanism.
    """

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = SPORTMONKS_BASE_URL,
        read_timeout_seconds: float = DEFAULT_READ_TIMEOUT_SECONDS,
        request_delay_seconds: float = DEFAULT_REQUEST_DELAY_SECONDS,
    ) -> None:
        if not api_token:
            raise ValueError("api_token is required")
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._timeout = (SPORTMONKS_CONNECT_TIMEOUT_SECONDS, read_timeout_seconds)
        self._delay = max(0.0, request_delay_seconds)
        self._last_call_at: float | None = None
        self.api_calls = 0

    def _throttle(self) -> None:
        if self._last_call_at is None or self._delay <= 0:
            return
        elapsed = time.monotonic() - self._last_call_at
        if elapsed < self._delay:
            time.sleep(self._delay - elapsed)

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": self._api_token,
            "Accept": "application/json",
            "User-Agent": DEFAULT_USER_AGENT,
        }
        self._throttle()
        self.api_calls += 1
        logger.debug("Sportmonks GET /%s params=%s", path.lstrip("/"), params or {})
        try:
            response = requests.get(url, headers=headers, params=params, timeout=self._timeout)
        except requests.Timeout as exc:
            raise SportmonksClientError(f"Sportmonks request timed out: {path}") from exc
        except requests.RequestException as exc:
            raise SportmonksClientError(f"Sportmonks request failed: {path}: {exc}") from exc
        finally:
            self._last_call_at = time.monotonic()

        if response.status_code in (401, 403):
            raise SportmonksAuthError(
                f"Sportmonks rejected credentials ({response.status_code}) for {path}",
                status=response.status_code,
            )
        if response.status_code >= 400:
            body_snippet = (response.text or "")[:MAX_ERROR_SNIPPET]
            logger.error(
                "Sportmonks non-2xx status=%s path=%s body=%s",
                response.status_code,
                path,
                body_snippet,
            )
            raise SportmonksClientError(
                f"Sportmonks error {response.status_code} for {path}",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SportmonksClientError(f"Sportmonks returned non-JSON response for {path}") from exc
        if not isinstance(payload, dict):
            raise SportmonksClientError(f"Sportmonks returned unexpected payload for {path}")
        return payload

    def check_connection(self) -> None:
        """Cheap call used at startup to fail fast on bad credentials or an unreachable API."""
        self._get("leagues", {"per_page": 1})

    def get_league(self, league_id: int) -> dict[str, Any]:
        return self._get(f"leagues/{league_id}", {"include": "currentSeason"})

    def get_season(self, season_id: int) -> dict[str, Any]:
        return self._get(f"seasons/{season_id}", {"include": "rounds"})

    def get_round(self, round_id: int) -> dict[str, Any]:
        return self._get(f"rounds/{round_id}", {"include": ROUND_FIXTURE_INCLUDES})

    def get_fixture_tv_stations(self, fixture_id: int) -> dict[str, Any]:
        return self._get(f"fixtures/{fixture_id}", {"include": "tvstations.tvstation"})
