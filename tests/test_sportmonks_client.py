from __future__ import annotations

import unittest
from unittest.mock import patch

import requests

from matchtv.ingestion.sportmonks_client import (
    SportmonksAuthError,
    SportmonksClient,
    SportmonksClientError,
)


class _FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else str(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class SportmonksClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = SportmonksClient("secret-token", request_delay_seconds=0)

    def test_token_sent_in_authorization_header(self) -> None:
        with patch(
            "matchtv.ingestion.sportmonks_client.requests.get",
            return_value=_FakeResponse(200, {"data": {"id": 8}}),
        ) as mock_get:
            payload = self.client.get_league(8)

        self.assertEqual({"data": {"id": 8}}, payload)
        args, kwargs = mock_get.call_args
        self.assertTrue(args[0].endswith("/leagues/8"))
        self.assertEqual("secret-token", kwargs["headers"]["Authorization"])
        self.assertEqual({"include": "currentSeason"}, kwargs["params"])
        self.assertEqual(1, self.client.api_calls)

    def test_round_request_asks_for_fixture_includes(self) -> None:
        with patch(
            "matchtv.ingestion.sportmonks_client.requests.get",
            return_value=_FakeResponse(200, {"data": {}}),
        ) as mock_get:
            self.client.get_round(9)

        include = mock_get.call_args.kwargs["params"]["include"]
        self.assertIn("fixtures.tvstations.tvstation", include)
        self.assertIn("fixtures.participants", include)

    def test_rejected_credentials_raise_auth_error(self) -> None:
        with patch(
            "matchtv.ingestion.sportmonks_client.requests.get",
            return_value=_FakeResponse(401, {"message": "Unauthenticated."}),
        ):
            with self.assertRaises(SportmonksAuthError) as ctx:
                self.client.check_connection()

        self.assertEqual(401, ctx.exception.status)

    def test_server_error_carries_status(self) -> None:
        with patch(
            "matchtv.ingestion.sportmonks_client.requests.get",
            return_value=_FakeResponse(500, None, text="upstream exploded"),
        ):
            with self.assertRaises(SportmonksClientError) as ctx:
                self.client.get_season(25583)

        self.assertNotIsInstance(ctx.exception, SportmonksAuthError)
        self.assertEqual(500, ctx.exception.status)
        self.assertEqual(1, self.client.api_calls)

    def test_non_json_body_is_a_client_error(self) -> None:
        with patch(
            "matchtv.ingestion.sportmonks_client.requests.get",
            return_value=_FakeResponse(200, ValueError("no json"), text="<html>"),
        ):
            with self.assertRaises(SportmonksClientError) as ctx:
                self.client.get_fixture_tv_stations(100)

        self.assertIn("non-JSON", str(ctx.exception))

    def test_timeout_is_a_client_error(self) -> None:
        with patch(
            "matchtv.ingestion.sportmonks_client.requests.get",
            side_effect=requests.Timeout("read timed out"),
        ):
            with self.assertRaises(SportmonksClientError) as ctx:
                self.client.get_round(9)

        self.assertIsNone(ctx.exception.status)
        self.assertIn("timed out", str(ctx.exception))

    def test_consecutive_calls_are_spaced_by_delay(self) -> None:
        client = SportmonksClient("secret-token", request_delay_seconds=0.2)

        with patch(
            "matchtv.ingestion.sportmonks_client.requests.get",
            return_value=_FakeResponse(200, {"data": {}}),
        ), patch(
            "matchtv.ingestion.sportmonks_client.time.monotonic",
            side_effect=[100.0, 100.05, 100.3],
        ), patch("matchtv.ingestion.sportmonks_client.time.sleep") as mock_sleep:
            client.get_league(8)
            client.get_league(8)

        mock_sleep.assert_called_once()
        self.assertAlmostEqual(0.15, mock_sleep.call_args.args[0])
        self.assertEqual(2, client.api_calls)

    def test_empty_token_is_refused(self) -> None:
        with self.assertRaises(ValueError):
            SportmonksClient("")


if __name__ == "__main__":
    unittest.main()
