from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from cryptography.fernet import Fernet

from matchtv.broadcasts.classifier import DEFAULT_HOME_COUNTRY_IDS
from matchtv.settings import (
    ConfigurationError,
    build_sync_options,
    decrypt_api_token,
    encrypt_api_token,
    format_id_list,
    get_or_create_settings,
    parse_id_list,
    resolve_api_token,
    snapshot_settings,
)
from tests.support import make_session_factory


class IdListTests(unittest.TestCase):
    def test_parse_ignores_blanks_and_spaces(self) -> None:
        self.assertEqual((11, 455, 462), parse_id_list(" 11, 455,,462 "))
        self.assertEqual((), parse_id_list(""))
        self.assertEqual((), parse_id_list(None))

    def test_parse_rejects_non_numeric(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_id_list("11,uk")

    def test_format_sorts_and_dedupes(self) -> None:
        self.assertEqual("11,455,462", format_id_list([462, 11, 455, 11]))


class StoredSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_defaults_created_once(self) -> None:
        first = get_or_create_settings(self.db)
        second = get_or_create_settings(self.db)

        self.assertEqual(first.id, second.id)
        snapshot = snapshot_settings(first)
        self.assertEqual(DEFAULT_HOME_COUNTRY_IDS, snapshot.home_country_ids)
        self.assertEqual((), snapshot.sync_competition_ids)
        self.assertTrue(snapshot.sync_tv_stations)

    def test_overrides_win_over_stored_values(self) -> None:
        stored = get_or_create_settings(self.db)
        stored.request_delay_ms = 500
        stored.sync_competition_ids = "1,2"
        stored.home_country_ids = "11"
        self.db.commit()
        snapshot = snapshot_settings(stored)

        options = build_sync_options(snapshot, dry_run=True, sync_tv_stations=None, competition_ids=(2,))

        self.assertTrue(options.dry_run)
        self.assertTrue(options.sync_tv_stations)
        self.assertEqual((2,), options.competition_ids)
        self.assertEqual(0.5, options.request_delay_seconds)
        self.assertEqual(frozenset({11}), options.rules.home_country_ids)


class ApiTokenTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        key = Fernet.generate_key().decode("utf-8")
        patcher_env = patch.dict(os.environ, {"APP_SECRET_KEY": key}, clear=True)
        patcher_env.start()
        self.addCleanup(patcher_env.stop)

    def tearDown(self) -> None:
        self.db.close()

    def test_encrypted_token_round_trip(self) -> None:
        encrypted = encrypt_api_token("abc123")

        self.assertNotEqual("abc123", encrypted)
        self.assertEqual("abc123", decrypt_api_token(encrypted))
        self.assertIsNone(encrypt_api_token(""))

    def test_garbage_ciphertext_decrypts_to_none(self) -> None:
        with self.assertLogs("matchtv.settings", level="ERROR") as logs:
            self.assertIsNone(decrypt_api_token("not-a-fernet-token"))

        self.assertIn("SPORTMONKS_TOKEN", logs.output[0])

    def test_token_stored_under_another_key_is_ignored(self) -> None:
        encrypted = encrypt_api_token("abc123")

        with patch.dict(os.environ, {"APP_SECRET_KEY": Fernet.generate_key().decode("utf-8")}):
            with self.assertLogs("matchtv.settings", level="ERROR") as logs:
                self.assertIsNone(decrypt_api_token(encrypted))

        self.assertIn("different APP_SECRET_KEY", logs.output[0])

    def test_storing_a_token_requires_secret_key(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigurationError) as ctx:
                encrypt_api_token("abc123")

        self.assertIn("APP_SECRET_KEY", str(ctx.exception))

    def test_malformed_secret_key_is_configuration_error(self) -> None:
        with patch.dict(os.environ, {"APP_SECRET_KEY": "not-a-fernet-key"}):
            with self.assertRaises(ConfigurationError):
                encrypt_api_token("abc123")
            with self.assertLogs("matchtv.settings", level="ERROR"):
                self.assertIsNone(decrypt_api_token("gAAAAA-stored"))

    def test_stored_token_without_secret_key_is_ignored(self) -> None:
        encrypted = encrypt_api_token("abc123")

        with patch.dict(os.environ, {}, clear=True):
            with self.assertLogs("matchtv.settings", level="WARNING") as logs:
                self.assertIsNone(decrypt_api_token(encrypted))

        self.assertIn("APP_SECRET_KEY is not set", logs.output[0])

    def test_environment_token_wins_over_stored_token(self) -> None:
        stored = get_or_create_settings(self.db)
        stored.sportmonks_api_token_enc = encrypt_api_token("stored-token")
        self.db.commit()
        snapshot = snapshot_settings(stored)

        self.assertEqual("stored-token", resolve_api_token(snapshot))
        with patch.dict(os.environ, {"SPORTMONKS_TOKEN": " env-token "}):
            self.assertEqual("env-token", resolve_api_token(snapshot))

    def test_no_token_anywhere(self) -> None:
        self.assertIsNone(resolve_api_token(snapshot_settings(get_or_create_settings(self.db))))
        self.assertIsNone(resolve_api_token(None))


if __name__ == "__main__":
    unittest.main()
