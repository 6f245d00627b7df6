from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from matchtv.broadcasts.classifier import DEFAULT_HOME_COUNTRY_IDS, ClassificationRules
from matchtv.models import AppSettings

logger = logging.getLogger(__name__)

SPORTMONKS_TOKEN_ENV = "SPORTMONKS_TOKEN"
SECRET_KEY_ENV = "APP_SECRET_KEY"


class ConfigurationError(RuntimeError):
    """Missing or unusable configuration; fatal for a sync run."""


@dataclass(frozen=True)
class SettingsSnapshot:
    id: int
    sportmonks_api_token_enc: str | None
    request_delay_ms: int
    request_timeout_seconds: int
    sync_tv_stations: bool
    home_country_ids: frozenset[int]
    sync_competition_ids: tuple[int, ...]


@dataclass(frozen=True)
class SyncOptions:
    """Everything that changes how a sync run behaves, passed explicitly into the engine."""

    competition_ids: tuple[int, ...] = ()   # allow-list; empty = every mapped competition
    dry_run: bool = False
    sync_tv_stations: bool = True
    # Informational: the engine walks rounds, not dates.
    date_from: date | None = None
    date_to: date | None = None
    request_delay_seconds: float = 0.2
    request_timeout_seconds: float = 20.0
    rules: ClassificationRules = field(default_factory=ClassificationRules)


def parse_id_list(value: str | None) -> tuple[int, ...]:
    """Parse a comma separated id list ("11, 455,462") ignoring blanks."""

    if not value:
        return ()
    ids: list[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid id {part!r} in list {value!r}") from exc
    return tuple(ids)


def format_id_list(ids) -> str:
    return ",".join(str(value) for value in sorted(set(ids)))


def _default_settings() -> AppSettings:
    return AppSettings(
        id=1,
        sportmonks_api_token_enc=None,
        request_delay_ms=200,
        request_timeout_seconds=20,
        sync_tv_stations=True,
        home_country_ids=format_id_list(DEFAULT_HOME_COUNTRY_IDS),
        sync_competition_ids="",
        updated_at_utc=datetime.now(timezone.utc),
    )


def get_or_create_settings(db) -> AppSettings:
    settings = db.query(AppSettings).filter(AppSettings.id == 1).one_or_none()
    if settings:
        return settings
    settings = _default_settings()
    db.add(settings)
    db.commit()
    db.refresh(settings)
    return settings


def snapshot_settings(settings: AppSettings) -> SettingsSnapshot:
    home_country_ids = frozenset(parse_id_list(settings.home_country_ids))
    return SettingsSnapshot(
        id=settings.id,
        sportmonks_api_token_enc=settings.sportmonks_api_token_enc,
        request_delay_ms=settings.request_delay_ms,
        request_timeout_seconds=settings.request_timeout_seconds,
        sync_tv_stations=settings.sync_tv_stations,
        home_country_ids=home_country_ids or DEFAULT_HOME_COUNTRY_IDS,
        sync_competition_ids=parse_id_list(settings.sync_competition_ids),
    )


def build_sync_options(snapshot: SettingsSnapshot, **overrides) -> SyncOptions:
    """Freeze the stored settings into ``SyncOptions``; keyword overrides (CLI flags) win."""

    options = SyncOptions(
        competition_ids=snapshot.sync_competition_ids,
        sync_tv_stations=snapshot.sync_tv_stations,
        request_delay_seconds=max(0, snapshot.request_delay_ms) / 1000.0,
        request_timeout_seconds=float(snapshot.request_timeout_seconds),
        rules=ClassificationRules(home_country_ids=snapshot.home_country_ids),
    )
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if overrides:
        options = replace(options, **overrides)
    return options


@lru_cache(maxsize=4)
def _token_cipher(secret: str) -> Fernet:
    try:
        return Fernet(secret.encode("utf-8"))
    except ValueError as exc:
        raise ConfigurationError(
            f"{SECRET_KEY_ENV} is not a valid Fernet key (32 url-safe base64-encoded bytes)"
        ) from exc


def get_token_cipher(required: bool = True) -> Fernet | None:
    """Cipher for the stored Sportmonks token, keyed by ``APP_SECRET_KEY``.

    A missing key is a ``ConfigurationError`` when *required*; otherwise None.
    No throwaway key is generated.
    """

    secret = (os.getenv(SECRET_KEY_ENV) or "").strip()
    if not secret:
        if required:
            raise ConfigurationError(
                f"{SECRET_KEY_ENV} must be set to store a Sportmonks API token; "
                f"alternatively provide the token through {SPORTMONKS_TOKEN_ENV}"
            )
        return None
    return _token_cipher(secret)


def encrypt_api_token(api_token: str | None) -> str | None:
    if not api_token:
        return None
    cipher = get_token_cipher(required=True)
    return cipher.encrypt(api_token.encode("utf-8")).decode("utf-8")


def decrypt_api_token(encrypted: str | None) -> str | None:
    """Stored Sportmonks token in clear text, or None when it cannot be recovered."""

    if not encrypted:
        return None
    try:
        cipher = get_token_cipher(required=False)
    except ConfigurationError as exc:
        logger.error("Ignoring stored Sportmonks API token: %s", exc)
        return None
    if cipher is None:
        logger.warning(
            "A Sportmonks API token is stored but %s is not set; ignoring it. "
            "Set %s or %s.",
            SECRET_KEY_ENV,
            SECRET_KEY_ENV,
            SPORTMONKS_TOKEN_ENV,
        )
        return None
    try:
        return cipher.decrypt(encrypted.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.error(
            "Stored Sportmonks API token was encrypted under a different %s; "
            "save the token again or set %s.",
            SECRET_KEY_ENV,
            SPORTMONKS_TOKEN_ENV,
        )
        return None


def resolve_api_token(snapshot: SettingsSnapshot | None) -> str | None:
    env_token = (os.getenv(SPORTMONKS_TOKEN_ENV) or "").strip()
    if env_token:
        return env_token
    if snapshot is None:
        return None
    return decrypt_api_token(snapshot.sportmonks_api_token_enc)
