"""Probe one Sportmonks round and print how each fixture's TV stations would be classified.

Writes nothing. Uses the same classifier as the sync so results match what a
real run would store.
"""

from __future__ import annotations

import argparse
import logging

from matchtv.broadcasts.classifier import classify_stations
from matchtv.broadcasts.providers import get_provider
from matchtv.broadcasts.store import load_excluded_provider_ids
from matchtv.db import SessionLocal
from matchtv.ingestion.sportmonks_client import SportmonksClientError
from matchtv.ingestion.sportmonks_parser import FixturePayloadError, parse_fixture, round_fixtures
from matchtv.ingestion.sync import create_client
from matchtv.settings import (
    build_sync_options,
    get_or_create_settings,
    resolve_api_token,
    snapshot_settings,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fetch a round and print kept/rejected TV stations per fixture.",
    )
    parser.add_argument("--round-id", type=int, required=True, help="Sportmonks round id.")
    parser.add_argument(
        "--competition-id",
        type=int,
        help="Local competition id whose rights exclusions should apply.",
    )
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = _parse_args()

    with SessionLocal() as db:
        snapshot = snapshot_settings(get_or_create_settings(db))
        excluded = frozenset()
        if args.competition_id is not None:
            excluded = load_excluded_provider_ids(db, args.competition_id)
    options = build_sync_options(snapshot)
    api_token = resolve_api_token(snapshot)
    if not api_token:
        logging.error("No Sportmonks API token. Set SPORTMONKS_TOKEN.")
        raise SystemExit(1)

    client = create_client(options, api_token)
    try:
        payload = client.get_round(args.round_id)
    except SportmonksClientError as exc:
        logging.error("Sportmonks error: %s", exc)
        raise SystemExit(1) from exc

    round_ref, fixtures = round_fixtures(payload)
    logging.info(
        "Round %s (%s): %s fixtures, excluded providers=%s",
        args.round_id,
        round_ref.name if round_ref else "?",
        len(fixtures),
        sorted(excluded),
    )
    for raw in fixtures:
        try:
            dto = parse_fixture(raw, round_ref)
        except FixturePayloadError as exc:
            logging.warning("  unparseable fixture: %s", exc)
            continue
        logging.info(
            "%s: %s vs %s [%s]",
            dto.external_fixture_id,
            dto.home.name,
            dto.away.name,
            dto.status,
        )
        if dto.tv_stations is None:
            logging.info("  no tvstations include")
            continue
        result = classify_stations(dto.tv_stations, options.rules, excluded_provider_ids=excluded)
        for station in result.kept:
            provider = get_provider(station.provider_id) if station.provider_id else None
            logging.info(
                "  keep   %-8s %-40s country=%s provider=%s",
                station.external_station_id,
                station.channel_name,
                station.country_id,
                provider.name if provider else "unmapped",
            )
        for station, reason in result.rejected:
            logging.info(
                "  reject %-8s %-40s country=%s reason=%s",
                station.external_station_id,
                station.name,
                station.country_id,
                reason,
            )


if __name__ == "__main__":
    main()
