"""CLI entrypoint for scheduled fixture/broadcast sync runs."""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime

from matchtv.broadcasts.selection import FixtureNotFoundError
from matchtv.broadcasts.store import reclassify_unmapped_broadcasts
from matchtv.db import SessionLocal
from matchtv.ingestion.sportmonks_client import SportmonksClientError
from matchtv.ingestion.sync import create_client, resync_fixture_broadcasts, run_sync
from matchtv.settings import (
    ConfigurationError,
    SyncOptions,
    build_sync_options,
    get_or_create_settings,
    resolve_api_token,
    snapshot_settings,
)

logger = logging.getLogger("matchtv.ingestion.run")


def _parse_date(raw: str) -> date:
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {raw!r}, expected YYYY-MM-DD") from exc


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync fixtures and UK TV broadcasts from Sportmonks.",
    )
    parser.add_argument(
        "--competition-id",
        type=int,
        help="Only sync this local competition (default: every mapped competition).",
    )
    parser.add_argument(
        "--date-from",
        type=_parse_date,
        help="Start of the reporting window (YYYY-MM-DD). Rounds are still walked in full.",
    )
    parser.add_argument(
        "--date-to",
        type=_parse_date,
        help="End of the reporting window (YYYY-MM-DD).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run all logic but roll back every write; log intended actions instead.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log one line per fixture.",
    )
    parser.add_argument(
        "--no-tv-stations",
        action="store_true",
        help="Sync fixtures only; leave stored broadcasts untouched.",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--fixture-id",
        type=int,
        help="Only refetch and replace the broadcasts of this stored fixture.",
    )
    mode.add_argument(
        "--reclassify-unmapped",
        action="store_true",
        help="Re-run provider mapping on stored unmapped broadcasts; no API calls.",
    )
    args = parser.parse_args(argv)
    if args.date_from and args.date_to and args.date_from > args.date_to:
        parser.error("--date-from must not be after --date-to")
    return args


def _load_options(args: argparse.Namespace) -> tuple[SyncOptions, str | None]:
    with SessionLocal() as db:
        snapshot = snapshot_settings(get_or_create_settings(db))
    options = build_sync_options(
        snapshot,
        dry_run=args.dry_run,
        sync_tv_stations=False if args.no_tv_stations else None,
        date_from=args.date_from,
        date_to=args.date_to,
    )
    return options, resolve_api_token(snapshot)


def _reclassify(options: SyncOptions) -> None:
    with SessionLocal() as db:
        updated = reclassify_unmapped_broadcasts(db, options.rules)
        if options.dry_run:
            db.rollback()
        else:
            db.commit()
    logger.info("%sReclassified %s unmapped broadcast(s)", "[dry-run] " if options.dry_run else "", updated)


def _resync_fixture(options: SyncOptions, api_token: str, fixture_id: int) -> None:
    client = create_client(options, api_token)
    with SessionLocal() as db:
        written = resync_fixture_broadcasts(db, fixture_id, options, client)
    logger.info("Done: fixture_id=%s broadcasts=%s api_calls=%s", fixture_id, written, client.api_calls)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if args.verbose:
        logging.getLogger("matchtv").setLevel(logging.DEBUG)

    options, api_token = _load_options(args)

    if args.reclassify_unmapped:
        _reclassify(options)
        return

    if not api_token:
        logger.error("No Sportmonks API token. Set SPORTMONKS_TOKEN or store one in settings.")
        raise SystemExit(1)

    try:
        if args.fixture_id is not None:
            _resync_fixture(options, api_token, args.fixture_id)
            return
        competition_ids = [args.competition_id] if args.competition_id is not None else None
        stats = run_sync(options, competition_ids=competition_ids, api_token=api_token)
    except (ConfigurationError, SportmonksClientError, FixtureNotFoundError) as exc:
        logger.error("Sync aborted: %s", exc)
        raise SystemExit(1) from exc

    logger.info(
        "Done: processed=%s created=%s updated=%s unchanged=%s skipped=%s errors=%s "
        "broadcasts=%s api_calls=%s competition_errors=%s",
        stats.fixtures_processed,
        stats.created,
        stats.updated,
        stats.unchanged,
        stats.skipped,
        stats.errors,
        stats.broadcasts_written,
        stats.api_calls,
        len(stats.competition_errors),
    )


if __name__ == "__main__":
    main()
