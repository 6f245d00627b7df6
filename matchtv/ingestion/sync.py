"""Sync fixtures and TV broadcasts from Sportmonks into the local database.

League -> current season -> rounds -> fixtures. Each fixture (team resolution,
fixture upsert, broadcast replace) is its own unit of work: it is committed on
success and rolled back on any error, so one bad record never aborts the batch.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from matchtv.broadcasts.selection import FixtureNotFoundError
from matchtv.broadcasts.store import sync_broadcasts
from matchtv.db import SessionLocal
from matchtv.ingestion.competitions import (
    UnknownCompetitionError,
    list_mapped_competition_ids,
    resolve_external_league,
)
from matchtv.ingestion.run_log import RunStats, record_run, run_status
from matchtv.ingestion.schema import FixtureIngestDTO, RoundRef
from matchtv.ingestion.sportmonks_client import (
    SportmonksAuthError,
    SportmonksClient,
    SportmonksClientError,
)
from matchtv.ingestion.sportmonks_parser import (
    parse_current_season_id,
    parse_fixture,
    parse_rounds,
    parse_tv_stations,
    round_fixtures,
)
from matchtv.ingestion.teams import resolve_team
from matchtv.log_buffer import run_log_context
from matchtv.models import Fixture
from matchtv.settings import (
    ConfigurationError,
    SyncOptions,
    get_or_create_settings,
    resolve_api_token,
    snapshot_settings,
)

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "[dry-run] "

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_UNCHANGED = "unchanged"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _prefix(options: SyncOptions) -> str:
    return DRY_RUN_PREFIX if options.dry_run else ""


def _update_fixture_from_dto(
    fixture: Fixture,
    dto: FixtureIngestDTO,
    competition_id: int,
    home_team_id: int,
    away_team_id: int,
) -> bool:
    changed = False

    values = {
        "competition_id": competition_id,
        "home_team_id": home_team_id,
        "away_team_id": away_team_id,
        "round": dto.round_value(),
        "status": dto.status,
        "provider_state": dto.provider_state,
        "home_score": dto.home_score,
        "away_score": dto.away_score,
    }
    for attr, value in values.items():
        if getattr(fixture, attr) != value:
            setattr(fixture, attr, value)
            changed = True

    if _as_utc(fixture.kickoff_utc) != _as_utc(dto.kickoff_utc):
        fixture.kickoff_utc = dto.kickoff_utc
        changed = True

    return changed


def _insert_fixture(
    db: Session,
    dto: FixtureIngestDTO,
    competition_id: int,
    home_team_id: int,
    away_team_id: int,
    now: datetime,
) -> Fixture:
    fixture = Fixture(
        source=dto.source,
        external_fixture_id=dto.external_fixture_id,
        competition_id=competition_id,
        home_team_id=home_team_id,
        away_team_id=away_team_id,
        kickoff_utc=dto.kickoff_utc,
        round=dto.round_value(),
        status=dto.status,
        provider_state=dto.provider_state,
        home_score=dto.home_score,
        away_score=dto.away_score,
        sync_status="synced",
        last_synced_at=now,
    )
    db.add(fixture)
    return fixture


def _upsert_fixture(
    db: Session,
    dto: FixtureIngestDTO,
    competition_id: int,
    home_team_id: int,
    away_team_id: int,
    now: datetime,
) -> tuple[Fixture, str]:
    existing = (
        db.query(Fixture)
        .filter(
            Fixture.source == dto.source,
            Fixture.external_fixture_id == dto.external_fixture_id,
        )
        .one_or_none()
    )
    if existing is None:
        fixture = _insert_fixture(db, dto, competition_id, home_team_id, away_team_id, now)
        db.flush()
        return fixture, ACTION_CREATED

    action = ACTION_UNCHANGED
    if _update_fixture_from_dto(existing, dto, competition_id, home_team_id, away_team_id):
        action = ACTION_UPDATED
    existing.sync_status = "synced"
    existing.last_synced_at = now
    db.flush()
    return existing, action


def _sync_fixture(
    db: Session,
    raw: Any,
    round_ref: RoundRef,
    competition_id: int,
    options: SyncOptions,
    stats: RunStats,
    seen_fixture_ids: set[Any],
    now: datetime,
) -> None:
    external_id = raw.get("id") if isinstance(raw, dict) else None
    if external_id is not None and external_id in seen_fixture_ids:
        stats.skipped += 1
        logger.debug("Skipped duplicate external_fixture_id=%s in this run", external_id)
        return
    seen_fixture_ids.add(external_id)
    stats.fixtures_processed += 1

    dto: FixtureIngestDTO | None = None
    try:
        dto = parse_fixture(raw, round_ref)
        home_team_id = resolve_team(db, dto.home.external_team_id, dto.home.name, now=now)
        away_team_id = resolve_team(db, dto.away.external_team_id, dto.away.name, now=now)
        fixture, action = _upsert_fixture(db, dto, competition_id, home_team_id, away_team_id, now)

        written = None
        if options.sync_tv_stations and dto.tv_stations is not None:
            written = sync_broadcasts(
                db,
                fixture.id,
                competition_id,
                dto.tv_stations,
                options.rules,
                now=now,
            )

        if options.dry_run:
            db.flush()
        else:
            db.commit()
    except Exception as exc:
        db.rollback()
        context: dict[str, Any] = {"competition_id": competition_id, "round_id": round_ref.id}
        if dto is not None:
            context["home"] = [dto.home.external_team_id, dto.home.name]
            context["away"] = [dto.away.external_team_id, dto.away.name]
        stats.add_fixture_error(external_id, str(exc), **context)
        logger.exception(
            "Failed syncing fixture external_fixture_id=%s competition_id=%s round_id=%s",
            external_id,
            competition_id,
            round_ref.id,
        )
        return

    if action == ACTION_CREATED:
        stats.created += 1
    elif action == ACTION_UPDATED:
        stats.updated += 1
    else:
        stats.unchanged += 1
    if written is not None:
        stats.broadcasts_written += written

    if options.dry_run and action != ACTION_UNCHANGED:
        logger.info(
            "%sFixture external_fixture_id=%s would be %s with %s broadcast(s)",
            DRY_RUN_PREFIX,
            dto.external_fixture_id,
            action,
            "unchanged" if written is None else written,
        )
    logger.debug(
        "Fixture external_fixture_id=%s %s (%s vs %s) round=%s status=%s broadcasts=%s",
        dto.external_fixture_id,
        action,
        dto.home.name,
        dto.away.name,
        dto.round.name,
        dto.status,
        "skipped" if written is None else written,
    )


def sync_competition(
    db: Session,
    competition_id: int,
    options: SyncOptions,
    client: SportmonksClient,
    *,
    stats: RunStats | None = None,
    now: datetime | None = None,
    seen_fixture_ids: set[Any] | None = None,
) -> RunStats:
    """Sync every round of the competition's current season.

    Competition-level problems (not mapped, no season, no rounds, rejected
    credentials) are recorded on ``stats`` and end this competition only.
    """

    stats = stats if stats is not None else RunStats()
    now = now or _utcnow()
    seen_fixture_ids = seen_fixture_ids if seen_fixture_ids is not None else set()
    calls_before = client.api_calls
    try:
        _sync_competition_rounds(db, competition_id, options, client, stats, now, seen_fixture_ids)
    finally:
        stats.api_calls += client.api_calls - calls_before
    return stats


def _sync_competition_rounds(
    db: Session,
    competition_id: int,
    options: SyncOptions,
    client: SportmonksClient,
    stats: RunStats,
    now: datetime,
    seen_fixture_ids: set[Any],
) -> None:
    try:
        league = resolve_external_league(db, competition_id)
    except UnknownCompetitionError as exc:
        stats.add_competition_error(competition_id, str(exc))
        logger.error("Skipping competition_id=%s: %s", competition_id, exc)
        return
    if league is None:
        stats.add_competition_error(competition_id, "no active league mapping")
        logger.warning("Skipping competition_id=%s: no active league mapping", competition_id)
        return

    try:
        season_id = parse_current_season_id(client.get_league(league.external_league_id))
        if season_id is None:
            stats.add_competition_error(competition_id, "no current season")
            logger.warning(
                "Skipping competition_id=%s: league %s has no current season",
                competition_id,
                league.external_league_id,
            )
            return
        rounds = parse_rounds(client.get_season(season_id))
    except SportmonksClientError as exc:
        stats.add_competition_error(competition_id, str(exc))
        logger.error("Skipping competition_id=%s: %s", competition_id, exc)
        return

    if not rounds:
        stats.add_competition_error(competition_id, f"season {season_id} returned no rounds")
        logger.warning("Skipping competition_id=%s: season %s has no rounds", competition_id, season_id)
        return

    logger.info(
        "%sSyncing competition_id=%s league=%s (%s) season=%s rounds=%s",
        _prefix(options),
        competition_id,
        league.external_league_id,
        league.external_league_name,
        season_id,
        len(rounds),
    )

    for listed_round in rounds:
        try:
            payload = client.get_round(listed_round.id)
        except SportmonksAuthError as exc:
            stats.add_competition_error(competition_id, str(exc))
            logger.error("Stopping competition_id=%s: %s", competition_id, exc)
            return
        except SportmonksClientError as exc:
            stats.errors += 1
            logger.error(
                "Skipping round_id=%s (%s) of competition_id=%s: %s",
                listed_round.id,
                listed_round.name,
                competition_id,
                exc,
            )
            continue

        payload_round, fixtures = round_fixtures(payload)
        round_ref = payload_round or listed_round
        stats.rounds_processed += 1
        logger.debug("Round round_id=%s name=%s fixtures=%s", round_ref.id, round_ref.name, len(fixtures))
        for raw in fixtures:
            _sync_fixture(db, raw, round_ref, competition_id, options, stats, seen_fixture_ids, now)

    stats.competitions_synced.append(competition_id)


def _select_competitions(
    db: Session,
    options: SyncOptions,
    competition_ids: Iterable[int] | None,
) -> list[int]:
    if competition_ids:
        return list(dict.fromkeys(competition_ids))
    mapped = list_mapped_competition_ids(db)
    if not options.competition_ids:
        return mapped
    allowed = set(options.competition_ids)
    for competition_id in sorted(allowed - set(mapped)):
        logger.warning("Allow-listed competition_id=%s has no active mapping", competition_id)
    return [competition_id for competition_id in mapped if competition_id in allowed]


def sync_competitions(
    db: Session,
    options: SyncOptions,
    client: SportmonksClient,
    *,
    competition_ids: Iterable[int] | None = None,
    clock: Callable[[], datetime] = _utcnow,
    run_id: str | None = None,
) -> RunStats:
    """Run one sync over the selected competitions and append a run log (unless dry-run).

    Every log line emitted during the run is tagged with ``run_id`` in the
    in-memory log buffer, so ``GET /api/logs?run_id=...`` shows one run.
    """

    run_id = run_id or uuid.uuid4().hex
    with run_log_context(run_id):
        return _sync_selected(db, options, client, competition_ids, clock, run_id)


def _sync_selected(
    db: Session,
    options: SyncOptions,
    client: SportmonksClient,
    competition_ids: Iterable[int] | None,
    clock: Callable[[], datetime],
    run_id: str,
) -> RunStats:
    started_at = clock()
    stats = RunStats()
    seen_fixture_ids: set[Any] = set()
    selected = _select_competitions(db, options, competition_ids)

    logger.info(
        "%sStarting sync run_id=%s competitions=%s tv_stations=%s window=%s..%s",
        _prefix(options),
        run_id,
        selected,
        options.sync_tv_stations,
        options.date_from,
        options.date_to,
    )
    for competition_id in selected:
        try:
            sync_competition(
                db,
                competition_id,
                options,
                client,
                stats=stats,
                now=started_at,
                seen_fixture_ids=seen_fixture_ids,
            )
        except Exception as exc:
            # Fixtures already committed for this competition stay.
            db.rollback()
            stats.add_competition_error(competition_id, f"{type(exc).__name__}: {exc}")
            logger.exception("%sCompetition competition_id=%s failed", _prefix(options), competition_id)

    completed_at = clock()
    status = run_status(stats)
    logger.info(
        "%sFinished sync run_id=%s status=%s summary=%s duration=%.1fs",
        _prefix(options),
        run_id,
        status,
        stats.summary(),
        (completed_at - started_at).total_seconds(),
    )

    if options.dry_run:
        db.rollback()
        logger.info("%sRolled back all changes; no run log written", DRY_RUN_PREFIX)
        return stats

    single = list(competition_ids or [])
    record_run(
        db,
        stats,
        run_id=run_id,
        competition_id=single[0] if len(single) == 1 else None,
        started_at=started_at,
        completed_at=completed_at,
        status=status,
        details={"selected_competitions": selected},
    )
    return stats


def resync_fixture_broadcasts(
    db: Session,
    fixture_id: int,
    options: SyncOptions,
    client: SportmonksClient,
) -> int | None:
    """Refetch one stored fixture's TV stations and replace its broadcasts.

    Returns rows written, or None when the upstream fixture carries no station list.
    """

    fixture = db.get(Fixture, fixture_id)
    if fixture is None:
        raise FixtureNotFoundError(f"fixture {fixture_id} does not exist")

    payload = client.get_fixture_tv_stations(fixture.external_fixture_id)
    data = payload.get("data")
    if not isinstance(data, dict) or "tvstations" not in data:
        logger.warning(
            "Fixture fixture_id=%s external_fixture_id=%s has no tvstations include; left as is",
            fixture_id,
            fixture.external_fixture_id,
        )
        return None

    now = _utcnow()
    try:
        written = sync_broadcasts(
            db,
            fixture.id,
            fixture.competition_id,
            parse_tv_stations(data.get("tvstations")),
            options.rules,
            now=now,
        )
        if options.dry_run:
            db.rollback()
        else:
            fixture.last_synced_at = now
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "%sReplaced broadcasts for fixture_id=%s: %s row(s)",
        _prefix(options),
        fixture_id,
        written,
    )
    return written


def create_client(options: SyncOptions, api_token: str) -> SportmonksClient:
    return SportmonksClient(
        api_token,
        read_timeout_seconds=options.request_timeout_seconds,
        request_delay_seconds=options.request_delay_seconds,
    )


def run_sync(
    options: SyncOptions,
    *,
    competition_ids: Iterable[int] | None = None,
    api_token: str | None = None,
    session_factory=SessionLocal,
    client: SportmonksClient | None = None,
    run_id: str | None = None,
) -> RunStats:
    """Top-level entry: credentials, reachability check, then the sync itself.

    Raises ``ConfigurationError`` without a token and ``SportmonksClientError``
    when the provider cannot be reached; both abort the whole run.
    """

    with session_factory() as db:
        if client is None:
            if api_token is None:
                api_token = resolve_api_token(snapshot_settings(get_or_create_settings(db)))
            if not api_token:
                raise ConfigurationError(
                    "No Sportmonks API token. Set SPORTMONKS_TOKEN or store one in settings."
                )
            client = create_client(options, api_token)

        client.check_connection()
        return sync_competitions(db, options, client, competition_ids=competition_ids, run_id=run_id)
