from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy import desc
from sqlalchemy.orm import Session, joinedload, selectinload

from matchtv.broadcasts.selection import (
    BroadcasterSelection,
    FixtureNotFoundError,
    choose_primary,
    select_primary_broadcaster,
    with_provider_name,
)
from matchtv.db import Base, SessionLocal, engine, get_db
from matchtv.ingestion.sportmonks_client import SportmonksClientError
from matchtv.ingestion.sync import run_sync
from matchtv.log_buffer import get_log_buffer, install_log_buffer
from matchtv.models import AppSettings, Broadcast, Fixture, SyncRunLog
from matchtv.schemas import (
    BroadcasterSelectionOut,
    BroadcastOut,
    FixtureBroadcastsResponse,
    FixtureOut,
    SettingsIn,
    SettingsOut,
    SyncRunOut,
)
from matchtv.settings import (
    ConfigurationError,
    build_sync_options,
    encrypt_api_token,
    format_id_list,
    get_or_create_settings,
    resolve_api_token,
    snapshot_settings,
)

app = FastAPI(title="matchtv")
logger = logging.getLogger(__name__)
_sync_task: asyncio.Task | None = None

MAX_LIMIT = 500


@app.on_event("startup")
async def startup() -> None:
    install_log_buffer()
    Base.metadata.create_all(bind=engine)
    logger.info("App starting up")


def _clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_LIMIT))


def _selection_out(selection: BroadcasterSelection) -> BroadcasterSelectionOut:
    return BroadcasterSelectionOut(
        kind=selection.kind,
        provider_id=selection.provider_id,
        provider_name=selection.provider_name,
        channels=list(selection.channels),
        unmapped_channels=list(selection.unmapped_channels),
    )


def _settings_out(settings: AppSettings) -> SettingsOut:
    snapshot = snapshot_settings(settings)
    return SettingsOut(
        has_token=bool(settings.sportmonks_api_token_enc),
        request_delay_ms=snapshot.request_delay_ms,
        request_timeout_seconds=snapshot.request_timeout_seconds,
        sync_tv_stations=snapshot.sync_tv_stations,
        home_country_ids=sorted(snapshot.home_country_ids),
        sync_competition_ids=list(snapshot.sync_competition_ids),
        updated_at_utc=settings.updated_at_utc,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/fixtures", response_model=list[FixtureOut])
def api_fixtures(
    competition_id: int | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    query = db.query(Fixture).options(
        joinedload(Fixture.home_team),
        joinedload(Fixture.away_team),
        selectinload(Fixture.broadcasts),
    )
    if competition_id is not None:
        query = query.filter(Fixture.competition_id == competition_id)
    fixtures = (
        query.order_by(Fixture.kickoff_utc.asc(), Fixture.id.asc())
        .limit(_clamp_limit(limit))
        .all()
    )
    return [
        FixtureOut(
            id=fixture.id,
            external_fixture_id=fixture.external_fixture_id,
            competition_id=fixture.competition_id,
            home_team_id=fixture.home_team_id,
            away_team_id=fixture.away_team_id,
            home_team=fixture.home_team.name,
            away_team=fixture.away_team.name,
            kickoff_utc=fixture.kickoff_utc,
            round=fixture.round,
            status=fixture.status,
            home_score=fixture.home_score,
            away_score=fixture.away_score,
            is_blackout=fixture.is_blackout,
            last_synced_at=fixture.last_synced_at,
            broadcaster=_selection_out(
                with_provider_name(
                    db, choose_primary(fixture.broadcasts, is_blackout=bool(fixture.is_blackout))
                )
            ),
        )
        for fixture in fixtures
    ]


@app.get("/api/fixtures/{fixture_id}/broadcasts", response_model=FixtureBroadcastsResponse)
def api_fixture_broadcasts(fixture_id: int, db: Session = Depends(get_db)):
    try:
        selection = select_primary_broadcaster(db, fixture_id)
    except FixtureNotFoundError:
        raise HTTPException(status_code=404, detail="Fixture not found")
    broadcasts = (
        db.query(Broadcast)
        .filter(Broadcast.fixture_id == fixture_id)
        .order_by(Broadcast.id)
        .all()
    )
    return FixtureBroadcastsResponse(
        fixture_id=fixture_id,
        broadcasts=[BroadcastOut.model_validate(broadcast) for broadcast in broadcasts],
        selection=_selection_out(selection),
    )


@app.get("/api/sync-runs", response_model=list[SyncRunOut])
def api_sync_runs(limit: int = 20, db: Session = Depends(get_db)):
    runs = (
        db.query(SyncRunLog)
        .order_by(desc(SyncRunLog.started_at), desc(SyncRunLog.id))
        .limit(_clamp_limit(limit))
        .all()
    )
    return [SyncRunOut.model_validate(run) for run in runs]


async def _run_sync_in_thread(options, competition_ids, api_token, run_id) -> None:
    try:
        stats = await asyncio.to_thread(
            run_sync,
            options,
            competition_ids=competition_ids,
            api_token=api_token,
            session_factory=SessionLocal,
            run_id=run_id,
        )
    except (ConfigurationError, SportmonksClientError) as exc:
        logger.error("Sync run_id=%s aborted: %s", run_id, exc, extra={"run_id": run_id})
        return
    except Exception:
        logger.exception("Sync run_id=%s failed.", run_id, extra={"run_id": run_id})
        return
    logger.info(
        "Sync run_id=%s done: processed=%s created=%s updated=%s errors=%s",
        run_id,
        stats.fixtures_processed,
        stats.created,
        stats.updated,
        stats.errors,
        extra={"run_id": run_id},
    )


@app.post("/api/sync", status_code=202)
async def api_sync(
    competition_id: int | None = None,
    dry_run: bool = False,
    db: Session = Depends(get_db),
):
    global _sync_task
    if _sync_task is not None and not _sync_task.done():
        raise HTTPException(status_code=409, detail="A sync is already running")

    snapshot = snapshot_settings(get_or_create_settings(db))
    api_token = resolve_api_token(snapshot)
    if not api_token:
        raise HTTPException(status_code=400, detail="No Sportmonks API token configured")

    options = build_sync_options(snapshot, dry_run=dry_run)
    competition_ids = [competition_id] if competition_id is not None else None
    run_id = uuid.uuid4().hex
    _sync_task = asyncio.create_task(_run_sync_in_thread(options, competition_ids, api_token, run_id))
    return {"status": "started", "run_id": run_id, "competition_id": competition_id, "dry_run": dry_run}


@app.get("/api/logs")
def api_logs(limit: int = 100, run_id: str | None = None):
    buffer = get_log_buffer()
    return {
        "entries": buffer.entries(limit=_clamp_limit(limit), run_id=run_id),
        "run_ids": buffer.run_ids(),
    }


@app.get("/api/settings", response_model=SettingsOut)
def api_get_settings(db: Session = Depends(get_db)):
    return _settings_out(get_or_create_settings(db))


@app.put("/api/settings", response_model=SettingsOut)
def api_put_settings(payload: SettingsIn, db: Session = Depends(get_db)):
    settings = get_or_create_settings(db)

    token = (payload.sportmonks_api_token or "").strip()
    if token:
        try:
            settings.sportmonks_api_token_enc = encrypt_api_token(token)
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
    if payload.request_delay_ms is not None:
        if payload.request_delay_ms < 0:
            raise HTTPException(status_code=422, detail="request_delay_ms must be >= 0")
        settings.request_delay_ms = payload.request_delay_ms
    if payload.request_timeout_seconds is not None:
        if payload.request_timeout_seconds < 1:
            raise HTTPException(status_code=422, detail="request_timeout_seconds must be >= 1")
        settings.request_timeout_seconds = payload.request_timeout_seconds
    if payload.sync_tv_stations is not None:
        settings.sync_tv_stations = payload.sync_tv_stations
    if payload.home_country_ids is not None:
        if not payload.home_country_ids:
            raise HTTPException(status_code=422, detail="home_country_ids must not be empty")
        settings.home_country_ids = format_id_list(payload.home_country_ids)
    if payload.sync_competition_ids is not None:
        settings.sync_competition_ids = format_id_list(payload.sync_competition_ids)
    settings.updated_at_utc = datetime.now(timezone.utc)
    db.commit()
    db.refresh(settings)
    return _settings_out(settings)
