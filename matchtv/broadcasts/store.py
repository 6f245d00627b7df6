"""Persist classified broadcasts for a fixture."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Iterable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from matchtv.broadcasts.classifier import ClassificationRules, classify_stations, map_provider
from matchtv.ingestion.schema import RawStation
from matchtv.models import Broadcast, CompetitionBroadcastExclusion

logger = logging.getLogger(__name__)


def load_excluded_provider_ids(
    db: Session,
    competition_id: int,
    as_of: date | None = None,
) -> frozenset[int]:
    """Providers without broadcast rights for ``competition_id`` on ``as_of`` (default: today)."""

    as_of = as_of or datetime.now(timezone.utc).date()
    rows = (
        db.query(CompetitionBroadcastExclusion.provider_id)
        .filter(
            CompetitionBroadcastExclusion.competition_id == competition_id,
            CompetitionBroadcastExclusion.is_active.is_(True),
            or_(
                CompetitionBroadcastExclusion.valid_from.is_(None),
                CompetitionBroadcastExclusion.valid_from <= as_of,
            ),
            or_(
                CompetitionBroadcastExclusion.valid_until.is_(None),
                CompetitionBroadcastExclusion.valid_until >= as_of,
            ),
        )
        .all()
    )
    return frozenset(row.provider_id for row in rows)


def sync_broadcasts(
    db: Session,
    fixture_id: int,
    competition_id: int,
    stations: Iterable[RawStation],
    rules: ClassificationRules,
    *,
    now: datetime | None = None,
    as_of: date | None = None,
) -> int:
    """Replace the stored broadcasts of ``fixture_id`` with the classified station set.

    Delete-then-insert: a station dropped upstream disappears on the next sync.
    Returns the number of rows written. The caller owns the transaction.
    """

    now = now or datetime.now(timezone.utc)
    excluded = load_excluded_provider_ids(db, competition_id, as_of or now.date())
    result = classify_stations(stations, rules, excluded_provider_ids=excluded)

    for station, reason in result.rejected:
        logger.debug(
            "Dropped station fixture_id=%s station_id=%s name=%r country_id=%s reason=%s",
            fixture_id,
            station.external_station_id,
            station.name,
            station.country_id,
            reason,
        )

    db.query(Broadcast).filter(Broadcast.fixture_id == fixture_id).delete(
        synchronize_session=False
    )
    # The delete must reach the database before re-inserting the same (fixture, station) keys.
    db.flush()

    for station in result.kept:
        db.add(
            Broadcast(
                fixture_id=fixture_id,
                channel_name=station.channel_name,
                broadcaster_type=station.broadcaster_type,
                provider_id=station.provider_id,
                country_id=station.country_id,
                country_code=station.country_code,
                external_station_id=station.external_station_id,
                source="sportmonks",
                last_synced_at=now,
            )
        )
        if station.provider_id is None:
            logger.info(
                "Unmapped station fixture_id=%s station_id=%s name=%r",
                fixture_id,
                station.external_station_id,
                station.channel_name,
            )
    db.flush()
    return len(result.kept)


def reclassify_unmapped_broadcasts(db: Session, rules: ClassificationRules) -> int:
    """Re-run provider mapping on stored rows with no provider; returns rows updated."""

    updated = 0
    unmapped = db.query(Broadcast).filter(Broadcast.provider_id.is_(None)).all()
    for broadcast in unmapped:
        provider_id = map_provider(broadcast.channel_name, rules.provider_keywords)
        if provider_id is None:
            continue
        broadcast.provider_id = provider_id
        updated += 1
        logger.info(
            "Reclassified broadcast id=%s name=%r provider_id=%s",
            broadcast.id,
            broadcast.channel_name,
            provider_id,
        )
    return updated
