"""Operator-maintained reference data: providers, competitions, rights exclusions, team aliases.

Run ``python -m matchtv.seed`` after migrations; every helper is idempotent.
"""

from __future__ import annotations

import argparse
import logging
from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session

from matchtv.broadcasts.providers import AMAZON_PRIME_VIDEO, PROVIDERS
from matchtv.db import SessionLocal
from matchtv.ingestion.competitions import set_competition_mapping
from matchtv.models import Competition, CompetitionBroadcastExclusion, Provider, Team, TeamAlias

logger = logging.getLogger(__name__)

# (local id, name, slug, Sportmonks league id)
DEFAULT_COMPETITIONS: tuple[tuple[int, str, str, int], ...] = (
    (1, "Premier League", "premier-league", 8),
    (2, "UEFA Champions League", "champions-league", 2),
    (3, "Bundesliga", "bundesliga", 82),
    (4, "La Liga", "la-liga", 564),
    (5, "Serie A", "serie-a", 384),
    (6, "Ligue 1", "ligue-1", 301),
    (9, "Championship", "championship", 9),
    (10, "FA Cup", "fa-cup", 24),
    (11, "UEFA Europa League", "europa-league", 5),
    (12, "EFL Cup", "league-cup", 27),
)

# Upstream short names -> canonical local team name.
DEFAULT_TEAM_ALIASES: dict[str, str] = {
    "Wolves": "Wolverhampton Wanderers FC",
    "Brighton Hove Albion": "Brighton & Hove Albion FC",
    "Brighton and Hove Albion FC": "Brighton & Hove Albion FC",
    "Bournemouth": "AFC Bournemouth",
    "Man City": "Manchester City FC",
    "Man United": "Manchester United FC",
    "Spurs": "Tottenham Hotspur FC",
    "Tottenham": "Tottenham Hotspur FC",
    "Newcastle": "Newcastle United FC",
    "West Ham": "West Ham United FC",
    "Leeds": "Leeds United FC",
}


def seed_providers(db: Session) -> int:
    """Insert or refresh the provider catalog; returns rows written."""

    written = 0
    for spec in PROVIDERS:
        row = db.get(Provider, spec.id)
        if row is None:
            db.add(Provider(id=spec.id, name=spec.name, slug=spec.slug, type=spec.type, url=spec.url))
            written += 1
        elif (row.name, row.slug, row.type, row.url) != (spec.name, spec.slug, spec.type, spec.url):
            row.name, row.slug, row.type, row.url = spec.name, spec.slug, spec.type, spec.url
            written += 1
    db.commit()
    return written


def seed_competitions(db: Session) -> int:
    written = 0
    for competition_id, name, slug, league_id in DEFAULT_COMPETITIONS:
        if db.get(Competition, competition_id) is None:
            db.add(Competition(id=competition_id, name=name, slug=slug, is_active=True))
            db.commit()
            written += 1
        set_competition_mapping(db, competition_id, league_id, name)
    return written


def add_broadcast_exclusion(
    db: Session,
    competition_id: int,
    provider_id: int,
    *,
    valid_from: date | None = None,
    valid_until: date | None = None,
    reason: str = "",
) -> CompetitionBroadcastExclusion:
    existing = (
        db.query(CompetitionBroadcastExclusion)
        .filter(
            CompetitionBroadcastExclusion.competition_id == competition_id,
            CompetitionBroadcastExclusion.provider_id == provider_id,
            CompetitionBroadcastExclusion.valid_from == valid_from,
            CompetitionBroadcastExclusion.valid_until == valid_until,
        )
        .one_or_none()
    )
    if existing is not None:
        existing.is_active = True
        existing.reason = reason or existing.reason
        db.commit()
        return existing
    exclusion = CompetitionBroadcastExclusion(
        competition_id=competition_id,
        provider_id=provider_id,
        valid_from=valid_from,
        valid_until=valid_until,
        reason=reason,
        is_active=True,
    )
    db.add(exclusion)
    db.commit()
    db.refresh(exclusion)
    return exclusion


def seed_team_aliases(db: Session, aliases: dict[str, str] = DEFAULT_TEAM_ALIASES) -> int:
    """Attach aliases to existing teams; aliases for teams not yet synced are skipped."""

    written = 0
    for alias, canonical in aliases.items():
        team = db.query(Team).filter(func.lower(Team.name) == canonical.lower()).first()
        if team is None:
            logger.info("Alias %r skipped: team %r not in the database yet", alias, canonical)
            continue
        existing = db.query(TeamAlias).filter(func.lower(TeamAlias.alias) == alias.lower()).first()
        if existing is not None:
            if existing.team_id != team.id:
                logger.warning(
                    "Alias %r already points at team_id=%s; not moving it to team_id=%s",
                    alias,
                    existing.team_id,
                    team.id,
                )
            continue
        db.add(TeamAlias(team_id=team.id, alias=alias))
        written += 1
    db.commit()
    return written


def seed_all(db: Session) -> None:
    providers = seed_providers(db)
    competitions = seed_competitions(db)
    # No Premier League rights for Prime Video from the 2025/26 season on.
    add_broadcast_exclusion(
        db,
        1,
        AMAZON_PRIME_VIDEO,
        valid_from=date(2025, 7, 1),
        reason="No Premier League rights from 2025/26",
    )
    aliases = seed_team_aliases(db)
    logger.info(
        "Seeded providers=%s competitions=%s aliases=%s",
        providers,
        competitions,
        aliases,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed reference data.")
    parser.add_argument("--aliases-only", action="store_true", help="Only (re)seed team aliases.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    with SessionLocal() as db:
        if args.aliases_only:
            logger.info("Seeded aliases=%s", seed_team_aliases(db))
        else:
            seed_all(db)


if __name__ == "__main__":
    main()
