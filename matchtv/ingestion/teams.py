"""Resolve upstream team references to local Team rows.

Resolution order, first hit wins:

1. team already linked to the upstream id
2. exact (case-insensitive) name match, then operator alias
3. unique substring match on normalized names of teams not yet linked
4. slug match
5. new team

Hits on 2-4 back-fill the upstream id so later syncs resolve on step 1.
A team linked to another upstream id is never taken over by a name overlap.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from matchtv.models import Team, TeamAlias

logger = logging.getLogger(__name__)

# Club-form tokens dropped before substring comparison ("Arsenal FC" ~ "Arsenal").
CLUB_SUFFIXES = frozenset({"fc", "afc", "cf", "sc", "ac", "cfc", "football club"})
# Shorter normalized names produce too many accidental substring hits ("city", "utd").
MIN_SUBSTRING_LENGTH = 5


class TeamResolutionError(RuntimeError):
    pass


def slugify(value: str) -> str:
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-z0-9]+", "-", value.lower())
    return value.strip("-")


def normalize_team_name(name: str) -> str:
    """Lowercase, strip accents/punctuation and club suffixes: "Brighton & Hove Albion FC" -> "brighton hove albion"."""

    if not name:
        return ""
    name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    name = re.sub(r"[^\w\s]", " ", name.lower())
    name = " ".join(name.split())
    for suffix in sorted(CLUB_SUFFIXES, key=len, reverse=True):
        if name.endswith(" " + suffix):
            name = name[: -len(suffix) - 1]
        if name.startswith(suffix + " "):
            name = name[len(suffix) + 1 :]
    return name.strip()


def _linked_elsewhere(team: Team, external_team_id: int) -> bool:
    return team.external_team_id is not None and team.external_team_id != external_team_id


def _find_by_name(db: Session, name: str) -> Team | None:
    return (
        db.query(Team)
        .filter(func.lower(Team.name) == name.strip().lower())
        .order_by(Team.id)
        .first()
    )


def _find_by_alias(db: Session, name: str) -> Team | None:
    alias = (
        db.query(TeamAlias)
        .filter(func.lower(TeamAlias.alias) == name.strip().lower())
        .order_by(TeamAlias.id)
        .first()
    )
    return alias.team if alias is not None else None


def _find_by_substring(db: Session, name: str) -> Team | None:
    needle = normalize_team_name(name)
    if len(needle) < MIN_SUBSTRING_LENGTH:
        return None

    # Linked teams already have an upstream identity; a partial name overlap
    # ("Chester" / "Chesterfield") is not enough to take it over.
    candidates: list[Team] = []
    unlinked = db.query(Team).filter(Team.external_team_id.is_(None)).order_by(Team.id)
    for team in unlinked.all():
        other = normalize_team_name(team.name)
        if len(other) < MIN_SUBSTRING_LENGTH:
            continue
        if needle in other or other in needle:
            candidates.append(team)

    if len(candidates) > 1:
        logger.warning(
            "Ambiguous substring team match for %r: candidates=%s; not linking",
            name,
            [(team.id, team.name) for team in candidates],
        )
        return None
    if candidates:
        logger.warning(
            "Substring team match %r -> team_id=%s (%r)",
            name,
            candidates[0].id,
            candidates[0].name,
        )
        return candidates[0]
    return None


def _find_by_slug(db: Session, name: str) -> Team | None:
    slug = slugify(name)
    if not slug:
        return None
    return db.query(Team).filter(Team.slug == slug).one_or_none()


def _back_fill(db: Session, team: Team, external_team_id: int, now: datetime, how: str) -> int:
    team_id = team.id
    try:
        team.external_team_id = external_team_id
        team.last_synced_at = now
        db.flush()
    except SQLAlchemyError as exc:
        raise TeamResolutionError(
            f"could not link external_team_id={external_team_id} to team_id={team_id}"
        ) from exc
    logger.info(
        "Back-filled external_team_id=%s onto team_id=%s (%r) by %s match",
        external_team_id,
        team_id,
        team.name,
        how,
    )
    return team_id


def _available_slug(db: Session, name: str, external_team_id: int) -> str:
    slug = slugify(name) or f"team-{external_team_id}"
    if db.query(Team.id).filter(Team.slug == slug).first() is None:
        return slug
    return f"{slug}-{external_team_id}"


def resolve_team(
    db: Session,
    external_team_id: int,
    external_name: str,
    *,
    now: datetime | None = None,
) -> int:
    """Return the local team id for an upstream team, creating the team if needed.

    A team already linked to a different upstream id is never re-linked: name
    and slug hits on such a team are logged as conflicts and skipped. An
    operator alias is the exception; it resolves to the aliased team without
    touching its upstream id, so both ids keep landing on one row.

    Writes are flushed, not committed; the caller owns the transaction.
    Raises ``TeamResolutionError`` when the back-fill or insert fails.
    """

    now = now or datetime.now(timezone.utc)
    name = (external_name or "").strip()

    team = db.query(Team).filter(Team.external_team_id == external_team_id).one_or_none()
    if team is not None:
        return team.id

    if name:
        matchers = (
            ("name", _find_by_name),
            ("alias", _find_by_alias),
            ("substring", _find_by_substring),
            ("slug", _find_by_slug),
        )
        for how, matcher in matchers:
            team = matcher(db, name)
            if team is None:
                continue
            if not _linked_elsewhere(team, external_team_id):
                return _back_fill(db, team, external_team_id, now, how)
            if how == "alias":
                logger.debug(
                    "Alias %r -> team_id=%s (linked to external_team_id=%s)",
                    name,
                    team.id,
                    team.external_team_id,
                )
                return team.id
            logger.warning(
                "Team conflict: %r (external_team_id=%s) %s-matches team_id=%s (%r) "
                "already linked to external_team_id=%s; not re-linking",
                name,
                external_team_id,
                how,
                team.id,
                team.name,
                team.external_team_id,
            )

    team = Team(
        name=name or f"Team {external_team_id}",
        slug=_available_slug(db, name, external_team_id),
        external_team_id=external_team_id,
        last_synced_at=now,
    )
    try:
        db.add(team)
        db.flush()
    except SQLAlchemyError as exc:
        raise TeamResolutionError(
            f"could not create team for external_team_id={external_team_id} name={name!r}"
        ) from exc
    logger.info(
        "Created team team_id=%s name=%r slug=%s external_team_id=%s",
        team.id,
        team.name,
        team.slug,
        external_team_id,
    )
    return team.id
