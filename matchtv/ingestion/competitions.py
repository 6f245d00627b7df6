"""Local competition id -> upstream league id."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from matchtv.models import Competition, ExternalCompetitionMapping

logger = logging.getLogger(__name__)


class UnknownCompetitionError(LookupError):
    pass


@dataclass(frozen=True)
class ExternalLeague:
    external_league_id: int
    external_league_name: str


def _active_mapping(db: Session, competition_id: int) -> ExternalCompetitionMapping | None:
    return (
        db.query(ExternalCompetitionMapping)
        .filter(
            ExternalCompetitionMapping.competition_id == competition_id,
            ExternalCompetitionMapping.is_active.is_(True),
        )
        .order_by(ExternalCompetitionMapping.id.desc())
        .first()
    )


def resolve_external_league(db: Session, competition_id: int) -> ExternalLeague | None:
    """Return the active upstream league for a competition, or None when it is not mapped."""

    competition = db.get(Competition, competition_id)
    if competition is None:
        raise UnknownCompetitionError(f"competition {competition_id} does not exist")
    mapping = _active_mapping(db, competition_id)
    if mapping is None:
        return None
    return ExternalLeague(
        external_league_id=mapping.external_league_id,
        external_league_name=mapping.external_league_name,
    )


def list_mapped_competition_ids(db: Session) -> list[int]:
    rows = (
        db.query(Competition.id)
        .join(
            ExternalCompetitionMapping,
            ExternalCompetitionMapping.competition_id == Competition.id,
        )
        .filter(
            Competition.is_active.is_(True),
            ExternalCompetitionMapping.is_active.is_(True),
        )
        .distinct()
        .order_by(Competition.id)
        .all()
    )
    return [row.id for row in rows]


def set_competition_mapping(
    db: Session,
    competition_id: int,
    external_league_id: int,
    external_league_name: str = "",
) -> ExternalCompetitionMapping:
    """Point a competition at an upstream league, deactivating any previous mapping.

    Commits.
    """

    if db.get(Competition, competition_id) is None:
        raise UnknownCompetitionError(f"competition {competition_id} does not exist")

    current = _active_mapping(db, competition_id)
    if current is not None and current.external_league_id == external_league_id:
        if external_league_name and current.external_league_name != external_league_name:
            current.external_league_name = external_league_name
            db.commit()
        return current

    (
        db.query(ExternalCompetitionMapping)
        .filter(
            ExternalCompetitionMapping.competition_id == competition_id,
            ExternalCompetitionMapping.is_active.is_(True),
        )
        .update({ExternalCompetitionMapping.is_active: False}, synchronize_session=False)
    )
    # Flush the deactivation first so the partial unique index never sees two active rows.
    db.flush()
    mapping = ExternalCompetitionMapping(
        competition_id=competition_id,
        external_league_id=external_league_id,
        external_league_name=external_league_name,
        is_active=True,
    )
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    logger.info(
        "Mapped competition_id=%s to external_league_id=%s (%s)",
        competition_id,
        external_league_id,
        external_league_name,
    )
    return mapping
