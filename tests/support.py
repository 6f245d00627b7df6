"""Shared builders for the test suite: in-memory database, upstream payloads, fake client."""

from __future__ import annotations

from typing import Any

from matchtv import models  # noqa: F401
from matchtv.broadcasts.providers import PROVIDERS
from matchtv.db import Base, create_db_engine
from matchtv.ingestion.sportmonks_client import SportmonksClientError
from matchtv.models import Competition, ExternalCompetitionMapping, Provider
from sqlalchemy.orm import sessionmaker

UK = 11
IRELAND = 455
GERMANY = 17


def make_session_factory() -> sessionmaker:
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_reference_data(db, competition_id: int = 1, league_id: int = 8, mapped: bool = True) -> None:
    for spec in PROVIDERS:
        db.add(Provider(id=spec.id, name=spec.name, slug=spec.slug, type=spec.type, url=spec.url))
    db.add(Competition(id=competition_id, name="Premier League", slug=f"competition-{competition_id}"))
    db.flush()
    if mapped:
        db.add(
            ExternalCompetitionMapping(
                competition_id=competition_id,
                external_league_id=league_id,
                external_league_name="Premier League",
                is_active=True,
            )
        )
    db.commit()


def station(station_id: int, name: str, country_id: int | None = UK, type_: str = "tv") -> dict[str, Any]:
    return {
        "id": station_id * 10,
        "fixture_id": 0,
        "tvstation_id": station_id,
        "country_id": country_id,
        "tvstation": {"id": station_id, "name": name, "type": type_},
    }


def fixture_payload(
    fixture_id: int,
    home: tuple[int, str] = (19, "Arsenal"),
    away: tuple[int, str] = (18, "Chelsea"),
    *,
    state: str = "NS",
    scores: tuple[int, int] | None = None,
    tvstations: list[dict[str, Any]] | None = None,
    starting_at: str = "2025-08-16 14:00:00",
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": fixture_id,
        "league_id": 8,
        "season_id": 25583,
        "name": f"{home[1]} vs {away[1]}",
        "starting_at": starting_at,
        "participants": [
            {"id": home[0], "name": home[1], "meta": {"location": "home"}},
            {"id": away[0], "name": away[1], "meta": {"location": "away"}},
        ],
        "state": {"id": 1, "state": state, "name": state, "short_name": state, "developer_name": state},
        "scores": [],
    }
    if scores is not None:
        payload["scores"] = [
            {"description": "CURRENT", "score": {"goals": scores[0], "participant": "home"}},
            {"description": "CURRENT", "score": {"goals": scores[1], "participant": "away"}},
            {"description": "1ST_HALF", "score": {"goals": 0, "participant": "home"}},
        ]
    if tvstations is not None:
        payload["tvstations"] = tvstations
    return payload


class FakeSportmonksClient:
    """In-memory stand-in for ``SportmonksClient`` serving canned payloads."""

    def __init__(
        self,
        *,
        season_id: int | None = 25583,
        rounds: dict[int, tuple[str, list[dict[str, Any]]]] | None = None,
        fixtures: dict[int, dict[str, Any]] | None = None,
    ) -> None:
        self.season_id = season_id
        self.rounds = rounds or {}
        self.fixtures = fixtures or {}
        self.round_errors: dict[int, Exception] = {}
        self.league_error: Exception | None = None
        self.api_calls = 0

    def check_connection(self) -> None:
        self.api_calls += 1

    def get_league(self, league_id: int) -> dict[str, Any]:
        self.api_calls += 1
        if self.league_error is not None:
            raise self.league_error
        current = {"id": self.season_id, "name": "2025/2026"} if self.season_id else None
        return {"data": {"id": league_id, "name": "Premier League", "currentseason": current}}

    def get_season(self, season_id: int) -> dict[str, Any]:
        self.api_calls += 1
        return {
            "data": {
                "id": season_id,
                "rounds": [{"id": round_id, "name": name} for round_id, (name, _) in self.rounds.items()],
            }
        }

    def get_round(self, round_id: int) -> dict[str, Any]:
        self.api_calls += 1
        if round_id in self.round_errors:
            raise self.round_errors[round_id]
        name, fixtures = self.rounds[round_id]
        return {"data": {"id": round_id, "name": name, "fixtures": fixtures}}

    def get_fixture_tv_stations(self, fixture_id: int) -> dict[str, Any]:
        self.api_calls += 1
        if fixture_id not in self.fixtures:
            raise SportmonksClientError(f"Sportmonks error 404 for fixtures/{fixture_id}", status=404)
        return {"data": self.fixtures[fixture_id]}
