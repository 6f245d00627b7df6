"""Internal data contract for fixture ingestion."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel

FixtureStatus = Literal[
    "scheduled",
    "live",
    "finished",
    "postponed",
    "canceled",
    "suspended",
    "abandoned",
]


class TeamRef(BaseModel):
    external_team_id: int
    name: str


class RoundRef(BaseModel):
    id: int
    name: str


class RawStation(BaseModel):
    """One per-country TV station entry as listed on an upstream fixture."""

    external_station_id: int
    country_id: Optional[int] = None
    name: str
    type: str = "tv"


class FixtureIngestDTO(BaseModel):
    """
    Internal representation of a fixture used across fetch -> parse -> DB.
    """

    # Required fields
    source: Literal["sportmonks"] = "sportmonks"
    external_fixture_id: int
    home: TeamRef
    away: TeamRef
    round: RoundRef
    status: FixtureStatus

    # Optional fields
    kickoff_utc: Optional[datetime] = None
    provider_state: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    # None means the payload carried no TV-station include at all.
    tv_stations: Optional[list[RawStation]] = None
    name: Optional[str] = None
    raw: Optional[dict[str, Any]] = None

    def round_value(self) -> dict[str, Any]:
        return {"id": self.round.id, "name": self.round.name}
