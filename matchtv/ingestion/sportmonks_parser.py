"""Parser for Sportmonks v3 football payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from matchtv.ingestion.schema import FixtureIngestDTO, RawStation, RoundRef, TeamRef

# Statuses for which upstream scores are real rather than 0-0 placeholders.
STARTED_STATUSES = frozenset({"live", "finished", "suspended", "abandoned"})

_STATE_STATUS: dict[str, str] = {
    "NS": "scheduled",
    "TBA": "scheduled",
    "DELAYED": "scheduled",
    "PENDING": "scheduled",
    "LIVE": "live",
    "INPLAY_1ST_HALF": "live",
    "HT": "live",
    "BREAK": "live",
    "INPLAY_2ND_HALF": "live",
    "INPLAY_ET": "live",
    "EXTRA_TIME_BREAK": "live",
    "INPLAY_PENALTIES": "live",
    "PEN_BREAK": "live",
    "FT": "finished",
    "AET": "finished",
    "FT_PEN": "finished",
    "AWARDED": "finished",
    "WO": "finished",
    "AWAITING_UPDATES": "finished",
    "POSTPONED": "postponed",
    "CANCELLED": "canceled",
    "CANCELED": "canceled",
    "DELETED": "canceled",
    "SUSPENDED": "suspended",
    "INTERRUPTED": "suspended",
    "ABANDONED": "abandoned",
}


class FixturePayloadError(ValueError):
    """Raised when a single upstream fixture cannot be turned into a DTO."""


def _safe_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_state(state: Any) -> tuple[str, str | None]:
    """Map an upstream state object to ``(status, raw_code)``."""

    if not isinstance(state, dict):
        return "scheduled", None
    code = state.get("developer_name") or state.get("state") or state.get("short_name")
    if isinstance(code, str) and code:
        code = code.strip().upper()
        status = _STATE_STATUS.get(code)
        if status:
            return status, code
    else:
        code = None
    name = state.get("name")
    if isinstance(name, str):
        name_lower = name.lower()
        if "postpon" in name_lower:
            return "postponed", code
        if "cancel" in name_lower:
            return "canceled", code
        if "abandon" in name_lower:
            return "abandoned", code
        if "full time" in name_lower or "finished" in name_lower:
            return "finished", code
        if "half" in name_lower or "live" in name_lower:
            return "live", code
    return "scheduled", code


def _parse_kickoff(fixture: dict[str, Any]) -> datetime | None:
    timestamp = _safe_int(fixture.get("starting_at_timestamp"))
    if timestamp is not None:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    starting_at = fixture.get("starting_at")
    if isinstance(starting_at, str) and starting_at.strip():
        try:
            parsed = datetime.fromisoformat(starting_at.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        # Upstream sends naive UTC strings ("2025-08-16 14:00:00").
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


def _find_participant(participants: list[Any], location: str) -> dict[str, Any] | None:
    for participant in participants:
        if not isinstance(participant, dict):
            continue
        meta = participant.get("meta")
        if isinstance(meta, dict) and meta.get("location") == location:
            return participant
    return None


def _team_ref(participant: dict[str, Any] | None, location: str, fixture_id: Any) -> TeamRef:
    if participant is None:
        raise FixturePayloadError(f"fixture {fixture_id} has no {location} participant")
    team_id = _safe_int(participant.get("id"))
    name = participant.get("name")
    if team_id is None or not isinstance(name, str) or not name.strip():
        raise FixturePayloadError(f"fixture {fixture_id} has a malformed {location} participant")
    return TeamRef(external_team_id=team_id, name=name.strip())


def _extract_scores(scores: Any) -> tuple[int | None, int | None]:
    home_score = None
    away_score = None
    if not isinstance(scores, list):
        return None, None
    for entry in scores:
        if not isinstance(entry, dict) or entry.get("description") != "CURRENT":
            continue
        score = entry.get("score")
        if not isinstance(score, dict):
            continue
        goals = _safe_int(score.get("goals"))
        if score.get("participant") == "home":
            home_score = goals
        elif score.get("participant") == "away":
            away_score = goals
    return home_score, away_score


def parse_round_ref(value: Any) -> RoundRef | None:
    if not isinstance(value, dict):
        return None
    round_id = _safe_int(value.get("id"))
    name = value.get("name")
    if round_id is None or name is None:
        return None
    return RoundRef(id=round_id, name=str(name))


def parse_tv_stations(entries: Any) -> list[RawStation]:
    """Flatten ``fixture.tvstations`` entries; entries without a station object are dropped."""

    stations: list[RawStation] = []
    if not isinstance(entries, list):
        return stations
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        station = entry.get("tvstation")
        if not isinstance(station, dict):
            continue
        station_id = _safe_int(entry.get("tvstation_id"))
        if station_id is None:
            station_id = _safe_int(station.get("id"))
        name = station.get("name")
        if station_id is None or not isinstance(name, str) or not name.strip():
            continue
        stations.append(
            RawStation(
                external_station_id=station_id,
                country_id=_safe_int(entry.get("country_id")),
                name=name,
                type=station.get("type") or "tv",
            )
        )
    return stations


def parse_fixture(fixture: Any, round_ref: RoundRef | None = None) -> FixtureIngestDTO:
    """Parse one upstream fixture (with participants/tvstations/scores/state includes)."""

    if not isinstance(fixture, dict):
        raise FixturePayloadError("fixture payload is not an object")
    fixture_id = _safe_int(fixture.get("id"))
    if fixture_id is None:
        raise FixturePayloadError("fixture payload has no id")

    participants = fixture.get("participants")
    if not isinstance(participants, list):
        raise FixturePayloadError(f"fixture {fixture_id} has no participants include")
    home = _team_ref(_find_participant(participants, "home"), "home", fixture_id)
    away = _team_ref(_find_participant(participants, "away"), "away", fixture_id)

    if round_ref is None:
        round_ref = parse_round_ref(fixture.get("round"))
    if round_ref is None:
        raise FixturePayloadError(f"fixture {fixture_id} has no round")

    status, provider_state = normalize_state(fixture.get("state"))
    home_score = away_score = None
    if status in STARTED_STATUSES:
        home_score, away_score = _extract_scores(fixture.get("scores"))

    tv_stations = None
    if "tvstations" in fixture:
        tv_stations = parse_tv_stations(fixture.get("tvstations"))

    try:
        return FixtureIngestDTO(
            external_fixture_id=fixture_id,
            home=home,
            away=away,
            round=round_ref,
            status=status,
            kickoff_utc=_parse_kickoff(fixture),
            provider_state=provider_state,
            home_score=home_score,
            away_score=away_score,
            tv_stations=tv_stations,
            name=fixture.get("name"),
            raw={
                "fixture_id": fixture_id,
                "league_id": fixture.get("league_id"),
                "season_id": fixture.get("season_id"),
                "state": fixture.get("state"),
            },
        )
    except ValidationError as exc:
        raise FixturePayloadError(f"fixture {fixture_id} failed validation: {exc}") from exc


def parse_current_season_id(league_payload: dict[str, Any]) -> int | None:
    data = league_payload.get("data")
    if not isinstance(data, dict):
        return None
    for key in ("currentseason", "currentSeason", "current_season"):
        season = data.get(key)
        if isinstance(season, dict):
            season_id = _safe_int(season.get("id"))
            if season_id is not None:
                return season_id
    seasons = data.get("seasons")
    if isinstance(seasons, list):
        for season in seasons:
            if isinstance(season, dict) and season.get("is_current"):
                return _safe_int(season.get("id"))
    return None


def parse_rounds(season_payload: dict[str, Any]) -> list[RoundRef]:
    data = season_payload.get("data")
    if not isinstance(data, dict):
        return []
    rounds = data.get("rounds")
    if not isinstance(rounds, list):
        return []
    parsed: list[RoundRef] = []
    for entry in rounds:
        round_ref = parse_round_ref(entry)
        if round_ref is not None:
            parsed.append(round_ref)
    return parsed


def round_fixtures(round_payload: dict[str, Any]) -> tuple[RoundRef | None, list[Any]]:
    """Return the round reference and its raw fixture list from a ``/rounds/{id}`` payload."""

    data = round_payload.get("data")
    if not isinstance(data, dict):
        return None, []
    fixtures = data.get("fixtures")
    if not isinstance(fixtures, list):
        fixtures = []
    return parse_round_ref(data), fixtures
