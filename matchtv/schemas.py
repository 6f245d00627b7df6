from datetime import datetime
from pydantic import BaseModel
from typing import Any, Optional


class BroadcastOut(BaseModel):
    id: int
    fixture_id: int
    channel_name: str
    broadcaster_type: str
    provider_id: Optional[int]
    country_id: Optional[int]
    country_code: str
    external_station_id: int
    source: str
    last_synced_at: Optional[datetime]

    class Config:
        from_attributes = True


class BroadcasterSelectionOut(BaseModel):
    kind: str
    provider_id: Optional[int] = None
    provider_name: Optional[str] = None
    channels: list[str] = []
    unmapped_channels: list[str] = []

    class Config:
        from_attributes = True


class FixtureOut(BaseModel):
    id: int
    external_fixture_id: int
    competition_id: int
    home_team_id: int
    away_team_id: int
    home_team: str
    away_team: str
    kickoff_utc: Optional[datetime]
    round: Optional[dict[str, Any]]
    status: str
    home_score: Optional[int]
    away_score: Optional[int]
    is_blackout: bool
    last_synced_at: Optional[datetime]
    broadcaster: BroadcasterSelectionOut


class FixtureBroadcastsResponse(BaseModel):
    fixture_id: int
    broadcasts: list[BroadcastOut]
    selection: BroadcasterSelectionOut


class SyncRunOut(BaseModel):
    id: int
    run_id: str
    sync_type: str
    competition_id: Optional[int]
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    status: str
    fixtures_processed: int
    fixtures_created: int
    fixtures_updated: int
    fixtures_unchanged: int
    fixtures_skipped: int
    fixtures_errors: int
    broadcasts_written: int
    api_calls_made: int
    error_message: Optional[str]
    details_json: str

    class Config:
        from_attributes = True


class SettingsIn(BaseModel):
    sportmonks_api_token: Optional[str] = None
    request_delay_ms: Optional[int] = None
    request_timeout_seconds: Optional[int] = None
    sync_tv_stations: Optional[bool] = None
    home_country_ids: Optional[list[int]] = None
    sync_competition_ids: Optional[list[int]] = None


class SettingsOut(BaseModel):
    has_token: bool
    request_delay_ms: int
    request_timeout_seconds: int
    sync_tv_stations: bool
    home_country_ids: list[int]
    sync_competition_ids: list[int]
    updated_at_utc: Optional[datetime]
