from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .db import Base


class Competition(Base):
    __tablename__ = "competitions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)

    mappings = relationship("ExternalCompetitionMapping", back_populates="competition")


class ExternalCompetitionMapping(Base):
    __tablename__ = "competition_mappings"
    __table_args__ = (
        # At most one active mapping per local competition.
        Index(
            "uq_competition_mappings_active",
            "competition_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    competition_id = Column(Integer, ForeignKey("competitions.id"), nullable=False)
    external_league_id = Column(Integer, nullable=False)
    external_league_name = Column(String, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    competition = relationship("Competition", back_populates="mappings")


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    external_team_id = Column(Integer, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    aliases = relationship("TeamAlias", back_populates="team", cascade="all, delete-orphan")


class TeamAlias(Base):
    __tablename__ = "team_aliases"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    alias = Column(String, nullable=False, unique=True)

    team = relationship("Team", back_populates="aliases")


class Fixture(Base):
    __tablename__ = "fixtures"
    __table_args__ = (
        UniqueConstraint("source", "external_fixture_id", name="uq_fixtures_source_external_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String, nullable=False, default="sportmonks")
    external_fixture_id = Column(Integer, nullable=False)
    competition_id = Column(Integer, ForeignKey("competitions.id"), nullable=False, index=True)
    home_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    away_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    kickoff_utc = Column(DateTime(timezone=True), nullable=True, index=True)
    round = Column(JSON, nullable=True)              # {"id": ..., "name": ...} as sent upstream
    status = Column(String, nullable=False, default="scheduled")
    provider_state = Column(String, nullable=True)   # raw upstream state code, e.g. "NS", "FT"
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)
    is_blackout = Column(Boolean, nullable=False, default=False)
    sync_status = Column(String, nullable=False, default="synced")
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    home_team = relationship("Team", foreign_keys=[home_team_id])
    away_team = relationship("Team", foreign_keys=[away_team_id])
    broadcasts = relationship(
        "Broadcast",
        back_populates="fixture",
        cascade="all, delete-orphan",
        order_by="Broadcast.id",
    )


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False, default="tv")
    url = Column(String, nullable=False, default="")


class Broadcast(Base):
    __tablename__ = "broadcasts"
    __table_args__ = (
        # Several stations of one provider brand are legitimate, so key on the station.
        UniqueConstraint("fixture_id", "external_station_id", name="uq_broadcasts_fixture_station"),
    )

    id = Column(Integer, primary_key=True, index=True)
    fixture_id = Column(Integer, ForeignKey("fixtures.id", ondelete="CASCADE"), nullable=False, index=True)
    channel_name = Column(String, nullable=False)
    broadcaster_type = Column(String, nullable=False, default="tv")
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True)
    country_id = Column(Integer, nullable=True)
    country_code = Column(String, nullable=False, default="GB")
    external_station_id = Column(Integer, nullable=False)
    source = Column(String, nullable=False, default="sportmonks")
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    fixture = relationship("Fixture", back_populates="broadcasts")
    provider = relationship("Provider")


class CompetitionBroadcastExclusion(Base):
    __tablename__ = "competition_broadcast_exclusions"

    id = Column(Integer, primary_key=True, index=True)
    competition_id = Column(Integer, ForeignKey("competitions.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    valid_from = Column(Date, nullable=True)
    valid_until = Column(Date, nullable=True)
    reason = Column(String, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)


class SyncRunLog(Base):
    __tablename__ = "sync_run_logs"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(String, nullable=False, unique=True)
    sync_type = Column(String, nullable=False, default="fixtures")
    competition_id = Column(Integer, nullable=True)   # null = all mapped competitions
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    duration_seconds = Column(Float, nullable=False, default=0.0)
    status = Column(String, nullable=False)
    fixtures_processed = Column(Integer, nullable=False, default=0)
    fixtures_created = Column(Integer, nullable=False, default=0)
    fixtures_updated = Column(Integer, nullable=False, default=0)
    fixtures_unchanged = Column(Integer, nullable=False, default=0)
    fixtures_skipped = Column(Integer, nullable=False, default=0)
    fixtures_errors = Column(Integer, nullable=False, default=0)
    broadcasts_written = Column(Integer, nullable=False, default=0)
    api_calls_made = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    details_json = Column(Text, nullable=False, default="{}")


class AppSettings(Base):
    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True)
    sportmonks_api_token_enc = Column(Text, nullable=True)
    request_delay_ms = Column(Integer, nullable=False, default=200)
    request_timeout_seconds = Column(Integer, nullable=False, default=20)
    sync_tv_stations = Column(Boolean, nullable=False, default=True)
    home_country_ids = Column(String, nullable=False, default="11,455,462")
    sync_competition_ids = Column(String, nullable=False, default="")   # empty = all mapped
    updated_at_utc = Column(DateTime(timezone=True), server_default=func.now())
