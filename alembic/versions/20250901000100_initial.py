"""initial

Revision ID: 20250901000100
Revises: 
Create Date: 2025-09-01 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20250901000100"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "competitions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("slug", name="uq_competitions_slug"),
    )
    op.create_index("ix_competitions_id", "competitions", ["id"], unique=False)

    op.create_table(
        "competition_mappings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("competition_id", sa.Integer(), sa.ForeignKey("competitions.id"), nullable=False),
        sa.Column("external_league_id", sa.Integer(), nullable=False),
        sa.Column("external_league_name", sa.String(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
    )
    op.create_index("ix_competition_mappings_id", "competition_mappings", ["id"], unique=False)
    op.create_index(
        "uq_competition_mappings_active",
        "competition_mappings",
        ["competition_id"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("external_team_id", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("slug", name="uq_teams_slug"),
        sa.UniqueConstraint("external_team_id", name="uq_teams_external_team_id"),
    )
    op.create_index("ix_teams_id", "teams", ["id"], unique=False)

    op.create_table(
        "fixtures",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("source", sa.String(), nullable=False, server_default="sportmonks"),
        sa.Column("external_fixture_id", sa.Integer(), nullable=False),
        sa.Column("competition_id", sa.Integer(), sa.ForeignKey("competitions.id"), nullable=False),
        sa.Column("home_team_id", sa.Integer(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("away_team_id", sa.Integer(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("kickoff_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("round", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="scheduled"),
        sa.Column("home_score", sa.Integer(), nullable=True),
        sa.Column("away_score", sa.Integer(), nullable=True),
        sa.Column("sync_status", sa.String(), nullable=False, server_default="synced"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.UniqueConstraint("source", "external_fixture_id", name="uq_fixtures_source_external_id"),
    )
    op.create_index("ix_fixtures_id", "fixtures", ["id"], unique=False)
    op.create_index("ix_fixtures_competition_id", "fixtures", ["competition_id"], unique=False)
    op.create_index("ix_fixtures_kickoff_utc", "fixtures", ["kickoff_utc"], unique=False)

    op.create_table(
        "providers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="tv"),
        sa.Column("url", sa.String(), nullable=False, server_default=""),
        sa.UniqueConstraint("slug", name="uq_providers_slug"),
    )

    op.create_table(
        "broadcasts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "fixture_id",
            sa.Integer(),
            sa.ForeignKey("fixtures.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("channel_name", sa.String(), nullable=False),
        sa.Column("broadcaster_type", sa.String(), nullable=False, server_default="tv"),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("providers.id"), nullable=True),
        sa.Column("country_id", sa.Integer(), nullable=True),
        sa.Column("country_code", sa.String(), nullable=False, server_default="GB"),
        sa.Column("external_station_id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(), nullable=False, server_default="sportmonks"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("fixture_id", "provider_id", name="uq_broadcasts_fixture_provider"),
    )
    op.create_index("ix_broadcasts_id", "broadcasts", ["id"], unique=False)
    op.create_index("ix_broadcasts_fixture_id", "broadcasts", ["fixture_id"], unique=False)

    op.create_table(
        "sync_run_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("sync_type", sa.String(), nullable=False, server_default="fixtures"),
        sa.Column("competition_id", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("fixtures_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fixtures_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fixtures_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fixtures_unchanged", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fixtures_skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fixtures_errors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("broadcasts_written", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("api_calls_made", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.UniqueConstraint("run_id", name="uq_sync_run_logs_run_id"),
    )
    op.create_index("ix_sync_run_logs_id", "sync_run_logs", ["id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_sync_run_logs_id", table_name="sync_run_logs")
    op.drop_table("sync_run_logs")
    op.drop_index("ix_broadcasts_fixture_id", table_name="broadcasts")
    op.drop_index("ix_broadcasts_id", table_name="broadcasts")
    op.drop_table("broadcasts")
    op.drop_table("providers")
    op.drop_index("ix_fixtures_kickoff_utc", table_name="fixtures")
    op.drop_index("ix_fixtures_competition_id", table_name="fixtures")
    op.drop_index("ix_fixtures_id", table_name="fixtures")
    op.drop_table("fixtures")
    op.drop_index("ix_teams_id", table_name="teams")
    op.drop_table("teams")
    op.drop_index("uq_competition_mappings_active", table_name="competition_mappings")
    op.drop_index("ix_competition_mappings_id", table_name="competition_mappings")
    op.drop_table("competition_mappings")
    op.drop_index("ix_competitions_id", table_name="competitions")
    op.drop_table("competitions")
