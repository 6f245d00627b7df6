"""broadcast uniqueness per station, aliases, rights exclusions, settings

Revision ID: 20251006000100
Revises: 20250901000100
Create Date: 2025-10-06 00:01:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20251006000100"
down_revision = "20250901000100"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Several stations of one provider brand may show the same fixture.
    with op.batch_alter_table("broadcasts") as batch_op:
        batch_op.drop_constraint("uq_broadcasts_fixture_provider", type_="unique")
        batch_op.create_unique_constraint(
            "uq_broadcasts_fixture_station",
            ["fixture_id", "external_station_id"],
        )

    with op.batch_alter_table("fixtures") as batch_op:
        batch_op.add_column(sa.Column("provider_state", sa.String(), nullable=True))
        batch_op.add_column(
            sa.Column("is_blackout", sa.Boolean(), nullable=False, server_default=sa.false())
        )

    op.create_table(
        "team_aliases",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "team_id",
            sa.Integer(),
            sa.ForeignKey("teams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("alias", sa.String(), nullable=False),
        sa.UniqueConstraint("alias", name="uq_team_aliases_alias"),
    )
    op.create_index("ix_team_aliases_id", "team_aliases", ["id"], unique=False)

    op.create_table(
        "competition_broadcast_exclusions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("competition_id", sa.Integer(), sa.ForeignKey("competitions.id"), nullable=False),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("providers.id"), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=True),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("reason", sa.String(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "ix_competition_broadcast_exclusions_id",
        "competition_broadcast_exclusions",
        ["id"],
        unique=False,
    )
    op.create_index(
        "ix_competition_broadcast_exclusions_competition_id",
        "competition_broadcast_exclusions",
        ["competition_id"],
        unique=False,
    )

    op.create_table(
        "app_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("sportmonks_api_token_enc", sa.Text(), nullable=True),
        sa.Column("request_delay_ms", sa.Integer(), nullable=False, server_default="200"),
        sa.Column("request_timeout_seconds", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("sync_tv_stations", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("home_country_ids", sa.String(), nullable=False, server_default="11,455,462"),
        sa.Column("sync_competition_ids", sa.String(), nullable=False, server_default=""),
        sa.Column(
            "updated_at_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_index(
        "ix_competition_broadcast_exclusions_competition_id",
        table_name="competition_broadcast_exclusions",
    )
    op.drop_index("ix_competition_broadcast_exclusions_id", table_name="competition_broadcast_exclusions")
    op.drop_table("competition_broadcast_exclusions")
    op.drop_index("ix_team_aliases_id", table_name="team_aliases")
    op.drop_table("team_aliases")

    with op.batch_alter_table("fixtures") as batch_op:
        batch_op.drop_column("is_blackout")
        batch_op.drop_column("provider_state")

    # Fails if a fixture now holds two stations of one provider; dedupe first.
    with op.batch_alter_table("broadcasts") as batch_op:
        batch_op.drop_constraint("uq_broadcasts_fixture_station", type_="unique")
        batch_op.create_unique_constraint(
            "uq_broadcasts_fixture_provider",
            ["fixture_id", "provider_id"],
        )
