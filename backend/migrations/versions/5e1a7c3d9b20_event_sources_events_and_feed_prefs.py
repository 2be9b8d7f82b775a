"""event sources, canonical events and calendar feed preferences

Revision ID: 5e1a7c3d9b20
Revises: 0c7b6b57268b
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5e1a7c3d9b20"
down_revision = "0c7b6b57268b"
branch_labels = None
depends_on = None

JSON_PAYLOAD = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "event_sources",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("source_kind", sa.String(length=32), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column("events_imported", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.CheckConstraint(
            "source_kind IN ('group_platform', 'registration_platform', 'generic_feed')",
            name="ck_event_sources_kind",
        ),
    )
    op.create_index("ix_event_sources_id", "event_sources", ["id"])
    op.create_index("ix_event_sources_owner_id", "event_sources", ["owner_id"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("event_time", sa.Time(), nullable=True),
        sa.Column("location", sa.String(length=1000), nullable=True),
        sa.Column("event_kind", sa.String(length=16), nullable=False, server_default="in_person"),
        sa.Column("max_attendees", sa.Integer(), nullable=True),
        sa.Column("current_attendees", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("registration_url", sa.String(length=2048), nullable=True),
        sa.Column("origin", sa.String(length=16), nullable=False, server_default="internal"),
        sa.Column("approval_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column(
            "source_id",
            sa.Integer(),
            sa.ForeignKey("event_sources.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("external_id", sa.String(length=512), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("source_id", "external_id", name="uq_events_source_external"),
    )
    op.create_index("ix_events_event_date", "events", ["event_date"])
    op.create_index("ix_events_source_id", "events", ["source_id"])
    # The feed only ever reads approved rows from today on.
    op.create_index("ix_events_approval_date", "events", ["approval_status", "event_date"])

    op.create_table(
        "user_calendar_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("include_all_sources", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("selected_sources", JSON_PAYLOAD, nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("user_id", name="uq_user_calendar_preferences_user"),
    )


def downgrade() -> None:
    op.drop_table("user_calendar_preferences")
    op.drop_index("ix_events_approval_date", table_name="events")
    op.drop_index("ix_events_source_id", table_name="events")
    op.drop_index("ix_events_event_date", table_name="events")
    op.drop_table("events")
    op.drop_index("ix_event_sources_owner_id", table_name="event_sources")
    op.drop_index("ix_event_sources_id", table_name="event_sources")
    op.drop_table("event_sources")
