"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op
from roleswitch.db.types import JSONType, StringArray, UTCDateTime

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Roles table
    op.create_table(
        "roles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color_hex", sa.String(7), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("icon", sa.String(64)),
        sa.Column("created_at", UTCDateTime()),
        sa.Column("updated_at", UTCDateTime()),
    )
    op.create_index("idx_roles_name", "roles", ["name"])

    # Session history
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("role_id", sa.String(64), nullable=False),
        sa.Column("start_time", UTCDateTime(), nullable=False),
        sa.Column("end_time", UTCDateTime()),
        sa.Column("duration_ms", sa.BigInteger),
        sa.Column("notes", StringArray()),
        sa.Column("events", JSONType()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", UTCDateTime()),
        sa.Column("updated_at", UTCDateTime()),
    )
    op.create_index("idx_sessions_role_time", "sessions", ["role_id", "start_time"])
    op.create_index("idx_sessions_start_time", "sessions", ["start_time"])
    op.create_index("idx_sessions_end_time", "sessions", ["end_time"])

    # Event log
    op.create_table(
        "events",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("role_id", sa.String(64), nullable=False),
        sa.Column("at", UTCDateTime(), nullable=False),
        sa.Column("session_id", sa.String(64)),
        sa.Column("meta", JSONType()),
        sa.Column("created_at", UTCDateTime()),
    )
    op.create_index("idx_events_at", "events", ["at"])
    op.create_index("idx_events_type", "events", ["event_type"])
    op.create_index("idx_events_session", "events", ["session_id"])

    # Engine state (single row)
    op.create_table(
        "system_state",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("is_locked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("lock_end_time", UTCDateTime()),
        sa.Column("is_in_transition", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("transition_start_time", UTCDateTime()),
        sa.Column("transition_end_time", UTCDateTime()),
        sa.Column("transition_target_role_id", sa.String(64)),
        sa.Column("transition_note", sa.Text),
        sa.Column("last_active_time", UTCDateTime()),
        sa.Column("has_state", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("current_session", JSONType()),
        sa.Column("updated_at", UTCDateTime()),
    )

    # Runtime settings
    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("settings", JSONType(), nullable=False),
        sa.Column("created_at", UTCDateTime()),
        sa.Column("updated_at", UTCDateTime()),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_table("system_state")
    op.drop_index("idx_events_session", table_name="events")
    op.drop_index("idx_events_type", table_name="events")
    op.drop_index("idx_events_at", table_name="events")
    op.drop_table("events")
    op.drop_index("idx_sessions_end_time", table_name="sessions")
    op.drop_index("idx_sessions_start_time", table_name="sessions")
    op.drop_index("idx_sessions_role_time", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("idx_roles_name", table_name="roles")
    op.drop_table("roles")
