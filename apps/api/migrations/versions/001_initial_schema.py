"""Create initial schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Users, parent/athlete links, threshold preferences, Dexcom tokens,
glucose statuses and readings, and messages.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

USER_ROLES = ("admin", "parent", "coach", "athlete")
STATUS_TYPES = ("LOW", "OK", "HIGH")
READING_SOURCES = ("manual", "dexcom")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    postgresql.ENUM(*USER_ROLES, name="userrole").create(bind)
    postgresql.ENUM(*STATUS_TYPES, name="statustype").create(bind)
    postgresql.ENUM(*READING_SOURCES, name="readingsource").create(bind)

    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column(
            "role",
            postgresql.ENUM(*USER_ROLES, name="userrole", create_type=False),
            nullable=False,
            server_default="parent",
        ),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_athlete", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "parent_athlete_links",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("parent_id", sa.UUID(), nullable=False),
        sa.Column("athlete_id", sa.UUID(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["parent_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["athlete_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parent_id", "athlete_id", name="uq_parent_athlete"),
        sa.CheckConstraint("parent_id != athlete_id", name="ck_no_self_link"),
    )
    op.create_index(
        "ix_parent_athlete_links_parent_id", "parent_athlete_links", ["parent_id"]
    )
    op.create_index(
        "ix_parent_athlete_links_athlete_id", "parent_athlete_links", ["athlete_id"]
    )

    op.create_table(
        "user_preferences",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("low_threshold", sa.Float(), nullable=False, server_default="70"),
        sa.Column("high_threshold", sa.Float(), nullable=False, server_default="180"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_user_preferences_user_id", "user_preferences", ["user_id"], unique=True
    )

    op.create_table(
        "dexcom_tokens",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("parent_id", sa.UUID(), nullable=False),
        sa.Column("athlete_id", sa.UUID(), nullable=False),
        sa.Column("encrypted_access_token", sa.Text(), nullable=False),
        sa.Column("encrypted_refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "needs_reauth", sa.Boolean(), nullable=False, server_default="false"
        ),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_poll_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["parent_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["athlete_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("athlete_id", name="uq_dexcom_token_athlete"),
    )
    op.create_index("ix_dexcom_tokens_parent_id", "dexcom_tokens", ["parent_id"])

    op.create_table(
        "glucose_statuses",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("athlete_id", sa.UUID(), nullable=False),
        sa.Column(
            "type",
            postgresql.ENUM(*STATUS_TYPES, name="statustype", create_type=False),
            nullable=False,
        ),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["athlete_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_glucose_statuses_athlete_id", "glucose_statuses", ["athlete_id"]
    )

    op.create_table(
        "glucose_readings",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("athlete_id", sa.UUID(), nullable=False),
        sa.Column("recorded_by_id", sa.UUID(), nullable=True),
        sa.Column("status_id", sa.UUID(), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column(
            "unit", sa.String(length=16), nullable=False, server_default="mg/dL"
        ),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "source",
            postgresql.ENUM(*READING_SOURCES, name="readingsource", create_type=False),
            nullable=False,
        ),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["athlete_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["recorded_by_id"], ["users.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["status_id"], ["glucose_statuses.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("status_id"),
    )
    op.create_index(
        "ix_glucose_readings_athlete_id", "glucose_readings", ["athlete_id"]
    )
    op.create_index(
        "ix_glucose_readings_athlete_source_recorded",
        "glucose_readings",
        ["athlete_id", "source", "recorded_at"],
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("sender_id", sa.UUID(), nullable=False),
        sa.Column("receiver_id", sa.UUID(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_urgent", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["receiver_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_messages_receiver_created", "messages", ["receiver_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_messages_receiver_created")
    op.drop_table("messages")
    op.drop_index("ix_glucose_readings_athlete_source_recorded")
    op.drop_index("ix_glucose_readings_athlete_id")
    op.drop_table("glucose_readings")
    op.drop_index("ix_glucose_statuses_athlete_id")
    op.drop_table("glucose_statuses")
    op.drop_index("ix_dexcom_tokens_parent_id")
    op.drop_table("dexcom_tokens")
    op.drop_index("ix_user_preferences_user_id")
    op.drop_table("user_preferences")
    op.drop_index("ix_parent_athlete_links_athlete_id")
    op.drop_index("ix_parent_athlete_links_parent_id")
    op.drop_table("parent_athlete_links")
    op.drop_index(op.f("ix_users_email"))
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS readingsource")
    op.execute("DROP TYPE IF EXISTS statustype")
    op.execute("DROP TYPE IF EXISTS userrole")
