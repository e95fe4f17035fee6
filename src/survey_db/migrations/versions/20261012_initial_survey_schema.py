"""Create survey tables.

Initial migration: questionnaire configuration (questions, api_endpoints,
welcome_messages), survey_sessions, external_check_calls and the
conversation_messages ledger.

Revision ID: 20261012_initial
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261012_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Questionnaire configuration ---
    op.create_table(
        "questions",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column(
            "sort_order", sa.Integer, nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "active", sa.Boolean, nullable=False, server_default=sa.text("true")
        ),
        sa.Column(
            "is_required", sa.Boolean, nullable=False, server_default=sa.text("false")
        ),
        sa.Column(
            "response_kind",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'free_text'"),
        ),
        sa.Column(
            "choices", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")
        ),
        sa.Column(
            "branch_conditions",
            JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("external_check", JSONB, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "response_kind IN ('free_text', 'single_choice', 'image', 'external_check')",
            name="ck_question_response_kind",
        ),
    )
    op.create_index(
        "ix_questions_active_order",
        "questions",
        ["sort_order", "id"],
        postgresql_where=sa.text("active"),
    )

    op.create_table(
        "api_endpoints",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "active", sa.Boolean, nullable=False, server_default=sa.text("true")
        ),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "welcome_messages",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column(
            "active", sa.Boolean, nullable=False, server_default=sa.text("true")
        ),
        sa.Column(
            "conditions", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")
        ),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )

    # --- Sessions ---
    op.create_table(
        "survey_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("current_question_id", sa.Text, nullable=True),
        sa.Column(
            "answers", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")
        ),
        sa.Column(
            "is_completed",
            sa.Boolean,
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("started_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "is_completed = (completed_at IS NOT NULL)",
            name="ck_completed_has_timestamp",
        ),
    )
    op.create_index("ix_survey_sessions_user_id", "survey_sessions", ["user_id"])
    op.create_index(
        "ix_survey_sessions_is_completed", "survey_sessions", ["is_completed"]
    )
    op.create_index(
        "ux_active_session_per_user",
        "survey_sessions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("NOT is_completed"),
    )
    op.create_index(
        "ix_answers_gin",
        "survey_sessions",
        ["answers"],
        postgresql_using="gin",
    )

    # --- External check calls ---
    op.create_table(
        "external_check_calls",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column(
            "session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("survey_sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("question_id", sa.Text, nullable=False),
        sa.Column("endpoint_id", sa.Text, nullable=False),
        sa.Column(
            "request_payload",
            JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("response_payload", JSONB, nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "attempts", sa.SmallInteger, nullable=False, server_default=sa.text("1")
        ),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(status = 'pending') = (completed_at IS NULL)",
            name="ck_completed_iff_not_pending",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'success', 'failed')",
            name="ck_call_status",
        ),
    )
    op.create_index(
        "ix_external_check_calls_user_id", "external_check_calls", ["user_id"]
    )
    op.create_index(
        "ix_external_check_calls_status", "external_check_calls", ["status"]
    )
    op.create_index(
        "ix_calls_status_created", "external_check_calls", ["status", "created_at"]
    )

    # --- Conversation ledger ---
    op.create_table(
        "conversation_messages",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("text", sa.Text, nullable=False, server_default=sa.text("''")),
        sa.Column("media_ref", sa.Text, nullable=True),
        sa.Column("timestamp", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_conversation_user_ts", "conversation_messages", ["user_id", "timestamp"]
    )


def downgrade() -> None:
    op.drop_table("conversation_messages")
    op.drop_table("external_check_calls")
    op.drop_table("survey_sessions")
    op.drop_table("welcome_messages")
    op.drop_table("api_endpoints")
    op.drop_table("questions")
