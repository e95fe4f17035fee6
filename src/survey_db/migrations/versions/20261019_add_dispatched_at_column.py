"""Add dispatched_at column to external_check_calls.

``dispatched_at`` is stamped when a call enters ``pending`` (on creation and
on every retry).  The sweep measures staleness from it instead of
``created_at``, so a call retried long after it was created is not expired
while its new invocation is still running.

Existing rows are backfilled from ``created_at``.  The sweep index is
rebuilt on ``(status, dispatched_at)``.

Revision ID: 20261019_dispatched_at
Revises: 20261012_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP

# revision identifiers, used by Alembic.
revision = "20261019_dispatched_at"
down_revision = "20261012_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Add the column nullable, backfill, then tighten ---
    op.add_column(
        "external_check_calls",
        sa.Column("dispatched_at", TIMESTAMP(timezone=True), nullable=True),
    )
    op.execute("UPDATE external_check_calls SET dispatched_at = created_at")
    op.alter_column("external_check_calls", "dispatched_at", nullable=False)

    # --- Sweep index now keyed on dispatched_at ---
    op.drop_index("ix_calls_status_created", table_name="external_check_calls")
    op.create_index(
        "ix_calls_status_dispatched",
        "external_check_calls",
        ["status", "dispatched_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_calls_status_dispatched", table_name="external_check_calls")
    op.create_index(
        "ix_calls_status_created", "external_check_calls", ["status", "created_at"]
    )
    op.drop_column("external_check_calls", "dispatched_at")
