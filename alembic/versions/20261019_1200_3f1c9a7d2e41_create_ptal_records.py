"""create_ptal_records

Revision ID: 3f1c9a7d2e41
Revises:
Create Date: 2026-10-19 12:00:00.000000+00:00

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2e41"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Apply migration changes."""
    op.create_table(
        "ptal_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("channel_id", sa.String(32), nullable=False),
        sa.Column("message_id", sa.String(32), nullable=False),
        sa.Column("guild_id", sa.String(32), nullable=True),
        sa.Column("owner", sa.String(100), nullable=False),
        sa.Column("repository", sa.String(100), nullable=False),
        sa.Column("pr_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("requester_id", sa.String(32), nullable=True),
        sa.Column("requester_name", sa.String(100), nullable=True),
        sa.Column("requester_avatar_url", sa.String(500), nullable=True),
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
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("message_id", name="uq_ptal_records_message_id"),
    )

    # Event routing looks records up by PR identity
    op.create_index(
        "ix_ptal_records_pr_identity",
        "ptal_records",
        ["owner", "repository", "pr_number"],
    )


def downgrade() -> None:
    """Revert migration changes."""
    op.drop_index("ix_ptal_records_pr_identity", table_name="ptal_records")
    op.drop_table("ptal_records")
