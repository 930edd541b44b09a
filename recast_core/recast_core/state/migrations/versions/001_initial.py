"""Create users and usage tables.

Revision ID: 001
Revises:
Create Date: 2026-01-12 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(256), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("plan", sa.String(16), nullable=False, server_default="free"),
        sa.Column("stripe_subscription_id", sa.String(256), nullable=True),
        # Milliseconds since the epoch.
        sa.Column("created_at", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "usage",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(256), nullable=True),
        sa.Column("content_url", sa.Text(), nullable=False),
        sa.Column("generated_content", sa.Text(), nullable=True),
        sa.Column("tone", sa.String(128), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_usage_user_created", "usage", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_usage_user_created", table_name="usage")
    op.drop_table("usage")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
