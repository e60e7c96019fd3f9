"""Create contact_submissions

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Stores public contact-form messages for the admin inbox.
Rollback: downgrade() drops the table (messages are lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "contact_submissions",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(200), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("inquiry_type", sa.String(32), nullable=False, server_default=sa.text("'other'")),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_contact_submissions_created_at", "contact_submissions", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_contact_submissions_created_at", table_name="contact_submissions")
    op.drop_table("contact_submissions")
