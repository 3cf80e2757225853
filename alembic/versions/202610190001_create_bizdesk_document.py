"""create bizdesk document table

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "bizdesk_document",
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("collection", sa.String(length=128), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("path"),
    )
    op.create_index("ix_bizdesk_document_collection", "bizdesk_document", ["collection"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_bizdesk_document_collection", table_name="bizdesk_document")
    op.drop_table("bizdesk_document")
