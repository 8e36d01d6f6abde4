"""Create candidates table

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "candidates",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("full_name", sa.Text, nullable=False),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("applicant_type", sa.Text, nullable=False, server_default="external"),
        sa.Column("uploaded_by", sa.Text, nullable=True),
        sa.Column("processing_status", sa.Text, nullable=False, server_default="completed"),
        sa.Column("batch_id", UUID(as_uuid=True), nullable=True),
        sa.Column("batch_created_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("processing_completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("overall_summary", sa.Text, nullable=True),
        sa.Column("qualification_score", sa.Float, nullable=True),
        sa.Column("skills", JSONB, nullable=False, server_default="[]"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint(
            "processing_status IN ('processing', 'completed', 'failed')",
            name="ck_candidates_processing_status",
        ),
    )
    op.create_index("ix_candidates_batch_id", "candidates", ["batch_id"])
    op.create_index("ix_candidates_processing_status", "candidates", ["processing_status"])


def downgrade() -> None:
    op.drop_index("ix_candidates_processing_status", table_name="candidates")
    op.drop_index("ix_candidates_batch_id", table_name="candidates")
    op.drop_table("candidates")
