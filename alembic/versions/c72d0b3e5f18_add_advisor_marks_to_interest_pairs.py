"""add_advisor_marks_to_interest_pairs

Revision ID: c72d0b3e5f18
Revises: a1c4e7f90b21
Create Date: 2026-10-19 15:00:00.000000

"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "c72d0b3e5f18"
down_revision = "a1c4e7f90b21"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("interest_pairs", sa.Column("advisor_matched_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("interest_pairs", sa.Column("advisor_matched_by", sa.String(64), nullable=True))
    op.add_column("interest_pairs", sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("interest_pairs", sa.Column("verified_by", sa.String(64), nullable=True))


def downgrade() -> None:
    op.drop_column("interest_pairs", "verified_by")
    op.drop_column("interest_pairs", "verified_at")
    op.drop_column("interest_pairs", "advisor_matched_by")
    op.drop_column("interest_pairs", "advisor_matched_at")
