"""add_profiles_and_interest_ledger

Revision ID: a1c4e7f90b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "a1c4e7f90b21"
down_revision = None
branch_labels = None
depends_on = None

investor_type = postgresql.ENUM(
    "ANGEL", "VENTURE_CAPITAL", "PRIVATE_EQUITY", "CORPORATE", "INSTITUTIONAL", "FAMILY_OFFICE",
    name="investortype",
    create_type=False,
)
stage = postgresql.ENUM("SEED", "GROWTH", "EXPANSION", "MATURE", name="stage", create_type=False)
interest_direction = postgresql.ENUM(
    "INVESTOR_TO_SME", "SME_TO_INVESTOR", name="interestdirection", create_type=False
)


def upgrade() -> None:
    bind = op.get_bind()
    investor_type.create(bind, checkfirst=True)
    stage.create(bind, checkfirst=True)
    interest_direction.create(bind, checkfirst=True)

    op.create_table(
        "investor_profiles",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), server_default="", nullable=False),
        sa.Column("investor_type", investor_type, nullable=False),
        sa.Column("preferred_sectors", postgresql.JSONB, nullable=True),
        sa.Column("preferred_stages", postgresql.JSONB, nullable=True),
        sa.Column("min_ticket", sa.Numeric(19, 4), nullable=True),
        sa.Column("max_ticket", sa.Numeric(19, 4), nullable=True),
        sa.Column("geography_preference", sa.String(100), nullable=True),
        sa.Column("requires_certification", sa.Boolean, server_default="false", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_investor_profiles_is_active", "investor_profiles", ["is_active"])

    op.create_table(
        "sme_profiles",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), server_default="", nullable=False),
        sa.Column("sector", sa.String(100), nullable=True),
        sa.Column("stage", stage, nullable=True),
        sa.Column("funding_ask", sa.Numeric(19, 4), nullable=True),
        sa.Column("geography", sa.String(100), nullable=True),
        sa.Column("is_certified", sa.Boolean, server_default="false", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sme_profiles_is_active", "sme_profiles", ["is_active"])
    op.create_index("ix_sme_profiles_sector", "sme_profiles", ["sector"])

    op.create_table(
        "interest_pairs",
        sa.Column("investor_id", sa.String(64), nullable=False),
        sa.Column("sme_id", sa.String(64), nullable=False),
        sa.Column("investor_interested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sme_interested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("investor_id", "sme_id"),
    )
    op.create_index("ix_interest_pairs_sme_id", "interest_pairs", ["sme_id"])

    op.create_table(
        "interest_records",
        sa.Column("investor_id", sa.String(64), nullable=False),
        sa.Column("sme_id", sa.String(64), nullable=False),
        sa.Column("direction", interest_direction, nullable=False),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("investor_id", "sme_id", "direction"),
    )
    op.create_index("ix_interest_records_sme_id", "interest_records", ["sme_id"])


def downgrade() -> None:
    op.drop_index("ix_interest_records_sme_id", table_name="interest_records")
    op.drop_table("interest_records")
    op.drop_index("ix_interest_pairs_sme_id", table_name="interest_pairs")
    op.drop_table("interest_pairs")
    op.drop_index("ix_sme_profiles_sector", table_name="sme_profiles")
    op.drop_index("ix_sme_profiles_is_active", table_name="sme_profiles")
    op.drop_table("sme_profiles")
    op.drop_index("ix_investor_profiles_is_active", table_name="investor_profiles")
    op.drop_table("investor_profiles")

    bind = op.get_bind()
    interest_direction.drop(bind, checkfirst=True)
    stage.drop(bind, checkfirst=True)
    investor_type.drop(bind, checkfirst=True)
