"""Create publishing_rights and chapters tables

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Initial publishing schema: rights licences and publication chapters.
How:   PostgreSQL UUID keys and TIMESTAMP WITH TIME ZONE. JSON blobs are
       stored as TEXT and decoded by the mapper layer.

Rollback: downgrade() drops both tables (all rights and chapter data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "publishing_rights",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("publication_id", postgresql.UUID(as_uuid=True), nullable=False),

        # Scope of the licence
        sa.Column("right_type", sa.String(50), nullable=False, comment="e.g. ebook, audio, translation"),
        sa.Column("territory", sa.String(10), nullable=False, comment="ISO country code or WORLD"),
        sa.Column("language", sa.String(10), nullable=False, comment="ISO 639-1 code"),
        sa.Column("license_type", sa.String(50), nullable=False),
        sa.Column("exclusive", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sublicensing_allowed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default=sa.text("'pending'")),

        # Financial terms
        sa.Column("royalty_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("advance_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("minimum_guarantee", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("payment_terms", sa.String(100), nullable=True),
        sa.Column("royalty_basis", sa.String(50), nullable=True),

        # JSON text blobs
        sa.Column("contract_details", sa.Text(), nullable=True),
        sa.Column("compliance_data", sa.Text(), nullable=True),
        sa.Column("workflow_data", sa.Text(), nullable=True),

        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_publishing_rights_publication", "publishing_rights", ["publication_id"])
    op.create_index(
        "idx_publishing_rights_scope",
        "publishing_rights",
        ["right_type", "territory", "language"],
    )

    op.create_table(
        "chapters",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("publication_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("word_count", sa.Integer(), nullable=True),
        sa.Column("reading_time", sa.Integer(), nullable=True, comment="Minutes at 200 wpm"),
        sa.Column("status", sa.String(30), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("keywords", sa.Text(), nullable=True),
        sa.Column("metadata", sa.Text(), nullable=True),
        sa.Column("collaboration_data", sa.Text(), nullable=True),
        sa.Column("content_analysis", sa.Text(), nullable=True),
        sa.Column("version_info", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    # Table of contents: WHERE publication_id = ? ORDER BY order_index
    op.create_index("idx_chapters_publication_order", "chapters", ["publication_id", "order_index"])


def downgrade() -> None:
    op.drop_index("idx_chapters_publication_order", table_name="chapters")
    op.drop_table("chapters")
    op.drop_index("idx_publishing_rights_scope", table_name="publishing_rights")
    op.drop_index("idx_publishing_rights_publication", table_name="publishing_rights")
    op.drop_table("publishing_rights")
