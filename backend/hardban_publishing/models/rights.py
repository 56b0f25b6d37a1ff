"""
HardbanRecords Publishing API - Publishing Rights Model
========================================================

What:  ORM model for the `publishing_rights` table.
How:   Flat scope and financial columns plus three JSON text blobs
       (contract_details, compliance_data, workflow_data). The blobs are
       decoded by RightsMapper, never here.
Who:   RightsService and Alembic.

Query patterns:
    - rights of one publication → idx_publishing_rights_publication
    - coverage / conflict scan  → same index, then grouped in the mapper
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from hardban_publishing.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PublishingRight(Base):
    """
    A licence of one right type for one territory and language.

    Lifecycle: created 'pending', moved through the licensing workflow by
    updates ('active', 'expired', 'terminated'), deleted on revocation.
    Two exclusive rights with the same (right_type, territory, language)
    are reported as a conflict by the coverage analysis.
    """

    __tablename__ = "publishing_rights"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    publication_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # ── Scope ─────────────────────────────────────────────────────────────
    right_type: Mapped[str] = mapped_column(String(50), nullable=False, comment="e.g. ebook, audio, translation")
    territory: Mapped[str] = mapped_column(String(10), nullable=False, comment="ISO country code or WORLD")
    language: Mapped[str] = mapped_column(String(10), nullable=False, comment="ISO 639-1 code")
    license_type: Mapped[str] = mapped_column(String(50), nullable=False)
    exclusive: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    sublicensing_allowed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="pending", server_default=text("'pending'")
    )

    # ── Financial terms ───────────────────────────────────────────────────
    royalty_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    advance_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    minimum_guarantee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(100), nullable=True)
    royalty_basis: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # ── JSON text blobs ───────────────────────────────────────────────────
    contract_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    compliance_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    workflow_data: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_publishing_rights_publication", "publication_id"),
        Index("idx_publishing_rights_scope", "right_type", "territory", "language"),
    )

    def __repr__(self) -> str:
        return (
            f"<PublishingRight(id={self.id}, type='{self.right_type}', "
            f"territory='{self.territory}', language='{self.language}')>"
        )
