"""
HardbanRecords Publishing API - Chapter Model
==============================================

What:  ORM model for the `chapters` table.
How:   Content and computed reading statistics, plus JSON text blobs decoded
       by ChapterMapper.

The `metadata` column is mapped to the `metadata_json` attribute because
`metadata` is reserved on declarative classes. Rows built with
`database.row_from_model` use the column name.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from hardban_publishing.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Chapter(Base):
    """One chapter of a publication, ordered by order_index."""

    __tablename__ = "chapters"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    publication_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    excerpt: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reading_time: Mapped[int | None] = mapped_column(Integer, nullable=True, comment="Minutes at 200 wpm")
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="draft", server_default=text("'draft'")
    )

    # ── JSON text blobs ───────────────────────────────────────────────────
    keywords: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)
    collaboration_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_analysis: Mapped[str | None] = mapped_column(Text, nullable=True)
    version_info: Mapped[str | None] = mapped_column(Text, nullable=True)

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
        Index("idx_chapters_publication_order", "publication_id", "order_index"),
    )

    def __repr__(self) -> str:
        return f"<Chapter(id={self.id}, order={self.order_index}, title='{self.title}')>"
