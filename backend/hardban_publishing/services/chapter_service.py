"""
HardbanRecords Publishing API - Chapter Service
================================================

What:  CRUD, table of contents and export for chapters.
How:   Same shape as RightsService: ORM rows in, ChapterMapper output out.
       Word count and reading time are filled in by the mapper on writes.
Who:   Called by the chapter routes.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hardban_publishing.database import apply_row, model_kwargs, row_from_model
from hardban_publishing.exceptions import DatabaseError, NotFoundError, ValidationError
from hardban_publishing.mappers.chapter import (
    EXPORT_FORMATS,
    ChapterMappingOptions,
    chapter_mapper,
)
from hardban_publishing.models.chapter import Chapter

logger = logging.getLogger(__name__)


class ChapterService:

    async def table_of_contents(self, db: AsyncSession, publication_id: UUID) -> List[Dict[str, Any]]:
        """Chapters of a publication in reading order, without content."""
        try:
            result = await db.execute(
                select(Chapter)
                .where(Chapter.publication_id == publication_id)
                .order_by(Chapter.order_index, Chapter.created_at)
            )
            chapters = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing chapters for %s: %s", publication_id, str(e))
            raise DatabaseError(
                message="Could not retrieve chapters. Please try again.",
                context={"publication_id": str(publication_id)},
            )
        return [chapter_mapper.to_table_of_contents(row_from_model(chapter)) for chapter in chapters]

    async def get_chapter(
        self,
        db: AsyncSession,
        chapter_id: UUID,
        options: Optional[ChapterMappingOptions] = None,
    ) -> Dict[str, Any]:
        row = row_from_model(await self._fetch(db, chapter_id))
        mapped = chapter_mapper.to_api_response(row, options)
        if mapped is None:
            raise DatabaseError(
                message="The chapter could not be read.",
                context={"chapter_id": str(chapter_id)},
            )
        return mapped

    async def create_chapter(self, db: AsyncSession, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = chapter_mapper.from_api_create_request(data)
        if values is None:
            raise ValidationError(message="Chapter payload could not be processed")

        chapter = Chapter(**model_kwargs(Chapter, values))
        try:
            db.add(chapter)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating chapter: %s", str(e))
            raise DatabaseError(message="Could not create the chapter. Please try again.")

        logger.info(
            "Chapter created for publication %s: %d words",
            values.get("publication_id"),
            values.get("word_count") or 0,
        )
        return chapter_mapper.to_api_response(row_from_model(chapter))

    async def update_chapter(
        self, db: AsyncSession, chapter_id: UUID, data: Mapping[str, Any]
    ) -> Dict[str, Any]:
        chapter = await self._fetch(db, chapter_id)
        values = chapter_mapper.from_api_update_request(data)
        if values is None:
            raise ValidationError(message="Chapter update could not be processed")

        apply_row(chapter, values)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating chapter %s: %s", chapter_id, str(e))
            raise DatabaseError(
                message="Could not update the chapter. Please try again.",
                context={"chapter_id": str(chapter_id)},
            )
        return chapter_mapper.to_api_response(row_from_model(chapter))

    async def delete_chapter(self, db: AsyncSession, chapter_id: UUID) -> None:
        chapter = await self._fetch(db, chapter_id)
        try:
            await db.delete(chapter)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting chapter %s: %s", chapter_id, str(e))
            raise DatabaseError(
                message="Could not delete the chapter. Please try again.",
                context={"chapter_id": str(chapter_id)},
            )
        logger.info("Chapter %s deleted", chapter_id)

    async def export_chapter(self, db: AsyncSession, chapter_id: UUID, fmt: str = "json") -> Dict[str, Any]:
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                message=f"Unsupported export format '{fmt}'",
                field="format",
                context={"allowed": list(EXPORT_FORMATS)},
            )
        row = row_from_model(await self._fetch(db, chapter_id))
        exported = chapter_mapper.to_export_format(row, fmt)
        if exported is None:
            raise DatabaseError(
                message="The chapter could not be exported.",
                context={"chapter_id": str(chapter_id)},
            )
        return exported

    async def _fetch(self, db: AsyncSession, chapter_id: UUID) -> Chapter:
        try:
            chapter = await db.get(Chapter, chapter_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching chapter %s: %s", chapter_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the chapter. Please try again.",
                context={"chapter_id": str(chapter_id)},
            )
        if chapter is None:
            raise NotFoundError(resource="chapter", resource_id=str(chapter_id))
        return chapter


chapter_service = ChapterService()
