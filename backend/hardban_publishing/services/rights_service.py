"""
HardbanRecords Publishing API - Rights Service
===============================================

What:  CRUD, coverage analysis and export for publishing rights.
How:   Loads `PublishingRight` rows through the request's AsyncSession,
       converts them to plain rows and lets RightsMapper shape the output.
Who:   Called by the rights routes.

Error handling:
    - unknown id                        → NotFoundError (404)
    - payload the mapper cannot convert → ValidationError (400)
    - any SQLAlchemy failure            → DatabaseError (500), details logged
"""

import logging
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hardban_publishing.database import apply_row, model_kwargs, row_from_model
from hardban_publishing.exceptions import DatabaseError, NotFoundError, ValidationError
from hardban_publishing.mappers.rights import (
    EXPORT_FORMATS,
    RightsMappingOptions,
    rights_mapper,
)
from hardban_publishing.models.rights import PublishingRight

logger = logging.getLogger(__name__)


class RightsService:
    """Stateless; every call receives the session it works in."""

    async def list_for_publication(
        self,
        db: AsyncSession,
        publication_id: UUID,
        options: Optional[RightsMappingOptions] = None,
    ) -> List[Dict[str, Any]]:
        rows = await self._rows_for_publication(db, publication_id)
        return rights_mapper.to_api_response_list(rows, options)

    async def get_rights(
        self,
        db: AsyncSession,
        rights_id: UUID,
        options: Optional[RightsMappingOptions] = None,
    ) -> Dict[str, Any]:
        row = row_from_model(await self._fetch(db, rights_id))
        mapped = rights_mapper.to_api_response(row, options)
        if mapped is None:
            raise DatabaseError(
                message="The rights record could not be read.",
                context={"rights_id": str(rights_id)},
            )
        return mapped

    async def create_rights(self, db: AsyncSession, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = rights_mapper.from_api_create_request(data)
        if values is None:
            raise ValidationError(message="Rights payload could not be processed")

        rights = PublishingRight(**model_kwargs(PublishingRight, values))
        try:
            db.add(rights)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating rights: %s", str(e))
            raise DatabaseError(message="Could not create the rights record. Please try again.")

        logger.info(
            "Rights created: %s %s/%s for publication %s",
            values.get("right_type"),
            values.get("territory"),
            values.get("language"),
            values.get("publication_id"),
        )
        return rights_mapper.to_api_response(row_from_model(rights), RightsMappingOptions(include_financials=True))

    async def update_rights(
        self, db: AsyncSession, rights_id: UUID, data: Mapping[str, Any]
    ) -> Dict[str, Any]:
        rights = await self._fetch(db, rights_id)
        values = rights_mapper.from_api_update_request(data)
        if values is None:
            raise ValidationError(message="Rights update could not be processed")

        # The term is checked against the stored dates when only one side changes
        start_date = values.get("start_date", rights.start_date)
        end_date = values.get("end_date", rights.end_date)
        if start_date is not None and end_date is not None and end_date < start_date:
            raise ValidationError(
                message="end_date must not be before start_date",
                field="end_date",
                context={"start_date": str(start_date), "end_date": str(end_date)},
            )

        apply_row(rights, values)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating rights %s: %s", rights_id, str(e))
            raise DatabaseError(
                message="Could not update the rights record. Please try again.",
                context={"rights_id": str(rights_id)},
            )

        logger.info("Rights %s updated: %s", rights_id, sorted(values))
        return rights_mapper.to_api_response(row_from_model(rights), RightsMappingOptions(include_financials=True))

    async def delete_rights(self, db: AsyncSession, rights_id: UUID) -> None:
        rights = await self._fetch(db, rights_id)
        try:
            await db.delete(rights)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting rights %s: %s", rights_id, str(e))
            raise DatabaseError(
                message="Could not delete the rights record. Please try again.",
                context={"rights_id": str(rights_id)},
            )
        logger.info("Rights %s deleted", rights_id)

    async def coverage(self, db: AsyncSession, publication_id: UUID) -> Dict[str, Any]:
        rows = await self._rows_for_publication(db, publication_id)
        analysis = rights_mapper.to_coverage_analysis(rows, publication_id)
        if analysis["conflicts_detected"]:
            logger.warning(
                "Publication %s has %d exclusive rights conflicts",
                publication_id,
                len(analysis["conflicts_detected"]),
            )
        return analysis

    async def export_rights(self, db: AsyncSession, rights_id: UUID, fmt: str = "json") -> Dict[str, Any]:
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                message=f"Unsupported export format '{fmt}'",
                field="format",
                context={"allowed": list(EXPORT_FORMATS)},
            )
        row = row_from_model(await self._fetch(db, rights_id))
        exported = rights_mapper.to_export_format(row, fmt)
        if exported is None:
            raise DatabaseError(
                message="The rights record could not be exported.",
                context={"rights_id": str(rights_id)},
            )
        return exported

    # ── Queries ───────────────────────────────────────────────────────────

    async def _fetch(self, db: AsyncSession, rights_id: UUID) -> PublishingRight:
        try:
            rights = await db.get(PublishingRight, rights_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching rights %s: %s", rights_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the rights record. Please try again.",
                context={"rights_id": str(rights_id)},
            )
        if rights is None:
            raise NotFoundError(resource="rights", resource_id=str(rights_id))
        return rights

    async def _rows_for_publication(self, db: AsyncSession, publication_id: UUID) -> List[Dict[str, Any]]:
        try:
            result = await db.execute(
                select(PublishingRight)
                .where(PublishingRight.publication_id == publication_id)
                .order_by(PublishingRight.created_at)
            )
            return [row_from_model(rights) for rights in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Database error listing rights for %s: %s", publication_id, str(e))
            raise DatabaseError(
                message="Could not retrieve rights. Please try again.",
                context={"publication_id": str(publication_id)},
            )


rights_service = RightsService()
