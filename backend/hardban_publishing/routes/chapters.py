"""
HardbanRecords Publishing API - Chapter Routes
===============================================

Endpoints:
    GET    /api/publishing/publications/{publication_id}/chapters   (table of contents)
    POST   /api/publishing/chapters
    GET    /api/publishing/chapters/{chapter_id}
    PATCH  /api/publishing/chapters/{chapter_id}
    DELETE /api/publishing/chapters/{chapter_id}
    GET    /api/publishing/chapters/{chapter_id}/export?format=json|markdown|txt|docx

Chapter edits go through the collaboration limit class.
"""

from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from hardban_publishing.database import get_db_session
from hardban_publishing.mappers.chapter import ChapterMappingOptions
from hardban_publishing.middleware.auth import require_roles
from hardban_publishing.middleware.rate_limit import rate_limit
from hardban_publishing.schemas.chapters import ChapterCreateRequest, ChapterUpdateRequest
from hardban_publishing.schemas.common import ErrorResponse, RateLimitErrorResponse
from hardban_publishing.services.chapter_service import chapter_service

router = APIRouter(prefix="/api/publishing", tags=["Chapters"])

WRITE_ROLES = ("author", "publisher", "admin")

_not_found = {"description": "Chapter not found", "model": ErrorResponse}
_throttled = {"description": "Rate limit exceeded", "model": RateLimitErrorResponse}
_write_errors = {
    400: {"description": "Invalid payload", "model": ErrorResponse},
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    403: {"description": "Role not allowed", "model": ErrorResponse},
    429: _throttled,
}


def chapter_options(
    include_content: bool = Query(default=True, description="Include the chapter HTML"),
    include_content_analysis: bool = Query(default=False),
    include_keywords: bool = Query(default=False),
    include_metadata: bool = Query(default=False),
    include_collaboration: bool = Query(default=False),
    include_versioning: bool = Query(default=False),
) -> ChapterMappingOptions:
    return ChapterMappingOptions(
        include_content=include_content,
        include_content_analysis=include_content_analysis,
        include_keywords=include_keywords,
        include_metadata=include_metadata,
        include_collaboration=include_collaboration,
        include_versioning=include_versioning,
    )


@router.get(
    "/publications/{publication_id}/chapters",
    dependencies=[Depends(rate_limit("publishing_api"))],
    responses={429: _throttled},
    summary="Table of contents of a publication",
    description="Chapters in reading order without their content. X-Total-Count carries the chapter count.",
)
async def table_of_contents(
    publication_id: UUID,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> List[Dict[str, Any]]:
    entries = await chapter_service.table_of_contents(db, publication_id)
    response.headers["X-Total-Count"] = str(len(entries))
    return entries


@router.post(
    "/chapters",
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(rate_limit("collaboration")),
        Depends(require_roles(*WRITE_ROLES)),
    ],
    responses=_write_errors,
    summary="Create a chapter",
)
async def create_chapter(
    body: ChapterCreateRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await chapter_service.create_chapter(db, body.model_dump(exclude_unset=True))


@router.get(
    "/chapters/{chapter_id}",
    dependencies=[Depends(rate_limit("publishing_api"))],
    responses={404: _not_found, 429: _throttled},
    summary="Get a chapter",
)
async def get_chapter(
    chapter_id: UUID,
    options: ChapterMappingOptions = Depends(chapter_options),
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await chapter_service.get_chapter(db, chapter_id, options)


@router.patch(
    "/chapters/{chapter_id}",
    dependencies=[
        Depends(rate_limit("collaboration")),
        Depends(require_roles(*WRITE_ROLES)),
    ],
    responses={**_write_errors, 404: _not_found},
    summary="Update a chapter",
)
async def update_chapter(
    chapter_id: UUID,
    body: ChapterUpdateRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await chapter_service.update_chapter(db, chapter_id, body.model_dump(exclude_unset=True))


@router.delete(
    "/chapters/{chapter_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    dependencies=[
        Depends(rate_limit("collaboration")),
        Depends(require_roles(*WRITE_ROLES)),
    ],
    responses={**_write_errors, 404: _not_found},
    summary="Delete a chapter",
)
async def delete_chapter(
    chapter_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    await chapter_service.delete_chapter(db, chapter_id)


@router.get(
    "/chapters/{chapter_id}/export",
    dependencies=[Depends(rate_limit("format_conversion"))],
    responses={
        400: {"description": "Unsupported format", "model": ErrorResponse},
        404: _not_found,
        429: _throttled,
    },
    summary="Export a chapter",
)
async def export_chapter(
    chapter_id: UUID,
    fmt: str = Query(default="json", alias="format", description="json, markdown, txt or docx"),
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await chapter_service.export_chapter(db, chapter_id, fmt)
