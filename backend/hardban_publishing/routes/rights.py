"""
HardbanRecords Publishing API - Rights Routes
==============================================

Endpoints:
    GET    /api/publishing/publications/{publication_id}/rights
    GET    /api/publishing/publications/{publication_id}/rights/coverage
    POST   /api/publishing/rights
    GET    /api/publishing/rights/{rights_id}
    PATCH  /api/publishing/rights/{rights_id}
    DELETE /api/publishing/rights/{rights_id}
    GET    /api/publishing/rights/{rights_id}/export?format=json|contract|legal|csv

Reads are limited by the general publishing class; writes by the
publication-operations class and restricted to authors, publishers and
admins. Coverage analysis is limited per subscription tier.
"""

from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from hardban_publishing.database import get_db_session
from hardban_publishing.mappers.rights import RightsMappingOptions
from hardban_publishing.middleware.auth import require_roles
from hardban_publishing.middleware.rate_limit import rate_limit
from hardban_publishing.schemas.common import ErrorResponse, RateLimitErrorResponse
from hardban_publishing.schemas.rights import RightsCreateRequest, RightsUpdateRequest
from hardban_publishing.services.rights_service import rights_service

router = APIRouter(prefix="/api/publishing", tags=["Rights"])

WRITE_ROLES = ("author", "publisher", "admin")

_common_errors = {
    404: {"description": "Rights record not found", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": RateLimitErrorResponse},
}
_write_errors = {
    400: {"description": "Invalid payload", "model": ErrorResponse},
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    403: {"description": "Role not allowed", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": RateLimitErrorResponse},
}


def rights_options(
    include_financials: bool = Query(default=False, description="Royalty, advance and currency terms"),
    include_contract: bool = Query(default=False, description="Decoded contract details"),
    include_compliance: bool = Query(default=False, description="Decoded compliance data"),
    include_territorial_info: bool = Query(default=False, description="Territory and language reference data"),
    include_workflow: bool = Query(default=False, description="Decoded workflow data"),
) -> RightsMappingOptions:
    return RightsMappingOptions(
        include_financials=include_financials,
        include_contract=include_contract,
        include_compliance=include_compliance,
        include_territorial_info=include_territorial_info,
        include_workflow=include_workflow,
    )


@router.get(
    "/publications/{publication_id}/rights",
    dependencies=[Depends(rate_limit("publishing_api"))],
    responses={429: _common_errors[429]},
    summary="List rights of a publication",
)
async def list_rights(
    publication_id: UUID,
    response: Response,
    options: RightsMappingOptions = Depends(rights_options),
    db: AsyncSession = Depends(get_db_session),
) -> List[Dict[str, Any]]:
    items = await rights_service.list_for_publication(db, publication_id, options)
    response.headers["X-Total-Count"] = str(len(items))
    return items


@router.get(
    "/publications/{publication_id}/rights/coverage",
    dependencies=[Depends(rate_limit("tiered"))],
    responses={429: _common_errors[429]},
    summary="Territory and language coverage of a publication's rights",
    description=(
        "Groups active rights by territory, language and right type, and "
        "reports overlapping exclusive rights as conflicts."
    ),
)
async def rights_coverage(
    publication_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await rights_service.coverage(db, publication_id)


@router.post(
    "/rights",
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(rate_limit("publication_ops")),
        Depends(require_roles(*WRITE_ROLES)),
    ],
    responses=_write_errors,
    summary="Create a rights record",
)
async def create_rights(
    body: RightsCreateRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await rights_service.create_rights(db, body.model_dump(exclude_unset=True))


@router.get(
    "/rights/{rights_id}",
    dependencies=[Depends(rate_limit("publishing_api"))],
    responses=_common_errors,
    summary="Get a rights record",
)
async def get_rights(
    rights_id: UUID,
    options: RightsMappingOptions = Depends(rights_options),
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await rights_service.get_rights(db, rights_id, options)


@router.patch(
    "/rights/{rights_id}",
    dependencies=[
        Depends(rate_limit("publication_ops")),
        Depends(require_roles(*WRITE_ROLES)),
    ],
    responses={**_write_errors, 404: _common_errors[404]},
    summary="Update a rights record",
)
async def update_rights(
    rights_id: UUID,
    body: RightsUpdateRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await rights_service.update_rights(db, rights_id, body.model_dump(exclude_unset=True))


@router.delete(
    "/rights/{rights_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    dependencies=[
        Depends(rate_limit("publication_ops")),
        Depends(require_roles(*WRITE_ROLES)),
    ],
    responses={**_write_errors, 404: _common_errors[404]},
    summary="Delete a rights record",
)
async def delete_rights(
    rights_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    await rights_service.delete_rights(db, rights_id)


@router.get(
    "/rights/{rights_id}/export",
    dependencies=[Depends(rate_limit("format_conversion"))],
    responses={**_common_errors, 400: {"description": "Unsupported format", "model": ErrorResponse}},
    summary="Export a rights record",
)
async def export_rights(
    rights_id: UUID,
    fmt: str = Query(default="json", alias="format", description="json, contract, legal or csv"),
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    return await rights_service.export_rights(db, rights_id, fmt)
