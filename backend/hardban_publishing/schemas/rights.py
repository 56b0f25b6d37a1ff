"""
Request bodies for the rights endpoints.

Update bodies are dumped with `exclude_unset=True`, so a field that is not
sent is left alone and an explicit null clears it. Columns that cannot be
empty reject an explicit null instead.
"""

import uuid
from datetime import date
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, model_validator

from hardban_publishing.schemas.common import reject_nulls

BlobInput = Optional[Union[Dict[str, Any], str]]

REQUIRED_ON_UPDATE = (
    "right_type",
    "territory",
    "language",
    "license_type",
    "exclusive",
    "sublicensing_allowed",
    "start_date",
    "status",
)


class RightsCreateRequest(BaseModel):
    publication_id: uuid.UUID
    right_type: str = Field(min_length=1, max_length=50, description="e.g. ebook, print, audio, translation")
    territory: str = Field(min_length=2, max_length=10, description="ISO country code or WORLD")
    language: str = Field(min_length=2, max_length=10, description="ISO 639-1 language code")
    license_type: str = Field(min_length=1, max_length=50)
    exclusive: bool = False
    sublicensing_allowed: bool = False
    start_date: date
    end_date: Optional[date] = None
    status: Optional[str] = Field(default=None, max_length=30)

    royalty_rate: Optional[float] = Field(default=None, ge=0, le=100, description="Percent")
    advance_amount: Optional[float] = Field(default=None, ge=0)
    minimum_guarantee: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    contract_details: BlobInput = None
    compliance_data: BlobInput = None
    workflow_data: BlobInput = None

    @model_validator(mode="after")
    def check_term(self) -> "RightsCreateRequest":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RightsUpdateRequest(BaseModel):
    right_type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    territory: Optional[str] = Field(default=None, min_length=2, max_length=10)
    language: Optional[str] = Field(default=None, min_length=2, max_length=10)
    license_type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    exclusive: Optional[bool] = None
    sublicensing_allowed: Optional[bool] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = Field(default=None, max_length=30)

    royalty_rate: Optional[float] = Field(default=None, ge=0, le=100)
    advance_amount: Optional[float] = Field(default=None, ge=0)
    minimum_guarantee: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    contract_details: BlobInput = None
    compliance_data: BlobInput = None
    workflow_data: BlobInput = None

    @model_validator(mode="after")
    def check_fields(self) -> "RightsUpdateRequest":
        reject_nulls(self, REQUIRED_ON_UPDATE)
        if self.start_date is not None and self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self
