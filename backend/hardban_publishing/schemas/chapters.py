"""Request bodies for the chapter endpoints."""

import uuid
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from hardban_publishing.schemas.common import reject_nulls

BlobInput = Optional[Union[Dict[str, Any], str]]

REQUIRED_ON_UPDATE = ("title", "content", "order_index", "status")


class ChapterCreateRequest(BaseModel):
    publication_id: uuid.UUID
    title: str = Field(min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, description="Chapter HTML")
    excerpt: Optional[str] = None
    order_index: Optional[int] = Field(default=None, ge=0)
    word_count: Optional[int] = Field(default=None, ge=0, description="Computed from content when omitted")
    reading_time: Optional[int] = Field(default=None, ge=0, description="Minutes; computed when omitted")
    status: Optional[str] = Field(default=None, max_length=30)

    keywords: Optional[Union[List[str], str]] = None
    metadata: BlobInput = None
    collaboration_data: BlobInput = None
    content_analysis: BlobInput = None
    version_info: BlobInput = None


class ChapterUpdateRequest(BaseModel):
    """Sending `content` recomputes word_count and reading_time."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = None
    excerpt: Optional[str] = None
    order_index: Optional[int] = Field(default=None, ge=0)
    word_count: Optional[int] = Field(default=None, ge=0)
    reading_time: Optional[int] = Field(default=None, ge=0)
    status: Optional[str] = Field(default=None, max_length=30)

    keywords: Optional[Union[List[str], str]] = None
    metadata: BlobInput = None
    collaboration_data: BlobInput = None
    content_analysis: BlobInput = None
    version_info: BlobInput = None

    @model_validator(mode="after")
    def check_fields(self) -> "ChapterUpdateRequest":
        reject_nulls(self, REQUIRED_ON_UPDATE)
        return self
