"""Study material schemas."""

from typing import Literal
from uuid import UUID

from studyworkspace.schemas.base import BaseSchema, IDMixin, TimestampMixin


class MaterialRead(BaseSchema, IDMixin, TimestampMixin):
    """Material without its (potentially large) extracted text."""

    workspace_id: UUID
    title: str
    type: Literal["pdf", "image"]
    s3_key: str
    file_url: str
    content_type: str
    file_size_bytes: int | None = None
    summary: str
    is_processed: bool
    uploaded_by: UUID


class MaterialWithText(MaterialRead):
    extracted_text: str | None = None


class MaterialUploadResponse(BaseSchema):
    message: str
    material: MaterialRead
    processing: bool


class MaterialResponse(BaseSchema):
    material: MaterialWithText


class MaterialListResponse(BaseSchema):
    materials: list[MaterialRead]


class SummaryResponse(BaseSchema):
    material_id: UUID
    summary: str


class EnrichmentQueuedResponse(BaseSchema):
    message: str
    job_id: UUID
    processing: bool = True
