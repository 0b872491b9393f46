"""Flashcard schemas."""

from uuid import UUID

from pydantic import Field

from studyworkspace.schemas.base import BaseSchema, IDMixin, TimestampMixin


class Flashcard(BaseSchema):
    front: str = Field(..., min_length=1)
    back: str = Field(..., min_length=1)


class FlashcardGenerateRequest(BaseSchema):
    material_id: UUID | None = None


class FlashcardSetRead(BaseSchema, IDMixin, TimestampMixin):
    workspace_id: UUID
    title: str
    cards: list[Flashcard]
    created_by: UUID
    source_id: UUID | None = None


class FlashcardSetResponse(BaseSchema):
    message: str
    flashcard_set: FlashcardSetRead


class FlashcardSetListResponse(BaseSchema):
    flashcard_sets: list[FlashcardSetRead]
