"""Workspace chat schemas."""

from uuid import UUID

from pydantic import Field

from studyworkspace.schemas.base import BaseSchema


class ChatRequest(BaseSchema):
    query: str = Field("", max_length=4000)


class SourceUsed(BaseSchema):
    id: UUID
    title: str


class ChatResponse(BaseSchema):
    query: str
    answer: str
    sources_used: list[SourceUsed]
