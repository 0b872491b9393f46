"""Workspace schemas."""

from typing import Literal
from uuid import UUID

from pydantic import Field

from studyworkspace.schemas.base import BaseSchema, IDMixin, TimestampMixin, UTCDateTime

WorkspaceRoleType = Literal["admin", "editor", "viewer"]


class WorkspaceCreate(BaseSchema):
    name: str = Field(..., max_length=255)


class WorkspaceMemberRead(BaseSchema):
    user_id: UUID
    role: WorkspaceRoleType
    created_at: UTCDateTime


class WorkspaceRead(BaseSchema, IDMixin, TimestampMixin):
    name: str
    owner_id: UUID
    members: list[WorkspaceMemberRead]


class WorkspaceResponse(BaseSchema):
    workspace: WorkspaceRead
    role: WorkspaceRoleType | None = None


class WorkspaceListResponse(BaseSchema):
    workspaces: list[WorkspaceRead]
