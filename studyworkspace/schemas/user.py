"""User schemas."""

from uuid import UUID

from studyworkspace.schemas.base import BaseSchema


class UserRead(BaseSchema):
    """Public user profile. Never includes the refresh token."""

    id: UUID
    email: str
    display_name: str
    avatar_url: str


class UserResponse(BaseSchema):
    user: UserRead
