"""Authentication schemas."""

from pydantic import Field

from studyworkspace.schemas.base import BaseSchema


class SetTokenRequest(BaseSchema):
    """Token bootstrap for cross-origin clients that received the JWT in a redirect."""

    token: str = Field(..., min_length=1)


class CalendarStatusResponse(BaseSchema):
    connected: bool
    has_refresh_token: bool | None = None


class AuthURLResponse(BaseSchema):
    auth_url: str
