"""Study session schemas."""

from typing import Literal
from uuid import UUID

from pydantic import Field, model_validator

from studyworkspace.schemas.base import BaseSchema, IDMixin, TimestampMixin, UTCDateTime

SessionTypeType = Literal["study", "review", "quiz", "flashcards"]
SessionStatusType = Literal["scheduled", "completed", "missed", "cancelled"]


class SessionCreate(BaseSchema):
    """Schema for creating a study session."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    start_time: UTCDateTime
    end_time: UTCDateTime
    material_id: UUID | None = None
    type: SessionTypeType = "study"
    reminder: int | None = Field(None, ge=0, le=60 * 24 * 7)
    sync_to_google: bool = False

    @model_validator(mode="after")
    def validate_time_range(self) -> "SessionCreate":
        """Ensure end_time > start_time."""
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class SessionUpdate(BaseSchema):
    """Schema for updating a study session. All fields optional."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    start_time: UTCDateTime | None = None
    end_time: UTCDateTime | None = None
    material_id: UUID | None = None
    type: SessionTypeType | None = None
    status: SessionStatusType | None = None
    reminder: int | None = Field(None, ge=0, le=60 * 24 * 7)
    notes: str | None = None
    sync_to_google: bool | None = None


class SessionRead(BaseSchema, IDMixin, TimestampMixin):
    workspace_id: UUID
    user_id: UUID
    title: str
    description: str
    start_time: UTCDateTime
    end_time: UTCDateTime
    material_id: UUID | None = None
    type: SessionTypeType
    status: SessionStatusType
    google_event_id: str | None = None
    reminder: int
    notes: str
    completed_at: UTCDateTime | None = None
    actual_duration: int | None = None


class SessionResponse(BaseSchema):
    session: SessionRead
    warning: str | None = None
    message: str | None = None


class SessionListResponse(BaseSchema):
    sessions: list[SessionRead]


class StudyStats(BaseSchema):
    hours_this_week: float
    sessions_completed: int
    streak: int


class StudyStatsResponse(BaseSchema):
    stats: StudyStats
    upcoming: list[SessionRead]


class ReminderRead(BaseSchema):
    session_id: UUID
    title: str
    start_time: UTCDateTime
    remind_at: UTCDateTime


class ReminderListResponse(BaseSchema):
    reminders: list[ReminderRead]
