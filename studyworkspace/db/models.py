"""
SQLAlchemy 2.0 Models for StudyWorkspace.

Uses modern declarative syntax with Mapped[] type annotations.
All models use UUID primary keys. Column types are kept portable
(Uuid, JSON, DateTime) so the same models run on Postgres and SQLite.
All timestamps are stored in UTC.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyworkspace.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


# =============================================================================
# ENUMS
# =============================================================================


class WorkspaceRole(str, PyEnum):
    """Role of a member inside a workspace."""

    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class MaterialType(str, PyEnum):
    """Kind of uploaded material."""

    PDF = "pdf"
    IMAGE = "image"


class SessionType(str, PyEnum):
    """What a study session is for."""

    STUDY = "study"
    REVIEW = "review"
    QUIZ = "quiz"
    FLASHCARDS = "flashcards"


class SessionStatus(str, PyEnum):
    """Lifecycle of a study session. Everything but SCHEDULED is terminal."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    MISSED = "missed"
    CANCELLED = "cancelled"


class JobStatus(str, PyEnum):
    """Enrichment job state."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


def _in_check(column: str, enum: type[PyEnum], name: str) -> CheckConstraint:
    values = ", ".join(f"'{member.value}'" for member in enum)
    return CheckConstraint(f"{column} IN ({values})", name=name)


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """
    User account, created on first Google sign-in.

    The Google refresh token is only needed for Calendar sync. It is a
    deferred column so ordinary user loads never pull it.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    google_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True, deferred=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class Workspace(Base):
    """Tenant boundary. Access is granted only through the members list."""

    __tablename__ = "workspaces"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    # Relationships
    members: Mapped[list["WorkspaceMember"]] = relationship(
        "WorkspaceMember",
        back_populates="workspace",
        cascade="all, delete-orphan",
        order_by="WorkspaceMember.position",
    )

    def member_role(self, user_id: UUID) -> Optional[str]:
        """Role of user_id in this workspace, or None. Requires members to be loaded."""
        for member in self.members:
            if member.user_id == user_id:
                return member.role
        return None


class WorkspaceMember(Base):
    """Membership row: one user, one role, one position in the member list."""

    __tablename__ = "workspace_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="unique_workspace_member"),
        Index("idx_workspace_members_user", "user_id"),
        _in_check("role", WorkspaceRole, "valid_member_role"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    workspace_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=WorkspaceRole.VIEWER.value)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = _created_at()

    # Relationships
    workspace: Mapped["Workspace"] = relationship("Workspace", back_populates="members")


class StudyMaterial(Base):
    """
    Uploaded PDF or image plus any text extracted from it.

    summary and is_processed are filled in later by the enrichment worker.
    """

    __tablename__ = "study_materials"
    __table_args__ = (
        Index("idx_study_materials_workspace_created", "workspace_id", "created_at"),
        _in_check("type", MaterialType, "valid_material_type"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    workspace_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)

    # File metadata
    s3_key: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False)
    file_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size_bytes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Extracted content and AI enrichment
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    is_processed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    uploaded_by: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    @property
    def has_text(self) -> bool:
        return bool(self.extracted_text and self.extracted_text.strip())


class EnrichmentJob(Base):
    """
    Durable queue entry for post-upload AI enrichment.

    Picked up by the enrichment worker; retried with backoff until
    max attempts are exhausted.
    """

    __tablename__ = "enrichment_jobs"
    __table_args__ = (
        Index("idx_enrichment_jobs_due", "status", "run_after"),
        _in_check("status", JobStatus, "valid_job_status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    material_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("study_materials.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=JobStatus.PENDING.value)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    run_after: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FlashcardSet(Base):
    """Ordered list of {front, back} cards, optionally traced to a material."""

    __tablename__ = "flashcard_sets"
    __table_args__ = (Index("idx_flashcard_sets_workspace", "workspace_id"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    workspace_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    cards: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    source_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("study_materials.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class Quiz(Base):
    """Multiple-choice quiz. At most one per material; acts as a cache."""

    __tablename__ = "quizzes"
    __table_args__ = (
        UniqueConstraint("material_id", name="unique_quiz_per_material"),
        Index("idx_quizzes_workspace", "workspace_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    workspace_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    material_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("study_materials.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    questions: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class UserProgress(Base):
    """One row per quiz attempt. Append-only."""

    __tablename__ = "user_progress"
    __table_args__ = (
        Index("idx_user_progress_user_workspace", "user_id", "workspace_id"),
        CheckConstraint("total_questions > 0", name="valid_total_questions"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    workspace_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    quiz_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[datetime] = _created_at()


class StudySession(Base):
    """Planned study block, optionally mirrored to Google Calendar."""

    __tablename__ = "study_sessions"
    __table_args__ = (
        Index("idx_study_sessions_owner_start", "workspace_id", "user_id", "start_time"),
        Index("idx_study_sessions_owner_status", "workspace_id", "user_id", "status"),
        CheckConstraint("end_time > start_time", name="valid_session_range"),
        CheckConstraint("reminder >= 0", name="valid_reminder"),
        _in_check("type", SessionType, "valid_session_type"),
        _in_check("status", SessionStatus, "valid_session_status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    workspace_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    material_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("study_materials.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=SessionType.STUDY.value)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SessionStatus.SCHEDULED.value
    )
    google_event_id: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    reminder: Mapped[int] = mapped_column(Integer, nullable=False, default=15)  # minutes before start
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()
