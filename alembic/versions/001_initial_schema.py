"""Initial schema with all tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

Creates the complete StudyWorkspace schema:
- Tables: users, workspaces, workspace_members, study_materials,
  enrichment_jobs, flashcard_sets, quizzes, user_progress, study_sessions
- Check constraints for enumerated columns and session time ranges
- Indexes for the workspace-scoped list queries and the job poller

Column types are portable so the same migration runs on Postgres and SQLite.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ==========================================================================
    # USERS TABLE
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("google_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("avatar_url", sa.String(1024), nullable=False, server_default=""),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("google_id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # ==========================================================================
    # WORKSPACES + MEMBERS
    # ==========================================================================
    op.create_table(
        "workspaces",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_workspaces_owner_id", "workspaces", ["owner_id"])

    op.create_table(
        "workspace_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="viewer"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("workspace_id", "user_id", name="unique_workspace_member"),
        sa.CheckConstraint("role IN ('admin', 'editor', 'viewer')", name="valid_member_role"),
    )
    op.create_index("idx_workspace_members_user", "workspace_members", ["user_id"])

    # ==========================================================================
    # STUDY MATERIALS + ENRICHMENT QUEUE
    # ==========================================================================
    op.create_table(
        "study_materials",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("s3_key", sa.String(1024), nullable=False),
        sa.Column("file_url", sa.String(2048), nullable=False),
        sa.Column("content_type", sa.String(100), nullable=False),
        sa.Column("file_size_bytes", sa.Integer(), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("uploaded_by", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("s3_key"),
        sa.CheckConstraint("type IN ('pdf', 'image')", name="valid_material_type"),
    )
    op.create_index(
        "idx_study_materials_workspace_created", "study_materials", ["workspace_id", "created_at"]
    )

    op.create_table(
        "enrichment_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("run_after", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["material_id"], ["study_materials.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'succeeded', 'failed', 'skipped')",
            name="valid_job_status",
        ),
    )
    op.create_index("ix_enrichment_jobs_material_id", "enrichment_jobs", ["material_id"])
    op.create_index("idx_enrichment_jobs_due", "enrichment_jobs", ["status", "run_after"])

    # ==========================================================================
    # FLASHCARDS, QUIZZES, PROGRESS
    # ==========================================================================
    op.create_table(
        "flashcard_sets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("cards", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("source_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_id"], ["study_materials.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_flashcard_sets_workspace", "flashcard_sets", ["workspace_id"])
    op.create_index("ix_flashcard_sets_source_id", "flashcard_sets", ["source_id"])

    op.create_table(
        "quizzes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("questions", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["material_id"], ["study_materials.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("material_id", name="unique_quiz_per_material"),
    )
    op.create_index("idx_quizzes_workspace", "quizzes", ["workspace_id"])

    op.create_table(
        "user_progress",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("quiz_id", sa.Uuid(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("total_questions", sa.Integer(), nullable=False),
        sa.Column("percentage", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["quiz_id"], ["quizzes.id"], ondelete="CASCADE"),
        sa.CheckConstraint("total_questions > 0", name="valid_total_questions"),
    )
    op.create_index(
        "idx_user_progress_user_workspace", "user_progress", ["user_id", "workspace_id"]
    )

    # ==========================================================================
    # STUDY SESSIONS
    # ==========================================================================
    op.create_table(
        "study_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="study"),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("google_event_id", sa.String(1024), nullable=True),
        sa.Column("reminder", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_duration", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["material_id"], ["study_materials.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_time > start_time", name="valid_session_range"),
        sa.CheckConstraint("reminder >= 0", name="valid_reminder"),
        sa.CheckConstraint(
            "type IN ('study', 'review', 'quiz', 'flashcards')", name="valid_session_type"
        ),
        sa.CheckConstraint(
            "status IN ('scheduled', 'completed', 'missed', 'cancelled')",
            name="valid_session_status",
        ),
    )
    op.create_index(
        "idx_study_sessions_owner_start", "study_sessions", ["workspace_id", "user_id", "start_time"]
    )
    op.create_index(
        "idx_study_sessions_owner_status", "study_sessions", ["workspace_id", "user_id", "status"]
    )


def downgrade() -> None:
    op.drop_table("study_sessions")
    op.drop_table("user_progress")
    op.drop_table("quizzes")
    op.drop_table("flashcard_sets")
    op.drop_table("enrichment_jobs")
    op.drop_table("study_materials")
    op.drop_table("workspace_members")
    op.drop_table("workspaces")
    op.drop_table("users")
