"""Quiz and progress schemas."""

from uuid import UUID

from pydantic import Field, model_validator

from studyworkspace.schemas.base import BaseSchema, IDMixin, TimestampMixin, UTCDateTime


class QuizQuestion(BaseSchema):
    """Multiple-choice question with exactly four options."""

    question_text: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=4, max_length=4)
    correct_index: int = Field(..., ge=0, le=3)
    explanation: str


class QuizGenerateRequest(BaseSchema):
    material_id: UUID | None = None


class QuizRead(BaseSchema, IDMixin, TimestampMixin):
    workspace_id: UUID
    material_id: UUID
    title: str
    questions: list[QuizQuestion]
    created_by: UUID


class QuizGenerateResponse(BaseSchema):
    message: str
    quiz: QuizRead
    cached: bool


class QuizResponse(BaseSchema):
    quiz: QuizRead


class QuizListResponse(BaseSchema):
    quizzes: list[QuizRead]


class QuizResultCreate(BaseSchema):
    quiz_id: UUID
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., gt=0)

    @model_validator(mode="after")
    def validate_score(self) -> "QuizResultCreate":
        """Ensure score <= total_questions."""
        if self.score > self.total_questions:
            raise ValueError("score cannot exceed totalQuestions")
        return self


class ProgressRead(BaseSchema):
    id: UUID
    user_id: UUID
    workspace_id: UUID
    quiz_id: UUID
    score: int
    total_questions: int
    percentage: int
    completed_at: UTCDateTime


class ProgressResponse(BaseSchema):
    message: str
    progress: ProgressRead


class ProgressListResponse(BaseSchema):
    progress: list[ProgressRead]
