"""Pydantic schemas for API request/response validation."""

from studyworkspace.schemas.user import UserRead, UserResponse
from studyworkspace.schemas.auth import AuthURLResponse, CalendarStatusResponse, SetTokenRequest
from studyworkspace.schemas.workspaces import (
    WorkspaceCreate,
    WorkspaceListResponse,
    WorkspaceRead,
    WorkspaceResponse,
)
from studyworkspace.schemas.materials import (
    MaterialListResponse,
    MaterialRead,
    MaterialResponse,
    MaterialUploadResponse,
    MaterialWithText,
)
from studyworkspace.schemas.flashcards import Flashcard, FlashcardSetRead
from studyworkspace.schemas.quizzes import QuizQuestion, QuizRead, QuizResultCreate
from studyworkspace.schemas.chat import ChatRequest, ChatResponse
from studyworkspace.schemas.sessions import SessionCreate, SessionRead, SessionUpdate

__all__ = [
    # User / auth
    "UserRead",
    "UserResponse",
    "AuthURLResponse",
    "CalendarStatusResponse",
    "SetTokenRequest",
    # Workspaces
    "WorkspaceCreate",
    "WorkspaceListResponse",
    "WorkspaceRead",
    "WorkspaceResponse",
    # Materials
    "MaterialListResponse",
    "MaterialRead",
    "MaterialResponse",
    "MaterialUploadResponse",
    "MaterialWithText",
    # Flashcards / quizzes
    "Flashcard",
    "FlashcardSetRead",
    "QuizQuestion",
    "QuizRead",
    "QuizResultCreate",
    # Chat
    "ChatRequest",
    "ChatResponse",
    # Sessions
    "SessionCreate",
    "SessionRead",
    "SessionUpdate",
]
