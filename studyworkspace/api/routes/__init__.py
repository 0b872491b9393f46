"""API routes package."""

from studyworkspace.api.routes import (
    auth,
    chat,
    flashcards,
    materials,
    quizzes,
    sessions,
    workspaces,
)

__all__ = [
    "auth",
    "chat",
    "flashcards",
    "materials",
    "quizzes",
    "sessions",
    "workspaces",
]
