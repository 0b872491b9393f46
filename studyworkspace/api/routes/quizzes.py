"""
API routes for quizzes and quiz progress.

A quiz is generated at most once per material; later requests for the
same material return the stored one.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studyworkspace.api.deps import (
    DbSession,
    WorkspaceEditor,
    WorkspaceMember,
    get_workspace_resource_or_404,
)
from studyworkspace.api.routes.flashcards import get_material_with_text
from studyworkspace.config import sanitize_error
from studyworkspace.db.models import Quiz, UserProgress
from studyworkspace.schemas.quizzes import (
    ProgressListResponse,
    ProgressRead,
    ProgressResponse,
    QuizGenerateRequest,
    QuizGenerateResponse,
    QuizListResponse,
    QuizRead,
    QuizResponse,
    QuizResultCreate,
)
from studyworkspace.services import ai_service
from studyworkspace.services.ai_service import AIGenerationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["quizzes"])


async def _get_quiz_for_material(
    db: AsyncSession, material_id: UUID, workspace_id: UUID
) -> Quiz | None:
    result = await db.execute(
        select(Quiz).where(Quiz.material_id == material_id, Quiz.workspace_id == workspace_id)
    )
    return result.scalar_one_or_none()


@router.post(
    "/quiz/generate",
    response_model=QuizGenerateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_quiz(
    data: QuizGenerateRequest, access: WorkspaceEditor, db: DbSession, response: Response
):
    """
    Get or generate the quiz for a material.

    Returns 200 with cached=true when a quiz already exists, otherwise
    generates one and returns 201 with cached=false.
    """
    material = await get_material_with_text(db, data.material_id, access.workspace_id)

    existing = await _get_quiz_for_material(db, material.id, access.workspace_id)
    if existing is not None:
        response.status_code = status.HTTP_200_OK
        return QuizGenerateResponse(
            message="Quiz retrieved from cache",
            quiz=QuizRead.model_validate(existing),
            cached=True,
        )

    try:
        questions = await ai_service.generate_quiz(material.extracted_text)
    except AIGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error(e, generic_message="Failed to generate quiz."),
        )

    workspace_id, material_id = access.workspace_id, material.id
    quiz = Quiz(
        workspace_id=workspace_id,
        material_id=material_id,
        title=f"Quiz - {material.title}",
        questions=[q.model_dump(by_alias=True) for q in questions],
        created_by=access.user.id,
    )
    db.add(quiz)
    try:
        await db.commit()
    except IntegrityError:
        # Another request stored a quiz for this material first
        await db.rollback()
        logger.info("Concurrent quiz generation for material %s, using stored quiz", material_id)
        existing = await _get_quiz_for_material(db, material_id, workspace_id)
        if existing is None:
            raise
        response.status_code = status.HTTP_200_OK
        return QuizGenerateResponse(
            message="Quiz retrieved from cache",
            quiz=QuizRead.model_validate(existing),
            cached=True,
        )
    await db.refresh(quiz)

    return QuizGenerateResponse(
        message="Quiz generated successfully",
        quiz=QuizRead.model_validate(quiz),
        cached=False,
    )


@router.get("/quiz/material/{material_id}", response_model=QuizResponse)
async def get_quiz_for_material(material_id: UUID, access: WorkspaceMember, db: DbSession):
    """Get the stored quiz for a material."""
    quiz = await _get_quiz_for_material(db, material_id, access.workspace_id)
    if quiz is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No quiz found for this material"
        )
    return QuizResponse(quiz=QuizRead.model_validate(quiz))


@router.get("/quiz", response_model=QuizListResponse)
async def list_quizzes(access: WorkspaceMember, db: DbSession):
    """List the workspace's quizzes, newest first."""
    result = await db.execute(
        select(Quiz)
        .where(Quiz.workspace_id == access.workspace_id)
        .order_by(Quiz.created_at.desc())
    )
    return QuizListResponse(quizzes=[QuizRead.model_validate(q) for q in result.scalars().all()])


# =============================================================================
# PROGRESS
# =============================================================================


@router.post(
    "/quiz/save-result", response_model=ProgressResponse, status_code=status.HTTP_201_CREATED
)
async def save_quiz_result(data: QuizResultCreate, access: WorkspaceMember, db: DbSession):
    """Record one quiz attempt for the current user."""
    await get_workspace_resource_or_404(
        db, Quiz, data.quiz_id, access.workspace_id, detail="Quiz not found"
    )

    progress = UserProgress(
        user_id=access.user.id,
        workspace_id=access.workspace_id,
        quiz_id=data.quiz_id,
        score=data.score,
        total_questions=data.total_questions,
        percentage=round(data.score / data.total_questions * 100),
    )
    db.add(progress)
    await db.commit()
    await db.refresh(progress)

    return ProgressResponse(
        message="Quiz result saved",
        progress=ProgressRead.model_validate(progress),
    )


@router.get("/progress", response_model=ProgressListResponse)
async def list_progress(access: WorkspaceMember, db: DbSession):
    """The current user's quiz attempts in this workspace, newest first."""
    result = await db.execute(
        select(UserProgress)
        .where(
            UserProgress.workspace_id == access.workspace_id,
            UserProgress.user_id == access.user.id,
        )
        .order_by(UserProgress.completed_at.desc())
    )
    return ProgressListResponse(
        progress=[ProgressRead.model_validate(p) for p in result.scalars().all()]
    )
