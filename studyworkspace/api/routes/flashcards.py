"""API routes for flashcard sets."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyworkspace.api.deps import (
    DbSession,
    WorkspaceEditor,
    WorkspaceMember,
    get_workspace_resource_or_404,
)
from studyworkspace.config import sanitize_error
from studyworkspace.db.models import FlashcardSet, StudyMaterial
from studyworkspace.schemas.flashcards import (
    FlashcardGenerateRequest,
    FlashcardSetListResponse,
    FlashcardSetRead,
    FlashcardSetResponse,
)
from studyworkspace.services import ai_service
from studyworkspace.services.ai_service import AIGenerationError

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["flashcards"])


async def get_material_with_text(
    db: AsyncSession, material_id: UUID | None, workspace_id: UUID
) -> StudyMaterial:
    """
    Resolve the material a generation request points at.

    400 if no id was given or the material has no extracted text,
    404 if it is not in this workspace.
    """
    if material_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Material ID is required"
        )
    material = await get_workspace_resource_or_404(
        db, StudyMaterial, material_id, workspace_id, detail="Material not found"
    )
    if not material.has_text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No text content available for this material",
        )
    return material


@router.post(
    "/flashcards/generate",
    response_model=FlashcardSetResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_flashcards(
    data: FlashcardGenerateRequest, access: WorkspaceEditor, db: DbSession
):
    """Generate a new flashcard set from a material's text."""
    material = await get_material_with_text(db, data.material_id, access.workspace_id)

    try:
        cards = await ai_service.generate_flashcards(material.extracted_text)
    except AIGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error(e, generic_message="Failed to generate flashcards."),
        )

    flashcard_set = FlashcardSet(
        workspace_id=access.workspace_id,
        title=f"Flashcards - {material.title}",
        cards=[card.model_dump() for card in cards],
        created_by=access.user.id,
        source_id=material.id,
    )
    db.add(flashcard_set)
    await db.commit()
    await db.refresh(flashcard_set)

    return FlashcardSetResponse(
        message="Flashcards generated successfully",
        flashcard_set=FlashcardSetRead.model_validate(flashcard_set),
    )


@router.get("/flashcards", response_model=FlashcardSetListResponse)
async def list_flashcard_sets(access: WorkspaceMember, db: DbSession):
    """List the workspace's flashcard sets, newest first."""
    result = await db.execute(
        select(FlashcardSet)
        .where(FlashcardSet.workspace_id == access.workspace_id)
        .order_by(FlashcardSet.created_at.desc())
    )
    return FlashcardSetListResponse(
        flashcard_sets=[FlashcardSetRead.model_validate(s) for s in result.scalars().all()]
    )
