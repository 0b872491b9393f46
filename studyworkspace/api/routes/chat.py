"""API route for Q&A over a workspace's materials."""

import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from studyworkspace.api.deps import DbSession, WorkspaceMember
from studyworkspace.config import get_settings, sanitize_error
from studyworkspace.db.models import StudyMaterial
from studyworkspace.schemas.chat import ChatRequest, ChatResponse, SourceUsed
from studyworkspace.services import ai_service
from studyworkspace.services.ai_service import AIGenerationError

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["chat"])


def build_chat_context(
    materials: list[StudyMaterial], max_chars: int
) -> tuple[str, list[StudyMaterial]]:
    """
    Concatenate material texts, newest first, up to max_chars.

    Stops at the first material that would overflow the limit. The first
    material is truncated rather than dropped so there is always some
    context. Returns the context and the materials that went into it.
    """
    context = ""
    used: list[StudyMaterial] = []
    for material in materials:
        block = f"\n\n--- {material.title} ---\n{material.extracted_text}"
        if len(context) + len(block) > max_chars:
            if not used:
                context = block[:max_chars]
                used.append(material)
            break
        context += block
        used.append(material)
    return context, used


@router.post("/chat", response_model=ChatResponse)
async def chat_with_workspace(data: ChatRequest, access: WorkspaceMember, db: DbSession):
    """Answer a question using the workspace's most recent materials as context."""
    query = data.query.strip()
    if not query:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Query is required")

    result = await db.execute(
        select(StudyMaterial)
        .where(
            StudyMaterial.workspace_id == access.workspace_id,
            StudyMaterial.extracted_text.is_not(None),
            StudyMaterial.extracted_text != "",
        )
        .order_by(StudyMaterial.created_at.desc())
        .limit(settings.chat_max_materials)
    )
    materials = list(result.scalars().all())
    if not materials:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No materials with text content found in this workspace. Please upload some PDFs first.",
        )

    context, used = build_chat_context(materials, settings.chat_context_max_chars)

    try:
        answer = await ai_service.chat(query, context)
    except AIGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error(e, generic_message="Failed to process chat request."),
        )

    return ChatResponse(
        query=query,
        answer=answer,
        sources_used=[SourceUsed(id=m.id, title=m.title) for m in used],
    )
