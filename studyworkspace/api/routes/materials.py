"""API routes for study material upload and management."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from sqlalchemy import select

from studyworkspace.api.deps import (
    DbSession,
    WorkspaceEditor,
    WorkspaceMember,
    get_workspace_resource_or_404,
)
from studyworkspace.config import get_settings, sanitize_error
from studyworkspace.db.models import MaterialType, StudyMaterial
from studyworkspace.schemas.materials import (
    EnrichmentQueuedResponse,
    MaterialListResponse,
    MaterialRead,
    MaterialResponse,
    MaterialUploadResponse,
    MaterialWithText,
    SummaryResponse,
)
from studyworkspace.services import ai_service, enrichment_worker, pdf_processor, s3_service
from studyworkspace.services.ai_service import AIGenerationError
from studyworkspace.services.enrichment import enqueue_enrichment
from studyworkspace.services.s3 import StorageError

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["materials"])


# =============================================================================
# UPLOAD
# =============================================================================


@router.post(
    "/upload", response_model=MaterialUploadResponse, status_code=status.HTTP_201_CREATED
)
async def upload_material(
    access: WorkspaceEditor,
    db: DbSession,
    file: Annotated[UploadFile | None, File()] = None,
    title: Annotated[str, Form()] = "",
):
    """
    Upload a PDF or image into the workspace.

    Flow:
    1. Validate type, size and title (nothing is stored on failure)
    2. Store the file in S3
    3. Extract text from PDFs (best effort)
    4. Save the material and, if it has text, queue AI enrichment
    5. Respond immediately; summary and flashcards appear later
    """
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    content_type = (file.content_type or "").lower()
    if content_type not in settings.allowed_upload_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Only PDF and images are allowed.",
        )

    title = title.strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")

    data = await file.read()
    if len(data) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size is {settings.max_upload_size_bytes // (1024 * 1024)}MB.",
        )

    filename = file.filename or "upload"
    file_key = s3_service.build_key(access.workspace_id, filename)
    try:
        file_url = await s3_service.upload_file(file_key, data, content_type)
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error(e, generic_message="Failed to store file."),
        )

    is_pdf = content_type == "application/pdf"
    extracted_text = None
    if is_pdf:
        result = await pdf_processor.extract_text(data, max_chars=settings.max_extracted_text_chars)
        if result["status"] == "failed":
            logger.warning("Text extraction failed for %s: %s", filename, result.get("error"))
        extracted_text = result["text"]

    material = StudyMaterial(
        workspace_id=access.workspace_id,
        title=title,
        type=MaterialType.PDF.value if is_pdf else MaterialType.IMAGE.value,
        s3_key=file_key,
        file_url=file_url,
        content_type=content_type,
        file_size_bytes=len(data),
        extracted_text=extracted_text,
        uploaded_by=access.user.id,
    )
    db.add(material)
    await db.flush()

    processing = material.has_text
    if processing:
        await enqueue_enrichment(db, material)
    await db.commit()
    await db.refresh(material)

    if processing:
        enrichment_worker.notify()

    logger.info(
        "Material %s uploaded to workspace %s (%d bytes, %d chars of text)",
        material.id, access.workspace_id, len(data), len(extracted_text or ""),
    )

    return MaterialUploadResponse(
        message="File uploaded successfully",
        material=MaterialRead.model_validate(material),
        processing=processing,
    )


# =============================================================================
# MATERIAL MANAGEMENT
# =============================================================================


@router.get("/materials", response_model=MaterialListResponse)
async def list_materials(access: WorkspaceMember, db: DbSession):
    """List the workspace's materials, newest first."""
    result = await db.execute(
        select(StudyMaterial)
        .where(StudyMaterial.workspace_id == access.workspace_id)
        .order_by(StudyMaterial.created_at.desc())
    )
    return MaterialListResponse(
        materials=[MaterialRead.model_validate(m) for m in result.scalars().all()]
    )


@router.get("/materials/{material_id}", response_model=MaterialResponse)
async def get_material(material_id: UUID, access: WorkspaceMember, db: DbSession):
    """Get a material including its extracted text and summary."""
    material = await get_workspace_resource_or_404(
        db, StudyMaterial, material_id, access.workspace_id, detail="Material not found"
    )
    return MaterialResponse(material=MaterialWithText.model_validate(material))


@router.delete("/materials/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_material(material_id: UUID, access: WorkspaceEditor, db: DbSession):
    """
    Delete a material.

    The stored file goes first; if S3 refuses, the record is kept so the
    delete can be retried.
    """
    material = await get_workspace_resource_or_404(
        db, StudyMaterial, material_id, access.workspace_id, detail="Material not found"
    )

    try:
        await s3_service.delete_file(material.s3_key)
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error(e, generic_message="Failed to delete file from storage."),
        )

    await db.delete(material)
    await db.commit()
    logger.info("Material %s deleted from workspace %s", material_id, access.workspace_id)


@router.post("/materials/{material_id}/summarize", response_model=SummaryResponse)
async def summarize_material(material_id: UUID, access: WorkspaceEditor, db: DbSession):
    """Regenerate the material's summary now and store it."""
    material = await get_workspace_resource_or_404(
        db, StudyMaterial, material_id, access.workspace_id, detail="Material not found"
    )
    if not material.has_text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No text content available for this material",
        )

    try:
        material.summary = await ai_service.summarize(material.extracted_text)
    except AIGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error(e, generic_message="Failed to generate summary."),
        )
    await db.commit()

    return SummaryResponse(material_id=material.id, summary=material.summary)


@router.post(
    "/materials/{material_id}/enrich",
    response_model=EnrichmentQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enrich_material(material_id: UUID, access: WorkspaceEditor, db: DbSession):
    """Queue the material for summary and flashcard generation again."""
    material = await get_workspace_resource_or_404(
        db, StudyMaterial, material_id, access.workspace_id, detail="Material not found"
    )
    if not material.has_text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No text content available for this material",
        )

    job = await enqueue_enrichment(db, material)
    await db.commit()
    enrichment_worker.notify()

    return EnrichmentQueuedResponse(message="Enrichment queued", job_id=job.id)
