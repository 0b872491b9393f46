"""Tests for material upload, management and post-upload enrichment."""

from unittest.mock import AsyncMock, MagicMock, patch

import pymupdf
import pytest
from botocore.exceptions import ClientError
from sqlalchemy import select

from studyworkspace.db.models import EnrichmentJob, FlashcardSet, JobStatus, StudyMaterial
from studyworkspace.db.session import AsyncSessionLocal
from studyworkspace.schemas.flashcards import Flashcard
from studyworkspace.services import ai_service, enrichment_worker, pdf_processor, s3_service
from studyworkspace.services.ai_service import AIGenerationError
from studyworkspace.services.s3 import StorageError

SUMMARY = "## Key Points\n- Chlorophyll absorbs light\n\n## Conclusion\nPlants make sugar."
CARDS = [Flashcard(front="What absorbs light?", back="Chlorophyll")]


def make_pdf(text: str) -> bytes:
    doc = pymupdf.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def storage():
    """Patch S3 so uploads and deletes never leave the process."""
    with (
        patch.object(s3_service, "upload_file", AsyncMock(return_value="https://files.example/obj")) as upload,
        patch.object(s3_service, "delete_file", AsyncMock()) as delete,
    ):
        yield upload, delete


@pytest.fixture
def ai():
    with (
        patch.object(ai_service, "summarize", AsyncMock(return_value=SUMMARY)) as summarize,
        patch.object(ai_service, "generate_flashcards", AsyncMock(return_value=CARDS)) as flashcards,
    ):
        yield summarize, flashcards


async def upload(client, workspace, headers, *, filename="photosynthesis.pdf",
                 content=None, content_type="application/pdf", title="Photosynthesis"):
    if content is None:
        content = make_pdf("Photosynthesis converts light energy into chemical energy.")
    return await client.post(
        f"/workspaces/{workspace.id}/upload",
        files={"file": (filename, content, content_type)},
        data={"title": title},
        headers=headers,
    )


# =============================================================================
# UPLOAD VALIDATION
# =============================================================================


async def test_rejects_disallowed_type_without_storage_write(client, workspace, owner_headers, storage):
    upload_mock, _ = storage
    response = await upload(
        client, workspace, owner_headers,
        filename="notes.txt", content=b"plain text", content_type="text/plain",
    )

    assert response.status_code == 400
    assert "Invalid file type" in response.json()["detail"]
    upload_mock.assert_not_awaited()


async def test_rejects_oversized_file(client, workspace, owner_headers, storage):
    upload_mock, _ = storage
    too_big = b"\x89PNG" + b"0" * (10 * 1024 * 1024)
    response = await upload(
        client, workspace, owner_headers,
        filename="huge.png", content=too_big, content_type="image/png",
    )

    assert response.status_code == 400
    upload_mock.assert_not_awaited()


async def test_rejects_blank_title(client, workspace, owner_headers, storage):
    upload_mock, _ = storage
    response = await upload(client, workspace, owner_headers, title="   ")
    assert response.status_code == 400
    upload_mock.assert_not_awaited()


async def test_image_upload_is_not_queued(client, workspace, owner_headers, storage):
    upload_mock, _ = storage
    response = await upload(
        client, workspace, owner_headers,
        filename="diagram.png", content=b"\x89PNG\r\n", content_type="image/png", title="Diagram",
    )

    assert response.status_code == 201
    body = response.json()
    assert body["processing"] is False
    assert body["material"]["type"] == "image"
    assert body["material"]["isProcessed"] is False

    key = upload_mock.await_args.args[0]
    assert key.startswith(f"workspaces/{workspace.id}/")
    assert key.endswith("_diagram.png")

    async with AsyncSessionLocal() as db:
        jobs = (await db.execute(select(EnrichmentJob))).scalars().all()
    assert jobs == []


async def test_unreadable_pdf_is_stored_without_text(client, workspace, owner_headers, storage):
    response = await upload(client, workspace, owner_headers, content=b"%PDF-broken")

    assert response.status_code == 201
    assert response.json()["processing"] is False


async def test_storage_failure_is_500(client, workspace, owner_headers):
    failing = AsyncMock(side_effect=StorageError("bucket missing"))
    with patch.object(s3_service, "upload_file", failing):
        response = await upload(client, workspace, owner_headers)
    assert response.status_code == 500


# =============================================================================
# ENRICHMENT
# =============================================================================


async def test_upload_then_worker_enriches_material(client, workspace, owner, owner_headers, storage, ai):
    summarize, flashcards = ai
    response = await upload(client, workspace, owner_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["processing"] is True
    assert body["material"]["isProcessed"] is False
    material_id = body["material"]["id"]

    assert await enrichment_worker.run_pending() == 1
    summarize.assert_awaited_once()
    assert "Photosynthesis" in summarize.await_args.args[0]

    response = await client.get(
        f"/workspaces/{workspace.id}/materials/{material_id}", headers=owner_headers
    )
    material = response.json()["material"]
    assert material["isProcessed"] is True
    assert material["summary"] == SUMMARY
    assert "Photosynthesis" in material["extractedText"]

    response = await client.get(f"/workspaces/{workspace.id}/flashcards", headers=owner_headers)
    [flashcard_set] = response.json()["flashcardSets"]
    assert flashcard_set["sourceId"] == material_id
    assert flashcard_set["title"] == "Flashcards - Photosynthesis"
    assert flashcard_set["createdBy"] == str(owner.id)
    assert flashcard_set["cards"] == [{"front": "What absorbs light?", "back": "Chlorophyll"}]

    # Nothing left to do
    assert await enrichment_worker.run_pending() == 0


async def test_failed_stage_is_retried_later(client, workspace, owner_headers, storage):
    with (
        patch.object(ai_service, "summarize", AsyncMock(side_effect=AIGenerationError("down"))),
        patch.object(ai_service, "generate_flashcards", AsyncMock(return_value=CARDS)) as flashcards,
    ):
        response = await upload(client, workspace, owner_headers)
        await enrichment_worker.run_pending()
    material_id = response.json()["material"]["id"]

    async with AsyncSessionLocal() as db:
        job = (await db.execute(select(EnrichmentJob))).scalar_one()
        material = await db.get(StudyMaterial, job.material_id)
        sets = (await db.execute(select(FlashcardSet))).scalars().all()

    # Flashcards still ran even though the summary failed
    flashcards.assert_awaited_once()
    assert len(sets) == 1
    assert str(material.id) == material_id
    assert material.is_processed is False
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 1
    assert "summary" in job.last_error

    # Backoff keeps the job out of the next poll
    assert await enrichment_worker.run_pending() == 0


async def test_job_gives_up_after_max_attempts(client, workspace, owner_headers, storage):
    from studyworkspace.config import get_settings

    max_attempts = get_settings().enrichment_max_attempts
    with (
        patch.object(ai_service, "summarize", AsyncMock(side_effect=AIGenerationError("down"))),
        patch.object(ai_service, "generate_flashcards", AsyncMock(side_effect=AIGenerationError("down"))),
    ):
        await upload(client, workspace, owner_headers)
        async with AsyncSessionLocal() as db:
            job = (await db.execute(select(EnrichmentJob))).scalar_one()
        for _ in range(max_attempts):
            async with AsyncSessionLocal() as db:
                queued = await db.get(EnrichmentJob, job.id)
                queued.status = JobStatus.RUNNING.value
                queued.attempts += 1
                await db.commit()
            await enrichment_worker.process_job(job.id)

    async with AsyncSessionLocal() as db:
        job = await db.get(EnrichmentJob, job.id)
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == max_attempts


async def test_crashed_job_goes_back_to_the_queue(client, workspace, owner_headers, storage):
    await upload(client, workspace, owner_headers, title="First", filename="first.pdf")
    await upload(client, workspace, owner_headers, title="Second", filename="second.pdf")

    crashing = AsyncMock(side_effect=RuntimeError("db blip"))
    with patch("studyworkspace.services.enrichment.enrich_material", crashing):
        assert await enrichment_worker.run_pending() == 2

    # Both jobs ran even though the first one raised
    assert crashing.await_count == 2
    async with AsyncSessionLocal() as db:
        jobs = (await db.execute(select(EnrichmentJob))).scalars().all()
    assert [job.status for job in jobs] == [JobStatus.PENDING.value] * 2
    assert all(job.attempts == 1 for job in jobs)
    assert all("db blip" in job.last_error for job in jobs)


async def test_interrupted_jobs_are_recovered(client, workspace, owner_headers, storage, ai):
    await upload(client, workspace, owner_headers)
    async with AsyncSessionLocal() as db:
        job = (await db.execute(select(EnrichmentJob))).scalar_one()
        job.status = JobStatus.RUNNING.value
        await db.commit()

    assert await enrichment_worker.run_pending() == 0
    assert await enrichment_worker.recover_interrupted() == 1
    assert await enrichment_worker.run_pending() == 1


async def test_enrich_endpoint_requeues(client, workspace, owner_headers, storage, ai):
    material_id = (await upload(client, workspace, owner_headers)).json()["material"]["id"]
    await enrichment_worker.run_pending()

    response = await client.post(
        f"/workspaces/{workspace.id}/materials/{material_id}/enrich", headers=owner_headers
    )
    assert response.status_code == 202
    assert response.json()["processing"] is True

    # Summary and flashcards already exist, so the rerun creates nothing new
    summarize, flashcards = ai
    await enrichment_worker.run_pending()
    assert summarize.await_count == 1
    assert flashcards.await_count == 1


# =============================================================================
# MANAGEMENT
# =============================================================================


async def test_list_omits_text_and_is_newest_first(client, workspace, owner_headers, storage):
    await upload(client, workspace, owner_headers, title="First", filename="first.pdf")
    await upload(client, workspace, owner_headers, title="Second", filename="second.pdf")

    response = await client.get(f"/workspaces/{workspace.id}/materials", headers=owner_headers)

    materials = response.json()["materials"]
    assert [m["title"] for m in materials] == ["Second", "First"]
    assert "extractedText" not in materials[0]


async def test_summarize_now(client, workspace, owner_headers, storage, ai):
    material_id = (await upload(client, workspace, owner_headers)).json()["material"]["id"]

    response = await client.post(
        f"/workspaces/{workspace.id}/materials/{material_id}/summarize", headers=owner_headers
    )

    assert response.status_code == 200
    assert response.json() == {"materialId": material_id, "summary": SUMMARY}


async def test_delete_removes_file_then_record(client, workspace, owner_headers, storage):
    _, delete_mock = storage
    created = (await upload(client, workspace, owner_headers)).json()["material"]

    response = await client.delete(
        f"/workspaces/{workspace.id}/materials/{created['id']}", headers=owner_headers
    )

    assert response.status_code == 204
    delete_mock.assert_awaited_once_with(created["s3Key"])
    response = await client.get(
        f"/workspaces/{workspace.id}/materials/{created['id']}", headers=owner_headers
    )
    assert response.status_code == 404


async def test_delete_keeps_record_when_storage_fails(client, workspace, owner_headers, storage):
    created = (await upload(client, workspace, owner_headers)).json()["material"]

    failing = AsyncMock(side_effect=StorageError("denied"))
    with patch.object(s3_service, "delete_file", failing):
        response = await client.delete(
            f"/workspaces/{workspace.id}/materials/{created['id']}", headers=owner_headers
        )

    assert response.status_code == 500
    response = await client.get(
        f"/workspaces/{workspace.id}/materials/{created['id']}", headers=owner_headers
    )
    assert response.status_code == 200


async def test_pdf_processor_extracts_and_truncates():
    pdf = make_pdf("Mitochondria are the powerhouse of the cell.")

    result = await pdf_processor.extract_text(pdf)
    assert result["status"] == "success"
    assert result["page_count"] == 1
    assert "Mitochondria" in result["text"]

    result = await pdf_processor.extract_text(pdf, max_chars=5)
    assert len(result["text"]) == 5


async def test_pdf_processor_reports_failure():
    result = await pdf_processor.extract_text(b"not a pdf")
    assert result == {"text": "", "page_count": 0, "status": "failed", "error": result["error"]}


async def test_s3_service_puts_and_deletes_objects():
    client = MagicMock()
    with patch.object(s3_service, "s3_client", client):
        url = await s3_service.upload_file("workspaces/w/1_notes.pdf", b"%PDF", "application/pdf")
        await s3_service.delete_file("workspaces/w/1_notes.pdf")

        client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject"
        )
        with pytest.raises(StorageError):
            await s3_service.delete_file("workspaces/w/1_notes.pdf")

    assert url == "https://test-bucket.s3.us-east-2.amazonaws.com/workspaces/w/1_notes.pdf"
    client.put_object.assert_called_once_with(
        Bucket="test-bucket",
        Key="workspaces/w/1_notes.pdf",
        Body=b"%PDF",
        ContentType="application/pdf",
    )
