"""
Post-upload AI enrichment backed by a durable job table.

An upload inserts an EnrichmentJob row in the same transaction as the
material, so the work survives a process restart. A single worker task,
started from the application lifespan, claims due jobs, runs the summary
and flashcard stages, and reschedules failures with exponential backoff
until the attempt budget is spent.

Each stage is independent: a failed summary does not stop the flashcard
stage, and stages that already produced output are skipped on retry.
"""

import asyncio
import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyworkspace.config import get_settings
from studyworkspace.db.models import (
    EnrichmentJob,
    FlashcardSet,
    JobStatus,
    StudyMaterial,
    utcnow,
)
from studyworkspace.db.session import AsyncSessionLocal
from studyworkspace.services.ai_service import ai_service

logger = logging.getLogger(__name__)
settings = get_settings()


async def enqueue_enrichment(db: AsyncSession, material: StudyMaterial) -> EnrichmentJob:
    """Add a pending job for material. The caller commits."""
    job = EnrichmentJob(material_id=material.id, status=JobStatus.PENDING.value, run_after=utcnow())
    db.add(job)
    await db.flush()
    return job


async def enrich_material(db: AsyncSession, material: StudyMaterial) -> list[str]:
    """
    Run the summary and flashcard stages for material.

    Returns the names of the stages that failed (empty on full success).
    Marks the material processed only when every stage succeeded.
    """
    failed: list[str] = []
    text = material.extracted_text or ""

    if not material.summary:
        try:
            material.summary = await ai_service.summarize(text)
            await db.flush()
        except Exception:
            logger.exception("Summary stage failed for material %s", material.id)
            failed.append("summary")

    existing_set = await db.execute(
        select(FlashcardSet.id).where(FlashcardSet.source_id == material.id).limit(1)
    )
    if existing_set.scalar_one_or_none() is None:
        try:
            cards = await ai_service.generate_flashcards(text)
            db.add(
                FlashcardSet(
                    workspace_id=material.workspace_id,
                    title=f"Flashcards - {material.title}",
                    cards=[card.model_dump() for card in cards],
                    created_by=material.uploaded_by,
                    source_id=material.id,
                )
            )
            await db.flush()
        except Exception:
            logger.exception("Flashcard stage failed for material %s", material.id)
            failed.append("flashcards")

    if not failed:
        material.is_processed = True
    return failed


class EnrichmentWorker:
    """Polls the job table and processes due enrichment jobs."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory
        self._task: asyncio.Task | None = None
        self._wakeup = asyncio.Event()
        self._stopping = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.recover_interrupted()
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name="enrichment-worker")
        logger.info("Enrichment worker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping = True
        self._wakeup.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Enrichment worker stopped")

    def notify(self) -> None:
        """Wake the worker early, e.g. right after an upload commits."""
        self._wakeup.set()

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await self.run_pending()
            except Exception:
                logger.exception("Enrichment worker iteration failed")
            try:
                await asyncio.wait_for(
                    self._wakeup.wait(), timeout=settings.enrichment_poll_interval_seconds
                )
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

    # ------------------------------------------------------------------
    # Job handling
    # ------------------------------------------------------------------

    async def recover_interrupted(self) -> int:
        """Return jobs stranded in 'running' by a previous process to 'pending'."""
        async with self.session_factory() as db:
            result = await db.execute(
                update(EnrichmentJob)
                .where(EnrichmentJob.status == JobStatus.RUNNING.value)
                .values(status=JobStatus.PENDING.value, run_after=utcnow())
            )
            await db.commit()
        if result.rowcount:
            logger.warning("Re-queued %d interrupted enrichment job(s)", result.rowcount)
        return result.rowcount or 0

    async def _claim_due_jobs(self) -> list[UUID]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(EnrichmentJob)
                .where(
                    EnrichmentJob.status == JobStatus.PENDING.value,
                    EnrichmentJob.run_after <= utcnow(),
                )
                .order_by(EnrichmentJob.run_after)
                .limit(settings.enrichment_batch_size)
                .with_for_update(skip_locked=True)
            )
            jobs = result.scalars().all()
            for job in jobs:
                job.status = JobStatus.RUNNING.value
                job.attempts += 1
            await db.commit()
            return [job.id for job in jobs]

    async def run_pending(self) -> int:
        """Claim and process every currently due job. Returns how many ran."""
        job_ids = await self._claim_due_jobs()
        for job_id in job_ids:
            try:
                await self.process_job(job_id)
            except Exception as e:
                logger.exception("Enrichment job %s crashed", job_id)
                await self._release_crashed(job_id, e)
        return len(job_ids)

    async def _release_crashed(self, job_id: UUID, error: Exception) -> None:
        """Put a job whose run raised back in the queue, in a fresh session."""
        async with self.session_factory() as db:
            job = await db.get(EnrichmentJob, job_id)
            if job is None or job.status != JobStatus.RUNNING.value:
                return
            self._reschedule(job, f"error: {error}")
            await db.commit()

    @staticmethod
    def _reschedule(job: EnrichmentJob, error: str) -> None:
        """Back off a failed attempt, or give up once the attempt budget is spent."""
        job.last_error = error
        if job.attempts >= settings.enrichment_max_attempts:
            job.status = JobStatus.FAILED.value
            logger.error(
                "Enrichment of material %s gave up after %d attempts (%s)",
                job.material_id, job.attempts, error,
            )
            return
        delay = settings.enrichment_retry_base_seconds * (2 ** (job.attempts - 1))
        job.status = JobStatus.PENDING.value
        job.run_after = utcnow() + timedelta(seconds=delay)
        logger.warning(
            "Enrichment of material %s failed (%s), retry %d in %.0fs",
            job.material_id, error, job.attempts, delay,
        )

    async def process_job(self, job_id: UUID) -> None:
        async with self.session_factory() as db:
            job = await db.get(EnrichmentJob, job_id)
            if job is None:
                return
            material = await db.get(StudyMaterial, job.material_id)

            if material is None or not material.has_text:
                logger.info("Skipping enrichment job %s: no material text", job_id)
                job.status = JobStatus.SKIPPED.value
                await db.commit()
                return

            failed = await enrich_material(db, material)

            if failed:
                self._reschedule(job, f"failed stages: {', '.join(failed)}")
            else:
                job.status = JobStatus.SUCCEEDED.value
                job.last_error = None
                logger.info("Material %s enriched", material.id)
            await db.commit()


# Singleton instance
enrichment_worker = EnrichmentWorker()
