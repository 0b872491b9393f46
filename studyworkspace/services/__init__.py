"""Services for external integrations."""

from studyworkspace.services.s3 import s3_service
from studyworkspace.services.pdf_processor import pdf_processor
from studyworkspace.services.ai_service import ai_service
from studyworkspace.services.calendar_service import calendar_service
from studyworkspace.services.enrichment import enrichment_worker

__all__ = ["s3_service", "pdf_processor", "ai_service", "calendar_service", "enrichment_worker"]
