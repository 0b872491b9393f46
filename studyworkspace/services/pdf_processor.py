"""PDF text extraction service using PyMuPDF."""

import asyncio
import logging
import re

import pymupdf  # PyMuPDF

logger = logging.getLogger(__name__)

# Control characters that Postgres TEXT/VARCHAR cannot store (NUL, etc.)
_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


class PDFProcessor:
    """Service for extracting text from PDF files."""

    @staticmethod
    def _extract(pdf_bytes: bytes, max_chars: int | None) -> dict:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:
                # Combine all pages with double newline separator
                full_text = "\n\n".join(page.get_text() for page in doc)
                page_count = len(doc)

            # Strip NUL bytes and other control chars that Postgres rejects
            full_text = _ILLEGAL_CHARS.sub("", full_text)

            if max_chars is not None and len(full_text) > max_chars:
                full_text = full_text[:max_chars]

            return {
                "text": full_text,
                "page_count": page_count,
                "status": "success",
            }
        except Exception as e:
            logger.warning("PDF text extraction failed: %s", e)
            return {
                "text": "",
                "page_count": 0,
                "status": "failed",
                "error": str(e),
            }

    async def extract_text(self, pdf_bytes: bytes, max_chars: int | None = None) -> dict:
        """
        Extract text from PDF bytes in a worker thread.

        Args:
            pdf_bytes: Raw bytes of the PDF file
            max_chars: Truncate the combined text to this many characters

        Returns:
            Dictionary with:
                - text: Extracted text from all pages ("" on failure)
                - page_count: Number of pages in the PDF
                - status: 'success' or 'failed'
                - error: Error message if status is 'failed' (optional)

        Example:
            >>> result = await pdf_processor.extract_text(pdf_data)
            >>> if result['status'] == 'success':
            ...     print(f"Extracted {len(result['text'])} chars from {result['page_count']} pages")
        """
        return await asyncio.to_thread(self._extract, pdf_bytes, max_chars)


# Singleton instance
pdf_processor = PDFProcessor()
