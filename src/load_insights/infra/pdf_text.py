"""Plain-text extraction from PDF bytes via pdfplumber.

Unreadable, encrypted or image-only PDFs yield an empty string instead of an
exception; callers treat blank text as "skip this file".
"""

import asyncio
import io
import logging

import pdfplumber

logger = logging.getLogger(__name__)


def extract_pdf_text(data: bytes) -> str:
    """Return the text of every page joined by newlines, or "" if none."""
    if not data:
        return ""
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:  # noqa: BLE001
        logger.warning("PDF text extraction failed: %s", exc)
        return ""
    return "\n".join(p for p in pages if p.strip()).strip()


async def extract_pdf_text_async(data: bytes) -> str:
    """Run ``extract_pdf_text`` off the event loop."""
    return await asyncio.to_thread(extract_pdf_text, data)
