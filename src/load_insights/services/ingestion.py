"""Ingestion orchestrators for manual upload, browser extension and Gmail.

Every entry point runs the same per-document pipeline sequentially:

    PDF bytes -> text -> structured load -> distance enrichment -> candidate

then hands the batch to the reconciliation engine and, when anything was
written, schedules a background broker sync. One document's failure never
aborts the batch. Quota exhaustion stops further model calls but the
candidates gathered so far are still saved.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.agents.load_extractor import LoadExtractor
from load_insights.domain.enums import FileOutcome, ModelErrorCode, SourceChannel, TimeRange
from load_insights.domain.schemas import LoadRecord
from load_insights.infra.gmail_client import (
    GmailAPIError,
    GmailClient,
    build_search_queries,
    find_pdf_attachments,
)
from load_insights.infra.pdf_text import extract_pdf_text_async
from load_insights.services.background_jobs import schedule_broker_sync
from load_insights.services.distance_service import DistanceService, enrich_load
from load_insights.services.reconciliation import processed_source_files, reconcile_loads

logger = logging.getLogger(__name__)

NO_TEXT_REASON = "No text found in PDF"
QUOTA_WARNING = "QUOTA_EXCEEDED"


class ExtractionAuthError(Exception):
    """The extraction model rejected our credentials; the whole run fails."""

    code = ModelErrorCode.INVALID_API_KEY.value


class ExtractionNotConfiguredError(Exception):
    """No model API key is configured, so nothing can be extracted."""

    code = "extraction_not_configured"


@dataclass
class UploadedDocument:
    filename: str
    data: bytes


@dataclass
class FileResult:
    filename: str
    outcome: str
    load_id: str = ""
    error: str | None = None


@dataclass
class IngestionResult:
    """Per-file outcomes plus the reconciled loads of one ingestion run."""

    files: list[FileResult] = field(default_factory=list)
    loads: list[LoadRecord] = field(default_factory=list)
    added: int = 0
    refreshed: int = 0
    duplicates: int = 0
    duplicate_details: list[dict] = field(default_factory=list)
    quota_exceeded: bool = False
    # Gmail scan only
    emails_scanned: int = 0
    pdfs_found: int = 0
    pdfs_processed: int = 0

    def _count(self, outcome: FileOutcome) -> int:
        return sum(1 for f in self.files if f.outcome == outcome.value)

    @property
    def failed(self) -> int:
        return self._count(FileOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(FileOutcome.SKIPPED)

    @property
    def merged(self) -> int:
        return self.refreshed + self.duplicates

    @property
    def errors(self) -> list[dict]:
        return [
            {"filename": f.filename, "error": f.error}
            for f in self.files
            if f.outcome in (FileOutcome.FAILED.value, FileOutcome.SKIPPED.value) and f.error
        ]

    @property
    def warning(self) -> str | None:
        return QUOTA_WARNING if self.quota_exceeded else None


class IngestionPipeline:
    """Runs documents through text extraction, the LLM extractor and the enricher.

    Collaborators are injected so tests can substitute them.
    """

    def __init__(
        self,
        extractor: LoadExtractor,
        distance: DistanceService,
        pdf_text: Callable[[bytes], Awaitable[str]] = extract_pdf_text_async,
    ):
        self.extractor = extractor
        self.distance = distance
        self.pdf_text = pdf_text

    async def process_document(
        self,
        doc: UploadedDocument,
        channel: SourceChannel,
    ) -> tuple[FileResult, LoadRecord | None, bool]:
        """Turn one document into a candidate load.

        Returns ``(file_result, candidate, quota_exceeded)``. ``candidate`` is
        None unless extraction succeeded, in which case the file outcome is
        provisional until reconciliation decides added vs. merged.

        Raises:
            ExtractionAuthError: the model rejected the API key.
        """
        text = await self.pdf_text(doc.data)
        if not text.strip():
            logger.info("No text in %s, skipping", doc.filename)
            return FileResult(doc.filename, FileOutcome.SKIPPED.value, error=NO_TEXT_REASON), None, False

        logger.info("Extracted %d characters from %s", len(text), doc.filename)
        result = await self.extractor.extract(text)
        if not result.ok:
            if result.invalid_credentials:
                raise ExtractionAuthError(result.error or "Invalid extraction API key")
            if result.quota_exceeded:
                logger.warning("Extraction quota exceeded while processing %s", doc.filename)
                return (
                    FileResult(doc.filename, FileOutcome.FAILED.value,
                               error=ModelErrorCode.QUOTA_EXCEEDED.value),
                    None,
                    True,
                )
            logger.warning("Extraction failed for %s: %s", doc.filename, result.error)
            return FileResult(doc.filename, FileOutcome.FAILED.value, error=result.error), None, False

        record: LoadRecord = result.data.model_copy(update={
            "source_file": doc.filename,
            "source_channel": channel.value,
            "extracted_at": datetime.now(timezone.utc).isoformat(),
        })
        record = await enrich_load(record, self.distance)
        logger.info("Extracted load %s from %s", record.load_id, doc.filename)
        return FileResult(doc.filename, FileOutcome.EXTRACTED.value, load_id=record.load_id), record, False


# ---------------------------------------------------------------------------
# Batch helpers
# ---------------------------------------------------------------------------


async def _reconcile_batch(
    db: AsyncSession,
    account: str,
    result: IngestionResult,
    candidates: list[tuple[FileResult, LoadRecord]],
) -> None:
    """Reconcile the candidates and write final outcomes onto their files.

    Raises:
        LoadStoreError: propagated from the store; the batch was rolled back.
    """
    if not candidates:
        return
    stats = await reconcile_loads(db, account, [record for _, record in candidates])
    for (file_result, _), outcome in zip(candidates, stats.outcomes):
        file_result.outcome = outcome
        if outcome == FileOutcome.SKIPPED.value:
            file_result.error = "Missing load_id"
    result.added = stats.added
    result.refreshed = stats.refreshed
    result.duplicates = stats.duplicates
    result.duplicate_details = stats.duplicate_details
    result.loads = stats.loads

    if stats.added + stats.merged > 0:
        schedule_broker_sync(account)


def _mark_remaining_skipped(result: IngestionResult, filenames: list[str]) -> None:
    for filename in filenames:
        result.files.append(FileResult(
            filename, FileOutcome.SKIPPED.value, error=ModelErrorCode.QUOTA_EXCEEDED.value,
        ))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def ingest_uploads(
    db: AsyncSession,
    account: str,
    files: list[UploadedDocument],
    pipeline: IngestionPipeline,
    channel: SourceChannel = SourceChannel.UPLOAD,
) -> IngestionResult:
    """Ingest directly supplied PDFs (manual upload or extension scan)."""
    result = IngestionResult()
    candidates: list[tuple[FileResult, LoadRecord]] = []

    for index, doc in enumerate(files):
        file_result, record, quota = await pipeline.process_document(doc, channel)
        result.files.append(file_result)
        if record is not None:
            candidates.append((file_result, record))
        if quota:
            result.quota_exceeded = True
            _mark_remaining_skipped(result, [doc.filename for doc in files[index + 1:]])
            logger.warning(
                "Quota exceeded after %d of %d file(s); remaining files skipped",
                index, len(files),
            )
            break

    await _reconcile_batch(db, account, result, candidates)
    logger.info(
        "Ingestion (%s) for %s: added=%d merged=%d failed=%d skipped=%d",
        channel.value, account, result.added, result.merged, result.failed, result.skipped,
    )
    return result


async def ingest_gmail(
    db: AsyncSession,
    account: str,
    gmail: GmailClient,
    pipeline: IngestionPipeline,
    time_range: TimeRange = TimeRange.ONE_MONTH,
    max_pdfs: int = 20,
    delay_seconds: float = 1.0,
    today: date | None = None,
) -> IngestionResult:
    """Scan the mailbox for rate confirmation PDFs and ingest them.

    At most ``max_pdfs`` attachments are processed per run; the rest are
    picked up by the next scan since already-ingested filenames are skipped.

    Raises:
        GmailAuthError: the access token was rejected.
        ExtractionAuthError: the model rejected the API key.
    """
    result = IngestionResult()
    candidates: list[tuple[FileResult, LoadRecord]] = []

    message_ids = await gmail.search_message_ids(build_search_queries(time_range, today))
    result.emails_scanned = len(message_ids)
    if not message_ids:
        logger.info("No rate confirmation emails found for %s (%s)", account, time_range.value)
        return result

    already_processed = await processed_source_files(db, account)
    logger.info("Already processed %d PDF(s) for %s", len(already_processed), account)

    for message_id in message_ids:
        if result.quota_exceeded or result.pdfs_processed >= max_pdfs:
            if result.pdfs_processed >= max_pdfs:
                logger.info("Reached limit of %d PDFs per sync; the rest wait for the next sync", max_pdfs)
            break

        try:
            message = await gmail.get_message(message_id)
        except GmailAPIError as exc:
            logger.error("Error fetching message %s: %s", message_id, exc)
            continue

        attachments = find_pdf_attachments(message)
        for index, attachment in enumerate(attachments):
            result.pdfs_found += 1
            if result.quota_exceeded or result.pdfs_processed >= max_pdfs:
                break

            if attachment.filename in already_processed:
                logger.info("Skipping already processed: %s", attachment.filename)
                result.files.append(FileResult(
                    attachment.filename, FileOutcome.SKIPPED.value, error="Already processed",
                ))
                continue

            try:
                data = await gmail.download_attachment(attachment)
            except GmailAPIError as exc:
                logger.error("Error downloading %s: %s", attachment.filename, exc)
                result.files.append(FileResult(attachment.filename, FileOutcome.FAILED.value, error=str(exc)))
                result.pdfs_processed += 1
                continue

            logger.info(
                "Processing PDF %d/%d: %s",
                result.pdfs_processed + 1, max_pdfs, attachment.filename,
            )
            file_result, record, quota = await pipeline.process_document(
                UploadedDocument(attachment.filename, data), SourceChannel.GMAIL,
            )
            result.files.append(file_result)
            result.pdfs_processed += 1
            if record is not None:
                candidates.append((file_result, record))
            if quota:
                result.quota_exceeded = True
                remaining = [a.filename for a in attachments[index + 1:]]
                result.pdfs_found += len(remaining)
                _mark_remaining_skipped(result, remaining)
                logger.warning(
                    "Extraction quota exceeded; processed %d PDF(s) before hitting the limit",
                    result.pdfs_processed - 1,
                )
                break

            if delay_seconds and result.pdfs_processed < max_pdfs:
                await asyncio.sleep(delay_seconds)

    await _reconcile_batch(db, account, result, candidates)
    logger.info(
        "Gmail sync for %s: emails=%d pdfs_found=%d processed=%d added=%d merged=%d failed=%d skipped=%d",
        account, result.emails_scanned, result.pdfs_found, result.pdfs_processed,
        result.added, result.merged, result.failed, result.skipped,
    )
    return result


def pipeline_from_settings() -> IngestionPipeline:
    """Build the production pipeline.

    Raises:
        ExtractionNotConfiguredError: no Gemini API key is configured.
    """
    from load_insights.app.config import get_settings
    from load_insights.services.distance_service import distance_service_from_settings

    if not get_settings().gemini_api_key:
        raise ExtractionNotConfiguredError("Gemini API key not configured")
    return IngestionPipeline(LoadExtractor(), distance_service_from_settings())
