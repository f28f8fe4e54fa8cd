"""Gmail scan route: pull rate confirmation PDFs from the user's mailbox."""

import logging

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.app.config import get_settings
from load_insights.app.errors import error_response
from load_insights.app.routes.auth import get_account_dep, get_gmail_token_dep
from load_insights.app.routes.loads import get_pipeline_dep
from load_insights.domain.enums import TimeRange
from load_insights.domain.schemas import GmailSyncRequest
from load_insights.infra.database import get_db
from load_insights.infra.gmail_client import GmailClient
from load_insights.services.ingestion import IngestionPipeline, IngestionResult, ingest_gmail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gmail", tags=["gmail"])

_RANGE_LABELS = {
    TimeRange.ONE_MONTH: "last month",
    TimeRange.THREE_MONTHS: "last 3 months",
    TimeRange.SIX_MONTHS: "last 6 months",
    TimeRange.TWELVE_MONTHS: "last year",
}


def sync_stats(result: IngestionResult) -> dict:
    return {
        "emailsScanned": result.emails_scanned,
        "pdfsFound": result.pdfs_found,
        "pdfsProcessed": result.pdfs_processed,
        "skipped": result.skipped,
        "extracted": result.added,
        "refreshed": result.refreshed,
        "duplicates": result.duplicates,
        "failed": result.failed,
    }


@router.post("/sync")
async def gmail_sync(
    body: GmailSyncRequest | None = Body(None),
    account: str = Depends(get_account_dep),
    access_token: str = Depends(get_gmail_token_dep),
    db: AsyncSession = Depends(get_db),
    pipeline: IngestionPipeline = Depends(get_pipeline_dep),
):
    """Scan Gmail for rate confirmations in the requested range and ingest them."""
    settings = get_settings()
    requested = (body or GmailSyncRequest()).timeRange
    try:
        time_range = TimeRange(requested)
    except ValueError:
        return error_response(400, f"Invalid timeRange: {requested}", "invalid_range")

    logger.info("Syncing Gmail for %s (%s)", account, time_range.value)
    gmail = GmailClient(access_token, timeout=settings.gmail_timeout_seconds)
    result = await ingest_gmail(
        db,
        account,
        gmail,
        pipeline,
        time_range=time_range,
        max_pdfs=settings.gmail_max_pdfs_per_sync,
        delay_seconds=settings.gmail_delay_between_pdfs_ms / 1000,
    )

    label = _RANGE_LABELS[time_range]
    response = {
        "success": True,
        "stats": sync_stats(result),
        "loads": [load.model_dump(mode="json") for load in result.loads],
    }

    if result.emails_scanned == 0:
        response["message"] = f"No rate confirmation emails found in the {label}"
        return response

    if result.quota_exceeded:
        saved = result.added + result.merged
        response["success"] = saved > 0
        response["warning"] = result.warning
        response["message"] = (
            f"Extraction quota exceeded after {saved} load(s). "
            "Run the sync again later to process the rest."
        )
        return JSONResponse(response, status_code=429)

    response["message"] = (
        f"Scanned {result.emails_scanned} email(s) from the {label}: "
        f"{result.added} new, {result.refreshed} refreshed, {result.duplicates} duplicate, "
        f"{result.failed} failed"
    )
    return response
