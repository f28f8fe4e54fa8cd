"""Load ingestion and load store routes.

Manual upload and the browser extension both land here; the Gmail scan has
its own router. Every endpoint is scoped to the caller's account.
"""

import base64
import binascii
import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.app.errors import error_response
from load_insights.app.routes.auth import get_account_dep
from load_insights.domain.enums import SourceChannel, TimeRange
from load_insights.domain.schemas import ExtensionScanRequest
from load_insights.infra.database import get_db
from load_insights.services.dashboard_metrics import compute_metrics
from load_insights.services.ingestion import (
    IngestionPipeline,
    IngestionResult,
    UploadedDocument,
    ingest_uploads,
    pipeline_from_settings,
)
from load_insights.services.reconciliation import clear_loads, list_loads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["loads"])


def get_pipeline_dep() -> IngestionPipeline:
    """Dependency: the configured ingestion pipeline."""
    return pipeline_from_settings()


def ingestion_body(result: IngestionResult) -> dict:
    """Response body shared by the upload and extension endpoints."""
    body = {
        "success": True,
        "extracted": result.added,
        "refreshed": result.refreshed,
        "duplicates": result.duplicates,
        "failed": result.failed,
        "skipped": result.skipped,
        "loads": [load.model_dump(mode="json") for load in result.loads],
    }
    if result.errors:
        body["errors"] = result.errors
    if result.duplicate_details:
        body["duplicateDetails"] = result.duplicate_details
    if result.quota_exceeded:
        body["success"] = result.added + result.merged > 0
        body["warning"] = result.warning
        body["message"] = (
            f"Extraction quota exceeded. Saved {result.added + result.merged} load(s) "
            "before hitting the limit; try the remaining files later."
        )
    return body


def _respond(result: IngestionResult) -> JSONResponse:
    status_code = 429 if result.quota_exceeded else 200
    return JSONResponse(ingestion_body(result), status_code=status_code)


def _decode_attachment(data: str) -> bytes:
    """Accept standard or URL-safe base64, with or without padding."""
    padded = data.strip() + "=" * (-len(data.strip()) % 4)
    try:
        return base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
    except (binascii.Error, ValueError):
        return b""


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@router.post("/extract")
async def extract(
    files: list[UploadFile] | None = File(None),
    source: str = Form(SourceChannel.UPLOAD.value),
    account: str = Depends(get_account_dep),
    db: AsyncSession = Depends(get_db),
    pipeline: IngestionPipeline = Depends(get_pipeline_dep),
):
    """Ingest uploaded rate confirmation PDFs."""
    if not files:
        return error_response(400, "No files provided", "no_files")

    channel = SourceChannel.EXTENSION if source == SourceChannel.EXTENSION.value else SourceChannel.UPLOAD
    documents = [
        UploadedDocument(filename=f.filename or "upload.pdf", data=await f.read())
        for f in files
    ]
    logger.info("Extract request: %d file(s) from %s for %s", len(documents), channel.value, account)

    result = await ingest_uploads(db, account, documents, pipeline, channel)
    return _respond(result)


@router.post("/extension/scan")
async def extension_scan(
    body: ExtensionScanRequest,
    account: str = Depends(get_account_dep),
    db: AsyncSession = Depends(get_db),
    pipeline: IngestionPipeline = Depends(get_pipeline_dep),
):
    """Ingest PDF attachments forwarded by the browser extension as base64."""
    if not body.attachments:
        return error_response(400, "No attachments provided", "no_files")

    documents = []
    for attachment in body.attachments:
        data = _decode_attachment(attachment.data)
        if not data:
            logger.warning("Could not decode attachment %s", attachment.filename)
        documents.append(UploadedDocument(filename=attachment.filename, data=data))

    result = await ingest_uploads(db, account, documents, pipeline, SourceChannel.EXTENSION)
    return _respond(result)


# ---------------------------------------------------------------------------
# Load store
# ---------------------------------------------------------------------------


@router.get("/loads")
async def get_loads(
    account: str = Depends(get_account_dep),
    db: AsyncSession = Depends(get_db),
):
    loads = await list_loads(db, account)
    return {"loads": [load.model_dump(mode="json") for load in loads], "account": account}


@router.get("/loads/metrics")
async def get_metrics(
    time_range: str = Query(TimeRange.ONE_MONTH.value, alias="range"),
    account: str = Depends(get_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """Dashboard KPIs over the selected look-back range; null means missing data."""
    try:
        preset = TimeRange(time_range)
    except ValueError:
        return error_response(400, f"Invalid range: {time_range}", "invalid_range")
    loads = await list_loads(db, account)
    return {"range": preset.value, "metrics": compute_metrics(loads, preset).to_dict()}


@router.delete("/clear")
async def clear(
    account: str = Depends(get_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """Delete every load in the caller's account."""
    deleted = await clear_loads(db, account)
    return {"success": True, "message": "All loads cleared", "deleted": deleted}
