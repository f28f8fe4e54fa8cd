"""Translate service-level exceptions into ``{"error", "code"}`` responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from load_insights.agents.base import ModelNotConfiguredError
from load_insights.infra.gmail_client import GmailAPIError, GmailAuthError
from load_insights.services.crm_service import NotFoundError
from load_insights.services.ingestion import ExtractionAuthError, ExtractionNotConfiguredError
from load_insights.services.reconciliation import LoadStoreError

logger = logging.getLogger(__name__)


def error_response(status_code: int, error: str, code: str | None = None) -> JSONResponse:
    body = {"error": error}
    if code:
        body["code"] = code
    return JSONResponse(body, status_code=status_code)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ExtractionNotConfiguredError)
    async def _not_configured(request: Request, exc: ExtractionNotConfiguredError):
        return error_response(500, str(exc), exc.code)

    @app.exception_handler(ExtractionAuthError)
    async def _extraction_auth(request: Request, exc: ExtractionAuthError):
        logger.error("Extraction credentials rejected: %s", exc)
        return error_response(401, "Invalid extraction API key. Check GEMINI_API_KEY.", exc.code)

    @app.exception_handler(LoadStoreError)
    async def _store(request: Request, exc: LoadStoreError):
        return error_response(500, str(exc), "store_error")

    @app.exception_handler(GmailAuthError)
    async def _gmail_auth(request: Request, exc: GmailAuthError):
        return error_response(401, str(exc), "gmail_unauthorized")

    @app.exception_handler(GmailAPIError)
    async def _gmail_api(request: Request, exc: GmailAPIError):
        return error_response(502, str(exc), "gmail_error")

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return error_response(404, str(exc), "not_found")

    @app.exception_handler(ModelNotConfiguredError)
    async def _model_not_configured(request: Request, exc: ModelNotConfiguredError):
        return error_response(500, str(exc), exc.code)
