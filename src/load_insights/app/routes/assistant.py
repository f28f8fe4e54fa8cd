"""Assistant routes: chat over the account's loads and broker email drafts.

Both call Gemini with the account's current loads as context. Model quota
and credential failures map to 429 and 401 like the ingestion endpoints.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.agents.base import AgentResult, ModelNotConfiguredError
from load_insights.agents.chat_agent import ChatAgent
from load_insights.agents.email_drafter import EmailDrafter, build_broker_profile
from load_insights.app.config import get_settings
from load_insights.app.errors import error_response
from load_insights.app.routes.auth import get_account_dep
from load_insights.domain.schemas import ChatRequest
from load_insights.infra.database import get_db
from load_insights.services.reconciliation import list_loads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["assistant"])


def _require_model() -> None:
    if not get_settings().gemini_api_key:
        raise ModelNotConfiguredError("Gemini API key not configured")


def get_chat_agent_dep() -> ChatAgent:
    """Dependency: the chat agent."""
    _require_model()
    return ChatAgent()


def get_email_drafter_dep() -> EmailDrafter:
    """Dependency: the email drafter."""
    _require_model()
    return EmailDrafter()


def _model_failure(result: AgentResult, fallback: str) -> JSONResponse:
    if result.quota_exceeded:
        return error_response(429, "Model quota exceeded. Try again later.", "quota_exceeded")
    if result.invalid_credentials:
        return error_response(401, "Invalid model API key. Check GEMINI_API_KEY.", "invalid_api_key")
    return error_response(500, result.error or fallback, "model_error")


@router.post("/chat")
async def chat(
    body: ChatRequest,
    account: str = Depends(get_account_dep),
    db: AsyncSession = Depends(get_db),
    agent: ChatAgent = Depends(get_chat_agent_dep),
):
    """Answer a question about the caller's loads."""
    if not body.message.strip():
        return error_response(400, "Message is required", "invalid_request")

    loads = await list_loads(db, account)
    history = [turn.model_dump() for turn in body.conversationHistory]
    result = await agent.reply(body.message, history, loads)
    if not result.ok:
        logger.error("Chat failed for %s: %s", account, result.error)
        return _model_failure(result, "Failed to process chat message")
    return {"response": result.data}


@router.get("/draft-email")
async def draft_email(
    account: str = Depends(get_account_dep),
    db: AsyncSession = Depends(get_db),
    drafter: EmailDrafter = Depends(get_email_drafter_dep),
):
    """Draft an email asking the caller's most frequent broker for more loads."""
    loads = await list_loads(db, account)
    if not loads:
        return error_response(404, "No loads found. Upload some rate confirmations first.", "not_found")

    profile = build_broker_profile(loads)
    if profile is None:
        return error_response(404, "No valid broker information found in your loads.", "not_found")

    result = await drafter.draft(profile)
    if not result.ok:
        logger.error("Email draft failed for %s: %s", account, result.error)
        return _model_failure(result, "Failed to draft email")
    return {"broker": profile.to_dict(), "draftEmail": result.data or ""}
