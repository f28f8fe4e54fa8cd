"""Structured load extraction from rate confirmation text using Gemini."""

import logging

from pydantic import ValidationError

from load_insights.agents.base import AgentResult, BaseAgent
from load_insights.agents.prompts.load_extraction import (
    LOAD_EXTRACTION_PROMPT,
    LOAD_EXTRACTION_SYSTEM_PROMPT,
)
from load_insights.app.config import get_settings
from load_insights.domain.enums import ModelErrorCode
from load_insights.domain.schemas import LoadExtraction, LoadRecord

logger = logging.getLogger(__name__)

# Rate confirmations are a few pages; anything longer is boilerplate
MAX_TEXT_CHARS = 60_000


def missing_required_fields(record: LoadRecord) -> list[str]:
    """Names of required fields the record could not produce."""
    missing = []
    if not record.load_id:
        missing.append("load_id")
    if not record.broker_name:
        missing.append("broker_name")
    if record.rate_total <= 0:
        missing.append("rate_total")
    return missing


class LoadExtractor(BaseAgent):
    """Turns raw rate confirmation text into a ``LoadRecord``."""

    def __init__(self, model_name: str | None = None, timeout_seconds: float | None = None):
        settings = get_settings()
        super().__init__(
            agent_name="load_extractor",
            model_name=model_name or settings.extraction_model,
            temperature=0.1,
            timeout_seconds=timeout_seconds or settings.llm_timeout_seconds,
        )

    async def extract(self, text: str) -> AgentResult:
        """Extract one load from document text.

        Returns a success whose ``data`` is a ``LoadRecord`` with every field
        populated (absent values degraded to ""/0/[]), or a failure whose
        ``error_code`` tells the caller why. Never raises.
        """
        if not text or not text.strip():
            return AgentResult.failure(
                "No text found in document",
                error_code=ModelErrorCode.EMPTY_TEXT.value,
            )

        if len(text) > MAX_TEXT_CHARS:
            logger.info(
                "[%s] Truncating document text from %d to %d chars",
                self.agent_name, len(text), MAX_TEXT_CHARS,
            )
            text = text[:MAX_TEXT_CHARS]

        result = await self.generate_json(
            prompt=LOAD_EXTRACTION_PROMPT.replace("{text}", text),
            system_instruction=LOAD_EXTRACTION_SYSTEM_PROMPT,
            response_schema=LoadExtraction.model_json_schema(),
        )
        if not result.ok:
            return result

        if not isinstance(result.data, dict):
            return AgentResult.failure(
                f"Expected a JSON object, got {type(result.data).__name__}",
                error_code=ModelErrorCode.INVALID_RESPONSE.value,
                latency_ms=result.latency_ms,
            )

        payload = dict(result.data)
        # Mileage always comes from the distance enricher
        payload.pop("miles", None)
        payload.pop("rpm", None)

        try:
            record = LoadRecord.model_validate(payload)
        except ValidationError as exc:
            logger.warning("[%s] Validation error: %s", self.agent_name, exc)
            return AgentResult.failure(
                f"Validation error: {exc.error_count()} invalid field(s)",
                error_code=ModelErrorCode.INVALID_RESPONSE.value,
                latency_ms=result.latency_ms,
            )

        missing = missing_required_fields(record)
        if missing:
            return AgentResult.failure(
                f"Missing required fields: {', '.join(missing)}",
                error_code=ModelErrorCode.MISSING_REQUIRED_FIELDS.value,
                latency_ms=result.latency_ms,
            )

        if not record.pickups() or not record.deliveries():
            logger.info(
                "[%s] Load %s has no complete pickup/delivery pair; route features will show N/A",
                self.agent_name, record.load_id,
            )

        return AgentResult.success(
            data=record,
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
        )
