"""Base agent class for Load Insights AI agents.

Every agent inherits from BaseAgent, which provides:

- Gemini model access via the infra.gemini_client wrapper
- A standard AgentResult return type (Result pattern)
- A hard per-call timeout
- Classification of upstream failures into machine-readable codes
- Automatic latency measurement and token tracking
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

from google.api_core import exceptions as google_exceptions

from load_insights.domain.enums import ModelErrorCode

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120


class ModelNotConfiguredError(Exception):
    """No Gemini API key is configured for an assistant feature."""

    code = "model_not_configured"


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class AgentResult:
    """Standard result type for all agent operations.

    Follows the Result pattern: every agent call returns an AgentResult
    instead of raising exceptions. Callers check ``result.ok`` to
    determine success or failure, and ``result.error_code`` to branch on
    the cause of a failure.

    Attributes:
        ok: True if the operation succeeded.
        data: The response payload (text, parsed JSON, a record, etc.).
        error: Human-readable error description when ``ok`` is False.
        error_code: Machine-readable cause (a ``ModelErrorCode`` value).
        tokens_used: Total tokens consumed (prompt + completion).
        latency_ms: Wall-clock time for the operation in milliseconds.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    tokens_used: int = 0
    latency_ms: int = 0

    @classmethod
    def success(
        cls,
        data: Any,
        tokens_used: int = 0,
        latency_ms: int = 0,
    ) -> "AgentResult":
        """Create a successful result."""
        return cls(
            ok=True,
            data=data,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str = ModelErrorCode.TRANSIENT.value,
        latency_ms: int = 0,
    ) -> "AgentResult":
        """Create a failure result."""
        return cls(ok=False, error=error, error_code=error_code, latency_ms=latency_ms)

    @property
    def quota_exceeded(self) -> bool:
        return self.error_code == ModelErrorCode.QUOTA_EXCEEDED.value

    @property
    def invalid_credentials(self) -> bool:
        return self.error_code == ModelErrorCode.INVALID_API_KEY.value


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

_QUOTA_MARKERS = ("quota", "resource_exhausted", "rate limit")
_QUOTA_STATUS = re.compile(r"\b429\b")
_CREDENTIAL_MARKERS = ("api key not valid", "api_key_invalid", "invalid api key", "permission denied")


def classify_model_error(exc: BaseException) -> str:
    """Map an exception raised by the Gemini SDK onto a ``ModelErrorCode`` value."""
    if isinstance(exc, (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)):
        return ModelErrorCode.QUOTA_EXCEEDED.value
    if isinstance(exc, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
        return ModelErrorCode.INVALID_API_KEY.value
    if isinstance(exc, asyncio.TimeoutError):
        return ModelErrorCode.TRANSIENT.value

    message = str(exc).lower()
    if any(marker in message for marker in _QUOTA_MARKERS) or _QUOTA_STATUS.search(message):
        return ModelErrorCode.QUOTA_EXCEEDED.value
    if any(marker in message for marker in _CREDENTIAL_MARKERS):
        return ModelErrorCode.INVALID_API_KEY.value
    return ModelErrorCode.TRANSIENT.value


def _token_count(response) -> int:
    """Prompt plus completion tokens from the response metadata, 0 if absent."""
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return 0
    prompt_tokens = getattr(usage, "prompt_token_count", 0) or 0
    completion_tokens = getattr(usage, "candidates_token_count", 0) or 0
    return prompt_tokens + completion_tokens


# ---------------------------------------------------------------------------
# Base agent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Base class for Load Insights agents.

    Example::

        class LoadExtractor(BaseAgent):
            def __init__(self):
                super().__init__(agent_name="load_extractor", temperature=0.1)

            async def extract(self, text: str) -> AgentResult:
                return await self.generate_json(
                    prompt=f"Extract load data: {text}",
                    system_instruction="You extract rate confirmations.",
                )
    """

    def __init__(
        self,
        agent_name: str,
        model_name: Optional[str] = None,
        temperature: float = 0.7,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialise the agent.

        Args:
            agent_name: A short, unique name for this agent (used in logs).
            model_name: The Gemini model identifier. None uses the
                configured extraction model.
            temperature: Generation temperature (0.0-1.0).
            timeout_seconds: Hard limit for one model call.
        """
        self.agent_name = agent_name
        self.model_name = model_name
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Core generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
        response_schema: dict | None = None,
    ) -> AgentResult:
        """Generate a single-turn response from Gemini.

        Args:
            prompt: The user prompt to send.
            system_instruction: Optional system instruction that shapes
                the model's behaviour.
            json_mode: If True the model is instructed to return valid JSON.
            response_schema: Optional JSON Schema constraining the output.

        Returns:
            An ``AgentResult`` with the response text in ``data``.
        """
        start_time = time.time()
        try:
            from load_insights.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                json_mode=json_mode,
                response_schema=response_schema,
                system_instruction=system_instruction,
            )

            response = await asyncio.wait_for(
                model.generate_content_async(prompt),
                timeout=self.timeout_seconds,
            )
            latency_ms = int((time.time() - start_time) * 1000)

            tokens_used = _token_count(response)

            response_text = response.text

            logger.info(
                "[%s] Generation succeeded: tokens=%d, latency=%dms",
                self.agent_name,
                tokens_used,
                latency_ms,
            )

            return AgentResult.success(
                data=response_text,
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            error_code = classify_model_error(exc)
            logger.error(
                "[%s] Generation failed after %dms (%s): %s",
                self.agent_name,
                latency_ms,
                error_code,
                exc,
            )
            message = str(exc) or type(exc).__name__
            return AgentResult.failure(message, error_code=error_code, latency_ms=latency_ms)

    # ------------------------------------------------------------------
    # Multi-turn chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: list[dict],
        system_instruction: Optional[str] = None,
    ) -> AgentResult:
        """Conduct a multi-turn conversation with Gemini.

        Args:
            messages: A list of message dicts, each with ``role``
                (``"user"`` or ``"model"``) and ``parts`` (list of
                strings).  The **last** message is sent as the new user
                turn; all preceding messages form the chat history.
            system_instruction: Optional system instruction.

        Returns:
            An ``AgentResult`` with the model's latest reply in ``data``.
        """
        if not messages:
            return AgentResult.failure("No messages provided for chat.")

        start_time = time.time()
        try:
            from load_insights.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                system_instruction=system_instruction,
            )

            history = [
                {"role": msg.get("role", "user"), "parts": msg.get("parts", [])}
                for msg in messages[:-1]
            ]
            user_text = "\n".join(str(p) for p in messages[-1].get("parts", []))

            chat_session = model.start_chat(history=history)
            response = await asyncio.wait_for(
                chat_session.send_message_async(user_text),
                timeout=self.timeout_seconds,
            )
            latency_ms = int((time.time() - start_time) * 1000)
            tokens_used = _token_count(response)

            logger.info(
                "[%s] Chat succeeded: tokens=%d, latency=%dms, turns=%d",
                self.agent_name,
                tokens_used,
                latency_ms,
                len(messages),
            )

            return AgentResult.success(
                data=response.text,
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            error_code = classify_model_error(exc)
            logger.error(
                "[%s] Chat failed after %dms (%s): %s",
                self.agent_name,
                latency_ms,
                error_code,
                exc,
            )
            message = str(exc) or type(exc).__name__
            return AgentResult.failure(message, error_code=error_code, latency_ms=latency_ms)

    # ------------------------------------------------------------------
    # JSON generation convenience
    # ------------------------------------------------------------------

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        response_schema: dict | None = None,
    ) -> AgentResult:
        """Generate a response and parse it as JSON.

        Calls ``generate`` with ``json_mode=True``, then deserialises the
        response text into a Python dict or list.  If parsing fails the
        result will be a failure with the parse error.

        Args:
            prompt: The user prompt.
            system_instruction: Optional system instruction.
            response_schema: Optional JSON Schema constraining the output.

        Returns:
            An ``AgentResult`` whose ``data`` field contains the parsed
            JSON (dict or list).
        """
        result = await self.generate(
            prompt=prompt,
            system_instruction=system_instruction,
            json_mode=True,
            response_schema=response_schema,
        )

        if not result.ok:
            return result

        try:
            parsed = json.loads(result.data)
            return AgentResult.success(
                data=parsed,
                tokens_used=result.tokens_used,
                latency_ms=result.latency_ms,
            )
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning(
                "[%s] JSON parse failed: %s, raw text: %.200s",
                self.agent_name,
                exc,
                result.data,
            )
            return AgentResult.failure(
                error=f"JSON parse error: {exc}",
                error_code=ModelErrorCode.INVALID_RESPONSE.value,
                latency_ms=result.latency_ms,
            )
