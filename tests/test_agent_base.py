"""Tests for BaseAgent, model error classification and the Gemini model factory."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from load_insights.agents.base import AgentResult, BaseAgent, classify_model_error
from load_insights.domain.enums import ModelErrorCode
from load_insights.domain.schemas import LoadExtraction
from load_insights.infra.gemini_client import _inline_defs, get_model


def _fake_settings():
    settings = MagicMock()
    settings.gemini_api_key = "fake-key"
    settings.extraction_model = "gemini-test-model"
    return settings


def _fake_response(text: str, prompt_tokens: int = 10, completion_tokens: int = 5):
    response = MagicMock()
    response.text = text
    response.usage_metadata.prompt_token_count = prompt_tokens
    response.usage_metadata.candidates_token_count = completion_tokens
    return response


# ═══════════════════════════════════════════════════════════════════════
# Error classification
# ═══════════════════════════════════════════════════════════════════════


class TestClassifyModelError:

    def test_resource_exhausted_is_quota(self):
        exc = google_exceptions.ResourceExhausted("Quota exceeded for generate_content")
        assert classify_model_error(exc) == ModelErrorCode.QUOTA_EXCEEDED.value

    def test_unauthenticated_is_invalid_key(self):
        exc = google_exceptions.Unauthenticated("bad credentials")
        assert classify_model_error(exc) == ModelErrorCode.INVALID_API_KEY.value

    def test_timeout_is_transient(self):
        assert classify_model_error(asyncio.TimeoutError()) == ModelErrorCode.TRANSIENT.value

    @pytest.mark.parametrize("message,expected", [
        ("429 Too Many Requests", ModelErrorCode.QUOTA_EXCEEDED.value),
        ("RESOURCE_EXHAUSTED: daily quota", ModelErrorCode.QUOTA_EXCEEDED.value),
        ("400 API key not valid. Please pass a valid API key.", ModelErrorCode.INVALID_API_KEY.value),
        ("connection reset by peer", ModelErrorCode.TRANSIENT.value),
        ("request 14290 failed: deadline exceeded", ModelErrorCode.TRANSIENT.value),
        ("upstream returned status=429", ModelErrorCode.QUOTA_EXCEEDED.value),
    ])
    def test_message_markers(self, message, expected):
        assert classify_model_error(RuntimeError(message)) == expected

    def test_result_flags(self):
        quota = AgentResult.failure("x", error_code=ModelErrorCode.QUOTA_EXCEEDED.value)
        creds = AgentResult.failure("x", error_code=ModelErrorCode.INVALID_API_KEY.value)
        assert quota.quota_exceeded and not quota.invalid_credentials
        assert creds.invalid_credentials and not creds.quota_exceeded


# ═══════════════════════════════════════════════════════════════════════
# BaseAgent
# ═══════════════════════════════════════════════════════════════════════


class TestBaseAgentGenerate:

    async def test_success_tracks_tokens(self):
        agent = BaseAgent(agent_name="test_agent")
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=_fake_response("hello"))

        with patch("load_insights.infra.gemini_client.get_model", return_value=model):
            result = await agent.generate("prompt")

        assert result.ok is True
        assert result.data == "hello"
        assert result.tokens_used == 15

    async def test_sdk_error_becomes_classified_failure(self):
        agent = BaseAgent(agent_name="test_agent")
        model = MagicMock()
        model.generate_content_async = AsyncMock(
            side_effect=google_exceptions.ResourceExhausted("quota"),
        )

        with patch("load_insights.infra.gemini_client.get_model", return_value=model):
            result = await agent.generate("prompt")

        assert result.ok is False
        assert result.quota_exceeded is True

    async def test_timeout_is_transient_failure(self):
        agent = BaseAgent(agent_name="test_agent", timeout_seconds=0.01)

        async def _slow(_prompt):
            await asyncio.sleep(1)

        model = MagicMock()
        model.generate_content_async = _slow

        with patch("load_insights.infra.gemini_client.get_model", return_value=model):
            result = await agent.generate("prompt")

        assert result.ok is False
        assert result.error_code == ModelErrorCode.TRANSIENT.value
        assert result.error


class TestBaseAgentChat:

    async def test_history_and_last_turn_split(self):
        agent = BaseAgent(agent_name="test_agent")
        session = MagicMock()
        session.send_message_async = AsyncMock(return_value=_fake_response("42 loads"))
        model = MagicMock()
        model.start_chat.return_value = session
        messages = [
            {"role": "user", "parts": ["hi"]},
            {"role": "model", "parts": ["hello"]},
            {"role": "user", "parts": ["how many loads?"]},
        ]

        with patch("load_insights.infra.gemini_client.get_model", return_value=model) as mock_get:
            result = await agent.chat(messages, system_instruction="be brief")

        assert result.ok is True
        assert result.data == "42 loads"
        assert result.tokens_used == 15
        assert model.start_chat.call_args.kwargs["history"] == messages[:2]
        session.send_message_async.assert_awaited_once_with("how many loads?")
        assert mock_get.call_args.kwargs["system_instruction"] == "be brief"

    async def test_empty_messages_fail_without_model_call(self):
        agent = BaseAgent(agent_name="test_agent")
        with patch("load_insights.infra.gemini_client.get_model") as mock_get:
            result = await agent.chat([])

        assert result.ok is False
        mock_get.assert_not_called()

    async def test_sdk_error_becomes_classified_failure(self):
        agent = BaseAgent(agent_name="test_agent")
        session = MagicMock()
        session.send_message_async = AsyncMock(side_effect=google_exceptions.Unauthenticated("bad key"))
        model = MagicMock()
        model.start_chat.return_value = session

        with patch("load_insights.infra.gemini_client.get_model", return_value=model):
            result = await agent.chat([{"role": "user", "parts": ["hi"]}])

        assert result.ok is False
        assert result.invalid_credentials is True


class TestBaseAgentGenerateJson:

    async def test_parses_json(self):
        agent = BaseAgent(agent_name="test_agent")
        with patch.object(agent, "generate", new_callable=AsyncMock,
                          return_value=AgentResult.success('{"load_id": "A1"}', tokens_used=7)):
            result = await agent.generate_json("prompt")

        assert result.ok is True
        assert result.data == {"load_id": "A1"}
        assert result.tokens_used == 7

    async def test_requests_json_mode(self):
        agent = BaseAgent(agent_name="test_agent")
        with patch.object(agent, "generate", new_callable=AsyncMock,
                          return_value=AgentResult.success("{}")) as mock_gen:
            await agent.generate_json("prompt", response_schema={"type": "object"})

        assert mock_gen.call_args.kwargs["json_mode"] is True
        assert mock_gen.call_args.kwargs["response_schema"] == {"type": "object"}

    async def test_unparseable_text_is_invalid_response(self):
        agent = BaseAgent(agent_name="test_agent")
        with patch.object(agent, "generate", new_callable=AsyncMock,
                          return_value=AgentResult.success("Sure! Here is the JSON:")):
            result = await agent.generate_json("prompt")

        assert result.ok is False
        assert result.error_code == ModelErrorCode.INVALID_RESPONSE.value

    async def test_upstream_failure_passed_through(self):
        agent = BaseAgent(agent_name="test_agent")
        failure = AgentResult.failure("bad key", error_code=ModelErrorCode.INVALID_API_KEY.value)
        with patch.object(agent, "generate", new_callable=AsyncMock, return_value=failure):
            result = await agent.generate_json("prompt")

        assert result is failure


# ═══════════════════════════════════════════════════════════════════════
# Model factory
# ═══════════════════════════════════════════════════════════════════════


class TestInlineDefs:

    def test_extraction_schema_is_self_contained(self):
        cleaned = _inline_defs(LoadExtraction.model_json_schema())
        text = str(cleaned)

        assert "$defs" not in cleaned
        assert "$ref" not in text
        assert "title" not in cleaned

    def test_nested_stop_schema_inlined(self):
        cleaned = _inline_defs(LoadExtraction.model_json_schema())
        stops = cleaned["properties"]["stops"]
        assert "properties" in stops["items"]
        assert "city" in stops["items"]["properties"]

    def test_property_named_title_survives(self):
        schema = {"type": "object", "title": "Doc", "properties": {"title": {"type": "string", "title": "Title"}}}
        cleaned = _inline_defs(schema)
        assert "title" in cleaned["properties"]
        assert "title" not in cleaned["properties"]["title"]

    def test_input_not_mutated(self):
        schema = LoadExtraction.model_json_schema()
        _inline_defs(schema)
        assert "$defs" in schema


class TestGetModel:

    @patch("load_insights.infra.gemini_client.genai")
    @patch("load_insights.infra.gemini_client.get_settings", return_value=_fake_settings())
    def test_json_mode_with_schema(self, _mock_settings, mock_genai):
        get_model(json_mode=True, response_schema=LoadExtraction.model_json_schema(), temperature=0.1)

        mock_genai.configure.assert_called_once_with(api_key="fake-key")
        kwargs = mock_genai.GenerativeModel.call_args.kwargs
        config = kwargs["generation_config"]
        assert kwargs["model_name"] == "gemini-test-model"
        assert config["temperature"] == 0.1
        assert config["response_mime_type"] == "application/json"
        assert "$defs" not in config["response_schema"]

    @patch("load_insights.infra.gemini_client.genai")
    @patch("load_insights.infra.gemini_client.get_settings", return_value=_fake_settings())
    def test_plain_mode_has_no_schema(self, _mock_settings, mock_genai):
        get_model(model_name="other-model", response_schema={"type": "object"})

        kwargs = mock_genai.GenerativeModel.call_args.kwargs
        assert kwargs["model_name"] == "other-model"
        assert "response_mime_type" not in kwargs["generation_config"]
        assert "response_schema" not in kwargs["generation_config"]
