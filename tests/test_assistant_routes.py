"""Route tests for POST /api/chat and GET /api/draft-email."""

from unittest.mock import AsyncMock, MagicMock, patch

from load_insights.agents.base import AgentResult
from load_insights.agents.chat_agent import ChatAgent
from load_insights.agents.email_drafter import EmailDrafter
from load_insights.app.routes.assistant import (
    get_chat_agent_dep,
    get_email_drafter_dep,
    router as assistant_router,
)
from load_insights.domain.enums import ModelErrorCode
from load_insights.services.reconciliation import reconcile_loads

ACCOUNT = "a@x.com"


def _chat_override(result: AgentResult):
    agent = ChatAgent()
    agent.chat = AsyncMock(return_value=result)
    return agent, {get_chat_agent_dep: lambda: agent}


def _drafter_override(result: AgentResult):
    drafter = EmailDrafter()
    drafter.generate = AsyncMock(return_value=result)
    return drafter, {get_email_drafter_dep: lambda: drafter}


def _quota() -> AgentResult:
    return AgentResult.failure("429 quota", error_code=ModelErrorCode.QUOTA_EXCEEDED.value)


def _bad_key() -> AgentResult:
    return AgentResult.failure("API key not valid", error_code=ModelErrorCode.INVALID_API_KEY.value)


# ═══════════════════════════════════════════════════════════════════════
# POST /api/chat
# ═══════════════════════════════════════════════════════════════════════


class TestChat:

    async def test_reply_uses_callers_loads(self, make_app_client, make_load, auth_headers, db_session):
        await reconcile_loads(db_session, ACCOUNT, [make_load(load_id="MINE")])
        await reconcile_loads(db_session, "b@x.com", [make_load(load_id="THEIRS")])
        agent, overrides = _chat_override(AgentResult.success("You have one load."))

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.post("/api/chat", json={
                "message": "How many loads?",
                "conversationHistory": [{"role": "user", "content": "hi"}],
            }, headers=auth_headers(ACCOUNT))

        assert resp.status_code == 200
        assert resp.json() == {"response": "You have one load."}
        system_instruction = agent.chat.call_args.kwargs["system_instruction"]
        assert "Load MINE" in system_instruction
        assert "THEIRS" not in system_instruction
        assert len(agent.chat.call_args.kwargs["messages"]) == 2

    async def test_blank_message_is_400(self, make_app_client):
        agent, overrides = _chat_override(AgentResult.success("unused"))

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.post("/api/chat", json={"message": "   "})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Message is required", "code": "invalid_request"}
        agent.chat.assert_not_awaited()

    async def test_quota_is_429(self, make_app_client):
        _, overrides = _chat_override(_quota())

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status_code == 429
        assert resp.json()["code"] == "quota_exceeded"

    async def test_invalid_key_is_401(self, make_app_client):
        _, overrides = _chat_override(_bad_key())

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_api_key"

    async def test_other_failure_is_500(self, make_app_client):
        _, overrides = _chat_override(AgentResult.failure("connection reset"))

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "connection reset", "code": "model_error"}

    async def test_unconfigured_model_is_500(self, make_app_client):
        settings = MagicMock(gemini_api_key="")

        with patch("load_insights.app.routes.assistant.get_settings", return_value=settings):
            async with make_app_client(assistant_router) as client:
                resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status_code == 500
        assert resp.json()["code"] == "model_not_configured"


# ═══════════════════════════════════════════════════════════════════════
# GET /api/draft-email
# ═══════════════════════════════════════════════════════════════════════


class TestDraftEmail:

    async def test_no_loads_is_404(self, make_app_client, auth_headers):
        drafter, overrides = _drafter_override(AgentResult.success("unused"))

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.get("/api/draft-email", headers=auth_headers(ACCOUNT))

        assert resp.status_code == 404
        assert resp.json()["error"] == "No loads found. Upload some rate confirmations first."
        drafter.generate.assert_not_awaited()

    async def test_no_named_broker_is_404(self, make_app_client, make_load, auth_headers, db_session):
        await reconcile_loads(db_session, ACCOUNT, [make_load(broker_name="")])
        _, overrides = _drafter_override(AgentResult.success("unused"))

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.get("/api/draft-email", headers=auth_headers(ACCOUNT))

        assert resp.status_code == 404
        assert resp.json()["error"] == "No valid broker information found in your loads."

    async def test_draft_for_top_broker(self, make_app_client, make_load, auth_headers, db_session):
        await reconcile_loads(db_session, ACCOUNT, [
            make_load(load_id="1", rate_total=1000, miles="500"),
            make_load(load_id="2", rate_total=3000, miles="1000"),
            make_load(load_id="3", broker_name="TQL", broker_email="ops@tql.com"),
        ])
        drafter, overrides = _drafter_override(AgentResult.success("Hi Acme team,\n\nBest regards,"))

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.get("/api/draft-email", headers=auth_headers(ACCOUNT))

        assert resp.status_code == 200
        body = resp.json()
        assert body["draftEmail"] == "Hi Acme team,\n\nBest regards,"
        assert body["broker"] == {
            "name": "Acme Logistics",
            "email": "dispatch@acme.com",
            "phone": "555-1234",
            "loadCount": 2,
            "avgRate": 2000.0,
            "avgRPM": 2.5,
            "topRoutes": ["Dallas, TX → Atlanta, GA"],
            "topEquipment": ["Dry Van"],
        }
        assert "Loads completed: 2" in drafter.generate.call_args.kwargs["prompt"]

    async def test_quota_is_429(self, make_app_client, make_load, auth_headers, db_session):
        await reconcile_loads(db_session, ACCOUNT, [make_load()])
        _, overrides = _drafter_override(_quota())

        async with make_app_client(assistant_router, overrides=overrides) as client:
            resp = await client.get("/api/draft-email", headers=auth_headers(ACCOUNT))

        assert resp.status_code == 429
        assert resp.json()["code"] == "quota_exceeded"
